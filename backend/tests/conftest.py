"""Pytest configuration and fixtures for Perpetua governance backend tests"""
import uuid
import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from dotenv import load_dotenv

from app.main import app
from app.clock import utcnow
from app.api.deps import create_access_token
from app.models.database import Base, build_engine, get_db
from app.models.user import User, UserRole
from app.services.activity import ActivityService
from app.services.governance import GovernanceService
from app.services.ledger import TokenLedger
from app.services.voting_power import VotingPowerCalculator

# Load environment variables
load_dotenv()

NOW = datetime(2026, 1, 15, 12, 0, 0)


class FrozenClock:
    """Injectable clock that only moves when told to"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """
    File-backed SQLite engine per test.

    A file (not :memory:) so that several sessions can hold their own
    connections, which the concurrency tests rely on.
    """
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'governance.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Insert a user and commit, returning its id"""

    async def _make_user(
        balance: float = 0.0,
        role: UserRole = UserRole.USER,
        created_at: datetime = NOW - timedelta(days=1),
    ) -> str:
        user = User(
            email=f"{uuid.uuid4().hex[:12]}@example.com",
            name="Test User",
            role=role,
            token_balance=balance,
            created_at=created_at,
        )
        db_session.add(user)
        await db_session.commit()
        return user.id

    return _make_user


@pytest.fixture
def ledger(db_session: AsyncSession, clock: FrozenClock) -> TokenLedger:
    return TokenLedger(db_session, activity=ActivityService(db_session), clock=clock)


@pytest.fixture
def calculator(db_session: AsyncSession, clock: FrozenClock) -> VotingPowerCalculator:
    return VotingPowerCalculator(db_session, clock=clock)


def build_governance(session: AsyncSession, clock: FrozenClock, attestor=None) -> GovernanceService:
    return GovernanceService(
        session,
        voting_power=VotingPowerCalculator(session, clock=clock),
        activity=ActivityService(session),
        attestor=attestor,
        clock=clock,
    )


@pytest.fixture
def governance(db_session: AsyncSession, clock: FrozenClock) -> GovernanceService:
    return build_governance(db_session, clock)


@pytest.fixture
def governance_factory(clock: FrozenClock):
    """Build a governance service on any session, sharing the test clock"""

    def _factory(session: AsyncSession, attestor=None) -> GovernanceService:
        return build_governance(session, clock, attestor=attestor)

    return _factory


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client"""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Bearer headers for a user id"""

    def _auth_headers(user_id: str, role: UserRole = UserRole.USER) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}

    return _auth_headers


@pytest.fixture
def mock_proposal():
    """Mock governance proposal payload for API tests"""
    return {
        "title": "Refinance the Lisbon property",
        "description": "Move the mortgage on the Lisbon asset to a fixed rate lender.",
        "options": ["Approve", "Reject"],
        "end_date": (utcnow() + timedelta(days=7)).isoformat(),
        "category": "finance",
        "tags": ["real-estate", "debt"],
    }
