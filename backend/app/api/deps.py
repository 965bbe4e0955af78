"""
API dependencies: caller identity from JWT bearer tokens, and per-request
services sharing one database session.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.clock import utcnow
from app.config import get_settings
from app.errors import ForbiddenError
from app.models.database import get_db
from app.models.user import UserRole
from app.services.activity import ActivityService
from app.services.governance import GovernanceService
from app.services.ledger import TokenLedger
from app.services.solana_client import get_solana_client
from app.services.voting_power import VotingPowerCalculator

logger = structlog.get_logger()

security = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    id: str
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def create_access_token(user_id: str, role: UserRole = UserRole.USER, expires_minutes: Optional[int] = None) -> str:
    """Issue a signed access token for a user"""
    settings = get_settings()
    expire = utcnow() + timedelta(minutes=expires_minutes or settings.jwt_expire_minutes)
    payload = {"sub": user_id, "role": role.value, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> CurrentUser:
    """Verify a token and extract the caller identity"""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.warning("JWT validation error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing user",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        role = UserRole(payload.get("role", UserRole.USER.value))
    except ValueError:
        role = UserRole.USER
    return CurrentUser(id=user_id, role=role)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """Require an authenticated caller"""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_access_token(credentials.credentials)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[CurrentUser]:
    """Caller identity when a token is present; anonymous otherwise"""
    if credentials is None:
        return None
    return decode_access_token(credentials.credentials)


def ensure_self_or_admin(user: CurrentUser, user_id: str) -> None:
    """Users may only act on their own ledger unless they are admins"""
    if user.id != user_id and not user.is_admin:
        raise ForbiddenError()


def get_ledger(db: AsyncSession = Depends(get_db)) -> TokenLedger:
    return TokenLedger(db, activity=ActivityService(db))


def get_voting_power_calculator(db: AsyncSession = Depends(get_db)) -> VotingPowerCalculator:
    return VotingPowerCalculator(db)


def get_activity_service(db: AsyncSession = Depends(get_db)) -> ActivityService:
    return ActivityService(db)


async def get_governance_service(db: AsyncSession = Depends(get_db)) -> GovernanceService:
    attestor = None
    if get_settings().vote_attestation_enabled:
        attestor = await get_solana_client()
    return GovernanceService(
        db,
        voting_power=VotingPowerCalculator(db),
        activity=ActivityService(db),
        attestor=attestor,
    )
