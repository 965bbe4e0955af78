"""Database connection and session management"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from app.config import get_settings
from app.errors import GovernanceError, StoreUnavailableError

logger = structlog.get_logger()
settings = get_settings()


def configure_sqlite(engine: AsyncEngine) -> None:
    """Make every SQLite transaction take the write lock up front.

    SQLite has no row locks, so BEGIN IMMEDIATE is what keeps concurrent
    read-modify-write units from interleaving.
    """
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, applying dialect-specific setup"""
    kwargs = {"echo": echo}
    if not database_url.startswith("sqlite"):
        kwargs["pool_size"] = settings.database_pool_size
    engine = create_async_engine(database_url, **kwargs)
    if engine.dialect.name == "sqlite":
        configure_sqlite(engine)
    return engine


engine = build_engine(settings.database_url, echo=settings.database_echo)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all models"""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session"""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def atomic(session: AsyncSession, operation: str, **context):
    """Run a block as one unit of work: commit on success, roll back on any failure.

    Store-level exceptions are logged with ``context`` and surfaced as
    StoreUnavailableError; GovernanceError passes through untouched.
    """
    try:
        yield session
        await session.commit()
    except GovernanceError:
        await session.rollback()
        raise
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Store failure", operation=operation, error=str(e), **context)
        raise StoreUnavailableError(f"Failed to {operation}") from e
    except BaseException:
        await session.rollback()
        raise


@asynccontextmanager
async def store_errors(operation: str, **context):
    """Surface store-level failures of a read as StoreUnavailableError.

    Nothing is rolled back here; the request scope (``get_db``) owns that.
    """
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("Store failure", operation=operation, error=str(e), **context)
        raise StoreUnavailableError(f"Failed to {operation}") from e


async def init_db():
    """Initialize database tables"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections"""
    await engine.dispose()
