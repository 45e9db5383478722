"""
Database Session Management - Async SQLAlchemy engines and sessions.

Ledger writes, message appends and bearer lookups go to the primary. Only
the health probe reads from the replica, since chat history and balances
must reflect the caller's own just-committed writes.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from chatgate.config import settings
from chatgate.observability.tracing import instrument_sqlalchemy


class EnginePair:
    """Lazily created primary and replica engines with their session factories."""

    def __init__(self) -> None:
        self._primary: AsyncEngine | None = None
        self._replica: AsyncEngine | None = None
        self._primary_sessions: async_sessionmaker[AsyncSession] | None = None
        self._replica_sessions: async_sessionmaker[AsyncSession] | None = None

    @staticmethod
    def _create_engine(url: str) -> AsyncEngine:
        engine = create_async_engine(
            url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
            pool_pre_ping=True,
            echo=settings.log_level == "DEBUG",
        )
        instrument_sqlalchemy(engine)
        return engine

    @property
    def primary(self) -> AsyncEngine:
        if self._primary is None:
            self._primary = self._create_engine(settings.database_url)
        return self._primary

    @property
    def replica(self) -> AsyncEngine:
        if self._replica is None:
            if settings.read_database_url == settings.database_url:
                self._replica = self.primary
            else:
                self._replica = self._create_engine(settings.read_database_url)
        return self._replica

    @property
    def primary_sessions(self) -> async_sessionmaker[AsyncSession]:
        if self._primary_sessions is None:
            self._primary_sessions = async_sessionmaker(self.primary, expire_on_commit=False)
        return self._primary_sessions

    @property
    def replica_sessions(self) -> async_sessionmaker[AsyncSession]:
        if self._replica_sessions is None:
            self._replica_sessions = async_sessionmaker(self.replica, expire_on_commit=False)
        return self._replica_sessions

    async def dispose(self) -> None:
        """Dispose both engines; the next access recreates them."""
        if self._replica is not None and self._replica is not self._primary:
            await self._replica.dispose()
        if self._primary is not None:
            await self._primary.dispose()
        self._primary = self._replica = None
        self._primary_sessions = self._replica_sessions = None


engines = EnginePair()


@asynccontextmanager
async def get_write_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Primary-database session outside of a request.

    Used by webhook reconciliation, which runs after the response is sent and
    so cannot borrow the request-scoped session.

    Usage:
        async with get_write_session() as session:
            await EntitlementLedger(session).credit_purchase(...)
    """
    async with engines.primary_sessions() as session:
        yield session


async def get_write_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for a primary-database session.

    Usage:
        @router.post("/v1/chat")
        async def post_chat(db: AsyncSession = Depends(get_write_db)):
            ...
    """
    async with engines.primary_sessions() as session:
        yield session


async def get_read_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for a replica session (falls back to the primary)."""
    async with engines.replica_sessions() as session:
        yield session


async def close_engines() -> None:
    """Close all database engines (for graceful shutdown)."""
    await engines.dispose()
