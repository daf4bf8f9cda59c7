"""Async database engine and session management.

One Database instance per process. The engine is created lazily on first use
and disposed exactly once, from the application lifespan on shutdown.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from notekeep.core.config import settings


class Database:
    """Owner of the pooled async engine and its session factory.

    Attributes:
        url: SQLAlchemy async database URL.
        echo: Whether to log emitted SQL.
    """

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        self.echo = echo
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        """Return the engine, creating it on first access."""
        if self._engine is None:
            self._engine = create_async_engine(
                self.url,
                echo=self.echo,
                pool_pre_ping=True,
            )
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Return the session factory bound to the engine."""
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        return self._session_factory

    async def dispose(self) -> None:
        """Close pooled connections. Safe to call when never initialized."""
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_factory = None


database = Database(settings.database_url, echo=settings.database_echo)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with database.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
