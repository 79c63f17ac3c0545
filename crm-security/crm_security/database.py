"""
Account Database
================
Async SQLAlchemy engine holder for the durable account store.

Usage:
    db = AccountDatabase.from_url("postgresql+asyncpg://crm@db/crm")
    store = SQLAlchemyAccountStore(db.session_factory)
    ...
    await db.dispose()
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for the account tables."""


class AccountDatabase:
    """Owns one engine and the session factory the account store uses."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        # Login state is read back after commit; keep attributes loaded
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            engine,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False, **engine_kwargs) -> "AccountDatabase":
        """
        Build the engine for an async URL.

        Args:
            database_url: postgresql+asyncpg://..., sqlite+aiosqlite://...
            echo: Log SQL statements
            **engine_kwargs: Passed to ``create_async_engine`` (poolclass, pool_size, ...)
        """
        engine_kwargs.setdefault("pool_pre_ping", True)
        engine = create_async_engine(database_url, echo=echo, **engine_kwargs)
        logger.info("account_database_connected", dialect=engine.dialect.name)
        return cls(engine)

    async def create_tables(self) -> None:
        """Create the mapped tables if missing (development and tests)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Session that commits on success and rolls back on error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("account_database_closed")
