# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Queue store database connection management using SQLAlchemy async.

The Database object owns one async engine and its sessionmaker. It is
constructed once at process start and passed explicitly to the services
that need it; nothing here holds module-level state.

Uses SQLAlchemy 2.0 async API with asyncpg (PostgreSQL) or aiosqlite.

Example:
    from notiflow.infrastructure.database.connection import Database

    database = Database.from_settings(settings)
    await database.create_all()

    async with database.session() as session:
        result = await session.execute(select(QueueItem))
        items = result.scalars().all()

    await database.dispose()
"""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from notiflow.infrastructure.database.models import Base

if TYPE_CHECKING:
    from notiflow.core.config.settings import Settings


class DatabaseError(Exception):
    """Base exception for database operations.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying SQLAlchemy or database error.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class Database:
    """Async engine plus session factory for the queue store.

    Attributes:
        url: Connection URL the engine was built from.
    """

    def __init__(self, url: str, echo: bool = False, **engine_kwargs: Any) -> None:
        """Create the engine and sessionmaker.

        Args:
            url: SQLAlchemy async connection URL.
            echo: Log every SQL statement.
            **engine_kwargs: Extra keyword arguments for create_async_engine.

        Raises:
            DatabaseError: If engine creation fails.
        """
        self.url = url
        try:
            self._engine: AsyncEngine = create_async_engine(url, echo=echo, **engine_kwargs)
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to initialize database connection", e) from e

        self._sessionmaker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: "Settings") -> "Database":
        """Build a Database from application settings.

        Pool sizing only applies to server databases; SQLite uses the
        driver's default pool.

        Args:
            settings: Application settings.

        Returns:
            Configured Database.
        """
        db_settings = settings.database
        if db_settings.is_sqlite:
            return cls(db_settings.url, echo=db_settings.echo)

        return cls(
            db_settings.url,
            echo=db_settings.echo,
            pool_size=db_settings.pool_size,
            max_overflow=db_settings.max_overflow,
            pool_pre_ping=True,
            pool_recycle=1800,
        )

    @property
    def engine(self) -> AsyncEngine:
        """Return the async engine."""
        return self._engine

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        """Return the async sessionmaker."""
        return self._sessionmaker

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Get an async session that commits on success.

        The session is rolled back when the block raises.

        Yields:
            AsyncSession for database operations.

        Raises:
            DatabaseError: If a database operation fails.
        """
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError("Database operation failed", e) from e
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create every Notiflow table that does not exist yet."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise DatabaseError("Failed to create tables", e) from e

    async def dispose(self) -> None:
        """Close all pooled connections."""
        await self._engine.dispose()

    async def check_connection(self) -> bool:
        """Check if the database is reachable.

        Returns:
            True if the database is reachable, False otherwise.
        """
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False
