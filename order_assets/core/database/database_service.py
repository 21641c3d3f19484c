"""
Database service for async SQLAlchemy session management.

Supports SQLite (aiosqlite, development and tests) and PostgreSQL (asyncpg).

Usage:
    from order_assets.core.database.database_service import get_database_service

    async with get_database_service().get_session() as session:
        result = await session.execute(select(Order).where(Order.id == order_id))
        order = result.scalar_one_or_none()

    # Initialize database (create tables)
    await get_database_service().init_db()
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from order_assets.config import settings
from order_assets.core.database.base import Base


class DatabaseService:
    """
    Owns the async engine and session factory.

    Attributes:
        _engine: Async SQLAlchemy engine
        _session_factory: Async session factory
        _logger: Logger instance
    """

    def __init__(self, database_url: Optional[str] = None):
        self._logger = logging.getLogger("order_assets.database")
        self._database_url = database_url or settings.database_url
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None
        self._initialize_engine()

    def _initialize_engine(self) -> None:
        """
        Initialize database engine based on the configured URL.

        SQLite Configuration:
            - aiosqlite driver, check_same_thread=False
            - In-memory databases share one connection (StaticPool)
            - Creates the data directory if needed

        PostgreSQL Configuration:
            - asyncpg driver with connection pooling and pre-ping
        """
        database_url = self._database_url
        self._logger.info(f"Initializing database: {database_url.split('@')[-1].split('?')[0]}")

        if database_url.startswith("sqlite"):
            if ":memory:" in database_url:
                self._engine = create_async_engine(
                    database_url,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                    echo=settings.debug,
                )
            else:
                if ":///" in database_url:
                    db_path = database_url.split("///")[1].split("?")[0]
                    db_dir = os.path.dirname(db_path)
                    if db_dir and not os.path.exists(db_dir):
                        os.makedirs(db_dir, exist_ok=True)
                        self._logger.info(f"Created database directory: {db_dir}")
                self._engine = create_async_engine(
                    database_url,
                    connect_args={"check_same_thread": False},
                    pool_pre_ping=True,
                    echo=settings.debug,
                )
            self._logger.info("Using SQLite database (development mode)")
        else:
            self._engine = create_async_engine(
                database_url,
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_pre_ping=True,
                pool_recycle=settings.db_pool_recycle,
                echo=settings.debug,
            )
            self._logger.info(
                f"Using PostgreSQL database (pool_size={settings.db_pool_size}, "
                f"max_overflow={settings.db_max_overflow})"
            )

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Async session that commits on success and rolls back on error.
        """
        if not self._session_factory:
            raise RuntimeError("Database not initialized")

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def init_db(self) -> None:
        """Create all tables that do not exist yet."""
        if not self._engine:
            raise RuntimeError("Database engine not initialized")

        async with self._engine.begin() as conn:
            from order_assets.core.database import models  # noqa: F401

            await conn.run_sync(Base.metadata.create_all)

        self._logger.info("Database tables created successfully")

    async def health_check(self) -> Dict[str, Any]:
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
            return {"status": "healthy", "connected": True}
        except Exception as e:
            self._logger.error(f"Database health check failed: {str(e)}")
            return {"status": "unhealthy", "connected": False, "error": str(e)}

    async def close(self) -> None:
        if self._engine:
            await self._engine.dispose()
            self._logger.info("Database connections closed")

    def __repr__(self) -> str:
        return f"<DatabaseService(url={self._database_url.split('@')[-1]})>"


@lru_cache()
def get_database_service() -> DatabaseService:
    """Process-wide database service built from settings."""
    return DatabaseService()
