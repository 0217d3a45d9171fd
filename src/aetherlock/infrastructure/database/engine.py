"""Async database engine and session management.

Provides:
    - build_engine: The SQLAlchemy async engine for a database URL.
    - build_session_factory: A sessionmaker bound to the engine.
    - init_db / close_db: Lifecycle hooks for the application container.

PostgreSQL (asyncpg) gets a sized connection pool; SQLite (aiosqlite) is used
for local runs and tests, with a single shared connection for in-memory URLs.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from aetherlock.config import Settings
from aetherlock.infrastructure.database.orm_models import Base
from aetherlock.logging_config import get_logger

logger = get_logger(__name__)


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for `settings.database_url`."""
    url = settings.database_url

    if url.startswith("sqlite"):
        kwargs: dict = {"echo": settings.db_echo_sql}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
        engine = create_async_engine(url, **kwargs)
        logger.info("database.engine_created", backend="sqlite")
        return engine

    engine = create_async_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_pre_ping=True,
        echo=settings.db_echo_sql,
    )
    logger.info(
        "database.engine_created",
        backend="postgresql",
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine, create_tables: bool) -> None:
    """Create tables if they don't exist.

    Only done in development and for SQLite; production schemas are managed
    outside the application.
    """
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("database.tables_created")
    else:
        logger.info("database.skipping_create_all", reason="not in development mode")


async def close_db(engine: AsyncEngine) -> None:
    """Dispose of the database engine."""
    await engine.dispose()
    logger.info("database.engine_disposed")
