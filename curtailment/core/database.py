"""Database configuration and session management."""

from typing import Any, Dict, List

import structlog
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from curtailment.core.config import Settings
from curtailment.core.exceptions import ConfigurationException

logger = structlog.get_logger()


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine described by the settings."""
    url = settings.database_url_async
    if not url:
        raise ConfigurationException("DATABASE_URL is not set")

    engine_kwargs: Dict[str, Any] = {
        "echo": settings.DB_ECHO,
        "future": True,
    }

    if "sqlite" in url:
        # For SQLite, use StaticPool without pool size parameters
        engine_kwargs["poolclass"] = StaticPool
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs["pool_size"] = settings.DB_POOL_SIZE
        engine_kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW
        engine_kwargs["pool_pre_ping"] = settings.DB_POOL_PRE_PING
        engine_kwargs["pool_recycle"] = settings.DB_POOL_RECYCLE

    return create_async_engine(url, **engine_kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables."""
    # Import all models here to ensure they are registered
    from curtailment import models  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise


def upsert(session: AsyncSession, model, rows: List[Dict[str, Any]], index_elements: List[str]):
    """Build an INSERT .. ON CONFLICT DO UPDATE for the session's dialect.

    Every column in ``rows`` that is not part of the conflict target is
    overwritten with the incoming value.
    """
    dialect = session.get_bind().dialect.name
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert

    stmt = insert(model).values(rows)
    update_columns = {
        key: stmt.excluded[key] for key in rows[0] if key not in index_elements
    }
    return stmt.on_conflict_do_update(index_elements=index_elements, set_=update_columns)
