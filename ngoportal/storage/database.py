"""Async database engine construction."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

# Register all tables on SQLModel.metadata.
from ngoportal.models import database as _tables  # noqa: F401

if TYPE_CHECKING:
    from ngoportal.config.settings import Settings


def create_engine(settings: Settings) -> AsyncEngine:
    """Build the process-wide async engine; owned and disposed by the app lifespan."""
    url = settings.database_url
    if url.startswith("sqlite"):
        # In-memory SQLite must share one connection across sessions.
        kwargs: dict[str, object] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
        return create_async_engine(url, echo=settings.debug, **kwargs)
    return create_async_engine(
        url,
        echo=settings.debug,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables (for dev/testing only)."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
