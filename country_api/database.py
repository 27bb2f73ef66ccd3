import logging
from typing import Any, AsyncIterator, Dict

from fastapi import Depends
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from country_api.config import settings

logger = logging.getLogger("country_api.db")

Base = declarative_base()


def make_engine(url: str) -> AsyncEngine:
    """Create the pooled async engine; pool sizing only applies to Postgres."""
    engine_kwargs: Dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if make_url(url).drivername.startswith("postgresql"):
        engine_kwargs["pool_size"] = 10
        engine_kwargs["max_overflow"] = 5
    return create_async_engine(url, **engine_kwargs)


engine: AsyncEngine = make_engine(settings.DATABASE_URL)
SessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


def get_database_dsn(hide_password: bool = True) -> str:
    return engine.url.render_as_string(hide_password=hide_password)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create tables on startup."""
    from country_api import models  # noqa: F401  registers tables on Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized (%s)", get_database_dsn())


async def shutdown_db() -> None:
    await engine.dispose()
    logger.info("Database connection pool closed.")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return SessionLocal


async def get_db(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as db:
        yield db
