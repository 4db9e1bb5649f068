"""Async engine, session factory and unit-of-work helper. PostgreSQL via DATABASE_URL."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from modelhub.config import Settings, get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def build_engine(settings: Settings) -> AsyncEngine:
    """Pool sizing only applies to server databases; SQLite (tests, local runs) uses its own pool."""
    url = make_url(settings.database_url)
    kwargs = {"echo": settings.debug}
    if url.get_backend_name() != "sqlite":
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    return create_async_engine(url, **kwargs)


_engine = build_engine(get_settings())

async_session_factory = async_sessionmaker(
    _engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def session_scope(factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """One unit of work: commit on success, roll back on any error."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session():
    return session_scope(async_session_factory)


async def init_db() -> None:
    """Create missing tables, retrying while the database is still starting up."""
    from modelhub.storage import models  # noqa: F401  (registers tables on Base.metadata)

    attempts = get_settings().db_init_attempts
    logger.info("Initializing database: %s", _engine.url.render_as_string(hide_password=True))
    for attempt in range(1, attempts + 1):
        try:
            async with _engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            return
        except Exception as e:
            if "InvalidPassword" in type(e).__name__ or "password authentication" in str(e).lower():
                logger.error("Database authentication failed. Check the credentials in DATABASE_URL.")
                raise
            if attempt == attempts:
                raise
            logger.warning("DB init attempt %s/%s failed: %s", attempt, attempts, type(e).__name__)
            await asyncio.sleep(2.0 * attempt)


async def close_db() -> None:
    await _engine.dispose()
