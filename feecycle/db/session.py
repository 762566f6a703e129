from typing import Any, AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from feecycle.core.config import settings


def build_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """
    Async engine for Postgres (asyncpg) in production or SQLite (aiosqlite) in tests.

    Server databases get pool_pre_ping and pool_recycle so idle connections closed by the
    database or network are replaced instead of failing the next request.
    """
    options = {"echo": False}
    if make_url(database_url).get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(pool_pre_ping=True, pool_recycle=300)
    options.update(kwargs)
    return create_async_engine(database_url, **options)


engine = build_engine(settings.database_url)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncIterator[AsyncSession]:
    """One session per request; services own commit and rollback through unit_of_work."""
    async with AsyncSessionLocal() as session:
        yield session
