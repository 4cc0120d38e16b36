from typing import Any, AsyncGenerator, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """
    Connection pool options per backend.

    Postgres: pool_pre_ping checks the connection before use, pool_recycle drops connections
    older than 5 minutes (idle connections closed by the DB or network).
    SQLite (local runs and tests) keeps the default pool.
    """
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"echo": False}
    return {"echo": False, "pool_pre_ping": True, "pool_recycle": 300}


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

# expire_on_commit=False: responses are built from ORM objects after commit
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request. Services own commit/rollback."""
    async with AsyncSessionLocal() as session:
        yield session
