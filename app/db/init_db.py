"""
Create all tables (and the partial unique indexes declared on the models) if they do not exist.

Usage: python -m app.db.init_db
"""
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncEngine

# Import models so every table is registered on Base.metadata
import app.core.models  # noqa: F401
from app.core.config import settings
from app.core.logging_config import configure_logging
from app.db.session import Base, engine

logger = logging.getLogger(__name__)


async def create_tables(target: AsyncEngine) -> None:
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Ensured %d tables", len(Base.metadata.tables))


async def main() -> None:
    try:
        await create_tables(engine)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    configure_logging(settings)
    asyncio.run(main())
