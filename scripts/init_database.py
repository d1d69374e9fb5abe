#!/usr/bin/env python3
"""Initialize database tables and seed the star level table."""

import asyncio
import sys

from loguru import logger

from app.config.database import create_engine, create_session_maker, init_models
from app.config.settings import settings
from app.repositories.star_level_repository import StarLevelRepository
from app.utils.logging import setup_logging


async def init_database() -> None:
    """Create all database tables and seed default star levels."""
    if not settings.database_url:
        logger.error("DATABASE_URL not set")
        sys.exit(1)

    logger.info("Connecting to database...")
    engine = create_engine()

    try:
        logger.info("Creating tables (checkfirst=True)...")
        await init_models(engine)

        session_maker = create_session_maker(engine)
        async with session_maker() as session:
            seeded = await StarLevelRepository(session).seed_defaults()
            await session.commit()
    finally:
        await engine.dispose()

    logger.success(
        f"Database initialized successfully! Star levels seeded: {seeded}"
    )


if __name__ == "__main__":
    setup_logging()
    asyncio.run(init_database())
