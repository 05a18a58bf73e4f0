"""
Script to run the event ingestion pipeline to completion.

Exit codes: 0 when the stream is exhausted, every batch written and the
final checkpoint saved; 1 on any fatal error.
"""

import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, ingestion, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import async_session_maker, engine, init_db
from core.logging import setup_logging
from ingestion.checkpoint import ProgressStore
from ingestion.extractors.api_extractor import EventFetcher
from ingestion.loaders.postgres_loader import PostgresLoader
from ingestion.runner import IngestionRunner, run_to_exit_code

logger = logging.getLogger(__name__)


async def run_ingestion() -> int:
    """Wire the pipeline from settings and run it"""
    try:
        await init_db(engine)
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        await engine.dispose()
        return 1

    fetcher = EventFetcher.from_settings(settings)
    loader = PostgresLoader(engine, chunk_size=settings.FALLBACK_CHUNK_SIZE)
    progress_store = ProgressStore(async_session_maker)
    runner = IngestionRunner.from_settings(fetcher, loader, progress_store, settings)

    try:
        return await run_to_exit_code(runner)
    finally:
        await fetcher.aclose()
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(run_ingestion()))
