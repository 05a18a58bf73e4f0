"""
Script to create the events and ingestion_state tables.

Safe to run repeatedly; existing tables and rows are left untouched.
"""

import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import engine, init_db
from core.logging import setup_logging

logger = logging.getLogger(__name__)


async def init_database() -> int:
    try:
        await init_db(engine)
    except Exception:
        logger.exception("Schema creation failed")
        return 1
    finally:
        await engine.dispose()
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(init_database()))
