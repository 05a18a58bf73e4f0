"""
Logging configuration
"""

import logging
import sys
from typing import Optional, TextIO
from core.config import settings

# Per-request lines from these libraries drown out progress output
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "httpx", "httpcore", "asyncio")


def setup_logging(level: Optional[str] = None, stream: TextIO = sys.stdout):
    """
    Configure the root logger for the ingestion process.

    Args:
        level: Level name; defaults to settings.LOG_LEVEL, unknown names mean INFO
        stream: Where log lines go (stdout so container runtimes collect them)
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(stream)],
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    logging.getLogger(__name__).info(
        f"Logging configured at {level_name} level ({settings.ENVIRONMENT})"
    )
