"""
Core utilities and configuration for the event ingestion service.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Async engine, session factory and schema creation
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.database import engine, async_session_maker, init_db
    from core.exceptions import StaleCursorError, TransientFetchError
    from core.logging import setup_logging

Example:
    setup_logging()
    await init_db(engine)
"""

__all__ = [
    "settings",
    "engine",
    "async_session_maker",
    "init_db",
    "setup_logging",
    # Exceptions
    "IngestionError",
    "RetryableError",
    "NonRetryableError",
    "FetchError",
    "RateLimitError",
    "StaleCursorError",
    "TransientFetchError",
    "FatalFetchError",
    "LoadError",
    "BulkLoadError",
    "FallbackLoadError",
    "CheckpointError",
]
