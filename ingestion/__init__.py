"""
Event stream ingestion pipeline.

This package pulls a cursor-paginated event stream from a rate-limited API
and loads it into PostgreSQL, resuming from a stored checkpoint after a
crash or restart.

Modules:
    rate_limiter: Minimum request spacing, 429 cooldowns, backoff schedule
    checkpoint: ProgressStore, the persisted resume point
    runner: IngestionRunner, the fetch/write orchestrator
    stats: StatsMonitor, throughput and ETA reporting
    worker: Single-batch persist-and-checkpoint helper

Subpackages:
    extractors: Event API fetcher and tolerant response parsing
    transformers: Raw payload to EventRecord normalization
    loaders: Idempotent PostgreSQL loader (staged COPY with row-insert fallback)

Architecture:
    fetch loop --(bounded queue of WriteBatch)--> write loop
        write loop --> PostgresLoader --> ProgressStore --> StatsMonitor

    Exactly one fetch loop exists, so at most one request is ever in flight.
    Retryable failures are absorbed inside the loops; anything else stops
    the run after a best-effort checkpoint.

Usage:
    from ingestion.extractors.api_extractor import EventFetcher
    from ingestion.loaders.postgres_loader import PostgresLoader
    from ingestion.checkpoint import ProgressStore
    from ingestion.runner import IngestionRunner, run_to_exit_code

Example:
    fetcher = EventFetcher.from_settings()
    loader = PostgresLoader(engine)
    store = ProgressStore(async_session_maker)

    runner = IngestionRunner.from_settings(fetcher, loader, store)
    exit_code = await run_to_exit_code(runner)

Error Handling:
    All components raise the exceptions defined in core.exceptions.
"""

__all__ = [
    "EventFetcher",
    "EventNormalizer",
    "IngestionRunner",
    "PostgresLoader",
    "ProgressStore",
    "RateLimiter",
    "StatsMonitor",
    "process_batch",
    "run_to_exit_code",
]
