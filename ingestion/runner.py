# ============================================================================
# File: ingestion/runner.py
# Description: Fetch/write pipeline orchestrator with crash-resumable checkpoints
# ============================================================================
"""
Ingestion Runner - drives the fetch loop and the write loop to completion.

This module provides:
- One fetch loop walking the cursor chain (single-flight by construction)
- One write loop persisting batches, connected through a bounded queue
- Retry handling for stale cursors, transient fetch errors and write errors
- Periodic best-effort checkpoints and a final synchronous one
- Exit code mapping for the process wrapper
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional
import logging

from core.config import Settings, settings
from core.exceptions import (
    IngestionError,
    StaleCursorError,
    TransientFetchError,
)
from ingestion.rate_limiter import backoff_delay
from ingestion.stats import StatsMonitor
from schemas.event import WriteBatch

logger = logging.getLogger(__name__)

# Put on the write queue once the fetch loop has seen the last page
_END_OF_STREAM = object()


class IngestionRunner:
    """
    Ingestion orchestrator.

    Responsibilities:
    - Resume from the stored checkpoint
    - Run the fetch and write loops concurrently until the stream is exhausted
      and every fetched batch is written
    - Keep the checkpoint cursor behind the writes it vouches for
    - Tear down and checkpoint what was written when a fatal error occurs

    Counting:
        total_processed counts every event of every persisted batch, whether
        or not its id was new. A page replayed after a stale cursor or a
        restart is counted again; the events table itself stays deduplicated.
    """

    def __init__(
        self,
        fetcher,
        loader,
        progress_store,
        page_size: int = 1000,
        checkpoint_interval: int = 5000,
        write_queue_maxsize: int = 50,
        write_retry_delay: float = 1.0,
        stale_cursor_cooldown: float = 5.0,
        backoff_base: float = 1.0,
        backoff_max: float = 16.0,
        target_total: int = 3_000_000,
        stats_interval: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        if checkpoint_interval <= 0:
            raise ValueError(f"checkpoint_interval must be positive, got {checkpoint_interval}")

        self.fetcher = fetcher
        self.loader = loader
        self.progress_store = progress_store
        self.page_size = page_size
        self.checkpoint_interval = checkpoint_interval
        self.write_queue_maxsize = write_queue_maxsize
        self.write_retry_delay = write_retry_delay
        self.stale_cursor_cooldown = stale_cursor_cooldown
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.target_total = target_total
        self.stats_interval = stats_interval
        self._sleep = sleep
        self._clock = clock

        self.stats: Optional[StatsMonitor] = None
        self.events_processed = 0
        self._final_cursor: Optional[str] = None
        self._checkpoint_cursor: Optional[str] = None
        self._pending_count = 0
        self._checkpoint_task: Optional[asyncio.Task] = None
        self._write_queue: Optional[asyncio.Queue] = None

    @classmethod
    def from_settings(cls, fetcher, loader, progress_store, config: Settings = settings, **kwargs):
        options = dict(
            page_size=config.PAGE_SIZE,
            checkpoint_interval=config.CHECKPOINT_INTERVAL,
            write_queue_maxsize=config.WRITE_QUEUE_MAXSIZE,
            write_retry_delay=config.WRITE_RETRY_DELAY_SECONDS,
            stale_cursor_cooldown=config.STALE_CURSOR_COOLDOWN_SECONDS,
            backoff_base=config.BACKOFF_BASE_SECONDS,
            backoff_max=config.BACKOFF_MAX_SECONDS,
            target_total=config.TARGET_TOTAL_EVENTS,
            stats_interval=config.STATS_INTERVAL_SECONDS,
        )
        options.update(kwargs)
        return cls(fetcher, loader, progress_store, **options)

    @property
    def checkpoint_cursor(self) -> Optional[str]:
        return self._checkpoint_cursor

    async def run(self) -> Dict[str, Any]:
        """
        Ingest until the remote stream is exhausted.

        Returns:
            Dictionary with run statistics:
            - status: "success"
            - events_processed: Events persisted by this run
            - total_processed: Cumulative count including earlier runs
            - final_cursor: Cursor stored by the final checkpoint
            - rows_in_store: Row count of the events table

        Raises:
            IngestionError: Fatal fetch error or failed final checkpoint
            Exception: Anything unexpected escaping either loop
        """
        logger.info("Starting ingestion...")
        await self.progress_store.initialize()

        existing = await self.progress_store.get_total_processed()
        if existing > 0:
            logger.info(f"Resuming: state shows {existing:,} processed")

        start_cursor = await self.progress_store.get_cursor()
        logger.info(f"Cursor: {start_cursor or 'none (fresh start)'}")

        self.stats = StatsMonitor(
            self.target_total,
            interval=self.stats_interval,
            initial_total=existing,
            clock=self._clock,
        )
        self._checkpoint_cursor = start_cursor
        self._write_queue = asyncio.Queue(maxsize=self.write_queue_maxsize)

        fetch_task = asyncio.create_task(self._fetch_loop(start_cursor), name="ingestion-fetch")
        write_task = asyncio.create_task(self._write_loop(), name="ingestion-write")
        tasks = (fetch_task, write_task)

        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                error = task.exception()
                if error is not None:
                    raise error
        except (Exception, asyncio.CancelledError):
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self._flush_checkpoint(best_effort=True)
            raise

        await self._flush_checkpoint(best_effort=False)
        rows_in_store = await self.loader.count_events()

        return {
            "status": "success",
            "events_processed": self.events_processed,
            "total_processed": self.stats.total,
            "final_cursor": self._checkpoint_cursor,
            "rows_in_store": rows_in_store,
        }

    # --------------------------------------------------
    # FETCH LOOP
    # --------------------------------------------------
    async def _fetch_loop(self, cursor: Optional[str]) -> None:
        while True:
            try:
                page = await self.fetcher.fetch_page(cursor, self.page_size)

            except StaleCursorError as e:
                logger.error(
                    f"Bad cursor, restarting from the beginning in "
                    f"{self.stale_cursor_cooldown}s: {e.cursor}"
                )
                cursor = None
                await self._sleep(self.stale_cursor_cooldown)
                continue

            except TransientFetchError as e:
                delay = backoff_delay(e.attempt, self.backoff_base, self.backoff_max)
                logger.warning(f"{e.message}, retry {e.attempt} in {delay}s")
                await self._sleep(delay)
                continue

            if page.events:
                # Blocks while the write queue is full
                await self._write_queue.put(WriteBatch(page.events, page.next_cursor))

            if page.has_more and page.next_cursor:
                cursor = page.next_cursor
                continue

            logger.info("Fetch complete, no more pages")
            self._final_cursor = page.next_cursor
            await self._write_queue.put(_END_OF_STREAM)
            return

    # --------------------------------------------------
    # WRITE LOOP
    # --------------------------------------------------
    async def _write_loop(self) -> None:
        while True:
            batch = await self._write_queue.get()

            if batch is _END_OF_STREAM:
                # Every fetched batch is written; the last page's cursor is safe
                self._checkpoint_cursor = self._final_cursor
                return

            await self._persist(batch)

            self.events_processed += len(batch)
            self._pending_count += len(batch)
            self._checkpoint_cursor = batch.checkpoint_cursor
            self.stats.update(len(batch))
            self._maybe_checkpoint()

    async def _persist(self, batch: WriteBatch) -> None:
        """Write ``batch``, retrying it ahead of everything queued behind it"""
        attempt = 0
        while True:
            try:
                await self.loader.insert_batch(batch.events)
                return
            except Exception as e:
                attempt += 1
                logger.error(
                    f"Write error on batch of {len(batch)} events "
                    f"(attempt {attempt}), retrying in {self.write_retry_delay}s: {e}"
                )
                await self._sleep(self.write_retry_delay)

    # --------------------------------------------------
    # CHECKPOINTS
    # --------------------------------------------------
    def _maybe_checkpoint(self) -> None:
        if self._pending_count < self.checkpoint_interval:
            return
        if self._checkpoint_task is not None and not self._checkpoint_task.done():
            return

        cursor, increment = self._checkpoint_cursor, self._pending_count
        self._pending_count = 0
        self._checkpoint_task = asyncio.create_task(
            self._save_checkpoint(cursor, increment), name="ingestion-checkpoint"
        )

    async def _save_checkpoint(self, cursor: Optional[str], increment: int) -> None:
        try:
            await self.progress_store.save_progress(cursor, increment)
        except Exception as e:
            # The next checkpoint carries this count forward
            self._pending_count += increment
            logger.warning(f"Checkpoint failed, will catch up on the next one: {e}")

    async def _flush_checkpoint(self, best_effort: bool) -> None:
        if self._checkpoint_task is not None:
            await asyncio.gather(self._checkpoint_task, return_exceptions=True)
            self._checkpoint_task = None

        cursor, increment = self._checkpoint_cursor, self._pending_count
        try:
            await self.progress_store.save_progress(cursor, increment)
        except Exception as e:
            if not best_effort:
                raise
            logger.error(f"Final checkpoint failed: {e}")
            return

        self._pending_count -= increment
        logger.info(f"Checkpoint flushed: cursor={cursor}, +{increment}")


async def run_to_exit_code(runner: IngestionRunner) -> int:
    """Run ``runner`` and map the outcome to a process exit code (0 or 1)"""
    try:
        result = await runner.run()

    except IngestionError as e:
        logger.error(
            f"Ingestion failed: {e}",
            extra={"error_context": e.to_dict()}
        )
        return 1

    except Exception:
        logger.exception("Unexpected error in ingestion pipeline")
        return 1

    logger.info("=== INGESTION COMPLETE ===")
    logger.info(f"Processed this run: {result['events_processed']:,}")
    logger.info(f"Total events in DB: {result['rows_in_store']:,}")
    return 0
