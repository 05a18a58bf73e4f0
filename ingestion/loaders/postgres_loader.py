"""
Load events into PostgreSQL idempotently (INSERT ... ON CONFLICT DO NOTHING)
"""

import json
from typing import Any, Dict, List, Sequence
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncEngine
from core.exceptions import BulkLoadError, FallbackLoadError
from models.event import Event
from schemas.event import EventRecord
import logging

logger = logging.getLogger(__name__)

STAGING_TABLE = "events_staging"
COPY_COLUMNS = ("id", "event_name", "user_id", "timestamp", "raw")

CREATE_STAGING_SQL = f"""
    CREATE TEMP TABLE {STAGING_TABLE} (
        id TEXT,
        event_name TEXT,
        user_id TEXT,
        timestamp TIMESTAMPTZ,
        raw JSONB
    ) ON COMMIT DROP
"""

MERGE_STAGING_SQL = f"""
    INSERT INTO events (id, event_name, user_id, timestamp, raw)
    SELECT id, event_name, user_id, timestamp, raw FROM {STAGING_TABLE}
    ON CONFLICT (id) DO NOTHING
"""


def escape_copy_value(value: str) -> str:
    """Escape a value for COPY's text format (backslash first)"""
    return (
        value.replace("\\", "\\\\")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def format_copy_row(event: EventRecord) -> str:
    """One tab-separated COPY line for ``event``, without the trailing newline"""
    fields = (
        event.id,
        event.name,
        event.user_id,
        event.timestamp.isoformat(),
        json.dumps(event.raw),
    )
    return "\t".join(escape_copy_value(field) for field in fields)


def build_copy_payload(events: Sequence[EventRecord]) -> bytes:
    """The whole batch as a single COPY FROM STDIN text-format payload"""
    return ("\n".join(format_copy_row(event) for event in events) + "\n").encode("utf-8")


def chunked(items: Sequence[Any], size: int) -> List[Sequence[Any]]:
    """Split ``items`` into consecutive slices of at most ``size``"""
    return [items[i:i + size] for i in range(0, len(items), size)]


def event_row(event: EventRecord) -> Dict[str, Any]:
    """Column values for a parameterized insert"""
    return {
        "id": event.id,
        "event_name": event.name,
        "user_id": event.user_id,
        "timestamp": event.timestamp,
        "raw": event.raw,
    }


class PostgresLoader:
    """
    Persist event batches with insert-or-ignore semantics keyed by event id.

    Ensures:
    - Re-inserting a batch with already-stored ids is a no-op for those ids
    - The staged path is all-or-nothing; a failure leaves nothing visible
    - A failed staged load degrades to chunked multi-row inserts
    """

    def __init__(self, engine: AsyncEngine, chunk_size: int = 500):
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.engine = engine
        self.chunk_size = chunk_size

    async def insert_batch(self, events: Sequence[EventRecord]) -> int:
        """
        Persist ``events``, skipping ids that already exist.

        Args:
            events: Events of one fetched page, in fetch order

        Returns:
            Number of events handled (stored now or already present)

        Raises:
            FallbackLoadError: Both the staged path and the fallback failed
        """
        if not events:
            return 0

        try:
            await self.copy_and_merge(events)
        except Exception as e:
            logger.warning(
                f"Staged load of {len(events)} events failed, "
                f"falling back to chunked inserts: {e}"
            )
            return await self.fallback_insert(events)

        return len(events)

    async def copy_and_merge(self, events: Sequence[EventRecord]) -> None:
        """
        Stage the batch with COPY and merge it into ``events`` in one transaction.

        Raises:
            BulkLoadError: Any step failed; the transaction was rolled back
        """
        payload = build_copy_payload(events)
        stage = "connect"

        try:
            async with self.engine.connect() as conn:
                raw_conn = await conn.get_raw_connection()
                driver = raw_conn.driver_connection

                async with driver.transaction():
                    stage = "stage"
                    await driver.execute(CREATE_STAGING_SQL)
                    stage = "copy"
                    await driver.copy_to_table(
                        STAGING_TABLE,
                        source=payload,
                        columns=list(COPY_COLUMNS),
                        format="text",
                    )
                    stage = "merge"
                    status = await driver.execute(MERGE_STAGING_SQL)

            logger.debug(f"Staged load of {len(events)} events: {status}")

        except Exception as e:
            raise BulkLoadError(
                "Staged COPY load failed",
                context={"batch_size": len(events), "stage": stage},
                original_exception=e,
            )

    async def fallback_insert(self, events: Sequence[EventRecord]) -> int:
        """
        Insert in chunks, one parameterized multi-row statement per chunk.

        Each chunk commits on its own; a failing chunk raises and leaves the
        chunks before it committed, which is safe because inserts are keyed.
        """
        inserted = 0

        for index, chunk in enumerate(chunked(events, self.chunk_size)):
            stmt = insert(Event).values([event_row(event) for event in chunk])
            stmt = stmt.on_conflict_do_nothing(index_elements=["id"])

            try:
                async with self.engine.begin() as conn:
                    await conn.execute(stmt)
            except Exception as e:
                raise FallbackLoadError(
                    "Chunked insert failed",
                    context={"chunk_index": index, "chunk_size": len(chunk)},
                    original_exception=e,
                )

            inserted += len(chunk)
            logger.debug(f"Fallback chunk {index + 1}: {len(chunk)} events")

        logger.info(f"Fallback inserted {inserted} events in chunks of {self.chunk_size}")
        return inserted

    async def count_events(self) -> int:
        """Total rows in the events table"""
        async with self.engine.connect() as conn:
            result = await conn.execute(select(func.count()).select_from(Event))
            return int(result.scalar_one())
