"""
Persist a single batch and advance the checkpoint past it.

For callers that already hold a page of events (a replay tool, a one-off
backfill) and do not need the concurrent pipeline in ``ingestion.runner``.
"""

from typing import Optional, Sequence
from schemas.event import EventRecord
import logging

logger = logging.getLogger(__name__)


async def process_batch(
    loader,
    progress_store,
    events: Sequence[EventRecord],
    next_cursor: Optional[str],
) -> int:
    """
    Write ``events`` then checkpoint ``next_cursor`` with their count.

    Returns:
        Number of events processed (0 for an empty batch, which writes nothing)
    """
    if not events:
        return 0

    await loader.insert_batch(events)
    await progress_store.save_progress(next_cursor, len(events))

    logger.info(f"Processed batch of {len(events)} events, cursor={next_cursor}")
    return len(events)
