"""
Persistent resume point for the ingestion pipeline
"""

from typing import Optional
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import async_sessionmaker
from core.exceptions import CheckpointError
from models.ingestion_state import IngestionState, STATE_ROW_ID
import logging

logger = logging.getLogger(__name__)


class ProgressStore:
    """
    Read and write the single ingestion_state row.

    Responsibilities:
    - Create the row on first run (idempotent)
    - Report the cursor to resume from and the cumulative processed count
    - Advance cursor and count together in one atomic UPDATE
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def initialize(self) -> None:
        """Create the state row if it does not exist yet"""
        stmt = insert(IngestionState).values(id=STATE_ROW_ID, total_processed=0)
        stmt = stmt.on_conflict_do_nothing(index_elements=["id"])

        try:
            async with self.session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except Exception as e:
            raise CheckpointError(
                "Failed to initialize ingestion state",
                context={"operation": "initialize"},
                original_exception=e,
            )

    async def get_cursor(self) -> Optional[str]:
        """Cursor to resume from, or None to start from the beginning"""
        return await self._read_column(IngestionState.next_cursor)

    async def get_total_processed(self) -> int:
        """Cumulative number of events processed across all runs"""
        total = await self._read_column(IngestionState.total_processed)
        return int(total or 0)

    async def save_progress(self, cursor: Optional[str], increment_by: int = 0) -> None:
        """
        Overwrite the cursor and add ``increment_by`` to the processed count.

        Both changes land in the same statement, so the stored cursor and
        count can never disagree about how far ingestion got.
        """
        if increment_by < 0:
            raise ValueError(f"increment_by must not be negative, got {increment_by}")

        stmt = (
            update(IngestionState)
            .where(IngestionState.id == STATE_ROW_ID)
            .values(
                next_cursor=cursor,
                total_processed=IngestionState.total_processed + increment_by,
                updated_at=func.now(),
            )
        )

        try:
            async with self.session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except Exception as e:
            raise CheckpointError(
                "Failed to save ingestion progress",
                context={"operation": "save", "cursor": cursor, "increment_by": increment_by},
                original_exception=e,
            )

        logger.debug(f"Checkpoint saved: cursor={cursor}, +{increment_by}")

    async def _read_column(self, column):
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(column).where(IngestionState.id == STATE_ROW_ID)
                )
                return result.scalar_one_or_none()
        except Exception as e:
            raise CheckpointError(
                "Failed to read ingestion state",
                context={"operation": "read", "column": column.key},
                original_exception=e,
            )
