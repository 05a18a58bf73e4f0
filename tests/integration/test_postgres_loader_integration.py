"""
Integration tests for the PostgreSQL event loader (requires TEST_DATABASE_URL)
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from conftest import make_events
from core.exceptions import BulkLoadError
from ingestion.loaders.postgres_loader import PostgresLoader
from models.event import Event
from schemas.event import EPOCH, EventRecord

pytestmark = pytest.mark.integration


async def fetch_row(engine, event_id):
    async with engine.connect() as conn:
        result = await conn.execute(select(Event).where(Event.id == event_id))
        return result.one()


class TestPostgresLoaderIntegration:

    @pytest.mark.asyncio
    async def test_insert_is_idempotent(self, test_engine):
        loader = PostgresLoader(test_engine)
        events = make_events("a", "b", "c")

        await loader.insert_batch(events)
        await loader.insert_batch(events)

        assert await loader.count_events() == 3

    @pytest.mark.asyncio
    async def test_overlapping_batches(self, test_engine):
        loader = PostgresLoader(test_engine)

        await loader.insert_batch(make_events("a", "b"))
        await loader.insert_batch(make_events("b", "c"))

        assert await loader.count_events() == 3

    @pytest.mark.asyncio
    async def test_first_write_wins(self, test_engine):
        loader = PostgresLoader(test_engine)

        await loader.insert_batch([EventRecord(id="dup", name="original", raw={"v": 1})])
        await loader.insert_batch([EventRecord(id="dup", name="replayed", raw={"v": 2})])

        row = await fetch_row(test_engine, "dup")
        assert row.event_name == "original"
        assert row.raw == {"v": 1}

    @pytest.mark.asyncio
    async def test_special_characters_survive_copy(self, test_engine):
        raw = {"note": "tab\there\nnewline", "path": "C:\\temp", "quote": "it's \"quoted\"", "emoji": "🚀"}
        event = EventRecord(
            id="weird\tid",
            name="line\nbreak \\ backslash",
            user_id="ünïcödé",
            timestamp=datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc),
            raw=raw,
        )

        await PostgresLoader(test_engine).copy_and_merge([event])

        row = await fetch_row(test_engine, "weird\tid")
        assert row.event_name == "line\nbreak \\ backslash"
        assert row.user_id == "ünïcödé"
        assert row.timestamp == event.timestamp
        assert row.raw == raw

    @pytest.mark.asyncio
    async def test_epoch_timestamp_is_stored(self, test_engine):
        await PostgresLoader(test_engine).insert_batch([EventRecord(id="no_ts")])

        row = await fetch_row(test_engine, "no_ts")
        assert row.timestamp == EPOCH

    @pytest.mark.asyncio
    async def test_fallback_path(self, test_engine):
        loader = PostgresLoader(test_engine, chunk_size=2)
        loader.copy_and_merge = AsyncMock(side_effect=BulkLoadError("Staged COPY load failed"))

        result = await loader.insert_batch(make_events("a", "b", "c", "d", "e"))
        await loader.insert_batch(make_events("a", "f"))

        assert result == 5
        assert await loader.count_events() == 6
