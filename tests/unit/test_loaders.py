"""
Unit tests for the PostgreSQL event loader
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from conftest import make_events
from core.exceptions import BulkLoadError, FallbackLoadError
from ingestion.loaders.postgres_loader import (
    PostgresLoader,
    build_copy_payload,
    chunked,
    escape_copy_value,
    format_copy_row,
)
from schemas.event import EventRecord


def mock_engine():
    """Engine whose connect()/begin() yield mocked connections"""
    engine = MagicMock()
    conn = MagicMock()
    conn.execute = AsyncMock()
    engine.begin.return_value.__aenter__.return_value = conn

    driver = MagicMock()
    driver.execute = AsyncMock(return_value="INSERT 0 2")
    driver.copy_to_table = AsyncMock()
    raw_conn = MagicMock()
    raw_conn.driver_connection = driver
    connect_conn = MagicMock()
    connect_conn.get_raw_connection = AsyncMock(return_value=raw_conn)
    engine.connect.return_value.__aenter__.return_value = connect_conn

    return engine, conn, driver


class TestCopyFormatting:
    """Test COPY text-format rows"""

    def test_escape_control_characters(self):
        assert escape_copy_value("a\tb") == "a\\tb"
        assert escape_copy_value("a\nb") == "a\\nb"
        assert escape_copy_value("a\rb") == "a\\rb"
        assert escape_copy_value("a\\b") == "a\\\\b"

    def test_backslash_escaped_before_others(self):
        assert escape_copy_value("\\n") == "\\\\n"

    def test_row_has_five_tab_separated_fields(self):
        event = EventRecord(
            id="evt\t1",
            name="multi\nline",
            user_id="u1",
            timestamp=datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc),
            raw={"note": "tab\there"},
        )

        fields = format_copy_row(event).split("\t")

        assert len(fields) == 5
        assert fields[0] == "evt\\t1"
        assert fields[1] == "multi\\nline"
        assert fields[3] == "2024-01-15T10:00:00+00:00"
        # json.dumps already escapes the tab; COPY escaping doubles the backslash
        assert fields[4] == escape_copy_value(json.dumps({"note": "tab\there"}))

    def test_payload_one_line_per_event(self):
        payload = build_copy_payload(make_events("a", "b", "c"))

        lines = payload.decode("utf-8").split("\n")
        assert lines[-1] == ""
        assert len(lines[:-1]) == 3

    def test_chunked(self):
        assert [len(c) for c in chunked(list(range(1200)), 500)] == [500, 500, 200]


class TestPostgresLoader:
    """Test staged load, fallback, and their hand-off"""

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        engine, conn, driver = mock_engine()
        loader = PostgresLoader(engine)

        assert await loader.insert_batch([]) == 0
        engine.connect.assert_not_called()
        engine.begin.assert_not_called()

    @pytest.mark.asyncio
    async def test_staged_load_runs_in_one_transaction(self):
        engine, conn, driver = mock_engine()
        loader = PostgresLoader(engine)
        events = make_events("a", "b")

        result = await loader.insert_batch(events)

        assert result == 2
        driver.transaction.assert_called_once()
        copy_call = driver.copy_to_table.call_args
        assert copy_call.args[0] == "events_staging"
        assert copy_call.kwargs["format"] == "text"
        assert copy_call.kwargs["source"] == build_copy_payload(events)
        statements = [call.args[0] for call in driver.execute.call_args_list]
        assert "CREATE TEMP TABLE" in statements[0]
        assert "ON COMMIT DROP" in statements[0]
        assert "ON CONFLICT (id) DO NOTHING" in statements[1]
        engine.begin.assert_not_called()

    @pytest.mark.asyncio
    async def test_copy_failure_raises_bulk_load_error(self):
        engine, conn, driver = mock_engine()
        driver.copy_to_table.side_effect = RuntimeError("invalid input syntax")
        loader = PostgresLoader(engine)

        with pytest.raises(BulkLoadError) as exc_info:
            await loader.copy_and_merge(make_events("a"))

        assert exc_info.value.context["stage"] == "copy"
        # The merge never ran
        assert driver.execute.call_count == 1

    @pytest.mark.asyncio
    async def test_falls_back_when_staged_load_fails(self):
        engine, conn, driver = mock_engine()
        loader = PostgresLoader(engine)
        loader.copy_and_merge = AsyncMock(
            side_effect=BulkLoadError("Staged COPY load failed", context={"stage": "copy"})
        )
        loader.fallback_insert = AsyncMock(return_value=3)

        result = await loader.insert_batch(make_events("a", "b", "c"))

        assert result == 3
        loader.fallback_insert.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fallback_inserts_in_chunks(self):
        engine, conn, driver = mock_engine()
        loader = PostgresLoader(engine, chunk_size=500)
        events = make_events(*[f"evt_{i}" for i in range(1200)])

        result = await loader.fallback_insert(events)

        assert result == 1200
        assert conn.execute.call_count == 3
        stmt = conn.execute.call_args_list[0].args[0]
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT (id) DO NOTHING" in sql

    @pytest.mark.asyncio
    async def test_fallback_chunk_failure_propagates(self):
        engine, conn, driver = mock_engine()
        conn.execute.side_effect = [None, RuntimeError("connection reset")]
        loader = PostgresLoader(engine, chunk_size=2)

        with pytest.raises(FallbackLoadError) as exc_info:
            await loader.fallback_insert(make_events("a", "b", "c", "d"))

        assert exc_info.value.context["chunk_index"] == 1

    @pytest.mark.asyncio
    async def test_both_paths_failing_raises(self):
        engine, conn, driver = mock_engine()
        driver.execute.side_effect = RuntimeError("relation does not exist")
        conn.execute.side_effect = RuntimeError("relation does not exist")
        loader = PostgresLoader(engine)

        with pytest.raises(FallbackLoadError):
            await loader.insert_batch(make_events("a"))

    def test_rejects_non_positive_chunk_size(self):
        with pytest.raises(ValueError):
            PostgresLoader(MagicMock(), chunk_size=0)
