"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class
    event: Ingested events keyed by external id
    ingestion_state: Singleton checkpoint row for resume-after-restart

Database Schema:
    events (id TEXT PK, event_name, user_id, timestamp TIMESTAMPTZ, raw JSONB)
        with a secondary index on timestamp
    ingestion_state (id = 1, next_cursor, total_processed, updated_at)

Usage:
    from models import Event, IngestionState
"""

from models.base import Base
from models.event import Event
from models.ingestion_state import IngestionState, STATE_ROW_ID

__all__ = [
    "Base",
    "Event",
    "IngestionState",
    "STATE_ROW_ID",
]
