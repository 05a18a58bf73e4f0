"""
Pydantic schemas and pipeline value types for fetched events
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Sentinel for missing or unparseable event timestamps
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class EventRecord(BaseModel):
    """
    A single event as fetched from the remote API.

    Immutable once built. ``raw`` is the original payload, kept verbatim so
    the stored row carries every upstream field, known or not.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    user_id: str = ""
    timestamp: datetime = EPOCH
    raw: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Naive datetimes are taken to be UTC"""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


@dataclass(frozen=True)
class Page:
    """One response of the cursor-paginated events endpoint."""

    events: List[EventRecord]
    next_cursor: Optional[str] = None
    has_more: bool = False
    rate_limit_remaining: Optional[int] = None


@dataclass(frozen=True)
class WriteBatch:
    """
    A fetched batch waiting in the write queue.

    ``checkpoint_cursor`` is the cursor to resume from once every event in
    the batch is durably written.
    """

    events: List[EventRecord] = field(default_factory=list)
    checkpoint_cursor: Optional[str] = None

    def __len__(self) -> int:
        return len(self.events)
