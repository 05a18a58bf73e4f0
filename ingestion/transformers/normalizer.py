"""
Transform raw API payloads into validated EventRecord models
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple
from datetime import datetime, timezone
from pydantic import TypeAdapter, ValidationError
from schemas.event import EPOCH, EventRecord
import logging

logger = logging.getLogger(__name__)

# Payload keys tried in order; the first non-null value wins
NAME_FIELDS: Tuple[str, ...] = ("event_name", "type", "name")
USER_ID_FIELDS: Tuple[str, ...] = ("user_id", "userId")
TIMESTAMP_FIELDS: Tuple[str, ...] = ("timestamp", "created_at", "createdAt")

_DATETIME = TypeAdapter(datetime)


def normalize_timestamp(value: Any) -> datetime:
    """
    Normalize an event timestamp to an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings (a trailing ``Z`` included) and
    numbers, which are read as epoch milliseconds. Anything missing or
    unparseable becomes the epoch sentinel; malformed time data never blocks
    ingestion.
    """
    if value is None or value == "" or isinstance(value, bool):
        return EPOCH

    try:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, (int, float)):
            parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        elif isinstance(value, str):
            parsed = _DATETIME.validate_python(value.strip())
        else:
            return EPOCH
    except (ValidationError, ValueError, OverflowError, OSError):
        return EPOCH

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _first_present(record: Dict[str, Any], keys: Iterable[str]) -> Optional[Any]:
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


class EventNormalizer:
    """
    Map raw event payloads onto the EventRecord schema.

    Handles:
    - Field aliases used by different API versions
    - String coercion of ids and user ids
    - Timestamp normalization
    """

    def normalize(self, payload: Dict[str, Any]) -> EventRecord:
        """Normalize one payload. The payload itself is kept as ``raw``."""
        event_id = payload.get("id")
        name = _first_present(payload, NAME_FIELDS)
        user_id = _first_present(payload, USER_ID_FIELDS)

        return EventRecord(
            id="" if event_id is None else str(event_id),
            name="" if name is None else str(name),
            user_id="" if user_id is None else str(user_id),
            timestamp=normalize_timestamp(_first_present(payload, TIMESTAMP_FIELDS)),
            raw=payload,
        )

    def normalize_many(self, payloads: Iterable[Any]) -> List[EventRecord]:
        """Normalize a page of payloads, skipping entries that are not objects"""
        events = []
        for index, payload in enumerate(payloads):
            if not isinstance(payload, dict):
                logger.warning(
                    f"Skipping non-object event at index {index}: {type(payload).__name__}"
                )
                continue
            events.append(self.normalize(payload))
        return events
