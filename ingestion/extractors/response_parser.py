"""
Tolerant parsing of events endpoint responses.

The API has shipped several response shapes. Each field is located by an
ordered list of named extraction rules; the first rule that yields a
non-null value wins. The orders below are part of the parser's contract:

    events:       data, events (a bare JSON list is the event list itself)
    next cursor:  nextCursor, next_cursor, pagination.nextCursor,
                  pagination.next_cursor
    has more:     hasMore, has_more, pagination.hasMore, pagination.has_more,
                  otherwise "a next cursor is present"
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class ExtractionRule:
    """A named path into the response body"""

    name: str
    path: Tuple[str, ...]

    def extract(self, body: Any) -> Optional[Any]:
        node = body
        for key in self.path:
            if not isinstance(node, dict):
                return None
            node = node.get(key)
            if node is None:
                return None
        return node


EVENT_LIST_RULES: Tuple[ExtractionRule, ...] = (
    ExtractionRule("data", ("data",)),
    ExtractionRule("events", ("events",)),
)

NEXT_CURSOR_RULES: Tuple[ExtractionRule, ...] = (
    ExtractionRule("nextCursor", ("nextCursor",)),
    ExtractionRule("next_cursor", ("next_cursor",)),
    ExtractionRule("pagination.nextCursor", ("pagination", "nextCursor")),
    ExtractionRule("pagination.next_cursor", ("pagination", "next_cursor")),
)

HAS_MORE_RULES: Tuple[ExtractionRule, ...] = (
    ExtractionRule("hasMore", ("hasMore",)),
    ExtractionRule("has_more", ("has_more",)),
    ExtractionRule("pagination.hasMore", ("pagination", "hasMore")),
    ExtractionRule("pagination.has_more", ("pagination", "has_more")),
)


def first_match(body: Any, rules: Sequence[ExtractionRule]) -> Optional[Any]:
    """Value of the first rule that matches, or None"""
    for rule in rules:
        value = rule.extract(body)
        if value is not None:
            return value
    return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


@dataclass(frozen=True)
class ParsedPage:
    """Raw page content before event normalization"""

    items: List[Any]
    next_cursor: Optional[str]
    has_more: bool


def parse_events_response(body: Any) -> ParsedPage:
    """Extract event payloads and pagination state from a response body"""
    if isinstance(body, list):
        return ParsedPage(items=body, next_cursor=None, has_more=False)

    items = first_match(body, EVENT_LIST_RULES)
    if not isinstance(items, list):
        items = []

    next_cursor = first_match(body, NEXT_CURSOR_RULES)
    if next_cursor is not None:
        next_cursor = str(next_cursor)
        if next_cursor == "":
            next_cursor = None

    has_more = first_match(body, HAS_MORE_RULES)
    if has_more is None:
        has_more = next_cursor is not None

    return ParsedPage(items=items, next_cursor=next_cursor, has_more=_as_bool(has_more))
