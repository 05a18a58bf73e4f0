"""
Schemas and value types passed between pipeline stages.

Modules:
    event: EventRecord (validated, immutable event), Page (one API response),
        WriteBatch (a batch queued for persistence with its resume cursor)

Usage:
    from schemas.event import EventRecord, Page, WriteBatch
"""

__all__ = [
    "EventRecord",
    "Page",
    "WriteBatch",
    "EPOCH",
]
