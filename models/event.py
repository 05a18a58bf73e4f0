from sqlalchemy import Column, DateTime, Index, Text
from sqlalchemy.dialects.postgresql import JSONB
from models.base import Base


class Event(Base):
    """
    One row per external event, keyed by the id the remote system assigned.

    Design:
    - id is the only deduplication key; re-ingesting a seen id is a no-op
    - raw keeps the full payload verbatim so fields added upstream later
      can be backfilled without refetching
    - timestamp is always set; unparseable source values land on the epoch
    """
    __tablename__ = "events"

    id = Column(Text, primary_key=True)
    event_name = Column(Text, nullable=True)
    user_id = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=True)
    raw = Column(JSONB, nullable=True)

    __table_args__ = (
        Index("idx_events_timestamp", "timestamp"),
    )
