from sqlalchemy import BigInteger, Column, DateTime, Integer, Text, func
from models.base import Base

STATE_ROW_ID = 1


class IngestionState(Base):
    """
    Resume point for the ingestion pipeline.

    Design:
    - Exactly one logical row (id = 1), created on first run, never deleted
    - next_cursor is the cursor to request after the last durably written batch
    - total_processed only ever grows
    """
    __tablename__ = "ingestion_state"

    id = Column(Integer, primary_key=True, default=STATE_ROW_ID)
    next_cursor = Column(Text, nullable=True)
    total_processed = Column(BigInteger, nullable=False, default=0, server_default="0")
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
