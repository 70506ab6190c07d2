from sqlalchemy import Column, BigInteger, Text, TIMESTAMP
from dex_indexer.storage.base import Base

CURSOR_KEY = "last_processed_block"


class IndexerState(Base):
    """Key/value progress markers that must survive restarts (the block cursor)."""
    __tablename__ = "indexer_state"

    key        = Column(Text, primary_key=True)
    value      = Column(BigInteger, nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False)
