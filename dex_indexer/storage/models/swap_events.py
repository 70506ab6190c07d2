from sqlalchemy import Column, BigInteger, Integer, Text, TIMESTAMP, Index, func
from dex_indexer.storage.base import Base


class SwapEvent(Base):
    __tablename__ = "swap_events"

    id           = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    # ─── on-chain identity (tx_hash is the idempotence key) ─────────────
    tx_hash      = Column(Text, nullable=False, unique=True)
    block_number = Column(BigInteger, nullable=False)
    log_index    = Column(Integer)
    # ─── swap legs ──────────────────────────────────────────────────────
    pool_address = Column(Text, nullable=False)
    token_in     = Column(Text, nullable=False)
    token_out    = Column(Text, nullable=False)
    amount_in    = Column(Text, nullable=False)   # raw uint256 as string
    amount_out   = Column(Text, nullable=False)   # raw uint256 as string
    timestamp    = Column(TIMESTAMP(timezone=True), nullable=False)
    created_at   = Column(TIMESTAMP(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_swap_events_pool_address", "pool_address"),
        Index("idx_swap_events_timestamp", "timestamp"),
        Index("idx_swap_events_timestamp_token_in", "timestamp", "token_in"),
        Index("idx_swap_events_timestamp_token_out", "timestamp", "token_out"),
    )
