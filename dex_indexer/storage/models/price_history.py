from sqlalchemy import Column, BigInteger, Integer, Numeric, Text, TIMESTAMP, Index, UniqueConstraint, func
from dex_indexer.storage.base import Base


class PriceHistory(Base):
    """Append-only, throttled per-pool price points for charting."""
    __tablename__ = "price_history"

    id             = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    pool_address   = Column(Text, nullable=False)
    token_a        = Column(Text, nullable=False)
    token_b        = Column(Text, nullable=False)
    token_a_symbol = Column(Text)
    token_b_symbol = Column(Text)
    price_a_per_b  = Column(Numeric, nullable=False)  # tokenB per 1 tokenA
    price_b_per_a  = Column(Numeric, nullable=False)  # tokenA per 1 tokenB
    reserve_a      = Column(Text, nullable=False)
    reserve_b      = Column(Text, nullable=False)
    timestamp      = Column(TIMESTAMP(timezone=True), nullable=False)  # floored to the minute
    created_at     = Column(TIMESTAMP(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("pool_address", "timestamp", name="uq_price_history_pool_timestamp"),
        Index("idx_price_history_pool_timestamp", "pool_address", "timestamp"),
    )
