from sqlalchemy import Column, BigInteger, Integer, Numeric, Text, TIMESTAMP, Index, func
from dex_indexer.storage.base import Base


class Pool(Base):
    __tablename__ = "pools"

    id                 = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    pool_address       = Column(Text, nullable=False, unique=True)   # lower-case
    token_a            = Column(Text, nullable=False)
    token_b            = Column(Text, nullable=False)
    token_a_symbol     = Column(Text)
    token_b_symbol     = Column(Text)
    # raw balanceOf(pool) as a decimal string – never the pool's own reserve fields
    reserve_a          = Column(Text, nullable=False)
    reserve_b          = Column(Text, nullable=False)
    reserve_a_decimals = Column(Integer, nullable=False, default=18)
    reserve_b_decimals = Column(Integer, nullable=False, default=18)
    total_liquidity    = Column(Numeric, nullable=False, default=0)  # TVL in USD, rounded to cents
    last_updated       = Column(TIMESTAMP(timezone=True), nullable=False)
    created_at         = Column(TIMESTAMP(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_pools_token_a", "token_a"),
        Index("idx_pools_token_b", "token_b"),
    )

    def __repr__(self) -> str:         # for nicer logs
        return f"<Pool {self.pool_address} {self.token_a_symbol}/{self.token_b_symbol}>"
