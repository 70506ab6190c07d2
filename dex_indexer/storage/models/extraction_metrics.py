from sqlalchemy import Table, Column, BigInteger, Integer, Numeric, Text, TIMESTAMP, func
from dex_indexer.storage.base import Base

extraction_metrics_table = Table(
    "extraction_metrics",
    Base.metadata,
    Column("id", BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True),
    Column("timestamp", TIMESTAMP(timezone=True), server_default=func.now()),
    Column("block_range", Text),
    Column("log_count", Integer, nullable=False),
    Column("pool_count", Integer, nullable=False),
    Column("duration_seconds", Numeric(10, 2))
)
