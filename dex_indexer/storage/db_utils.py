from datetime import datetime, timezone
import logging

from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from dex_indexer.storage.base import Base
# imported for their side effect of registering tables on Base.metadata
from dex_indexer.storage.models import extraction_metrics, indexer_state, pools, price_history, swap_events  # noqa: F401

log = logging.getLogger(__name__)


def insert_for(session: Session):
    """`insert` construct supporting ON CONFLICT for the session's dialect (PostgreSQL or SQLite)."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Unsupported database dialect for upserts: {dialect}")


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_tables(engine: Engine) -> None:
    Base.metadata.create_all(engine)
    log.info("Ensured tables: %s", ", ".join(sorted(Base.metadata.tables)))


def check_connection(engine: Engine) -> None:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
