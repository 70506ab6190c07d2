from datetime import datetime, timedelta
from typing import Dict, Iterable, List
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dex_indexer.pipeline.price_oracle import spot_prices
from dex_indexer.storage.db_utils import as_utc, insert_for
from dex_indexer.storage.models.price_history import PriceHistory
from dex_indexer.utils.types import PoolState

log = logging.getLogger(__name__)


def snapshot_bucket(now: datetime) -> datetime:
    """Snapshots are keyed on the minute."""
    return now.replace(second=0, microsecond=0)


def latest_snapshot_times(session: Session, pool_addresses: List[str]) -> Dict[str, datetime]:
    if not pool_addresses:
        return {}
    rows = session.execute(
        select(PriceHistory.pool_address, func.max(PriceHistory.timestamp))
        .where(PriceHistory.pool_address.in_(pool_addresses))
        .group_by(PriceHistory.pool_address)
    ).all()
    return {addr: as_utc(ts) for addr, ts in rows if ts is not None}


def insert_price_snapshots(
    session: Session,
    states: Iterable[PoolState],
    now: datetime,
    min_interval_seconds: int = 60,
) -> int:
    """
    Append a price point per pool, at most once per `min_interval_seconds`.

    The throttle only bounds write volume: prices move every cycle, charts
    don't need every one of them. Callers pass live (non-dust) pools only.
    Returns the number of snapshots written.
    """
    states = list(states)
    bucket = snapshot_bucket(now)
    min_gap = timedelta(seconds=min_interval_seconds)
    last_seen = latest_snapshot_times(session, [s.address.lower() for s in states])

    rows = []
    for state in states:
        addr = state.address.lower()
        last = last_seen.get(addr)
        if last is not None and bucket - last < min_gap:
            continue
        price_a_per_b, price_b_per_a = spot_prices(state)
        rows.append({
            "pool_address": addr,
            "token_a": state.token_a.address.lower(),
            "token_b": state.token_b.address.lower(),
            "token_a_symbol": state.token_a.symbol,
            "token_b_symbol": state.token_b.symbol,
            "price_a_per_b": price_a_per_b,
            "price_b_per_a": price_b_per_a,
            "reserve_a": str(state.reserve_a),
            "reserve_b": str(state.reserve_b),
            "timestamp": bucket,
        })

    if not rows:
        return 0

    insert = insert_for(session)
    stmt = (
        insert(PriceHistory.__table__).values(rows)
        .on_conflict_do_nothing(index_elements=["pool_address", "timestamp"])
    )
    session.execute(stmt)
    log.debug("Wrote %d price snapshot(s) at %s", len(rows), bucket.isoformat())
    return len(rows)
