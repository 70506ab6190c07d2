from datetime import datetime
from decimal import Decimal
from typing import Iterable, Tuple
import logging

from sqlalchemy import delete
from sqlalchemy.orm import Session

from dex_indexer.storage.db_utils import insert_for
from dex_indexer.storage.models.pools import Pool
from dex_indexer.utils.log_utils import chunk
from dex_indexer.utils.types import PoolState

WRITE_BATCH_SIZE = 200

log = logging.getLogger(__name__)


def _pool_row(state: PoolState, now: datetime) -> dict:
    return {
        "pool_address": state.address.lower(),
        "token_a": state.token_a.address.lower(),
        "token_b": state.token_b.address.lower(),
        "token_a_symbol": state.token_a.symbol,
        "token_b_symbol": state.token_b.symbol,
        "reserve_a": str(state.reserve_a),
        "reserve_b": str(state.reserve_b),
        "reserve_a_decimals": state.token_a.decimals,
        "reserve_b_decimals": state.token_b.decimals,
        "total_liquidity": state.total_liquidity.quantize(Decimal("0.01")),
        "last_updated": now,
    }


def upsert_pools(
    session: Session,
    states: Iterable[PoolState],
    dust_threshold: Decimal,
    now: datetime,
) -> Tuple[int, int]:
    """Upsert every live pool keyed by address; delete pools whose reserves fell to dust.

    Returns (upserted, deleted).
    """
    live, dust = [], []
    for state in states:
        (dust if state.is_dust(dust_threshold) else live).append(state)

    insert = insert_for(session)
    for batch in chunk([_pool_row(s, now) for s in live], WRITE_BATCH_SIZE):
        stmt = insert(Pool.__table__).values(batch)
        stmt = stmt.on_conflict_do_update(
            index_elements=["pool_address"],
            set_={
                col: stmt.excluded[col]
                for col in (
                    "token_a", "token_b", "token_a_symbol", "token_b_symbol",
                    "reserve_a", "reserve_b", "reserve_a_decimals", "reserve_b_decimals",
                    "total_liquidity", "last_updated",
                )
            },
        )
        session.execute(stmt)

    if dust:
        addresses = [s.address.lower() for s in dust]
        result = session.execute(delete(Pool).where(Pool.pool_address.in_(addresses)))
        if result.rowcount:
            log.info("Removed %d pool(s) with no liquidity: %s", result.rowcount, ", ".join(addresses))

    return len(live), len(dust)
