from typing import List
import logging

from sqlalchemy.orm import Session

from dex_indexer.storage.db_utils import insert_for
from dex_indexer.storage.models.swap_events import SwapEvent
from dex_indexer.utils.log_utils import chunk
from dex_indexer.utils.types import SwapRecord

WRITE_BATCH_SIZE = 200

log = logging.getLogger(__name__)


def upsert_swap_events(session: Session, records: List[SwapRecord]) -> int:
    """Insert swap rows; any row whose tx_hash already exists is ignored.

    Re-processing an overlapping block range therefore never duplicates a
    row. Returns the number of rows actually inserted.
    """
    if not records:
        return 0

    rows = {}
    for r in records:
        # one row per tx_hash even inside a single batch
        rows.setdefault(r.tx_hash.lower(), {
            "tx_hash": r.tx_hash.lower(),
            "pool_address": r.pool_address.lower(),
            "token_in": r.token_in.lower(),
            "token_out": r.token_out.lower(),
            "amount_in": str(r.amount_in),
            "amount_out": str(r.amount_out),
            "block_number": r.block_number,
            "log_index": r.log_index,
            "timestamp": r.timestamp,
        })

    insert = insert_for(session)
    inserted = 0
    for batch in chunk(list(rows.values()), WRITE_BATCH_SIZE):
        stmt = (
            insert(SwapEvent.__table__).values(batch)
            .on_conflict_do_nothing(index_elements=["tx_hash"])
        )
        result = session.execute(stmt)
        inserted += max(result.rowcount or 0, 0)
    log.info("Stored %d new swap event(s) (%d observed)", inserted, len(records))
    return inserted
