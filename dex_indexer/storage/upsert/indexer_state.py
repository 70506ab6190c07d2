from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from dex_indexer.storage.db_utils import insert_for
from dex_indexer.storage.models.indexer_state import CURSOR_KEY, IndexerState


def load_cursor(session: Session) -> Optional[int]:
    return session.execute(
        select(IndexerState.value).where(IndexerState.key == CURSOR_KEY)
    ).scalar_one_or_none()


def save_cursor(session: Session, block_number: int, now: datetime) -> None:
    insert = insert_for(session)
    stmt = insert(IndexerState.__table__).values(key=CURSOR_KEY, value=block_number, updated_at=now)
    stmt = stmt.on_conflict_do_update(
        index_elements=["key"],
        set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
    )
    session.execute(stmt)
