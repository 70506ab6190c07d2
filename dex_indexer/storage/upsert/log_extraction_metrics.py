from sqlalchemy.orm import Session
from dex_indexer.storage.models.extraction_metrics import extraction_metrics_table


def log_extraction_metrics(
    db: Session,
    block_range: str,
    log_count: int,
    pool_count: int,
    duration_seconds: float,
):
    db.execute(
        extraction_metrics_table.insert().values(
            block_range=block_range,
            log_count=log_count,
            pool_count=pool_count,
            duration_seconds=round(duration_seconds, 2),
        )
    )
