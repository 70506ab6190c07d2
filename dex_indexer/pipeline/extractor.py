from concurrent.futures import ThreadPoolExecutor
from typing import List, Sequence, Tuple
import logging

from dex_indexer.pipeline.decoder import decode_swap_log
from dex_indexer.utils.types import PoolRef, SwapRecord

log = logging.getLogger(__name__)


class EventExtractor:
    """Swap logs for every known pool over a block range, normalized to SwapRecords."""

    def __init__(self, chain, max_workers: int = 8):
        self.chain = chain
        self.max_workers = max_workers

    def _pool_logs(self, args: Tuple[PoolRef, int, int]) -> Tuple[PoolRef, List[dict]]:
        pool, from_block, to_block = args
        return pool, self.chain.swap_logs(pool.address, from_block, to_block)

    def extract(self, pools: Sequence[PoolRef], from_block: int, to_block: int) -> List[SwapRecord]:
        """
        Returns swaps in discovery order (pool order, then log order).

        Any log query failure propagates: a cycle that silently missed a
        pool's swaps would still advance the cursor past them.
        """
        if from_block > to_block or not pools:
            return []

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool_exec:
            per_pool = list(pool_exec.map(self._pool_logs, [(p, from_block, to_block) for p in pools]))

        total_logs = sum(len(logs) for _, logs in per_pool)
        if not total_logs:
            log.info("No swap logs in blocks %d-%d across %d pools", from_block, to_block, len(pools))
            return []

        block_ts = self.chain.block_timestamps(
            {int(entry["blockNumber"]) for _, logs in per_pool for entry in logs}
        )

        records: List[SwapRecord] = []
        dropped = 0
        for pool, logs in per_pool:
            for entry in logs:
                record = decode_swap_log(entry, pool, block_ts)
                if record is None:
                    dropped += 1
                    continue
                records.append(record)

        log.info(
            "Extracted %d swaps from %d logs in blocks %d-%d (%d malformed)",
            len(records), total_logs, from_block, to_block, dropped,
        )
        return records
