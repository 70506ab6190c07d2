from typing import Dict, Iterable
import logging

import backoff
import requests
from web3 import Web3

from dex_indexer.utils.errors import BlockTimestampError

logger = logging.getLogger(__name__)


class BlockClient:
    """Head and timestamp lookups. Timestamps are cached; blocks never change once mined."""

    def __init__(self, w3: Web3, rpc_url: str | None = None, timeout: float = 10):
        self.w3 = w3
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._ts_cache: Dict[int, int] = {}
        self.max_cached_blocks = 50_000

    @staticmethod
    def walk_block_ranges(start: int, end: int, step: int = 2000):
        """Inclusive (from, to) windows covering [start, end]."""
        for i in range(start, end + 1, step):
            yield i, min(i + step - 1, end)

    @backoff.on_exception(backoff.expo, Exception, max_tries=3)
    def get_latest_block(self) -> int:
        return self.w3.eth.block_number

    @backoff.on_exception(backoff.expo, Exception, max_tries=3)
    def _fetch_single_timestamp(self, block_number: int) -> int:
        return int(self.w3.eth.get_block(block_number, full_transactions=False)["timestamp"])

    def _batch_fetch(self, block_numbers: list[int]) -> Dict[int, int]:
        """
        One JSON-RPC batch of eth_getBlockByNumber (via requests – Web3 has no
        batch helper). Returns whatever the node answered; an empty dict when
        the batch itself failed so the caller can fall back to single reads.
        """
        payload = [
            {"jsonrpc": "2.0", "method": "eth_getBlockByNumber",
             "params": [hex(b), False], "id": i}
            for i, b in enumerate(block_numbers)
        ]
        try:
            r = requests.post(self.rpc_url, json=payload, timeout=self.timeout)
            r.raise_for_status()
            batch_res = r.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("batch RPC (%d blocks) failed: %s", len(block_numbers), exc)
            return {}

        if not isinstance(batch_res, list):
            logger.warning("batch RPC returned a non-list payload, falling back to single reads")
            return {}

        return {
            int(item["result"]["number"], 16): int(item["result"]["timestamp"], 16)
            for item in batch_res
            if isinstance(item, dict) and item.get("result")
        }

    def get_block_timestamps(self, block_numbers: Iterable[int]) -> Dict[int, int]:
        """
        Resolve unix timestamps for each distinct block.

        • Cached blocks are served from memory.
        • The rest go out as one batched request when an RPC URL is known.
        • Anything still missing is read one block at a time.
        • Raises BlockTimestampError when a block cannot be resolved at all.
        """
        if len(self._ts_cache) > self.max_cached_blocks:
            self._ts_cache.clear()

        wanted = sorted(set(block_numbers))
        missing = [b for b in wanted if b not in self._ts_cache]

        if missing and self.rpc_url and len(missing) > 1:
            self._ts_cache.update(self._batch_fetch(missing))
            missing = [b for b in missing if b not in self._ts_cache]

        for b in missing:
            try:
                self._ts_cache[b] = self._fetch_single_timestamp(b)
            except Exception as exc:
                raise BlockTimestampError(f"Cannot resolve timestamp for block {b}: {exc}") from exc

        return {b: self._ts_cache[b] for b in wanted}
