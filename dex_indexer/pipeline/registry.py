from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Set, Tuple
import logging

from eth_abi import decode
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from dex_indexer.config.settings import ZERO_ADDRESS
from dex_indexer.utils.errors import FactoryUnavailableError
from dex_indexer.utils.types import PoolRef

log = logging.getLogger(__name__)


def decode_pool_created(log_entry: dict) -> str:
    """PoolCreated(address indexed tokenA, address indexed tokenB, address pool, uint256) → pool address."""
    pool, _ = decode(["address", "uint256"], bytes(log_entry["data"]))
    return pool.lower()


class PoolRegistry:
    """
    The set of pools spawned by the factory.

    Addresses are deduplicated in lower case. Token pairs are resolved once
    per pool and cached: a pool's tokens never change.
    """

    def __init__(self, chain, max_workers: int = 8):
        self.chain = chain
        self.max_workers = max_workers
        self._order: List[str] = []
        self._known: Set[str] = set()
        self._unreadable: Set[str] = set()
        self._tokens: Dict[str, Tuple[str, str]] = {}

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, address: str) -> bool:
        return address.lower() in self._known

    def _add(self, address: Optional[str]) -> bool:
        if not address:
            return False
        addr = address.lower()
        if addr == ZERO_ADDRESS or addr in self._known:
            return False
        self._known.add(addr)
        self._order.append(addr)
        return True

    def _pool_at(self, index: int) -> Optional[str]:
        try:
            return self.chain.factory_pool_at(index)
        except Exception as e:
            log.error("Error fetching pool %d from factory: %s", index, e)
            return None

    def discover(self) -> List[str]:
        """Page through the factory's pool list. Returns the addresses that were new."""
        try:
            count = self.chain.factory_pool_count()
        except Exception as e:
            raise FactoryUnavailableError(f"Factory pool count unreadable: {e}") from e

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool_exec:
            addresses = list(pool_exec.map(self._pool_at, range(count)))

        new = [a.lower() for a in addresses if self._add(a)]
        log.info("Factory reports %d pools (%d known, %d new)", count, len(self._order), len(new))
        return new

    def observe_created(self, from_block: int, to_block: int) -> List[str]:
        """Add pools from PoolCreated logs in the range without waiting for the next full scan."""
        new = []
        for entry in self.chain.pool_created_logs(from_block, to_block):
            try:
                pool = decode_pool_created(entry)
            except Exception as e:
                log.warning("Skipping undecodable PoolCreated log %s: %s", entry.get("transactionHash"), e)
                continue
            if self._add(pool):
                log.info("New pool created: %s", pool)
                new.append(pool)
        return new

    def _resolve_tokens(self, address: str) -> Tuple[str, Optional[Tuple[str, str]]]:
        try:
            token_a, token_b = self.chain.pool_tokens(address)
        except (ContractLogicError, BadFunctionCallOutput) as e:
            # not a pool we can read; transient RPC errors propagate instead
            log.warning("Pool %s does not expose tokenA/tokenB, ignoring it: %s", address, e)
            return address, None
        return address, (token_a.lower(), token_b.lower())

    def known_pools(self) -> List[PoolRef]:
        """Every known pool with its token pair, in discovery order."""
        unresolved = [a for a in self._order if a not in self._tokens and a not in self._unreadable]
        if unresolved:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool_exec:
                for address, tokens in pool_exec.map(self._resolve_tokens, unresolved):
                    if tokens is None:
                        self._unreadable.add(address)
                    else:
                        self._tokens[address] = tokens

        return [
            PoolRef(addr, *self._tokens[addr])
            for addr in self._order
            if addr in self._tokens
        ]
