from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence
import logging

from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from dex_indexer.chain.token_meta import TokenMetaCache
from dex_indexer.utils.types import PoolRef, PoolState

log = logging.getLogger(__name__)


class ReserveReconciler:
    """
    Authoritative reserves for every known pool.

    A pool's reserves are tokenA.balanceOf(pool) and tokenB.balanceOf(pool).
    The pool contract's own reserve fields are computed from transaction-time
    inputs rather than the post-transfer balances, so they drift and are
    never read here.

    `balance_reader` only needs `balance_of(token, holder) -> int`, so any
    other ground-truth source can stand in for the chain reader.
    """

    def __init__(self, balance_reader, token_meta: TokenMetaCache, max_workers: int = 8):
        self.balance_reader = balance_reader
        self.token_meta = token_meta
        self.max_workers = max_workers

    def _reconcile_one(self, pool: PoolRef) -> Optional[PoolState]:
        try:
            reserve_a = self.balance_reader.balance_of(pool.token_a, pool.address)
            reserve_b = self.balance_reader.balance_of(pool.token_b, pool.address)
        except (ContractLogicError, BadFunctionCallOutput) as e:
            # a token whose balanceOf reverts; transient RPC errors propagate instead
            log.warning("Skipping pool %s this cycle, balanceOf unreadable: %s", pool.address, e)
            return None

        state = PoolState(
            address=pool.address,
            token_a=self.token_meta.get(pool.token_a),
            token_b=self.token_meta.get(pool.token_b),
            reserve_a=int(reserve_a),
            reserve_b=int(reserve_b),
        )
        log.debug(
            "Pool %s: reserveA=%d reserveB=%d (%s/%s)",
            pool.address, state.reserve_a, state.reserve_b, state.token_a.symbol, state.token_b.symbol,
        )
        return state

    def reconcile(self, pools: Sequence[PoolRef]) -> List[PoolState]:
        """Read balances for all pools, not only those with new swaps: transfers move balances too."""
        if not pools:
            return []
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool_exec:
            states = [s for s in pool_exec.map(self._reconcile_one, pools) if s is not None]
        skipped = len(pools) - len(states)
        log.info("Reconciled reserves for %d pools (%d unreadable)", len(states), skipped)
        return states
