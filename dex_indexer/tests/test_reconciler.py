from decimal import Decimal

from conftest import KNOWN_TOKENS, POOL_STABLE_TKN, POOL_TKN_WETH, STABLE, TKN, WETH
from dex_indexer.chain.token_meta import TokenMetaCache
from dex_indexer.pipeline.reconciler import ReserveReconciler
from dex_indexer.utils.types import PoolRef


def test_scenario_a_reads_raw_balances(chain):
    reconciler = ReserveReconciler(chain, TokenMetaCache(chain, KNOWN_TOKENS))
    [state] = reconciler.reconcile([PoolRef(POOL_STABLE_TKN, STABLE, TKN)])

    assert state.reserve_a == 1000 * 10**6
    assert state.reserve_b == 500 * 10**18
    assert state.reserve_a_normalized == Decimal(1000)
    assert state.reserve_b_normalized == Decimal(500)
    assert (state.token_a.symbol, state.token_a.decimals) == ("USDC", 6)
    assert (state.token_b.symbol, state.token_b.decimals) == ("TKN", 18)


def test_reserves_come_from_balances_not_pool_counters(chain):
    reconciler = ReserveReconciler(chain, TokenMetaCache(chain, KNOWN_TOKENS))
    [state] = reconciler.reconcile([PoolRef(POOL_STABLE_TKN, STABLE, TKN)])

    cached_a, cached_b = chain.cached_reserves[POOL_STABLE_TKN]
    assert (state.reserve_a, state.reserve_b) != (cached_a, cached_b)
    assert chain.calls["balance_of"] == 2


def test_out_of_band_transfer_is_picked_up(chain):
    reconciler = ReserveReconciler(chain, TokenMetaCache(chain, KNOWN_TOKENS))
    pools = [PoolRef(POOL_STABLE_TKN, STABLE, TKN)]
    reconciler.reconcile(pools)

    chain.set_balances(POOL_STABLE_TKN, 1500 * 10**6, 500 * 10**18)
    [state] = reconciler.reconcile(pools)
    assert state.reserve_a_normalized == Decimal(1500)


def test_keeps_pool_order(chain):
    chain.add_pool(POOL_TKN_WETH, TKN, WETH, 3 * 10**18, 1 * 10**18)
    reconciler = ReserveReconciler(chain, TokenMetaCache(chain, KNOWN_TOKENS), max_workers=4)
    states = reconciler.reconcile([
        PoolRef(POOL_TKN_WETH, TKN, WETH),
        PoolRef(POOL_STABLE_TKN, STABLE, TKN),
    ])
    assert [s.address for s in states] == [POOL_TKN_WETH, POOL_STABLE_TKN]
    assert reconciler.reconcile([]) == []
