from decimal import Decimal

import pytest

from conftest import BAR, FOO, STABLE, TKN, WETH, pool_state
from dex_indexer.pipeline.price_oracle import PriceOracle, spot_prices


def price_against(token, states):
    oracle = PriceOracle(STABLE)
    oracle.resolve_all(states)
    return oracle.price_of(token)


def scenario_a_pool():
    # 1000 USDC (6 dec) / 500 TKN (18 dec)
    return pool_state("0xp1", STABLE, TKN, 1000 * 10**6, 500 * 10**18, dec_a=6, dec_b=18)


def test_stable_asset_is_exactly_one():
    oracle = PriceOracle(STABLE)
    oracle.resolve_all([scenario_a_pool()])
    assert oracle.price_of(STABLE) == Decimal(1)
    # even with no pools at all
    assert PriceOracle(STABLE).price_of(STABLE) == Decimal(1)


def test_direct_stable_pair_scenario_a():
    oracle = PriceOracle(STABLE)
    oracle.resolve_all([scenario_a_pool()])
    assert oracle.price_of(TKN) == Decimal(2)


def test_direct_pair_when_stable_is_token_b():
    pool = pool_state("0xp1", TKN, STABLE, 250 * 10**18, 1000 * 10**6, dec_a=18, dec_b=6)
    assert price_against(TKN, [pool]) == Decimal(4)


def test_two_hop_price_is_product_of_ratios():
    direct = scenario_a_pool()                                        # TKN = $2
    hop = pool_state("0xp2", TKN, WETH, 3000 * 10**18, 2 * 10**18)     # 1 WETH = 1500 TKN
    oracle = PriceOracle(STABLE)
    oracle.resolve_all([hop, direct])

    price_weth_in_tkn = Decimal(3000) / Decimal(2)
    expected = price_weth_in_tkn * oracle.price_of(TKN)
    assert float(oracle.price_of(WETH)) == pytest.approx(float(expected))
    assert float(oracle.price_of(WETH)) == pytest.approx(3000.0)


def test_cyclic_graph_without_stable_leg_terminates_with_zero():
    pools = [
        pool_state("0xc1", FOO, BAR, 10**18, 2 * 10**18),
        pool_state("0xc2", BAR, WETH, 10**18, 10**18),
        pool_state("0xc3", WETH, FOO, 10**18, 10**18),
    ]
    oracle = PriceOracle(STABLE)
    prices = oracle.resolve_all(pools)
    assert prices == {STABLE: Decimal(1)}
    for token in (FOO, BAR, WETH):
        assert oracle.price_of(token) == Decimal(0)


def test_cycle_attached_to_stable_prices_every_token_once():
    pools = [
        scenario_a_pool(),                                           # TKN = $2
        pool_state("0xc1", TKN, FOO, 10**18, 10**18),                 # FOO = $2
        pool_state("0xc2", FOO, BAR, 10**18, 4 * 10**18),             # BAR = $0.5
        pool_state("0xc3", BAR, TKN, 10**18, 10**18),                 # closes the loop
    ]
    oracle = PriceOracle(STABLE)
    oracle.resolve_all(pools)
    assert oracle.price_of(FOO) == Decimal(2)
    # shortest route wins: BAR is one hop from TKN via 0xc3
    assert oracle.price_of(BAR) == Decimal(2)


def test_unknown_token_prices_zero():
    oracle = PriceOracle(STABLE)
    oracle.resolve_all([scenario_a_pool()])
    assert oracle.price_of(WETH) == Decimal(0)


def test_empty_pool_is_not_a_route():
    empty = pool_state("0xe1", STABLE, WETH, 0, 10**18, dec_a=6)
    assert price_against(WETH, [empty]) == Decimal(0)


def test_spot_prices():
    a_per_b, b_per_a = spot_prices(scenario_a_pool())
    assert a_per_b == Decimal("0.5")   # TKN per USDC
    assert b_per_a == Decimal(2)       # USDC per TKN
    assert spot_prices(pool_state("0xe1", FOO, BAR, 0, 10)) == (Decimal(0), Decimal(0))
