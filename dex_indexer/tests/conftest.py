from collections import Counter, defaultdict
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from eth_abi import encode
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from dex_indexer.chain.token_meta import TokenMetaCache
from dex_indexer.pipeline.extractor import EventExtractor
from dex_indexer.pipeline.metrics import MetricsAggregator
from dex_indexer.pipeline.price_oracle import PriceOracle
from dex_indexer.pipeline.reconciler import ReserveReconciler
from dex_indexer.pipeline.registry import PoolRegistry
from dex_indexer.scheduler.poller import PollScheduler
from dex_indexer.scheduler.retry import RetryPolicy
from dex_indexer.storage.db import make_session_factory
from dex_indexer.storage.db_utils import create_tables
from dex_indexer.utils.types import PoolState, TokenInfo

STABLE = "0x3600000000000000000000000000000000000000"
TKN = "0x" + "11" * 20
WETH = "0x" + "22" * 20
FOO = "0x" + "33" * 20
BAR = "0x" + "44" * 20

POOL_STABLE_TKN = "0x" + "a1" * 20
POOL_TKN_WETH = "0x" + "a2" * 20
POOL_FOO_BAR = "0x" + "a3" * 20

BASE_TS = 1_700_000_000

KNOWN_TOKENS = {
    STABLE: {"symbol": "USDC", "decimals": 6},
}


def swap_log(tx_hash, block, a_in=0, b_in=0, a_out=0, b_out=0, log_index=0):
    return {
        "transactionHash": tx_hash,
        "blockNumber": block,
        "logIndex": log_index,
        "data": encode(["uint256"] * 4, [a_in, b_in, a_out, b_out]),
    }


def pool_created_log(pool, block, index=0):
    return {
        "transactionHash": f"0x{block:064x}",
        "blockNumber": block,
        "logIndex": 0,
        "data": encode(["address", "uint256"], [pool, index]),
    }


class FakeChain:
    """In-memory stand-in for ChainReader: a factory, pools, ERC-20 balances and logs."""

    def __init__(self, head: int = 100):
        self.head = head
        self.factory_pools = []
        self.pool_token_map = {}
        self.token_meta = {STABLE: ("USDC", 6)}
        self.balances = defaultdict(int)
        self.swap_log_map = defaultdict(list)
        self.created_logs = []
        # the pool contract's own (drifting) counters; nothing should ever read them
        self.cached_reserves = {}
        self.fail = {}
        self.calls = Counter()

    # ── setup helpers ──
    def add_token(self, token, symbol, decimals):
        self.token_meta[token] = (symbol, decimals)

    def add_pool(self, pool, token_a, token_b, reserve_a=0, reserve_b=0, in_factory=True):
        self.pool_token_map[pool] = (token_a, token_b)
        self.set_balances(pool, reserve_a, reserve_b)
        self.cached_reserves[pool] = (reserve_a + 12345, reserve_b + 67890)
        if in_factory:
            self.factory_pools.append(pool)

    def set_balances(self, pool, reserve_a, reserve_b):
        token_a, token_b = self.pool_token_map[pool]
        self.balances[(token_a, pool)] = reserve_a
        self.balances[(token_b, pool)] = reserve_b

    def _maybe_fail(self, name):
        self.calls[name] += 1
        if name in self.fail:
            raise self.fail[name]

    # ── ChainReader surface ──
    def latest_block(self):
        self._maybe_fail("latest_block")
        return self.head

    def block_timestamps(self, block_numbers):
        self._maybe_fail("block_timestamps")
        return {b: BASE_TS + 2 * b for b in set(block_numbers)}

    def factory_pool_count(self):
        self._maybe_fail("factory_pool_count")
        return len(self.factory_pools)

    def factory_pool_at(self, index):
        self._maybe_fail("factory_pool_at")
        return self.factory_pools[index]

    def pool_created_logs(self, from_block, to_block):
        self._maybe_fail("pool_created_logs")
        return [l for l in self.created_logs if from_block <= l["blockNumber"] <= to_block]

    def pool_tokens(self, pool):
        self._maybe_fail("pool_tokens")
        return self.pool_token_map[pool.lower()]

    def swap_logs(self, pool, from_block, to_block):
        self._maybe_fail("swap_logs")
        return [l for l in self.swap_log_map[pool] if from_block <= l["blockNumber"] <= to_block]

    def token_symbol(self, token):
        self._maybe_fail("token_symbol")
        return self.token_meta[token][0]

    def token_decimals(self, token):
        self._maybe_fail("token_decimals")
        return self.token_meta[token][1]

    def balance_of(self, token, holder):
        self._maybe_fail("balance_of")
        return self.balances[(token.lower(), holder.lower())]


class Clock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self):
        return self.now


def pool_state(address, token_a, token_b, reserve_a, reserve_b, dec_a=18, dec_b=18, sym_a="A", sym_b="B"):
    return PoolState(
        address=address,
        token_a=TokenInfo(token_a, sym_a, dec_a),
        token_b=TokenInfo(token_b, sym_b, dec_b),
        reserve_a=reserve_a,
        reserve_b=reserve_b,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def session(session_factory):
    with session_factory() as db:
        yield db


@pytest.fixture
def chain():
    chain = FakeChain(head=100)
    chain.add_token(TKN, "TKN", 18)
    chain.add_token(WETH, "WETH", 18)
    # Scenario A pool: 1000 USDC / 500 TKN
    chain.add_pool(POOL_STABLE_TKN, STABLE, TKN, 1000 * 10**6, 500 * 10**18)
    return chain


@pytest.fixture
def clock():
    return Clock(datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def scheduler(chain, session_factory, clock):
    token_meta = TokenMetaCache(chain, KNOWN_TOKENS)
    return PollScheduler(
        chain,
        session_factory,
        registry=PoolRegistry(chain, max_workers=2),
        extractor=EventExtractor(chain, max_workers=2),
        reconciler=ReserveReconciler(chain, token_meta, max_workers=2),
        oracle=PriceOracle(STABLE),
        metrics=MetricsAggregator(STABLE, token_meta, fee_rate=Decimal("0.003"), window_days=30),
        poll_interval=0,
        initial_lookback_blocks=50,
        dust_threshold=Decimal("0.000001"),
        snapshot_interval_seconds=60,
        retry_policy=RetryPolicy(0, 0),
        clock=clock,
    )
