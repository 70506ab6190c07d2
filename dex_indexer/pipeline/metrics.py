from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Sequence, Tuple
import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from dex_indexer.chain.token_meta import TokenMetaCache
from dex_indexer.pipeline.price_oracle import PriceOracle
from dex_indexer.storage.db_utils import as_utc
from dex_indexer.storage.models.swap_events import SwapEvent
from dex_indexer.utils.types import DailyVolume, PoolState, SwapRecord, normalize_amount

log = logging.getLogger(__name__)

POOL_FEE_RATE = Decimal("0.003")


def compute_tvl(states: Iterable[PoolState], oracle: PriceOracle) -> Decimal:
    """Set each pool's total_liquidity (USD) and return the sum. Unpriced legs count as 0."""
    total = Decimal(0)
    for state in states:
        value_a = state.reserve_a_normalized * oracle.price_of(state.token_a.address)
        value_b = state.reserve_b_normalized * oracle.price_of(state.token_b.address)
        state.total_liquidity = value_a + value_b
        total += state.total_liquidity
    return total


class VolumeAggregator:
    """
    Daily USD volume and fees from swaps that touch the stable asset.

    The stable leg's normalized amount is the swap's volume; swaps with no
    stable leg have no valuation route and are skipped. Each tx hash is
    counted once however many times it is added.
    """

    def __init__(self, stable_asset: str, stable_decimals: int, fee_rate: Decimal = POOL_FEE_RATE):
        self.stable_asset = stable_asset.lower()
        self.stable_decimals = stable_decimals
        self.fee_rate = fee_rate
        self._seen: set[str] = set()
        self.buckets = defaultdict(lambda: {"volume": Decimal(0), "swap_count": 0})

    @staticmethod
    def _day_key(ts: datetime) -> date:
        return as_utc(ts).date()

    def add(self, swap: SwapRecord) -> bool:
        tx = swap.tx_hash.lower()
        if tx in self._seen:
            return False

        if swap.token_in.lower() == self.stable_asset:
            raw = swap.amount_in
        elif swap.token_out.lower() == self.stable_asset:
            raw = swap.amount_out
        else:
            return False

        self._seen.add(tx)
        bucket = self.buckets[self._day_key(swap.timestamp)]
        bucket["volume"] += normalize_amount(int(raw), self.stable_decimals)
        bucket["swap_count"] += 1
        return True

    def aggregate(self) -> List[DailyVolume]:
        return [
            DailyVolume(
                day=day,
                volume_usd=data["volume"],
                fees_usd=data["volume"] * self.fee_rate,
                swap_count=data["swap_count"],
            )
            for day, data in sorted(self.buckets.items())
        ]

    @property
    def swap_count(self) -> int:
        return len(self._seen)

    def totals(self) -> Tuple[Decimal, Decimal]:
        volume = sum((data["volume"] for data in self.buckets.values()), Decimal(0))
        return volume, volume * self.fee_rate


def load_window_swaps(session: Session, stable_asset: str, since: datetime) -> List[SwapRecord]:
    """Persisted swaps since `since` that have a stable-asset leg."""
    stable = stable_asset.lower()
    rows = session.execute(
        select(SwapEvent)
        .where(SwapEvent.timestamp >= since)
        .where(or_(SwapEvent.token_in == stable, SwapEvent.token_out == stable))
        .order_by(SwapEvent.timestamp)
    ).scalars()
    return [
        SwapRecord(
            tx_hash=row.tx_hash,
            pool_address=row.pool_address,
            token_in=row.token_in,
            token_out=row.token_out,
            amount_in=int(row.amount_in),
            amount_out=int(row.amount_out),
            block_number=int(row.block_number),
            log_index=row.log_index or 0,
            timestamp=as_utc(row.timestamp),
        )
        for row in rows
    ]


class MetricsAggregator:
    """TVL from reconciled reserves and prices; volume/fees over a rolling window of swaps."""

    def __init__(
        self,
        stable_asset: str,
        token_meta: TokenMetaCache,
        fee_rate: Decimal = POOL_FEE_RATE,
        window_days: int = 30,
    ):
        self.stable_asset = stable_asset.lower()
        self.token_meta = token_meta
        self.fee_rate = fee_rate
        self.window_days = window_days

    @property
    def stable_decimals(self) -> int:
        return self.token_meta.get(self.stable_asset).decimals

    def tvl(self, states: Sequence[PoolState], oracle: PriceOracle) -> Decimal:
        return compute_tvl(states, oracle)

    def volume(
        self,
        session: Session,
        now: datetime,
        fresh: Iterable[SwapRecord] = (),
    ) -> VolumeAggregator:
        """
        Volume for the window ending at `now`: persisted swaps plus this
        cycle's not-yet-persisted ones, deduplicated by tx hash.
        """
        since = now - timedelta(days=self.window_days)
        agg = VolumeAggregator(self.stable_asset, self.stable_decimals, self.fee_rate)
        for swap in load_window_swaps(session, self.stable_asset, since):
            agg.add(swap)
        for swap in fresh:
            if as_utc(swap.timestamp) >= since:
                agg.add(swap)
        log.debug("Volume window since %s: %d swaps with a stable leg", since.isoformat(), agg.swap_count)
        return agg
