from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import NamedTuple


class TokenInfo(NamedTuple):
    address: str
    symbol: str
    decimals: int


class PoolRef(NamedTuple):
    """A pool as known to the registry: its address and its two (immutable) tokens."""
    address: str
    token_a: str
    token_b: str


class SwapRecord(NamedTuple):
    tx_hash: str
    pool_address: str
    token_in: str
    token_out: str
    amount_in: int     # raw, token_in base units
    amount_out: int    # raw, token_out base units
    block_number: int
    log_index: int
    timestamp: datetime


def normalize_amount(raw: int, decimals: int) -> Decimal:
    return Decimal(raw) / (Decimal(10) ** decimals)


@dataclass
class PoolState:
    """Reconciled pool: reserves are balanceOf(pool) reads, never the pool's own counters."""
    address: str
    token_a: TokenInfo
    token_b: TokenInfo
    reserve_a: int
    reserve_b: int
    total_liquidity: Decimal = field(default=Decimal(0))

    @property
    def reserve_a_normalized(self) -> Decimal:
        return normalize_amount(self.reserve_a, self.token_a.decimals)

    @property
    def reserve_b_normalized(self) -> Decimal:
        return normalize_amount(self.reserve_b, self.token_b.decimals)

    def is_dust(self, threshold: Decimal) -> bool:
        return self.reserve_a_normalized <= threshold or self.reserve_b_normalized <= threshold


class DailyVolume(NamedTuple):
    day: date
    volume_usd: Decimal
    fees_usd: Decimal
    swap_count: int
