from collections import defaultdict, deque
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple
import logging

from dex_indexer.utils.types import PoolState

log = logging.getLogger(__name__)

ONE = Decimal(1)
ZERO = Decimal(0)

# token → [(neighbour token, own reserve, neighbour reserve)], reserves decimal-normalized
Adjacency = Dict[str, List[Tuple[str, Decimal, Decimal]]]


def spot_prices(state: PoolState) -> Tuple[Decimal, Decimal]:
    """(tokenB per tokenA, tokenA per tokenB) from normalized reserves; zeros when a side is empty."""
    ra, rb = state.reserve_a_normalized, state.reserve_b_normalized
    if ra <= 0 or rb <= 0:
        return ZERO, ZERO
    return rb / ra, ra / rb


def build_adjacency(states: Iterable[PoolState]) -> Adjacency:
    graph: Adjacency = defaultdict(list)
    for state in states:
        a, b = state.token_a.address.lower(), state.token_b.address.lower()
        ra, rb = state.reserve_a_normalized, state.reserve_b_normalized
        # an empty side carries no exchange ratio
        if a == b or ra <= 0 or rb <= 0:
            continue
        graph[a].append((b, ra, rb))
        graph[b].append((a, rb, ra))
    return graph


class PriceOracle:
    """
    USD prices for every token reachable from the stable asset through the pool graph.

    Walks outward from the stable asset breadth-first, so each token is
    priced over its shortest route (direct stable pair first, then one
    intermediate hop, and so on); ties go to the pool discovered first.
    For a token T reached from an already priced token P through a pool:

        price(T) = price(P) * reserve(P) / reserve(T)

    The visited set makes cyclic graphs (A/B, B/C, C/A) terminate. Tokens
    with no route price at 0, meaning "unknown", which is not an error.
    """

    def __init__(self, stable_asset: str):
        self.stable_asset = stable_asset.lower()
        self._prices: Dict[str, Decimal] = {self.stable_asset: ONE}

    def resolve_all(self, states: Iterable[PoolState]) -> Dict[str, Decimal]:
        """Price every reachable token once for this cycle; later price_of() calls are lookups."""
        graph = build_adjacency(states)
        prices: Dict[str, Decimal] = {self.stable_asset: ONE}
        worklist = deque([self.stable_asset])

        while worklist:
            token = worklist.popleft()
            for neighbour, own_reserve, neighbour_reserve in graph.get(token, ()):
                if neighbour in prices:
                    continue
                prices[neighbour] = prices[token] * own_reserve / neighbour_reserve
                worklist.append(neighbour)

        unpriced = set(graph) - set(prices)
        if unpriced:
            log.info("No USD route for %d token(s): %s", len(unpriced), ", ".join(sorted(unpriced)))

        self._prices = prices
        return dict(prices)

    def price_of(self, token: str) -> Decimal:
        token = token.lower()
        if token == self.stable_asset:
            return ONE
        return self._prices.get(token, ZERO)
