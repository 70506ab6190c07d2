from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, NamedTuple, Optional
import logging
import signal
import threading
import time

from sqlalchemy.orm import sessionmaker

from dex_indexer.chain.token_meta import TokenMetaCache
from dex_indexer.config.settings import Settings
from dex_indexer.pipeline.extractor import EventExtractor
from dex_indexer.pipeline.metrics import MetricsAggregator
from dex_indexer.pipeline.price_oracle import PriceOracle
from dex_indexer.pipeline.reconciler import ReserveReconciler
from dex_indexer.pipeline.registry import PoolRegistry
from dex_indexer.scheduler.retry import RetryPolicy
from dex_indexer.storage.upsert.indexer_state import load_cursor, save_cursor
from dex_indexer.storage.upsert.insert_price_history import insert_price_snapshots
from dex_indexer.storage.upsert.log_extraction_metrics import log_extraction_metrics
from dex_indexer.storage.upsert.upsert_pools import upsert_pools
from dex_indexer.storage.upsert.upsert_swap_events import upsert_swap_events

log = logging.getLogger(__name__)


class CycleState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    EXTRACTING = "extracting"
    RECONCILING = "reconciling"
    PRICING = "pricing"
    AGGREGATING = "aggregating"
    PERSISTING = "persisting"
    SLEEPING = "sleeping"


class CycleResult(NamedTuple):
    from_block: int
    to_block: int
    swaps: int
    new_swaps: int
    pools: int
    removed_pools: int
    snapshots: int
    tvl_usd: Decimal
    volume_usd: Decimal
    fees_usd: Decimal
    duration_seconds: float


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PollScheduler:
    """
    The indexing loop: one cycle at a time, never overlapping.

    Each cycle walks IDLE → DISCOVERING → EXTRACTING → RECONCILING → PRICING
    → AGGREGATING → PERSISTING → SLEEPING. Any exception jumps straight to
    SLEEPING with the cursor untouched, so the next cycle retries the same
    block range.

    The cursor and the known-pool set (inside the registry) are fields of
    this instance and only change between cycles. The cursor is also
    persisted, in the same transaction as the cycle's writes.
    """

    def __init__(
        self,
        chain,
        session_factory: sessionmaker,
        registry: PoolRegistry,
        extractor: EventExtractor,
        reconciler: ReserveReconciler,
        oracle: PriceOracle,
        metrics: MetricsAggregator,
        *,
        poll_interval: float = 10.0,
        initial_lookback_blocks: int = 10_000,
        dust_threshold: Decimal = Decimal("0.000001"),
        snapshot_interval_seconds: int = 60,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.chain = chain
        self.session_factory = session_factory
        self.registry = registry
        self.extractor = extractor
        self.reconciler = reconciler
        self.oracle = oracle
        self.metrics = metrics
        self.poll_interval = poll_interval
        self.initial_lookback_blocks = initial_lookback_blocks
        self.dust_threshold = dust_threshold
        self.snapshot_interval_seconds = snapshot_interval_seconds
        self.retry_policy = retry_policy or RetryPolicy(poll_interval, max(poll_interval, 300.0))
        self.clock = clock

        self.state = CycleState.IDLE
        self.cursor: Optional[int] = None
        self.last_result: Optional[CycleResult] = None
        self._stop = threading.Event()

    @classmethod
    def from_settings(cls, settings: Settings, chain, session_factory: sessionmaker) -> "PollScheduler":
        token_meta = TokenMetaCache(chain, settings.known_tokens)
        workers = settings.rpc_max_workers
        return cls(
            chain,
            session_factory,
            registry=PoolRegistry(chain, max_workers=workers),
            extractor=EventExtractor(chain, max_workers=workers),
            reconciler=ReserveReconciler(chain, token_meta, max_workers=workers),
            oracle=PriceOracle(settings.stable_asset),
            metrics=MetricsAggregator(
                settings.stable_asset,
                token_meta,
                fee_rate=settings.fee_rate,
                window_days=settings.volume_window_days,
            ),
            poll_interval=settings.poll_interval_seconds,
            initial_lookback_blocks=settings.initial_lookback_blocks,
            dust_threshold=settings.dust_threshold,
            snapshot_interval_seconds=settings.snapshot_interval_seconds,
            retry_policy=RetryPolicy(
                settings.poll_interval_seconds,
                max(settings.poll_interval_seconds, settings.max_retry_delay_seconds),
            ),
        )

    # ── state ──────────────────────────────────────────────────────────
    def _transition(self, state: CycleState) -> None:
        log.debug("%s → %s", self.state.value, state.value)
        self.state = state

    def _starting_cursor(self, head: int) -> int:
        with self.session_factory() as session:
            stored = load_cursor(session)
        if stored is not None:
            log.info("Resuming from stored cursor %d (head %d)", stored, head)
            return stored
        start = max(head - self.initial_lookback_blocks, 0)
        log.info("No stored cursor, starting %d blocks behind head at %d", self.initial_lookback_blocks, start)
        return start

    # ── one cycle ──────────────────────────────────────────────────────
    def run_cycle(self) -> CycleResult:
        started = time.monotonic()
        now = self.clock()

        self._transition(CycleState.DISCOVERING)
        head = self.chain.latest_block()
        if self.cursor is None:
            self.cursor = self._starting_cursor(head)
        from_block, to_block = self.cursor + 1, head
        has_range = from_block <= to_block

        self.registry.discover()
        if has_range:
            self.registry.observe_created(from_block, to_block)
        else:
            log.info("No new blocks since %d; still reconciling reserves for all pools", self.cursor)
        pools = self.registry.known_pools()

        self._transition(CycleState.EXTRACTING)
        swaps = self.extractor.extract(pools, from_block, to_block) if has_range else []

        self._transition(CycleState.RECONCILING)
        states = self.reconciler.reconcile(pools)

        self._transition(CycleState.PRICING)
        self.oracle.resolve_all(states)

        session = self.session_factory()
        try:
            self._transition(CycleState.AGGREGATING)
            tvl = self.metrics.tvl(states, self.oracle)
            volume = self.metrics.volume(session, now, fresh=swaps)
            volume_usd, fees_usd = volume.totals()

            self._transition(CycleState.PERSISTING)
            new_swaps = upsert_swap_events(session, swaps)
            live, removed = upsert_pools(session, states, self.dust_threshold, now)
            snapshots = insert_price_snapshots(
                session,
                [s for s in states if not s.is_dust(self.dust_threshold)],
                now,
                self.snapshot_interval_seconds,
            )
            if has_range:
                save_cursor(session, to_block, now)
            log_extraction_metrics(
                session,
                block_range=f"{from_block}-{to_block}" if has_range else f"{head}-{head}",
                log_count=len(swaps),
                pool_count=len(states),
                duration_seconds=time.monotonic() - started,
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        # only after everything above is committed
        if has_range:
            self.cursor = to_block

        result = CycleResult(
            from_block=from_block,
            to_block=to_block,
            swaps=len(swaps),
            new_swaps=new_swaps,
            pools=live,
            removed_pools=removed,
            snapshots=snapshots,
            tvl_usd=tvl,
            volume_usd=volume_usd,
            fees_usd=fees_usd,
            duration_seconds=time.monotonic() - started,
        )
        self.last_result = result
        log.info(
            "Cycle done: blocks %d-%d, %d swaps (%d new), %d pools (%d removed), %d snapshots, "
            "TVL $%.2f, %dd volume $%.2f, fees $%.2f in %.2fs",
            from_block, to_block, result.swaps, result.new_swaps, result.pools, result.removed_pools,
            result.snapshots, result.tvl_usd, self.metrics.window_days, result.volume_usd,
            result.fees_usd, result.duration_seconds,
        )
        return result

    # ── loop ───────────────────────────────────────────────────────────
    def stop(self, *_args) -> None:
        """Ask the loop to exit after the in-flight cycle."""
        if not self._stop.is_set():
            log.info("Shutdown requested; finishing the current cycle")
        self._stop.set()

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGINT, self.stop)
        signal.signal(signal.SIGTERM, self.stop)

    def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """Poll until stopped. Nothing raised inside a cycle escapes this loop."""
        log.info("Starting indexer polling loop (every %.1fs)", self.poll_interval)
        cycles = 0
        while not self._stop.is_set():
            try:
                self.run_cycle()
                self.retry_policy.reset()
                delay = self.poll_interval
            except Exception:
                delay = self.retry_policy.next_delay()
                log.exception(
                    "Indexing cycle failed in state %s; cursor stays at %s, retrying in %.1fs",
                    self.state.value, self.cursor, delay,
                )

            self._transition(CycleState.SLEEPING)
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            self._stop.wait(delay)
            self._transition(CycleState.IDLE)

        self._transition(CycleState.IDLE)
        log.info("Indexer stopped after %d cycle(s)", cycles)
