# dex_indexer/main.py
import logging
from typing import Optional

import typer

from dex_indexer.chain.reader import ChainReader
from dex_indexer.chain.token_meta import TokenMetaCache
from dex_indexer.config.settings import ConfigError, Settings, load_settings
from dex_indexer.pipeline.metrics import MetricsAggregator
from dex_indexer.scheduler.poller import PollScheduler, utcnow
from dex_indexer.storage.db import make_engine, make_session_factory
from dex_indexer.storage.db_utils import check_connection, create_tables
from dex_indexer.utils.shortname import ShortNameFilter

log = logging.getLogger(__name__)

app = typer.Typer(help="Index constant-product DEX pools, swaps and prices into SQL")


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] [%(levelname)s] %(shortname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(ShortNameFilter())


def _settings_or_exit() -> Settings:
    try:
        settings = load_settings()
    except ConfigError as e:
        setup_logging()
        log.error("Refusing to start: %s", e)
        raise typer.Exit(code=2)
    setup_logging(settings.log_level)
    return settings


def _build_scheduler(settings: Settings) -> PollScheduler:
    engine = make_engine(settings.database_url)
    check_connection(engine)
    log.info("Database connected.")
    create_tables(engine)
    chain = ChainReader.from_settings(settings)
    return PollScheduler.from_settings(settings, chain, make_session_factory(engine))


@app.command("run")
def run():
    """Run the polling loop until SIGINT/SIGTERM."""
    settings = _settings_or_exit()
    log.info(
        "Indexer configuration: factory=%s stable=%s poll=%.1fs lookback=%d blocks",
        settings.factory_address, settings.stable_asset,
        settings.poll_interval_seconds, settings.initial_lookback_blocks,
    )
    scheduler = _build_scheduler(settings)
    scheduler.install_signal_handlers()
    scheduler.run_forever()


@app.command("once")
def once():
    """Run a single indexing cycle and exit (non-zero on failure)."""
    settings = _settings_or_exit()
    scheduler = _build_scheduler(settings)
    try:
        scheduler.run_cycle()
    except Exception:
        log.exception("Indexing cycle failed")
        raise typer.Exit(code=1)


@app.command("init-db")
def init_db():
    """Create the store's tables if they don't exist."""
    settings = _settings_or_exit()
    create_tables(make_engine(settings.database_url))


@app.command("volume")
def volume(
    days: Optional[int] = typer.Option(None, help="Window in days (defaults to VOLUME_WINDOW_DAYS)"),
):
    """Print daily USD volume and fees from stored swaps."""
    settings = _settings_or_exit()
    session_factory = make_session_factory(make_engine(settings.database_url))
    # the stable asset is normally in the known-token table; only hit the RPC when it isn't
    chain = None if settings.stable_asset in settings.known_tokens else ChainReader.from_settings(settings)
    token_meta = TokenMetaCache(chain, settings.known_tokens)
    metrics = MetricsAggregator(
        settings.stable_asset,
        token_meta,
        fee_rate=settings.fee_rate,
        window_days=days or settings.volume_window_days,
    )
    with session_factory() as session:
        agg = metrics.volume(session, utcnow())

    for bucket in agg.aggregate():
        typer.echo(
            f"{bucket.day.isoformat()}  swaps={bucket.swap_count:<6} "
            f"volume=${bucket.volume_usd:,.2f}  fees=${bucket.fees_usd:,.2f}"
        )
    total_volume, total_fees = agg.totals()
    typer.echo(f"total ({metrics.window_days}d)  volume=${total_volume:,.2f}  fees=${total_fees:,.2f}")


def main():
    app()


if __name__ == "__main__":
    main()
