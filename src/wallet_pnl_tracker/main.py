"""Entrypoint for the wallet P&L tracker."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
from typing import List, Optional, Sequence

import uvicorn

from .analytics.ledger import PositionLedger
from .analytics.performance import PerformanceReporter
from .config.settings import AppConfig, get_app_config, validate_tracked_wallets
from .dashboard import DashboardState, create_dashboard_app
from .datalake.store import InMemoryLedgerStore
from .errors import ConfigurationError, SourceConnectionError
from .ingestion.classifier import SwapClassifier
from .ingestion.event_listener import SolanaRpcClient, WalletStreamListener
from .ingestion.pricing import JupiterPricer
from .monitoring import bootstrap_observability
from .monitoring.event_bus import EVENT_BUS
from .monitoring.logger import get_logger
from .processing import SwapProcessor, WalletDispatcher
from .reporting import ConsoleReporter, SessionLog

logger = get_logger(__name__)

SHUTDOWN_DRAIN_SECONDS = 10.0
STREAM_STOP_SECONDS = 5.0


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on Windows event loops.
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signum, stop.set)


async def run_async(config: AppConfig, wallets: Sequence[str], *, dashboard: bool = False) -> int:
    store = InMemoryLedgerStore(max_signatures=config.ingestion.max_seen_signatures)
    pricer = JupiterPricer(config.pricing)
    classifier = SwapClassifier(pricer, config.tracker)
    ledger = PositionLedger(store, pricer, config=config.tracker)
    processor = SwapProcessor(classifier, ledger, store, config=config.tracker)
    dispatcher = WalletDispatcher(processor, queue_capacity=config.ingestion.queue_capacity)
    reporter = PerformanceReporter(store)

    session_log: Optional[SessionLog] = None
    if config.reporting.session_log_enabled:
        session_log = SessionLog(config.reporting.session_log_dir)
    console = ConsoleReporter(reporter, config=config.reporting, session_log=session_log)
    processor.add_listener(console)
    console.print_startup(wallets)

    rpc = SolanaRpcClient(config.rpc)
    listener = WalletStreamListener(
        wallets,
        dispatcher.submit,
        rpc,
        config=config.rpc,
        ingestion=config.ingestion,
    )

    stop = asyncio.Event()
    _install_signal_handlers(stop)

    server: Optional[uvicorn.Server] = None
    tasks: List[asyncio.Task] = []
    if dashboard:
        state = DashboardState(config=config, reporter=reporter)
        server = uvicorn.Server(
            uvicorn.Config(
                create_dashboard_app(state),
                host=config.dashboard.host,
                port=config.dashboard.port,
                log_level=config.monitoring.log_level.lower(),
            )
        )
        tasks.append(asyncio.create_task(server.serve(), name="dashboard"))
        logger.info("Dashboard listening on http://%s:%d", config.dashboard.host, config.dashboard.port)

    stream = asyncio.create_task(listener.run(), name="wallet-stream")
    stopper = asyncio.create_task(stop.wait(), name="shutdown-signal")
    exit_code = 0
    try:
        await asyncio.wait({stream, stopper}, return_when=asyncio.FIRST_COMPLETED)
        if stream.done() and not stream.cancelled():
            exc = stream.exception()
            if isinstance(exc, SourceConnectionError):
                logger.error("Transaction stream unavailable: %s", exc)
                exit_code = 1
            elif exc is not None:
                raise exc
    finally:
        logger.info("Shutting down")
        listener.stop()
        stopper.cancel()
        _, pending = await asyncio.wait({stream}, timeout=STREAM_STOP_SECONDS)
        for task in pending:
            task.cancel()
        await asyncio.gather(stream, stopper, return_exceptions=True)
        try:
            await asyncio.wait_for(dispatcher.join(), timeout=SHUTDOWN_DRAIN_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("Pending transactions dropped at shutdown")
        await dispatcher.close()
        console.print_dashboards()
        if server is not None:
            server.should_exit = True
        await asyncio.gather(*tasks, return_exceptions=True)
        await rpc.aclose()
        if session_log is not None:
            session_log.close()
        EVENT_BUS.flush()
    return exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Track swap P&L for Solana wallets")
    parser.add_argument(
        "--wallet",
        action="append",
        default=[],
        metavar="ADDRESS",
        help="Wallet to track; repeat for several. Overrides TRACKED_WALLETS.",
    )
    parser.add_argument(
        "--dashboard",
        action="store_true",
        default=None,
        help="Serve the read-only HTTP dashboard (overrides dashboard.enabled).",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_app_config()
    bootstrap_observability(config)
    if args.wallet:
        config.ingestion.tracked_wallets = list(args.wallet)
    try:
        wallets = validate_tracked_wallets(config)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 1
    dashboard = config.dashboard.enabled if args.dashboard is None else args.dashboard
    try:
        return asyncio.run(run_async(config, wallets, dashboard=dashboard))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
