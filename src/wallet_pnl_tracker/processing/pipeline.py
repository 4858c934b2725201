"""Single-transaction pipeline: dedupe, classify, resolve, apply, recompute."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from ..analytics.direction import resolve
from ..analytics.ledger import PositionLedger
from ..analytics.performance import recompute, trade_to_dict
from ..config.settings import TrackerConfig, get_app_config
from ..datalake.schemas import RawTransaction, SwapDirection, SwapEvent, Trade
from ..datalake.store import LedgerStore
from ..ingestion.classifier import SwapClassifier
from ..monitoring.event_bus import EVENT_BUS, EventType
from ..monitoring.logger import correlation_scope, get_logger
from ..monitoring.metrics import METRICS


class ProcessStatus(str, Enum):
    DUPLICATE = "duplicate"
    NOT_A_SWAP = "not_a_swap"
    IGNORED = "ignored"
    BELOW_MINIMUM = "below_minimum"
    RECORDED = "recorded"
    UNTRACKED = "untracked"


@dataclass(slots=True)
class ProcessOutcome:
    status: ProcessStatus
    signature: str
    wallet: str
    event: Optional[SwapEvent] = None
    direction: Optional[SwapDirection] = None
    trades: List[Trade] = field(default_factory=list)


TradeListener = Callable[[ProcessOutcome], None]


class SwapProcessor:
    """Runs one raw transaction through the ledger.

    Not safe to call concurrently for the same wallet; the
    :class:`~wallet_pnl_tracker.processing.dispatcher.WalletDispatcher`
    guarantees one caller per wallet.
    """

    def __init__(
        self,
        classifier: SwapClassifier,
        ledger: PositionLedger,
        store: LedgerStore,
        *,
        config: Optional[TrackerConfig] = None,
    ) -> None:
        self._classifier = classifier
        self._ledger = ledger
        self._store = store
        self._config = config or get_app_config().tracker
        self._base_mints = frozenset(self._config.base_mints)
        self._listeners: List[TradeListener] = []
        self._logger = get_logger(__name__)

    def add_listener(self, listener: TradeListener) -> None:
        self._listeners.append(listener)

    def process(self, raw: RawTransaction) -> ProcessOutcome:
        with correlation_scope(raw.signature):
            started = time.perf_counter()
            outcome = self._process(raw)
            METRICS.observe("swap_processing_seconds", time.perf_counter() - started)
            METRICS.increment(f"swaps_outcome.{outcome.status.value}")
            return outcome

    def _process(self, raw: RawTransaction) -> ProcessOutcome:
        if not self._store.mark_processed(raw.wallet, raw.signature):
            self._logger.debug("Skipping already processed transaction")
            return ProcessOutcome(ProcessStatus.DUPLICATE, raw.signature, raw.wallet)

        event = self._classifier.classify(raw)
        if event is None:
            return ProcessOutcome(ProcessStatus.NOT_A_SWAP, raw.signature, raw.wallet)

        direction = resolve(event, self._base_mints)
        if direction == SwapDirection.IGNORED:
            METRICS.increment("swaps_ignored")
            self._logger.debug(
                "Ignoring base-to-base conversion %s -> %s",
                event.input_leg.symbol,
                event.output_leg.symbol,
            )
            return ProcessOutcome(
                ProcessStatus.IGNORED, raw.signature, raw.wallet, event=event, direction=direction
            )

        known = [value for value in (event.input_leg.usd_value, event.output_leg.usd_value) if value is not None]
        if known and sum(known) < self._config.min_swap_value_usd:
            self._logger.debug("Swap worth $%.4f is below the minimum, skipping", sum(known))
            return ProcessOutcome(
                ProcessStatus.BELOW_MINIMUM,
                raw.signature,
                raw.wallet,
                event=event,
                direction=direction,
            )

        trades = self._ledger.apply(event, direction)
        recompute(self._store.get_or_create(raw.wallet))
        status = ProcessStatus.RECORDED if trades else ProcessStatus.UNTRACKED
        outcome = ProcessOutcome(
            status, raw.signature, raw.wallet, event=event, direction=direction, trades=trades
        )
        for trade in trades:
            EVENT_BUS.publish(
                EventType.TRADE,
                {"wallet": raw.wallet, "venue": event.venue, **trade_to_dict(trade)},
                correlation_id=raw.signature,
            )
        if trades:
            self._logger.info(
                "Recorded %d trade(s) for %s (%s)",
                len(trades),
                raw.wallet,
                direction.value,
                extra={"wallet": raw.wallet, "venue": event.venue},
            )
            self._notify(outcome)
        return outcome

    def _notify(self, outcome: ProcessOutcome) -> None:
        for listener in list(self._listeners):
            try:
                listener(outcome)
            except Exception:  # noqa: BLE001
                self._logger.exception(
                    "Trade listener %s failed", getattr(listener, "__name__", listener)
                )


__all__ = ["ProcessOutcome", "ProcessStatus", "SwapProcessor", "TradeListener"]
