"""Per-wallet position accounting with weighted-average cost basis."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from ..config.settings import TrackerConfig, get_app_config
from ..datalake.schemas import (
    Position,
    SwapDirection,
    SwapEvent,
    TokenLeg,
    Trade,
    TradeType,
    WalletPerformance,
)
from ..datalake.store import LedgerStore
from ..ingestion.pricing import Pricer
from ..monitoring.event_bus import EVENT_BUS, EventSeverity, EventType
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS


class PositionLedger:
    """Applies classified swaps to the wallet's positions.

    The ledger trusts its caller for two things: each signature is applied
    at most once, and a given wallet is never mutated from two threads at
    the same time. Unknown USD values are carried as ``None`` on the
    resulting trades; only the cost-basis arithmetic of a BUY treats an
    unknown cost as zero, and a position that absorbed such a BUY
    reports no realized P&L until it is closed.
    """

    def __init__(
        self,
        store: LedgerStore,
        pricer: Pricer,
        *,
        config: Optional[TrackerConfig] = None,
    ) -> None:
        self._store = store
        self._pricer = pricer
        self._config = config or get_app_config().tracker
        self._logger = get_logger(__name__)

    def apply(self, event: SwapEvent, direction: SwapDirection) -> List[Trade]:
        if direction == SwapDirection.IGNORED:
            return []
        performance = self._store.get_or_create(event.wallet)
        trades: List[Trade] = []
        if direction == SwapDirection.BUY:
            trade = self._buy(performance, event, event.output_leg, event.input_leg.usd_value)
            if trade is not None:
                trades.append(trade)
        elif direction == SwapDirection.SELL:
            trade = self._sell(performance, event)
            if trade is not None:
                trades.append(trade)
        else:
            trades.extend(self._token_to_token(performance, event))
        performance.total_trades = len(performance.trades)
        if trades:
            METRICS.increment("trades_recorded", len(trades))
        return trades

    def _buy(
        self,
        performance: WalletPerformance,
        event: SwapEvent,
        leg: TokenLeg,
        cost: Optional[float],
    ) -> Optional[Trade]:
        amount = leg.ui_amount
        if amount <= 0:
            return None
        position = performance.positions.get(leg.mint)
        if position is None:
            position = Position(mint=leg.mint, symbol=leg.symbol, name=leg.name)
            performance.positions[leg.mint] = position
        if cost is None:
            position.cost_known = False
        position.total_invested += cost if cost is not None else 0.0
        position.balance += amount
        position.avg_buy_price = position.total_invested / position.balance
        position.revalue(leg.price_per_unit)

        trade = Trade(
            signature=event.signature,
            timestamp=event.timestamp,
            type=TradeType.BUY,
            token_mint=leg.mint,
            token_symbol=leg.symbol,
            token_amount=amount,
            price_per_token=cost / amount if cost is not None else None,
            usd_value=cost,
        )
        self._record(performance, position, trade)
        return trade

    def _sell(self, performance: WalletPerformance, event: SwapEvent) -> Optional[Trade]:
        leg = event.input_leg
        sold = leg.ui_amount
        position = performance.positions.get(leg.mint)
        if position is None or position.balance <= 0 or sold <= 0:
            self._untracked(event, leg)
            return None

        balance_before = position.balance
        tracked = min(sold, balance_before)
        partial = sold > balance_before
        if partial:
            METRICS.increment("partial_sells")
            self._diagnose(
                EventType.PARTIAL_SELL,
                event,
                "Sold %s %s but only %s were tracked; P&L covers the tracked amount",
                sold,
                leg.symbol,
                balance_before,
                payload={"mint": leg.mint, "sold": sold, "tracked": balance_before},
            )

        proceeds = event.output_leg.usd_value
        received = tracked / sold * proceeds if proceeds is not None else None
        realized, realized_pct = self._realize(performance, position, tracked, received)
        self._reduce(performance, position, tracked)

        trade = Trade(
            signature=event.signature,
            timestamp=event.timestamp,
            type=TradeType.SELL,
            token_mint=leg.mint,
            token_symbol=leg.symbol,
            token_amount=tracked,
            price_per_token=received / tracked if received is not None else None,
            usd_value=received,
            realized_pnl=realized,
            realized_pnl_percent=realized_pct,
            partial_tracking=partial,
        )
        self._record(performance, position, trade)
        return trade

    def _token_to_token(self, performance: WalletPerformance, event: SwapEvent) -> List[Trade]:
        trades: List[Trade] = []
        leg_in, leg_out = event.input_leg, event.output_leg
        value = leg_out.usd_value if leg_out.usd_value is not None else leg_in.usd_value

        position = performance.positions.get(leg_in.mint)
        if position is not None and position.balance > 0:
            # The whole input amount counts as tracked; there is no base
            # leg to check it against.
            amount = leg_in.ui_amount
            realized, realized_pct = self._realize(performance, position, amount, value)
            self._reduce(performance, position, amount)
            sell = Trade(
                signature=event.signature,
                timestamp=event.timestamp,
                type=TradeType.SELL,
                token_mint=leg_in.mint,
                token_symbol=leg_in.symbol,
                token_amount=amount,
                price_per_token=value / amount if value is not None and amount > 0 else None,
                usd_value=value,
                realized_pnl=realized,
                realized_pnl_percent=realized_pct,
            )
            self._record(performance, position, sell)
            trades.append(sell)
        else:
            self._untracked(event, leg_in)

        buy = self._buy(performance, event, leg_out, value)
        if buy is not None:
            trades.append(buy)
        return trades

    def _realize(
        self,
        performance: WalletPerformance,
        position: Position,
        amount: float,
        received: Optional[float],
    ) -> Tuple[Optional[float], Optional[float]]:
        if received is None or not position.cost_known:
            return None, None
        cost_basis = position.avg_buy_price * amount
        realized = received - cost_basis
        realized_pct = realized / cost_basis * 100.0 if cost_basis else 0.0
        if abs(realized) > self._config.min_meaningful_pnl_usd:
            if realized > 0:
                performance.winning_trades += 1
            else:
                performance.losing_trades += 1
        performance.total_realized_pnl += realized
        return realized, realized_pct

    def _reduce(self, performance: WalletPerformance, position: Position, amount: float) -> None:
        balance_before = position.balance
        fraction = min(amount / balance_before, 1.0)
        position.balance = max(balance_before - amount, 0.0)
        position.total_invested -= position.total_invested * fraction
        if position.balance <= self._config.dust_threshold:
            position.balance = 0.0
            position.total_invested = 0.0
            performance.positions.pop(position.mint, None)
            self._logger.debug("Closed %s position for %s", position.symbol, performance.wallet_address)
            return
        position.revalue(self._pricer.get_price(position.mint))

    def _record(self, performance: WalletPerformance, position: Position, trade: Trade) -> None:
        performance.trades.append(trade)
        position.trades.append(trade)

    def _untracked(self, event: SwapEvent, leg: TokenLeg) -> None:
        METRICS.increment("untracked_sells")
        self._diagnose(
            EventType.UNTRACKED_SELL,
            event,
            "Disposed of %s %s with no tracked position; acquired before tracking started?",
            leg.ui_amount,
            leg.symbol,
            payload={"mint": leg.mint, "amount": leg.ui_amount},
        )

    def _diagnose(
        self,
        event_type: EventType,
        event: SwapEvent,
        message: str,
        *args: Any,
        payload: Dict[str, Any],
    ) -> None:
        self._logger.warning(
            message,
            *args,
            extra={"wallet": event.wallet, "signature": event.signature},
        )
        EVENT_BUS.publish(
            event_type,
            {"wallet": event.wallet, "signature": event.signature, **payload},
            severity=EventSeverity.WARNING,
            correlation_id=event.signature,
        )


__all__ = ["PositionLedger"]
