"""Wallet-level performance metrics and read-only reporting accessors."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..datalake.schemas import Position, Trade, WalletPerformance
from ..datalake.store import LedgerStore
from ..monitoring.metrics import METRICS


def recompute(performance: WalletPerformance) -> WalletPerformance:
    """Re-derive every aggregate field from the wallet's current state.

    Positions whose market value is unknown contribute their cost basis to
    ``total_invested`` but nothing to ``total_unrealized_pnl``.

    ROI uses ``total_invested + |total_realized_pnl|`` as the capital base.
    That is one of several reasonable definitions and is kept as the
    documented formula rather than derived from first principles.
    """

    unrealized = 0.0
    invested = 0.0
    for position in performance.positions.values():
        invested += position.total_invested
        if position.unrealized_pnl is not None:
            unrealized += position.unrealized_pnl

    performance.total_trades = len(performance.trades)
    performance.total_invested = invested
    performance.total_unrealized_pnl = unrealized
    performance.total_pnl = performance.total_realized_pnl + unrealized
    closed = performance.winning_trades + performance.losing_trades
    performance.win_rate = performance.winning_trades / closed * 100.0 if closed else 0.0
    capital = invested + abs(performance.total_realized_pnl)
    performance.roi = performance.total_pnl / capital * 100.0 if capital else 0.0

    wallet = performance.wallet_address
    METRICS.set_labelled("wallet_total_pnl_usd", wallet, performance.total_pnl)
    METRICS.set_labelled("wallet_open_positions", wallet, len(performance.positions))
    return performance


def _position_sort_key(position: Position) -> tuple:
    if position.unrealized_pnl is None:
        return (1, 0.0)
    return (0, -position.unrealized_pnl)


def trade_to_dict(trade: Trade) -> Dict[str, Any]:
    return {
        "signature": trade.signature,
        "timestamp": trade.timestamp.isoformat(),
        "type": trade.type.value,
        "token_mint": trade.token_mint,
        "token_symbol": trade.token_symbol,
        "token_amount": trade.token_amount,
        "price_per_token": trade.price_per_token,
        "usd_value": trade.usd_value,
        "realized_pnl": trade.realized_pnl,
        "realized_pnl_percent": trade.realized_pnl_percent,
        "partial_tracking": trade.partial_tracking,
    }


def position_to_dict(position: Position) -> Dict[str, Any]:
    return {
        "mint": position.mint,
        "symbol": position.symbol,
        "name": position.name,
        "balance": position.balance,
        "avg_buy_price": position.avg_buy_price,
        "total_invested": position.total_invested,
        "current_value": position.current_value,
        "unrealized_pnl": position.unrealized_pnl,
        "unrealized_pnl_percent": position.unrealized_pnl_percent,
        "last_price": position.last_price,
        "cost_known": position.cost_known,
        "trade_count": len(position.trades),
    }


class PerformanceReporter:
    """Read-only view over the ledger store for presentation layers."""

    def __init__(self, store: LedgerStore) -> None:
        self._store = store

    def get_performance(self, wallet: str) -> Optional[WalletPerformance]:
        return self._store.get(wallet)

    def get_all_performances(self) -> Dict[str, WalletPerformance]:
        performances: Dict[str, WalletPerformance] = {}
        for wallet in self._store.wallets():
            performance = self._store.get(wallet)
            if performance is not None:
                performances[wallet] = performance
        return performances

    def get_top_positions(self, wallet: str, n: int = 5) -> List[Position]:
        """Open positions by unrealized P&L, best first; unvalued positions last."""

        performance = self._store.get(wallet)
        if performance is None or n <= 0:
            return []
        return sorted(performance.positions.values(), key=_position_sort_key)[:n]

    def get_recent_trades(self, wallet: str, n: int = 10) -> List[Trade]:
        performance = self._store.get(wallet)
        if performance is None or n <= 0:
            return []
        return list(reversed(performance.trades[-n:]))

    def summary(
        self, wallet: str, *, top_positions: int = 5, recent_trades: int = 10
    ) -> Optional[Dict[str, Any]]:
        performance = self._store.get(wallet)
        if performance is None:
            return None
        return {
            "wallet_address": performance.wallet_address,
            "total_trades": performance.total_trades,
            "winning_trades": performance.winning_trades,
            "losing_trades": performance.losing_trades,
            "win_rate": performance.win_rate,
            "total_realized_pnl": performance.total_realized_pnl,
            "total_unrealized_pnl": performance.total_unrealized_pnl,
            "total_pnl": performance.total_pnl,
            "total_invested": performance.total_invested,
            "roi": performance.roi,
            "open_positions": len(performance.positions),
            "created_at": performance.created_at.isoformat(),
            "top_positions": [
                position_to_dict(position)
                for position in self.get_top_positions(wallet, top_positions)
            ],
            "recent_trades": [
                trade_to_dict(trade) for trade in self.get_recent_trades(wallet, recent_trades)
            ],
        }


__all__ = [
    "PerformanceReporter",
    "position_to_dict",
    "recompute",
    "trade_to_dict",
]
