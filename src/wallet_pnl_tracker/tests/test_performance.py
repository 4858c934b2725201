from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from wallet_pnl_tracker.analytics.performance import PerformanceReporter, recompute
from wallet_pnl_tracker.datalake.schemas import Position, Trade, TradeType
from wallet_pnl_tracker.datalake.store import InMemoryLedgerStore
from wallet_pnl_tracker.monitoring.metrics import METRICS

WALLET = "Wa11et1111111111111111111111111111111111111"
START = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _position(mint: str, invested: float, price=None, balance: float = 100.0) -> Position:
    position = Position(mint=mint, symbol=mint, name=mint, balance=balance, total_invested=invested)
    position.avg_buy_price = invested / balance
    position.revalue(price)
    return position


def _trade(index: int, kind: TradeType = TradeType.BUY) -> Trade:
    return Trade(
        signature=f"sig-{index}",
        timestamp=START + timedelta(minutes=index),
        type=kind,
        token_mint="A",
        token_symbol="A",
        token_amount=1.0,
    )


def test_recompute_derives_totals_roi_and_win_rate() -> None:
    METRICS.reset()
    store = InMemoryLedgerStore()
    performance = store.get_or_create(WALLET)
    performance.positions["A"] = _position("A", 10.0, price=0.15)
    performance.positions["B"] = _position("B", 20.0, price=None)
    performance.trades = [_trade(i) for i in range(4)]
    performance.total_realized_pnl = 5.0
    performance.winning_trades = 3
    performance.losing_trades = 1

    recompute(performance)

    assert performance.total_trades == 4
    assert performance.total_invested == pytest.approx(30.0)
    # B has no price, so only A contributes unrealized P&L.
    assert performance.total_unrealized_pnl == pytest.approx(5.0)
    assert performance.total_pnl == pytest.approx(10.0)
    assert performance.win_rate == pytest.approx(75.0)
    assert performance.roi == pytest.approx(10.0 / 35.0 * 100.0)
    assert METRICS.get_labelled("wallet_total_pnl_usd", WALLET) == pytest.approx(10.0)
    assert METRICS.get_labelled("wallet_open_positions", WALLET) == 2


def test_recompute_empty_wallet_is_all_zero() -> None:
    performance = recompute(InMemoryLedgerStore().get_or_create(WALLET))

    assert performance.win_rate == 0.0
    assert performance.roi == 0.0
    assert performance.total_pnl == 0.0


def test_reporter_orders_positions_and_trades() -> None:
    store = InMemoryLedgerStore()
    performance = store.get_or_create(WALLET)
    performance.positions["LOSER"] = _position("LOSER", 10.0, price=0.05)
    performance.positions["UNPRICED"] = _position("UNPRICED", 10.0)
    performance.positions["WINNER"] = _position("WINNER", 10.0, price=0.5)
    performance.trades = [_trade(i, TradeType.SELL if i % 2 else TradeType.BUY) for i in range(6)]
    recompute(performance)
    reporter = PerformanceReporter(store)

    assert [p.mint for p in reporter.get_top_positions(WALLET, 5)] == ["WINNER", "LOSER", "UNPRICED"]
    assert [p.mint for p in reporter.get_top_positions(WALLET, 1)] == ["WINNER"]
    assert [t.signature for t in reporter.get_recent_trades(WALLET, 2)] == ["sig-5", "sig-4"]
    assert reporter.get_recent_trades("unknown") == []
    assert reporter.get_performance("unknown") is None
    assert list(reporter.get_all_performances()) == [WALLET]

    summary = reporter.summary(WALLET, top_positions=2, recent_trades=3)
    assert summary is not None
    assert summary["open_positions"] == 3
    assert [row["mint"] for row in summary["top_positions"]] == ["WINNER", "LOSER"]
    assert summary["recent_trades"][0]["signature"] == "sig-5"
    assert summary["recent_trades"][0]["type"] == "sell"
    assert reporter.summary("unknown") is None
