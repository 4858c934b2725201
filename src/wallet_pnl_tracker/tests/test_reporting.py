from __future__ import annotations

import io
from datetime import datetime, timezone
from pathlib import Path

import pytest

from wallet_pnl_tracker.analytics.performance import PerformanceReporter, recompute
from wallet_pnl_tracker.config.settings import ReportingConfig
from wallet_pnl_tracker.datalake.schemas import Position, SwapEvent, TokenLeg, Trade, TradeType
from wallet_pnl_tracker.datalake.store import InMemoryLedgerStore
from wallet_pnl_tracker.processing import ProcessOutcome, ProcessStatus
from wallet_pnl_tracker.reporting import ConsoleReporter, SessionLog, format_performance, format_trade
from wallet_pnl_tracker.reporting.formatter import format_number, format_percent, format_usd, truncate_address
from wallet_pnl_tracker.reporting.session_log import strip_ansi
from wallet_pnl_tracker.utils.constants import USDC_MINT

WALLET = "Wa11et1111111111111111111111111111111111111"
TOKEN_A = "TokenA1111111111111111111111111111111111111"
WHEN = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


def _sell(realized=5.0, usd=15.0) -> Trade:
    return Trade(
        signature="5igSell",
        timestamp=WHEN,
        type=TradeType.SELL,
        token_mint=TOKEN_A,
        token_symbol="TKA",
        token_amount=100.0,
        price_per_token=0.15 if usd is not None else None,
        usd_value=usd,
        realized_pnl=realized,
        realized_pnl_percent=50.0 if realized is not None else None,
    )


def _event() -> SwapEvent:
    return SwapEvent(
        signature="5igSell",
        timestamp=WHEN,
        wallet=WALLET,
        input_leg=TokenLeg(TOKEN_A, "TKA", "Token A", 100_000_000, 100.0, 6, 15.0),
        output_leg=TokenLeg(USDC_MINT, "USDC", "USD Coin", 15_000_000, 15.0, 6, 15.0),
        venue="raydium",
    )


@pytest.mark.parametrize(
    ("value", "expected"),
    [(1_234_567, "1.23M"), (1_500, "1.50K"), (12.346, "12.35"), (-2_500, "-2.50K"), (0, "0.00")],
)
def test_format_number_abbreviates(value: float, expected: str) -> None:
    assert format_number(value) == expected


def test_money_and_percent_helpers() -> None:
    assert format_usd(None) == "n/a"
    assert format_usd(1_500) == "$1.50K"
    assert format_usd(5, signed=True) == "+$5.00"
    assert format_usd(-5, signed=True) == "-$5.00"
    assert format_percent(None) == "n/a"
    assert format_percent(12.5) == "+12.50%"
    assert truncate_address(WALLET) == "Wa11et11...11111111"
    assert truncate_address("short") == "short"


def test_format_trade_shows_legs_result_and_link() -> None:
    text = format_trade(_sell(), WALLET, event=_event())

    assert "SELL TKA on raydium" in text
    assert "SOLD:" in text and "BOUGHT:" in text
    assert "P&L:    +$5.00" in text
    assert "Return: +50.00%" in text
    assert "https://solscan.io/tx/5igSell" in text


def test_format_trade_with_unknown_values() -> None:
    text = format_trade(_sell(realized=None, usd=None), WALLET)

    assert "P&L:    n/a" in text
    assert "at n/a (n/a)" in text


def test_format_performance_lists_positions_and_trades() -> None:
    store = InMemoryLedgerStore()
    performance = store.get_or_create(WALLET)
    position = Position(TOKEN_A, "TKA", "Token A", balance=50.0, avg_buy_price=0.1, total_invested=5.0)
    position.revalue(0.2)
    performance.positions[TOKEN_A] = position
    performance.trades.append(_sell())
    performance.total_realized_pnl = 5.0
    performance.winning_trades = 1
    recompute(performance)

    text = format_performance(performance, top_positions=[position], recent_trades=[_sell()])

    assert "PERFORMANCE DASHBOARD" in text
    assert "Win rate:       100.0% (1W / 0L)" in text
    assert "Total P&L:      +$10.00" in text
    assert "TOP POSITIONS:" in text
    assert "TKA: 50.00 tokens" in text
    assert "RECENT TRADES:" in text


def test_session_log_writes_header_and_strips_ansi(tmp_path: Path) -> None:
    log = SessionLog(tmp_path / "logs", clock=lambda: WHEN)
    log.write("\x1b[32mgreen\x1b[0m text")
    log.close()
    log.write("after close is ignored")

    assert log.path.name == "wallet-tracker-2024-05-01-12-30-00.txt"
    content = log.path.read_text(encoding="utf-8")
    assert "SESSION LOG" in content
    assert "Log file: wallet-tracker-2024-05-01-12-30-00.txt" in content
    assert "green text" in content
    assert "\x1b" not in content
    assert "after close" not in content


def test_strip_ansi() -> None:
    assert strip_ansi("\x1b[1;31mred\x1b[0m") == "red"


def test_console_reporter_prints_trades_and_periodic_dashboard(tmp_path: Path) -> None:
    store = InMemoryLedgerStore()
    performance = store.get_or_create(WALLET)
    performance.trades.append(_sell())
    recompute(performance)
    stream = io.StringIO()
    session = SessionLog(tmp_path, clock=lambda: WHEN)
    console = ConsoleReporter(
        PerformanceReporter(store),
        config=ReportingConfig(trades_between_dashboards=2),
        session_log=session,
        stream=stream,
    )
    outcome = ProcessOutcome(ProcessStatus.RECORDED, "5igSell", WALLET, event=_event(), trades=[_sell()])

    console(outcome)
    assert "PERFORMANCE DASHBOARD" not in stream.getvalue()
    console(outcome)
    console(ProcessOutcome(ProcessStatus.UNTRACKED, "x", WALLET))
    session.close()

    output = stream.getvalue()
    assert console.trades_seen == 2
    assert output.count("SELL TKA") == 2
    assert output.count("PERFORMANCE DASHBOARD") == 1
    assert "PERFORMANCE DASHBOARD" in session.path.read_text(encoding="utf-8")


def test_periodic_dashboard_renders_only_the_triggering_wallet() -> None:
    other = "0ther111111111111111111111111111111111111111"
    store = InMemoryLedgerStore()
    for wallet in (WALLET, other):
        performance = store.get_or_create(wallet)
        performance.trades.append(_sell())
        recompute(performance)
    stream = io.StringIO()
    console = ConsoleReporter(
        PerformanceReporter(store),
        config=ReportingConfig(trades_between_dashboards=1),
        stream=stream,
    )

    console(ProcessOutcome(ProcessStatus.RECORDED, "5igSell", WALLET, event=_event(), trades=[_sell()]))
    periodic = stream.getvalue()
    console.print_dashboards()
    final = stream.getvalue()[len(periodic):]

    assert f"PERFORMANCE DASHBOARD - {truncate_address(WALLET)}" in periodic
    assert truncate_address(other) not in periodic
    assert f"PERFORMANCE DASHBOARD - {truncate_address(WALLET)}" in final
    assert f"PERFORMANCE DASHBOARD - {truncate_address(other)}" in final
