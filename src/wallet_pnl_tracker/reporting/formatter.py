"""Plain-text rendering of trades and wallet dashboards."""

from __future__ import annotations

from typing import List, Optional, Sequence

from ..datalake.schemas import Position, SwapEvent, Trade, TradeType, WalletPerformance

RULE = "=" * 80
THIN_RULE = "-" * 80
EXPLORER_TX_URL = "https://solscan.io/tx/{signature}"
NOT_AVAILABLE = "n/a"


def format_number(value: float) -> str:
    """Abbreviate large magnitudes: 1234567 -> '1.23M', 1500 -> '1.50K'."""

    magnitude = abs(value)
    sign = "-" if value < 0 else ""
    if magnitude >= 1_000_000:
        return f"{sign}{magnitude / 1_000_000:.2f}M"
    if magnitude >= 1_000:
        return f"{sign}{magnitude / 1_000:.2f}K"
    return f"{sign}{magnitude:.2f}"


def format_usd(value: Optional[float], *, signed: bool = False) -> str:
    if value is None:
        return NOT_AVAILABLE
    prefix = ("+" if value >= 0 else "-") if signed else ("-" if value < 0 else "")
    return f"{prefix}${format_number(abs(value))}"


def format_percent(value: Optional[float]) -> str:
    if value is None:
        return NOT_AVAILABLE
    return f"{'+' if value >= 0 else ''}{value:.2f}%"


def format_price(value: Optional[float]) -> str:
    if value is None:
        return NOT_AVAILABLE
    if 0 < abs(value) < 0.01:
        return f"${value:.8f}"
    return f"${value:,.4f}"


def truncate_address(address: str, chars: int = 8) -> str:
    if len(address) <= chars * 2:
        return address
    return f"{address[:chars]}...{address[-chars:]}"


def format_trade(
    trade: Trade,
    wallet: str,
    *,
    event: Optional[SwapEvent] = None,
) -> str:
    title = "BUY" if trade.type == TradeType.BUY else "SELL"
    if trade.partial_tracking:
        title += " (partially tracked)"
    lines: List[str] = [
        RULE,
        f"{title} {trade.token_symbol}" + (f" on {event.venue}" if event else ""),
        RULE,
        f"Wallet: {truncate_address(wallet)}",
        f"Time:   {trade.timestamp.strftime('%Y-%m-%d %H:%M:%S %Z')}",
    ]
    if event is not None:
        lines += [
            "",
            "SOLD:",
            f"  Token:  {event.input_leg.symbol} ({event.input_leg.name})",
            f"  Amount: {format_number(event.input_leg.ui_amount)} {event.input_leg.symbol}",
            f"  Value:  {format_usd(event.input_leg.usd_value)}",
            "",
            "BOUGHT:",
            f"  Token:  {event.output_leg.symbol} ({event.output_leg.name})",
            f"  Amount: {format_number(event.output_leg.ui_amount)} {event.output_leg.symbol}",
            f"  Value:  {format_usd(event.output_leg.usd_value)}",
        ]
    lines += [
        "",
        f"Applied: {format_number(trade.token_amount)} {trade.token_symbol}"
        f" at {format_price(trade.price_per_token)} ({format_usd(trade.usd_value)})",
    ]
    if trade.type == TradeType.SELL:
        lines += [
            "",
            "TRADE RESULT:",
            f"  P&L:    {format_usd(trade.realized_pnl, signed=True)}",
            f"  Return: {format_percent(trade.realized_pnl_percent)}",
        ]
    lines += ["", f"Transaction: {EXPLORER_TX_URL.format(signature=trade.signature)}", RULE]
    return "\n".join(lines)


def _format_position(position: Position) -> List[str]:
    return [
        f"  {position.symbol}: {format_number(position.balance)} tokens",
        f"    Invested: {format_usd(position.total_invested)}"
        f"  Current: {format_usd(position.current_value)}",
        f"    P&L: {format_usd(position.unrealized_pnl, signed=True)}"
        f" ({format_percent(position.unrealized_pnl_percent)})",
    ]


def _format_recent_trade(trade: Trade) -> str:
    line = (
        f"  {trade.timestamp.strftime('%H:%M:%S')} {trade.type.value.upper():<4} "
        f"{format_number(trade.token_amount)} {trade.token_symbol} {format_usd(trade.usd_value)}"
    )
    if trade.type == TradeType.SELL:
        line += f" P&L {format_usd(trade.realized_pnl, signed=True)}"
    return line


def format_performance(
    performance: WalletPerformance,
    *,
    top_positions: Sequence[Position] = (),
    recent_trades: Sequence[Trade] = (),
) -> str:
    lines: List[str] = [
        RULE,
        f"PERFORMANCE DASHBOARD - {truncate_address(performance.wallet_address)}",
        RULE,
        f"Total trades:   {performance.total_trades}",
        f"Win rate:       {performance.win_rate:.1f}%"
        f" ({performance.winning_trades}W / {performance.losing_trades}L)",
        f"Realized P&L:   {format_usd(performance.total_realized_pnl, signed=True)}",
        f"Unrealized P&L: {format_usd(performance.total_unrealized_pnl, signed=True)}",
        f"Total P&L:      {format_usd(performance.total_pnl, signed=True)}",
        f"Invested:       {format_usd(performance.total_invested)}",
        f"ROI:            {format_percent(performance.roi)}",
        f"Open positions: {len(performance.positions)}",
    ]
    if top_positions:
        lines += ["", "TOP POSITIONS:"]
        for position in top_positions:
            lines += _format_position(position)
    if recent_trades:
        lines += ["", "RECENT TRADES:"]
        lines += [_format_recent_trade(trade) for trade in recent_trades]
    lines.append(RULE)
    return "\n".join(lines)


__all__ = [
    "format_number",
    "format_percent",
    "format_performance",
    "format_price",
    "format_trade",
    "format_usd",
    "truncate_address",
]
