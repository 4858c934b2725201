from __future__ import annotations

from datetime import datetime, timezone

import pytest

from wallet_pnl_tracker.analytics.direction import resolve
from wallet_pnl_tracker.datalake.schemas import SwapDirection, SwapEvent, TokenLeg
from wallet_pnl_tracker.utils.constants import DEFAULT_BASE_MINTS, SOL_MINT, USDC_MINT, USDT_MINT

TOKEN_A = "TokenA1111111111111111111111111111111111111"
TOKEN_B = "TokenB1111111111111111111111111111111111111"


def _event(spent: str, received: str) -> SwapEvent:
    def leg(mint: str) -> TokenLeg:
        return TokenLeg(mint=mint, symbol=mint[:4], name=mint[:4], raw_amount=1, ui_amount=1.0, decimals=0)

    return SwapEvent(
        signature="sig",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        wallet="wallet",
        input_leg=leg(spent),
        output_leg=leg(received),
    )


@pytest.mark.parametrize(
    ("spent", "received", "expected"),
    [
        (SOL_MINT, TOKEN_A, SwapDirection.BUY),
        (USDC_MINT, TOKEN_A, SwapDirection.BUY),
        (TOKEN_A, USDT_MINT, SwapDirection.SELL),
        (TOKEN_A, TOKEN_B, SwapDirection.TOKEN_TO_TOKEN),
        (SOL_MINT, USDC_MINT, SwapDirection.IGNORED),
    ],
)
def test_resolve_against_default_base_mints(spent: str, received: str, expected: SwapDirection) -> None:
    assert resolve(_event(spent, received), DEFAULT_BASE_MINTS) == expected


def test_resolve_with_custom_base_set() -> None:
    # Only USDC counts as quote, so SOL behaves like any other token.
    assert resolve(_event(SOL_MINT, TOKEN_A), {USDC_MINT}) == SwapDirection.TOKEN_TO_TOKEN
    assert resolve(_event(TOKEN_A, USDC_MINT), {USDC_MINT}) == SwapDirection.SELL


def test_same_mint_on_both_legs_is_rejected() -> None:
    with pytest.raises(ValueError):
        _event(TOKEN_A, TOKEN_A)
