"""Label a swap relative to the configured base (quote) mints."""

from __future__ import annotations

from typing import AbstractSet, Iterable, Union

from ..datalake.schemas import SwapDirection, SwapEvent


def resolve(event: SwapEvent, base_mints: Union[AbstractSet[str], Iterable[str]]) -> SwapDirection:
    """Base in and base out is a pure quote conversion and carries no position signal."""

    bases = base_mints if isinstance(base_mints, AbstractSet) else frozenset(base_mints)
    input_is_base = event.input_leg.mint in bases
    output_is_base = event.output_leg.mint in bases
    if input_is_base and output_is_base:
        return SwapDirection.IGNORED
    if input_is_base:
        return SwapDirection.BUY
    if output_is_base:
        return SwapDirection.SELL
    return SwapDirection.TOKEN_TO_TOKEN


__all__ = ["resolve"]
