"""Turn a transaction's balance deltas into a typed swap event."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from ..config.settings import TrackerConfig, get_app_config
from ..datalake.schemas import RawTransaction, SwapEvent, TokenBalance, TokenLeg
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..utils.constants import (
    JUPITER_V6_PROGRAM,
    METEORA_PROGRAM,
    ORCA_WHIRLPOOL_PROGRAM,
    PUMP_FUN_PROGRAM,
    RAYDIUM_CLMM_PROGRAM,
    RAYDIUM_V4_PROGRAM,
    SOL_DECIMALS,
    SOL_MINT,
    UNKNOWN_NAME,
    UNKNOWN_SYMBOL,
)
from .pricing import Pricer


class VenueKind(str, Enum):
    PUMP_FUN = "pump_fun"
    RAYDIUM = "raydium"
    ORCA = "orca"
    JUPITER = "jupiter"
    METEORA = "meteora"
    UNKNOWN = "unknown"


# Checked in order; the first program found in the account keys wins.
VENUE_PROGRAMS: Tuple[Tuple[str, VenueKind], ...] = (
    (PUMP_FUN_PROGRAM, VenueKind.PUMP_FUN),
    (RAYDIUM_V4_PROGRAM, VenueKind.RAYDIUM),
    (RAYDIUM_CLMM_PROGRAM, VenueKind.RAYDIUM),
    (ORCA_WHIRLPOOL_PROGRAM, VenueKind.ORCA),
    (JUPITER_V6_PROGRAM, VenueKind.JUPITER),
    (METEORA_PROGRAM, VenueKind.METEORA),
)


def detect_venue(account_keys: Iterable[str]) -> VenueKind:
    keys = set(account_keys)
    for program_id, venue in VENUE_PROGRAMS:
        if program_id in keys:
            return venue
    return VenueKind.UNKNOWN


@dataclass(slots=True)
class MintDelta:
    """Net change of one mint in the wallet over a transaction."""

    mint: str
    raw_delta: int
    decimals: int

    @property
    def ui_delta(self) -> float:
        return self.raw_delta / (10**self.decimals)


def _index_balances(balances: Sequence[TokenBalance]) -> Dict[int, TokenBalance]:
    return {balance.account_index: balance for balance in balances}


def extract_deltas(raw: RawTransaction) -> List[MintDelta]:
    """Net per-mint deltas for ``raw.wallet``, in first-seen order.

    Native lamports are folded into the wrapped SOL mint so that a
    wrap/unwrap inside the same transaction nets out. When the wallet paid
    the fee, the fee is added back so it does not read as a SOL outflow.
    """

    pre = _index_balances(raw.pre_token_balances)
    post = _index_balances(raw.post_token_balances)
    totals: Dict[str, MintDelta] = {}
    for index in list(dict.fromkeys([*pre, *post])):
        before, after = pre.get(index), post.get(index)
        reference = after or before
        if reference is None:
            continue
        owner = (after.owner if after else None) or (before.owner if before else None)
        if owner is not None and owner != raw.wallet:
            continue
        change = (after.raw_amount if after else 0) - (before.raw_amount if before else 0)
        entry = totals.get(reference.mint)
        if entry is None:
            totals[reference.mint] = MintDelta(reference.mint, change, reference.decimals)
        else:
            entry.raw_delta += change

    if raw.wallet in raw.account_keys:
        position = raw.account_keys.index(raw.wallet)
        if position < len(raw.pre_balances) and position < len(raw.post_balances):
            lamports = raw.post_balances[position] - raw.pre_balances[position]
            if position == 0:
                lamports += raw.fee
            if lamports:
                entry = totals.get(SOL_MINT)
                if entry is None:
                    totals[SOL_MINT] = MintDelta(SOL_MINT, lamports, SOL_DECIMALS)
                else:
                    entry.raw_delta += lamports
    return list(totals.values())


class VenueStrategy(Protocol):
    name: str

    def candidates(self, deltas: Sequence[MintDelta]) -> List[MintDelta]:
        ...


class BalanceDeltaStrategy:
    """Default venue rule: every mint whose balance moved is a candidate leg."""

    name = "balance_delta"

    def candidates(self, deltas: Sequence[MintDelta]) -> List[MintDelta]:
        return list(deltas)


class BondingCurveStrategy:
    """Pump.fun bonding curves only ever trade one token against SOL."""

    name = "bonding_curve"

    def candidates(self, deltas: Sequence[MintDelta]) -> List[MintDelta]:
        tokens = [delta for delta in deltas if delta.mint != SOL_MINT]
        sol = [delta for delta in deltas if delta.mint == SOL_MINT]
        if not tokens:
            return sol
        largest = max(tokens, key=lambda delta: abs(delta.ui_delta))
        return [largest, *sol]


_DEFAULT_STRATEGY = BalanceDeltaStrategy()
VENUE_STRATEGIES: Dict[VenueKind, VenueStrategy] = {
    VenueKind.PUMP_FUN: BondingCurveStrategy(),
    VenueKind.RAYDIUM: _DEFAULT_STRATEGY,
    VenueKind.ORCA: _DEFAULT_STRATEGY,
    VenueKind.JUPITER: _DEFAULT_STRATEGY,
    VenueKind.METEORA: _DEFAULT_STRATEGY,
    VenueKind.UNKNOWN: _DEFAULT_STRATEGY,
}


class SwapClassifier:
    """Classify raw transactions into :class:`SwapEvent` objects."""

    def __init__(self, pricer: Pricer, config: Optional[TrackerConfig] = None) -> None:
        self._pricer = pricer
        self._config = config or get_app_config().tracker
        self._logger = get_logger(__name__)

    def classify(self, raw: RawTransaction) -> Optional[SwapEvent]:
        venue = detect_venue(raw.account_keys)
        strategy = VENUE_STRATEGIES.get(venue, _DEFAULT_STRATEGY)
        candidates = [
            delta
            for delta in strategy.candidates(extract_deltas(raw))
            if abs(delta.ui_delta) > self._config.noise_floor
        ]
        spent = [delta for delta in candidates if delta.raw_delta < 0]
        received = [delta for delta in candidates if delta.raw_delta > 0]
        if not spent or not received:
            self._logger.debug(
                "No swap in %s: %d outflows, %d inflows above the noise floor",
                raw.signature,
                len(spent),
                len(received),
            )
            METRICS.increment("swaps_not_classified")
            return None

        input_delta = max(spent, key=lambda delta: abs(delta.ui_delta))
        output_delta = max(received, key=lambda delta: abs(delta.ui_delta))
        if input_delta.mint == output_delta.mint:
            METRICS.increment("swaps_not_classified")
            return None

        event = SwapEvent(
            signature=raw.signature,
            timestamp=raw.timestamp,
            wallet=raw.wallet,
            input_leg=self._build_leg(input_delta),
            output_leg=self._build_leg(output_delta),
            venue=venue.value,
        )
        METRICS.increment("swaps_classified")
        self._logger.debug(
            "Classified %s on %s: %s %s -> %s %s",
            raw.signature,
            venue.value,
            event.input_leg.ui_amount,
            event.input_leg.symbol,
            event.output_leg.ui_amount,
            event.output_leg.symbol,
        )
        return event

    def _build_leg(self, delta: MintDelta) -> TokenLeg:
        meta = self._pricer.get_token_meta(delta.mint)
        price = self._pricer.get_price(delta.mint)
        raw_amount = abs(delta.raw_delta)
        ui_amount = raw_amount / (10**delta.decimals)
        return TokenLeg(
            mint=delta.mint,
            symbol=meta.symbol if meta else UNKNOWN_SYMBOL,
            name=meta.name if meta else UNKNOWN_NAME,
            raw_amount=raw_amount,
            ui_amount=ui_amount,
            decimals=delta.decimals,
            usd_value=ui_amount * price if price is not None else None,
        )


__all__ = [
    "BalanceDeltaStrategy",
    "BondingCurveStrategy",
    "MintDelta",
    "SwapClassifier",
    "VENUE_STRATEGIES",
    "VenueKind",
    "VenueStrategy",
    "detect_venue",
    "extract_deltas",
]
