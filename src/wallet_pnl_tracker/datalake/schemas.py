"""Data models shared by ingestion, the ledger and presentation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..utils.constants import utc_now


@dataclass(slots=True, frozen=True)
class TokenMeta:
    """Registry metadata for a mint."""

    mint: str
    symbol: str
    name: str
    decimals: int


@dataclass(slots=True, frozen=True)
class TokenLeg:
    """One side of a swap as seen from the wallet."""

    mint: str
    symbol: str
    name: str
    raw_amount: int
    ui_amount: float
    decimals: int
    usd_value: Optional[float] = None

    def __post_init__(self) -> None:
        if self.decimals < 0:
            raise ValueError(f"decimals must be non-negative, got {self.decimals}")

    @property
    def price_per_unit(self) -> Optional[float]:
        if self.usd_value is None or self.ui_amount <= 0:
            return None
        return self.usd_value / self.ui_amount


@dataclass(slots=True, frozen=True)
class SwapEvent:
    """A classified swap: the wallet gave up ``input_leg`` and received ``output_leg``."""

    signature: str
    timestamp: datetime
    wallet: str
    input_leg: TokenLeg
    output_leg: TokenLeg
    venue: str = "unknown"

    def __post_init__(self) -> None:
        if self.input_leg.mint == self.output_leg.mint:
            raise ValueError(
                f"swap {self.signature} has the same mint on both legs ({self.input_leg.mint})"
            )


class SwapDirection(str, Enum):
    BUY = "buy"
    SELL = "sell"
    TOKEN_TO_TOKEN = "token_to_token"
    IGNORED = "ignored"


class TradeType(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(slots=True, frozen=True)
class Trade:
    """Immutable record of one ledger mutation.

    ``realized_pnl`` and ``realized_pnl_percent`` are only ever set on SELL
    trades, and stay ``None`` when either the cost basis or the proceeds
    could not be valued.
    """

    signature: str
    timestamp: datetime
    type: TradeType
    token_mint: str
    token_symbol: str
    token_amount: float
    price_per_token: Optional[float] = None
    usd_value: Optional[float] = None
    realized_pnl: Optional[float] = None
    realized_pnl_percent: Optional[float] = None
    partial_tracking: bool = False


@dataclass(slots=True)
class Position:
    """Open holding of a non-base token for one wallet.

    ``cost_known`` turns False once any BUY into the position had no USD
    cost. From then on the cost basis is incomplete, so neither realized
    nor unrealized P&L is reported for it.
    """

    mint: str
    symbol: str
    name: str
    balance: float = 0.0
    avg_buy_price: float = 0.0
    total_invested: float = 0.0
    current_value: Optional[float] = None
    unrealized_pnl: Optional[float] = None
    unrealized_pnl_percent: Optional[float] = None
    last_price: Optional[float] = None
    cost_known: bool = True
    trades: List[Trade] = field(default_factory=list)

    def revalue(self, price: Optional[float] = None) -> None:
        """Refresh market value from ``price``, or from the last known price."""

        if price is not None:
            self.last_price = price
        if self.last_price is None:
            self.current_value = None
            self.unrealized_pnl = None
            self.unrealized_pnl_percent = None
            return
        self.current_value = self.balance * self.last_price
        if not self.cost_known:
            self.unrealized_pnl = None
            self.unrealized_pnl_percent = None
            return
        self.unrealized_pnl = self.current_value - self.total_invested
        self.unrealized_pnl_percent = (
            self.unrealized_pnl / self.total_invested * 100.0 if self.total_invested else 0.0
        )


@dataclass(slots=True)
class WalletPerformance:
    """Aggregate ledger state for a tracked wallet."""

    wallet_address: str
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    total_realized_pnl: float = 0.0
    total_unrealized_pnl: float = 0.0
    total_pnl: float = 0.0
    total_invested: float = 0.0
    roi: float = 0.0
    positions: Dict[str, Position] = field(default_factory=dict)
    trades: List[Trade] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True, frozen=True)
class TokenBalance:
    """SPL token account balance as reported in transaction metadata."""

    account_index: int
    mint: str
    raw_amount: int
    decimals: int
    owner: Optional[str] = None

    @property
    def ui_amount(self) -> float:
        return self.raw_amount / (10**self.decimals)

    @classmethod
    def from_rpc(cls, payload: Mapping[str, Any]) -> "TokenBalance":
        amount = payload.get("uiTokenAmount") or {}
        return cls(
            account_index=int(payload["accountIndex"]),
            mint=str(payload["mint"]),
            raw_amount=int(amount.get("amount") or 0),
            decimals=int(amount.get("decimals") or 0),
            owner=payload.get("owner"),
        )


@dataclass(slots=True)
class RawTransaction:
    """Balance-delta record for one transaction, viewed from one wallet."""

    signature: str
    wallet: str
    timestamp: datetime
    slot: Optional[int] = None
    account_keys: List[str] = field(default_factory=list)
    pre_balances: List[int] = field(default_factory=list)
    post_balances: List[int] = field(default_factory=list)
    pre_token_balances: List[TokenBalance] = field(default_factory=list)
    post_token_balances: List[TokenBalance] = field(default_factory=list)
    fee: int = 0

    @classmethod
    def from_rpc(cls, result: Mapping[str, Any], wallet: str, signature: str) -> "RawTransaction":
        """Build a record from a ``getTransaction`` result (``json`` or ``jsonParsed``)."""

        meta = result.get("meta") or {}
        message = (result.get("transaction") or {}).get("message") or {}
        block_time = result.get("blockTime")
        timestamp = (
            datetime.fromtimestamp(block_time, timezone.utc) if block_time else utc_now()
        )
        loaded = meta.get("loadedAddresses") or {}
        account_keys = _account_keys(message.get("accountKeys") or [])
        account_keys.extend(loaded.get("writable") or [])
        account_keys.extend(loaded.get("readonly") or [])
        return cls(
            signature=signature,
            wallet=wallet,
            timestamp=timestamp,
            slot=result.get("slot"),
            account_keys=account_keys,
            pre_balances=[int(value) for value in meta.get("preBalances") or []],
            post_balances=[int(value) for value in meta.get("postBalances") or []],
            pre_token_balances=[
                TokenBalance.from_rpc(item) for item in meta.get("preTokenBalances") or []
            ],
            post_token_balances=[
                TokenBalance.from_rpc(item) for item in meta.get("postTokenBalances") or []
            ],
            fee=int(meta.get("fee") or 0),
        )


def _account_keys(keys: Sequence[Any]) -> List[str]:
    # jsonParsed encoding returns {"pubkey": ..., "signer": ...} objects.
    return [key["pubkey"] if isinstance(key, Mapping) else str(key) for key in keys]


__all__ = [
    "Position",
    "RawTransaction",
    "SwapDirection",
    "SwapEvent",
    "TokenBalance",
    "TokenLeg",
    "TokenMeta",
    "Trade",
    "TradeType",
    "WalletPerformance",
]
