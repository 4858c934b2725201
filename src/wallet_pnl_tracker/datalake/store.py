"""Process-local ledger state, one ``WalletPerformance`` per tracked wallet."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Dict, List, Optional

from .schemas import WalletPerformance


class LedgerStore(ABC):
    """Owner of all wallet ledger state.

    Wallet records are created lazily on the first swap and never removed
    while the process runs. Mutation of an individual record is the
    caller's responsibility (one writer per wallet); the store only
    guarantees that creation and signature marking are atomic.
    """

    @abstractmethod
    def get(self, wallet: str) -> Optional[WalletPerformance]:
        """Return the wallet's record, or ``None`` if it has never traded."""

    @abstractmethod
    def get_or_create(self, wallet: str) -> WalletPerformance:
        """Return the wallet's record, creating an empty one on first use."""

    @abstractmethod
    def wallets(self) -> List[str]:
        """Addresses of every wallet with a record, in creation order."""

    @abstractmethod
    def mark_processed(self, wallet: str, signature: str) -> bool:
        """Record ``signature`` for ``wallet``; ``False`` when it was already seen.

        Marking does not create the wallet's performance record.
        """


class InMemoryLedgerStore(LedgerStore):
    """Dict-backed store. Each wallet remembers its last ``max_signatures`` signatures."""

    def __init__(self, *, max_signatures: int = 10_000) -> None:
        self._lock = threading.Lock()
        self._performances: Dict[str, WalletPerformance] = {}
        self._max_signatures = max_signatures
        self._processed: Dict[str, "OrderedDict[str, None]"] = {}

    def get(self, wallet: str) -> Optional[WalletPerformance]:
        with self._lock:
            return self._performances.get(wallet)

    def get_or_create(self, wallet: str) -> WalletPerformance:
        with self._lock:
            performance = self._performances.get(wallet)
            if performance is None:
                performance = WalletPerformance(wallet_address=wallet)
                self._performances[wallet] = performance
            return performance

    def wallets(self) -> List[str]:
        with self._lock:
            return list(self._performances)

    def mark_processed(self, wallet: str, signature: str) -> bool:
        with self._lock:
            seen = self._processed.setdefault(wallet, OrderedDict())
            if signature in seen:
                seen.move_to_end(signature)
                return False
            seen[signature] = None
            if len(seen) > self._max_signatures:
                seen.popitem(last=False)
            return True

    def clear(self) -> None:
        with self._lock:
            self._performances.clear()
            self._processed.clear()


__all__ = ["InMemoryLedgerStore", "LedgerStore"]
