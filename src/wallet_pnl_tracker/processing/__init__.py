"""Swap processing pipeline and per-wallet dispatch."""

from .dispatcher import WalletDispatcher
from .pipeline import ProcessOutcome, ProcessStatus, SwapProcessor

__all__ = ["ProcessOutcome", "ProcessStatus", "SwapProcessor", "WalletDispatcher"]
