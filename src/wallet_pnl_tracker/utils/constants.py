"""Shared constants for Solana wallet tracking."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


LAMPORTS_PER_SOL = 1_000_000_000
SOL_DECIMALS = 9

# Wrapped SOL; native lamport movements are accounted under this mint.
SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"

DEFAULT_BASE_MINTS: tuple[str, ...] = (SOL_MINT, USDC_MINT, USDT_MINT)

# (symbol, name, decimals) for mints that never need a registry lookup.
WELL_KNOWN_TOKENS: dict[str, tuple[str, str, int]] = {
    SOL_MINT: ("SOL", "Solana", SOL_DECIMALS),
    USDC_MINT: ("USDC", "USD Coin", 6),
    USDT_MINT: ("USDT", "Tether USD", 6),
}

# DEX program ids used to pick a venue strategy.
PUMP_FUN_PROGRAM = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"
RAYDIUM_V4_PROGRAM = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"
RAYDIUM_CLMM_PROGRAM = "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK"
ORCA_WHIRLPOOL_PROGRAM = "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc"
JUPITER_V6_PROGRAM = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"
METEORA_PROGRAM = "Eo7WjKq67rjJQSZxS6z3YkapzY3eMj6Xy8X5EQVn5UaB"

UNKNOWN_SYMBOL = "UNKNOWN"
UNKNOWN_NAME = "Unknown Token"

__all__ = [
    "utc_now",
    "LAMPORTS_PER_SOL",
    "SOL_DECIMALS",
    "SOL_MINT",
    "USDC_MINT",
    "USDT_MINT",
    "DEFAULT_BASE_MINTS",
    "WELL_KNOWN_TOKENS",
    "PUMP_FUN_PROGRAM",
    "RAYDIUM_V4_PROGRAM",
    "RAYDIUM_CLMM_PROGRAM",
    "ORCA_WHIRLPOOL_PROGRAM",
    "JUPITER_V6_PROGRAM",
    "METEORA_PROGRAM",
    "UNKNOWN_SYMBOL",
    "UNKNOWN_NAME",
]
