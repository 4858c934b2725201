"""Token metadata and USD prices from the Jupiter token search API."""

from __future__ import annotations

import threading
from typing import Any, Dict, Mapping, Optional, Protocol

import requests
from cachetools import TTLCache
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.settings import PricingConfig, get_app_config
from ..datalake.schemas import TokenMeta
from ..errors import PricerError
from ..monitoring.event_bus import EVENT_BUS, EventSeverity, EventType
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from ..utils.constants import WELL_KNOWN_TOKENS

DEFAULT_HEADERS = {"User-Agent": "wallet-pnl-tracker/1.0", "Accept": "application/json"}


class Pricer(Protocol):
    """Read-only price and metadata source.

    Implementations return ``None`` for anything they cannot resolve and
    never raise on unknown mints.
    """

    def get_token_meta(self, mint: str) -> Optional[TokenMeta]:
        ...

    def get_price(self, mint: str) -> Optional[float]:
        ...


def _static_meta(mint: str) -> Optional[TokenMeta]:
    known = WELL_KNOWN_TOKENS.get(mint)
    if known is None:
        return None
    symbol, name, decimals = known
    return TokenMeta(mint=mint, symbol=symbol, name=name, decimals=decimals)


class JupiterPricer:
    """Caching client for ``GET {base}/search?query=<mint>``.

    A successful search fills both the metadata cache and the price cache.
    Failed lookups are remembered for ``failed_lookup_ttl_seconds`` so a
    token the registry does not know is queried (and logged) once per
    window, and the last price ever seen for a mint is served when a
    refresh fails.
    """

    def __init__(
        self,
        config: Optional[PricingConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().pricing
        self._session = session or requests.Session()
        self._logger = get_logger(__name__)
        self._lock = threading.Lock()
        self._meta_cache: TTLCache[str, TokenMeta] = TTLCache(
            maxsize=4_096, ttl=self._config.metadata_ttl_seconds
        )
        self._price_cache: TTLCache[str, float] = TTLCache(
            maxsize=4_096, ttl=self._config.price_ttl_seconds
        )
        self._failed: TTLCache[str, bool] = TTLCache(
            maxsize=4_096, ttl=self._config.failed_lookup_ttl_seconds
        )
        # Listed tokens that carry no usdPrice.
        self._unpriced: TTLCache[str, bool] = TTLCache(
            maxsize=4_096, ttl=self._config.failed_lookup_ttl_seconds
        )
        self._last_prices: Dict[str, float] = {}
        if self._config.api_key:
            self._base_url = self._config.authenticated_base_url.rstrip("/")
        else:
            self._base_url = self._config.base_url.rstrip("/")
        self._get_with_retry = retry(
            retry=retry_if_exception_type(requests.RequestException),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            stop=stop_after_attempt(self._config.max_retry_attempts),
        )(self._get)

    def _get(self, path: str, params: Optional[dict] = None) -> Any:
        headers = dict(DEFAULT_HEADERS)
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        response = self._session.get(
            f"{self._base_url}{path}",
            params=params,
            headers=headers,
            timeout=self._config.http_timeout,
        )
        response.raise_for_status()
        return response.json()

    def _search(self, mint: str) -> Optional[Mapping[str, Any]]:
        try:
            payload = self._get_with_retry("/search", params={"query": mint})
        except (RetryError, requests.RequestException, ValueError) as exc:
            raise PricerError(f"token search failed for {mint}") from exc
        if not isinstance(payload, list):
            return None
        for item in payload:
            if isinstance(item, Mapping) and item.get("id") == mint:
                return item
        return None

    def _refresh(self, mint: str) -> Optional[Mapping[str, Any]]:
        try:
            entry = self._search(mint)
        except PricerError as exc:
            self._logger.warning("Price lookup failed for %s: %s", mint, exc.__cause__ or exc)
            entry = None
        if entry is None:
            with self._lock:
                self._failed[mint] = True
            METRICS.increment("price_lookups_failed")
            EVENT_BUS.publish(
                EventType.PRICE_UNAVAILABLE,
                {"mint": mint},
                severity=EventSeverity.WARNING,
            )
            return None

        static = _static_meta(mint)
        meta = static or TokenMeta(
            mint=mint,
            symbol=str(entry.get("symbol") or "") or mint[:6],
            name=str(entry.get("name") or "") or mint[:6],
            decimals=int(entry.get("decimals") or 0),
        )
        price = entry.get("usdPrice")
        with self._lock:
            self._meta_cache[mint] = meta
            if isinstance(price, (int, float)) and price > 0:
                self._price_cache[mint] = float(price)
                self._last_prices[mint] = float(price)
                self._unpriced.pop(mint, None)
            else:
                self._unpriced[mint] = True
        return entry

    def get_token_meta(self, mint: str) -> Optional[TokenMeta]:
        static = _static_meta(mint)
        if static is not None:
            return static
        with self._lock:
            cached = self._meta_cache.get(mint)
            if cached is not None or mint in self._failed:
                return cached
        self._refresh(mint)
        with self._lock:
            return self._meta_cache.get(mint)

    def get_price(self, mint: str) -> Optional[float]:
        with self._lock:
            cached = self._price_cache.get(mint)
            if cached is not None:
                return cached
            if mint in self._failed or mint in self._unpriced:
                return self._last_prices.get(mint)
        self._refresh(mint)
        with self._lock:
            price = self._price_cache.get(mint)
            if price is None:
                # Stale but better than unknown.
                price = self._last_prices.get(mint)
            return price

    def clear_cache(self) -> None:
        with self._lock:
            self._meta_cache.clear()
            self._price_cache.clear()
            self._failed.clear()
            self._unpriced.clear()
            self._last_prices.clear()


class StaticPricer:
    """Deterministic in-memory pricer for replays and tests."""

    def __init__(
        self,
        prices: Optional[Mapping[str, float]] = None,
        metadata: Optional[Mapping[str, TokenMeta]] = None,
    ) -> None:
        self._prices: Dict[str, float] = dict(prices or {})
        self._metadata: Dict[str, TokenMeta] = dict(metadata or {})

    def set_price(self, mint: str, price: Optional[float]) -> None:
        if price is None:
            self._prices.pop(mint, None)
        else:
            self._prices[mint] = price

    def set_meta(self, meta: TokenMeta) -> None:
        self._metadata[meta.mint] = meta

    def get_token_meta(self, mint: str) -> Optional[TokenMeta]:
        return self._metadata.get(mint) or _static_meta(mint)

    def get_price(self, mint: str) -> Optional[float]:
        return self._prices.get(mint)

    def clear_cache(self) -> None:
        """Nothing is cached; present for interface parity with ``JupiterPricer``."""


__all__ = ["JupiterPricer", "Pricer", "StaticPricer"]
