"""Solana websocket subscription feeding raw transactions to the dispatcher."""

from __future__ import annotations

import asyncio
import json
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx
import websockets
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from ..config.settings import IngestionConfig, RPCConfig, get_app_config
from ..datalake.schemas import RawTransaction
from ..errors import SourceConnectionError
from ..monitoring.event_bus import EVENT_BUS, EventSeverity, EventType
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS

Submit = Callable[[RawTransaction], Awaitable[None]]

WS_PING_INTERVAL = 30.0
WS_PING_TIMEOUT = 10.0
# Upper bound on how long a quiet socket can delay noticing stop().
WS_RECV_POLL_SECONDS = 1.0


class SolanaRpcClient:
    """Minimal async JSON-RPC client for the calls the tracker needs."""

    def __init__(
        self,
        config: Optional[RPCConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config or get_app_config().rpc
        self._client = client or httpx.AsyncClient(timeout=self._config.request_timeout)
        self._request_id = 0
        self._logger = get_logger(__name__)

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_fixed(1),
        reraise=True,
    )
    async def _call(self, method: str, params: Sequence[Any]) -> Any:
        self._request_id += 1
        response = await self._client.post(
            self._config.http_url,
            json={"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": list(params)},
        )
        response.raise_for_status()
        payload = response.json()
        if payload.get("error"):
            self._logger.warning("RPC %s returned an error: %s", method, payload["error"])
            return None
        return payload.get("result")

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        return await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "json",
                    "commitment": self._config.commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )

    async def aclose(self) -> None:
        await self._client.aclose()


class WalletStreamListener:
    """Subscribe to ``logsSubscribe`` for each wallet and forward its transactions.

    Notifications are fetched strictly in arrival order by a single consumer
    task, each one no earlier than ``fetch_delay_seconds`` after it arrived,
    so the per-wallet ordering seen by the dispatcher matches the stream.
    """

    def __init__(
        self,
        wallets: Sequence[str],
        submit: Submit,
        rpc: SolanaRpcClient,
        *,
        config: Optional[RPCConfig] = None,
        ingestion: Optional[IngestionConfig] = None,
        connect: Callable[..., Any] = websockets.connect,
    ) -> None:
        self._wallets: List[str] = list(dict.fromkeys(wallets))
        self._submit = submit
        self._rpc = rpc
        self._config = config or get_app_config().rpc
        self._ingestion = ingestion or get_app_config().ingestion
        self._connect = connect
        self._logger = get_logger(__name__)
        self._stop = asyncio.Event()
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._pending: "asyncio.Queue[Tuple[float, str]]" = asyncio.Queue()
        self._request_to_wallet: Dict[int, str] = {}
        self._subscriptions: Dict[int, str] = {}
        self._fetcher: Optional[asyncio.Task[None]] = None

    @property
    def subscriptions(self) -> Dict[int, str]:
        return dict(self._subscriptions)

    def stop(self) -> None:
        self._stop.set()

    async def run(self) -> None:
        """Stream until :meth:`stop` is called.

        Raises :class:`SourceConnectionError` once ``max_reconnect_attempts``
        consecutive connection attempts have failed.
        """

        self._fetcher = asyncio.create_task(self._fetch_loop(), name="signature-fetcher")
        failures = 0
        try:
            while not self._stop.is_set():
                try:
                    async with self._connect(
                        self._config.ws_url,
                        ping_interval=WS_PING_INTERVAL,
                        ping_timeout=WS_PING_TIMEOUT,
                    ) as ws:
                        failures = 0
                        self._logger.info("Connected to %s", self._config.ws_url)
                        await self._subscribe(ws)
                        await self._receive(ws)
                except (ConnectionClosed, InvalidHandshake, InvalidURI, OSError, asyncio.TimeoutError) as exc:
                    self._logger.warning("Websocket connection lost: %s", exc)
                finally:
                    self._request_to_wallet.clear()
                    self._subscriptions.clear()
                if self._stop.is_set():
                    break
                failures += 1
                METRICS.increment("stream_reconnects")
                if failures > self._config.max_reconnect_attempts:
                    EVENT_BUS.publish(
                        EventType.HEALTH,
                        {"message": "transaction stream unavailable", "attempts": failures - 1},
                        severity=EventSeverity.ERROR,
                    )
                    raise SourceConnectionError(
                        f"gave up on {self._config.ws_url} after "
                        f"{self._config.max_reconnect_attempts} reconnect attempts"
                    )
                self._logger.info(
                    "Reconnecting in %.1fs (attempt %d/%d)",
                    self._config.reconnect_delay_seconds,
                    failures,
                    self._config.max_reconnect_attempts,
                )
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self._config.reconnect_delay_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._fetcher.cancel()
            await asyncio.gather(self._fetcher, return_exceptions=True)

    async def _subscribe(self, ws: Any) -> None:
        for request_id, wallet in enumerate(self._wallets, start=1):
            self._request_to_wallet[request_id] = wallet
            await ws.send(
                json.dumps(
                    {
                        "jsonrpc": "2.0",
                        "id": request_id,
                        "method": "logsSubscribe",
                        "params": [{"mentions": [wallet]}, {"commitment": self._config.commitment}],
                    }
                )
            )

    async def _receive(self, ws: Any) -> None:
        while not self._stop.is_set():
            try:
                message = await asyncio.wait_for(ws.recv(), timeout=WS_RECV_POLL_SECONDS)
            except asyncio.TimeoutError:
                continue
            if self._stop.is_set():
                return
            try:
                payload = json.loads(message)
            except (TypeError, ValueError):
                self._logger.debug("Discarding non-JSON websocket frame")
                continue
            if isinstance(payload, Mapping):
                self.handle_message(payload)

    def handle_message(self, message: Mapping[str, Any]) -> None:
        """Route one decoded websocket message."""

        if "id" in message and isinstance(message.get("result"), int):
            wallet = self._request_to_wallet.get(message["id"])
            if wallet is not None:
                self._subscriptions[message["result"]] = wallet
                self._logger.info("Subscribed to %s...%s", wallet[:8], wallet[-8:])
            return
        if message.get("method") != "logsNotification":
            return
        value = ((message.get("params") or {}).get("result") or {}).get("value") or {}
        signature = value.get("signature")
        if not signature or value.get("err") is not None:
            return
        self._pending.put_nowait((time.monotonic() + self._config.fetch_delay_seconds, signature))

    async def _fetch_loop(self) -> None:
        while True:
            due, signature = await self._pending.get()
            try:
                delay = due - time.monotonic()
                if delay > 0:
                    await asyncio.sleep(delay)
                await self.process_signature(signature)
            except Exception:  # noqa: BLE001
                METRICS.increment("pipeline_failures")
                self._logger.exception("Failed to handle %s", signature)
            finally:
                self._pending.task_done()

    def _remember(self, signature: str) -> bool:
        if signature in self._seen:
            self._seen.move_to_end(signature)
            return False
        self._seen[signature] = None
        while len(self._seen) > self._ingestion.max_seen_signatures:
            self._seen.popitem(last=False)
        return True

    async def process_signature(self, signature: str) -> int:
        """Fetch ``signature`` and submit it once per tracked wallet it touches."""

        if not self._remember(signature):
            return 0
        try:
            result = await self._rpc.get_transaction(signature)
        except httpx.HTTPError as exc:
            self._logger.warning("Could not fetch %s: %s", signature, exc)
            return 0
        if not result:
            return 0
        meta = result.get("meta") or {}
        if meta.get("err") is not None:
            return 0
        submitted = 0
        for wallet in self._wallets:
            raw = RawTransaction.from_rpc(result, wallet, signature)
            if wallet not in raw.account_keys:
                continue
            await self._submit(raw)
            submitted += 1
        return submitted


__all__ = ["SolanaRpcClient", "WalletStreamListener"]
