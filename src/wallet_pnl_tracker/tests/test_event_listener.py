from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest

from wallet_pnl_tracker.config.settings import IngestionConfig, RPCConfig
from wallet_pnl_tracker.datalake.schemas import RawTransaction
from wallet_pnl_tracker.errors import SourceConnectionError
from wallet_pnl_tracker.ingestion import event_listener
from wallet_pnl_tracker.ingestion.event_listener import SolanaRpcClient, WalletStreamListener
from wallet_pnl_tracker.monitoring.metrics import METRICS
from wallet_pnl_tracker.utils.constants import USDC_MINT

WALLET = "Wa11et1111111111111111111111111111111111111"
OTHER = "0ther111111111111111111111111111111111111111"
LOOKUP = "LookupWritab1e11111111111111111111111111111"


def _rpc_result(*, err: Any = None, block_time: Optional[int] = 1_714_564_800) -> Dict[str, Any]:
    return {
        "slot": 263_000_000,
        "blockTime": block_time,
        "meta": {
            "err": err,
            "fee": 5_000,
            "preBalances": [2_000_000_000, 0],
            "postBalances": [1_999_995_000, 0],
            "preTokenBalances": [
                {
                    "accountIndex": 1,
                    "mint": USDC_MINT,
                    "owner": WALLET,
                    "uiTokenAmount": {"amount": "10000000", "decimals": 6, "uiAmount": 10.0},
                }
            ],
            "postTokenBalances": [
                {
                    "accountIndex": 1,
                    "mint": USDC_MINT,
                    "owner": WALLET,
                    "uiTokenAmount": {"amount": "0", "decimals": 6, "uiAmount": None},
                }
            ],
            "loadedAddresses": {"writable": [LOOKUP], "readonly": []},
        },
        "transaction": {"message": {"accountKeys": [WALLET, "UsdcAcct"]}},
    }


def test_raw_transaction_from_rpc_result() -> None:
    raw = RawTransaction.from_rpc(_rpc_result(), WALLET, "sig-1")

    assert raw.signature == "sig-1"
    assert raw.timestamp == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert raw.slot == 263_000_000
    assert raw.account_keys == [WALLET, "UsdcAcct", LOOKUP]
    assert raw.fee == 5_000
    assert raw.pre_token_balances[0].raw_amount == 10_000_000
    assert raw.pre_token_balances[0].ui_amount == pytest.approx(10.0)
    assert raw.post_token_balances[0].raw_amount == 0
    assert raw.post_token_balances[0].owner == WALLET


def test_raw_transaction_accepts_parsed_account_keys() -> None:
    result = _rpc_result(block_time=None)
    result["transaction"]["message"]["accountKeys"] = [
        {"pubkey": WALLET, "signer": True},
        {"pubkey": "UsdcAcct", "signer": False},
    ]

    raw = RawTransaction.from_rpc(result, WALLET, "sig-2")

    assert raw.account_keys[:2] == [WALLET, "UsdcAcct"]
    assert raw.timestamp.tzinfo is not None


class _FakeRpc:
    def __init__(self, results: Dict[str, Any]) -> None:
        self._results = results
        self.requested: List[str] = []

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        self.requested.append(signature)
        result = self._results.get(signature)
        if isinstance(result, Exception):
            raise result
        return result


def _listener(rpc: Any, submitted: List[RawTransaction], **rpc_overrides: Any) -> WalletStreamListener:
    async def submit(raw: RawTransaction) -> None:
        submitted.append(raw)

    rpc_config = RPCConfig(ws_url="ws://localhost:1", fetch_delay_seconds=0, **rpc_overrides)
    return WalletStreamListener(
        [WALLET, OTHER],
        submit,
        rpc,
        config=rpc_config,
        ingestion=IngestionConfig(max_seen_signatures=2),
    )


def test_process_signature_submits_once_per_tracked_wallet() -> None:
    submitted: List[RawTransaction] = []
    rpc = _FakeRpc({"sig-1": _rpc_result()})
    listener = _listener(rpc, submitted)

    count = asyncio.run(listener.process_signature("sig-1"))
    again = asyncio.run(listener.process_signature("sig-1"))

    assert count == 1
    assert again == 0
    assert rpc.requested == ["sig-1"]
    assert [raw.wallet for raw in submitted] == [WALLET]


def test_failed_or_missing_transactions_are_skipped() -> None:
    submitted: List[RawTransaction] = []
    rpc = _FakeRpc(
        {
            "sig-failed": _rpc_result(err={"InstructionError": [0, "Custom"]}),
            "sig-error": httpx.ConnectError("down"),
        }
    )
    listener = _listener(rpc, submitted)

    assert asyncio.run(listener.process_signature("sig-failed")) == 0
    assert asyncio.run(listener.process_signature("sig-missing")) == 0
    assert asyncio.run(listener.process_signature("sig-error")) == 0
    assert submitted == []


def test_seen_signatures_are_bounded() -> None:
    rpc = _FakeRpc({})
    listener = _listener(rpc, [])

    for signature in ("a", "b", "c", "a"):
        asyncio.run(listener.process_signature(signature))

    # "a" was evicted by "c" and is fetched again.
    assert rpc.requested == ["a", "b", "c", "a"]


def test_handle_message_tracks_subscriptions_and_queues_signatures() -> None:
    listener = _listener(_FakeRpc({}), [])
    listener._request_to_wallet[1] = WALLET

    listener.handle_message({"jsonrpc": "2.0", "id": 1, "result": 4242})
    listener.handle_message(
        {
            "method": "logsNotification",
            "params": {"result": {"value": {"signature": "sig-ok", "err": None}}, "subscription": 4242},
        }
    )
    listener.handle_message(
        {
            "method": "logsNotification",
            "params": {"result": {"value": {"signature": "sig-bad", "err": {"x": 1}}}},
        }
    )

    assert listener.subscriptions == {4242: WALLET}
    assert listener._pending.qsize() == 1


class _FakeSocket:
    def __init__(self, messages: List[Dict[str, Any]], listener_ref: List[WalletStreamListener]) -> None:
        self.sent: List[Dict[str, Any]] = []
        self._messages = messages
        self._listener_ref = listener_ref

    async def __aenter__(self) -> "_FakeSocket":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    async def recv(self) -> str:
        if self._messages:
            return json.dumps(self._messages.pop(0))
        # Let the fetcher drain, then end the session.
        await asyncio.sleep(0.05)
        self._listener_ref[0].stop()
        await asyncio.sleep(3600)
        raise AssertionError("recv should have been abandoned")


def test_run_subscribes_and_forwards_notifications(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(event_listener, "WS_RECV_POLL_SECONDS", 0.05)
    submitted: List[RawTransaction] = []
    rpc = _FakeRpc({"sig-1": _rpc_result()})
    holder: List[WalletStreamListener] = []
    messages = [
        {"jsonrpc": "2.0", "id": 1, "result": 11},
        {"jsonrpc": "2.0", "id": 2, "result": 12},
        {"method": "logsNotification", "params": {"result": {"value": {"signature": "sig-1", "err": None}}}},
    ]
    sockets: List[_FakeSocket] = []

    def connect(url: str, **kwargs: Any) -> _FakeSocket:
        socket = _FakeSocket(list(messages), holder)
        sockets.append(socket)
        return socket

    async def submit(raw: RawTransaction) -> None:
        submitted.append(raw)

    listener = WalletStreamListener(
        [WALLET, OTHER],
        submit,
        rpc,  # type: ignore[arg-type]
        config=RPCConfig(ws_url="ws://localhost:1", fetch_delay_seconds=0),
        ingestion=IngestionConfig(),
        connect=connect,
    )
    holder.append(listener)

    asyncio.run(listener.run())

    assert [message["params"][0] for message in sockets[0].sent] == [
        {"mentions": [WALLET]},
        {"mentions": [OTHER]},
    ]
    assert [raw.signature for raw in submitted] == ["sig-1"]



class _QuietSocket:
    """Accepts subscriptions and then never delivers a frame."""

    async def __aenter__(self) -> "_QuietSocket":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def send(self, message: str) -> None:
        return None

    async def recv(self) -> str:
        await asyncio.sleep(3600)
        raise AssertionError("no frame expected")


def test_stop_ends_run_on_a_quiet_stream(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(event_listener, "WS_RECV_POLL_SECONDS", 0.05)
    listener = WalletStreamListener(
        [WALLET],
        _noop_submit,
        _FakeRpc({}),  # type: ignore[arg-type]
        config=RPCConfig(ws_url="ws://localhost:1"),
        ingestion=IngestionConfig(),
        connect=lambda url, **kwargs: _QuietSocket(),
    )

    async def scenario() -> None:
        task = asyncio.create_task(listener.run())
        await asyncio.sleep(0.1)
        assert not task.done()
        listener.stop()
        await asyncio.wait_for(task, timeout=2.0)

    asyncio.run(scenario())


def test_run_gives_up_after_max_reconnect_attempts() -> None:
    METRICS.reset()
    attempts: List[str] = []

    def connect(url: str, **kwargs: Any):
        attempts.append(url)
        raise OSError("connection refused")

    listener = WalletStreamListener(
        [WALLET],
        _noop_submit,
        _FakeRpc({}),  # type: ignore[arg-type]
        config=RPCConfig(ws_url="ws://localhost:1", max_reconnect_attempts=2, reconnect_delay_seconds=0),
        ingestion=IngestionConfig(),
        connect=connect,
    )

    with pytest.raises(SourceConnectionError):
        asyncio.run(listener.run())

    assert len(attempts) == 3
    assert METRICS.get("stream_reconnects") == 3


async def _noop_submit(raw: RawTransaction) -> None:
    return None


def test_rpc_client_posts_get_transaction() -> None:
    requests: List[Dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append(body)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": {"slot": 1}})

    async def scenario() -> Optional[Dict[str, Any]]:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        rpc = SolanaRpcClient(RPCConfig(http_url="https://rpc.example"), client=client)
        try:
            return await rpc.get_transaction("sig-1")
        finally:
            await rpc.aclose()

    result = asyncio.run(scenario())

    assert result == {"slot": 1}
    assert requests[0]["method"] == "getTransaction"
    assert requests[0]["params"][0] == "sig-1"
    assert requests[0]["params"][1]["maxSupportedTransactionVersion"] == 0


def test_rpc_error_payload_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "bad"}})

    async def scenario() -> Optional[Dict[str, Any]]:
        rpc = SolanaRpcClient(
            RPCConfig(http_url="https://rpc.example"),
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        try:
            return await rpc.get_transaction("sig-1")
        finally:
            await rpc.aclose()

    assert asyncio.run(scenario()) is None
