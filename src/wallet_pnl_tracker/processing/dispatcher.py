"""Per-wallet asyncio workers feeding the swap pipeline."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from ..datalake.schemas import RawTransaction
from ..monitoring.event_bus import EVENT_BUS, EventSeverity, EventType
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from .pipeline import ProcessOutcome, SwapProcessor


class WalletDispatcher:
    """Serialize work per wallet while letting different wallets run in parallel.

    Each wallet gets its own bounded ``asyncio.Queue`` and a single worker
    task, created on the first submission for that wallet. The worker hands
    each transaction to ``SwapProcessor.process`` in a thread so pricer
    HTTP calls do not block the event loop.
    """

    def __init__(self, processor: SwapProcessor, *, queue_capacity: int = 1_024) -> None:
        self._processor = processor
        self._queue_capacity = queue_capacity
        self._queues: Dict[str, asyncio.Queue[RawTransaction]] = {}
        self._workers: Dict[str, asyncio.Task[None]] = {}
        self._outcomes: List[ProcessOutcome] = []
        self._closed = False
        self._logger = get_logger(__name__)

    @property
    def outcomes(self) -> List[ProcessOutcome]:
        return list(self._outcomes)

    def wallets(self) -> List[str]:
        return list(self._queues)

    def queue_depth(self, wallet: Optional[str] = None) -> int:
        if wallet is not None:
            queue = self._queues.get(wallet)
            return queue.qsize() if queue is not None else 0
        return sum(queue.qsize() for queue in self._queues.values())

    async def submit(self, raw: RawTransaction) -> None:
        if self._closed:
            raise RuntimeError("dispatcher is closed")
        queue = self._queues.get(raw.wallet)
        if queue is None:
            queue = asyncio.Queue(maxsize=self._queue_capacity)
            self._queues[raw.wallet] = queue
            self._workers[raw.wallet] = asyncio.create_task(
                self._run(raw.wallet, queue), name=f"wallet-worker-{raw.wallet[:8]}"
            )
        await queue.put(raw)
        depth = self.queue_depth()
        METRICS.gauge("dispatcher_queue_depth", depth)
        if queue.full():
            EVENT_BUS.publish(
                EventType.HEALTH,
                {"queue_depth": float(depth), "wallet": raw.wallet, "message": "wallet queue full"},
                severity=EventSeverity.WARNING,
            )

    async def _run(self, wallet: str, queue: asyncio.Queue[RawTransaction]) -> None:
        while True:
            raw = await queue.get()
            try:
                outcome = await asyncio.to_thread(self._processor.process, raw)
                self._outcomes.append(outcome)
                if len(self._outcomes) > self._queue_capacity:
                    del self._outcomes[: -self._queue_capacity]
            except Exception:  # noqa: BLE001
                METRICS.increment("pipeline_failures")
                self._logger.exception(
                    "Failed to process %s for %s", raw.signature, wallet,
                    extra={"wallet": wallet, "signature": raw.signature},
                )
            finally:
                queue.task_done()

    async def join(self) -> None:
        """Wait until every queued transaction has been processed."""

        await asyncio.gather(*(queue.join() for queue in list(self._queues.values())))

    async def close(self) -> None:
        self._closed = True
        workers = list(self._workers.values())
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()
        self._queues.clear()


__all__ = ["WalletDispatcher"]
