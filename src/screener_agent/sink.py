from __future__ import annotations

import asyncio
import logging

from .broadcast import AlertBroadcaster
from .models import AlertRecord
from .repository import AlertStore

logger = logging.getLogger(__name__)


class AlertSink:
    def __init__(
        self,
        *,
        store: AlertStore,
        broadcaster: AlertBroadcaster,
        max_pending: int = 1000,
    ) -> None:
        self._store = store
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue[AlertRecord] = asyncio.Queue(maxsize=max_pending)
        self._worker_task: asyncio.Task[None] | None = None
        self._metrics = {
            "dispatched": 0,
            "broadcast_failed": 0,
            "persisted": 0,
            "persist_failed": 0,
            "persist_dropped": 0,
        }

    async def start(self) -> None:
        if self._worker_task is None or self._worker_task.done():
            self._worker_task = asyncio.create_task(self._worker(), name="alert-persistence-worker")

    async def stop(self) -> None:
        if self._worker_task is not None:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None

    def dispatch(self, record: AlertRecord) -> None:
        """Broadcast ``record`` and queue it for persistence without blocking."""
        self._metrics["dispatched"] += 1

        try:
            self._broadcaster.publish(record)
        except Exception:  # noqa: BLE001
            self._metrics["broadcast_failed"] += 1
            logger.exception("[Sink] Broadcast failed for %s", record.symbol)

        try:
            self._queue.put_nowait(record)
        except asyncio.QueueFull:
            self._metrics["persist_dropped"] += 1
            logger.warning("[Sink] Persistence queue full; alert for %s not stored", record.symbol)

    async def join(self) -> None:
        await self._queue.join()

    async def _worker(self) -> None:
        while True:
            record = await self._queue.get()
            try:
                await asyncio.to_thread(self._store.insert, record)
                self._metrics["persisted"] += 1
            except Exception:  # noqa: BLE001
                self._metrics["persist_failed"] += 1
                logger.exception("[Sink] Failed to store alert for %s", record.symbol)
            finally:
                self._queue.task_done()

    def get_metrics(self) -> dict[str, int]:
        return dict(self._metrics)
