from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .models import AlertRecord

logger = logging.getLogger(__name__)


class AlertMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    price: float
    criteria_hit: str = Field(alias="criteriaHit")
    timestamp: datetime

    @classmethod
    def from_record(cls, record: AlertRecord) -> "AlertMessage":
        return cls(
            symbol=record.symbol,
            price=record.price,
            criteria_hit=record.criteria,
            timestamp=record.fired_at_iso,
        )


class AlertEvent(BaseModel):
    event: str = "alert"
    data: AlertMessage


class Subscription:
    def __init__(self, loop: asyncio.AbstractEventLoop, max_pending: int) -> None:
        self.loop = loop
        self.queue: asyncio.Queue[AlertRecord] = asyncio.Queue(maxsize=max_pending)
        self.dropped = 0

    async def get(self) -> AlertRecord:
        return await self.queue.get()

    def offer(self, record: AlertRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("[Broadcast] Subscriber queue full; dropped alert for %s", record.symbol)


class AlertBroadcaster:
    """Fans fired alerts out to every connected subscriber.

    Subscribers receive only alerts published after they subscribed.
    ``publish`` never blocks; it may be called from any thread.
    """

    def __init__(self, max_pending: int = 100) -> None:
        self._max_pending = max_pending
        self._lock = threading.Lock()
        self._subscriptions: set[Subscription] = set()

    def subscribe(self) -> Subscription:
        subscription = Subscription(asyncio.get_running_loop(), self._max_pending)
        with self._lock:
            self._subscriptions.add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.discard(subscription)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, record: AlertRecord) -> int:
        with self._lock:
            subscriptions = list(self._subscriptions)

        delivered = 0
        for subscription in subscriptions:
            try:
                subscription.loop.call_soon_threadsafe(subscription.offer, record)
            except RuntimeError:
                # Loop already closed; the socket is gone.
                self.unsubscribe(subscription)
                continue
            delivered += 1
        return delivered


broadcaster = AlertBroadcaster()
