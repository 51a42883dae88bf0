import asyncio
import threading

from src.screener_agent.broadcast import AlertBroadcaster
from src.screener_agent.models import AlertRecord
from src.screener_agent.sink import AlertSink

RECORD = AlertRecord(symbol="INFY", price=1550.0, criteria="High Cross", fired_at=1_700_000_000.0)


class MemoryStore:
    def __init__(self) -> None:
        self.records: list[AlertRecord] = []

    def insert(self, record: AlertRecord) -> None:
        self.records.append(record)


class FailingStore:
    def insert(self, record: AlertRecord) -> None:
        raise RuntimeError("database unavailable")


class FailingBroadcaster(AlertBroadcaster):
    def publish(self, record: AlertRecord) -> int:
        raise RuntimeError("socket layer down")


class BlockingStore:
    def __init__(self) -> None:
        self.release = threading.Event()
        self.records: list[AlertRecord] = []

    def insert(self, record: AlertRecord) -> None:
        self.release.wait(timeout=5)
        self.records.append(record)


def test_store_failure_does_not_block_broadcast() -> None:
    async def _run() -> None:
        broadcaster = AlertBroadcaster()
        sink = AlertSink(store=FailingStore(), broadcaster=broadcaster)
        subscription = broadcaster.subscribe()
        await sink.start()
        try:
            sink.dispatch(RECORD)
            await sink.join()

            received = await asyncio.wait_for(subscription.get(), timeout=1.0)
            assert received == RECORD
            assert sink.get_metrics()["persist_failed"] == 1
        finally:
            await sink.stop()

    asyncio.run(_run())


def test_broadcast_failure_does_not_block_storage() -> None:
    async def _run() -> None:
        store = MemoryStore()
        sink = AlertSink(store=store, broadcaster=FailingBroadcaster())
        await sink.start()
        try:
            sink.dispatch(RECORD)
            await sink.join()

            assert store.records == [RECORD]
            metrics = sink.get_metrics()
            assert metrics["broadcast_failed"] == 1
            assert metrics["persisted"] == 1
        finally:
            await sink.stop()

    asyncio.run(_run())


def test_slow_store_does_not_delay_broadcast() -> None:
    async def _run() -> None:
        broadcaster = AlertBroadcaster()
        store = BlockingStore()
        sink = AlertSink(store=store, broadcaster=broadcaster)
        subscription = broadcaster.subscribe()
        await sink.start()
        try:
            sink.dispatch(RECORD)
            received = await asyncio.wait_for(subscription.get(), timeout=1.0)
            assert received == RECORD
            assert store.records == []

            store.release.set()
            await sink.join()
            assert store.records == [RECORD]
        finally:
            store.release.set()
            await sink.stop()

    asyncio.run(_run())


def test_subscribers_only_see_alerts_after_subscribing() -> None:
    async def _run() -> None:
        broadcaster = AlertBroadcaster()
        early = broadcaster.subscribe()
        assert broadcaster.publish(RECORD) == 1

        late = broadcaster.subscribe()
        second = AlertRecord(symbol="TCS", price=3900.0, criteria="High Cross", fired_at=1_700_000_060.0)
        assert broadcaster.publish(second) == 2

        assert await asyncio.wait_for(early.get(), timeout=1.0) == RECORD
        assert await asyncio.wait_for(early.get(), timeout=1.0) == second
        assert await asyncio.wait_for(late.get(), timeout=1.0) == second

        broadcaster.unsubscribe(early)
        broadcaster.unsubscribe(late)
        assert broadcaster.subscriber_count() == 0

    asyncio.run(_run())
