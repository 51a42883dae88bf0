from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Literal

from .connectors import FeedConnection, FeedConnector, Frame
from .engine import AlertEngine

logger = logging.getLogger(__name__)

FeedStatus = Literal["disconnected", "connecting", "subscribing", "streaming", "error", "closed"]


class FeedSupervisor:
    """Keeps one upstream feed connection alive and pumps its ticks into the engine.

    Every close or transport error is followed by exactly one reconnect
    attempt after ``reconnect_delay_seconds``. There is no retry limit.
    """

    def __init__(
        self,
        *,
        connector: FeedConnector,
        engine: AlertEngine,
        reconnect_delay_seconds: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.connector = connector
        self.engine = engine
        self.reconnect_delay_seconds = reconnect_delay_seconds
        self._sleep = sleep
        self.status: FeedStatus = "disconnected"
        self.connect_attempts = 0
        self.frames_received = 0
        self.frames_discarded = 0

    def _set_status(self, status: FeedStatus) -> None:
        if status != self.status:
            logger.debug("[Feed] %s -> %s", self.status, status)
        self.status = status

    async def run(self) -> None:
        while True:
            await self.run_once()
            self._set_status("disconnected")
            logger.info("[Feed] Reconnecting in %ss", self.reconnect_delay_seconds)
            await self._sleep(self.reconnect_delay_seconds)

    async def run_once(self) -> None:
        """Connect, subscribe and stream until the connection ends."""
        self._set_status("connecting")
        self.connect_attempts += 1
        try:
            async with self.connector.connect() as connection:
                await self._subscribe(connection)
                self._set_status("streaming")
                async for frame in connection:
                    self.handle_frame(frame)
            self._set_status("closed")
            logger.warning("[Feed] %s connection closed", self.connector.name)
        except asyncio.CancelledError:
            self._set_status("closed")
            raise
        except Exception as exc:  # noqa: BLE001
            self._set_status("error")
            logger.warning("[Feed] %s error: %s", self.connector.name, exc)

    async def _subscribe(self, connection: FeedConnection) -> None:
        self._set_status("subscribing")
        instrument_ids = self.engine.directory.ids()
        for message in self.connector.subscription_messages(instrument_ids):
            await connection.send(message)
        logger.info("[Feed] Subscribed to %s instrument(s)", len(instrument_ids))

    def handle_frame(self, frame: Frame) -> None:
        self.frames_received += 1
        ticks = self.connector.decode(frame)
        if not ticks:
            self.frames_discarded += 1
            logger.debug("[Feed] Discarded frame without ticks")
            return

        for tick in ticks:
            self.engine.on_tick(tick)
