from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, WebSocket
from pydantic import BaseModel

from .broadcast import AlertEvent, AlertMessage, Subscription, broadcaster

logger = logging.getLogger(__name__)

app = FastAPI(title="NSE Screener Alerts", version="0.1.0")


class HealthResponse(BaseModel):
    status: str
    time: datetime


@app.get("/", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="Backend running", time=datetime.now(timezone.utc))


async def _forward_alerts(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        record = await subscription.get()
        event = AlertEvent(data=AlertMessage.from_record(record))
        await websocket.send_json(event.model_dump(mode="json", by_alias=True))


@app.websocket("/ws")
async def alert_stream(websocket: WebSocket) -> None:
    # Register before accepting so nothing published after the handshake is missed.
    subscription = broadcaster.subscribe()
    forwarder: asyncio.Task[None] | None = None
    try:
        await websocket.accept()
        logger.info("Client connected: %s", websocket.client)

        forwarder = asyncio.create_task(_forward_alerts(websocket, subscription))
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        if forwarder is not None:
            forwarder.cancel()
            await asyncio.gather(forwarder, return_exceptions=True)
        broadcaster.unsubscribe(subscription)
        logger.info("Client disconnected: %s", websocket.client)
