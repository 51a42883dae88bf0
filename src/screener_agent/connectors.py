from __future__ import annotations

import json
import logging
import struct
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, Protocol
from urllib.parse import urlencode
from uuid import uuid4

import httpx
import websockets

from .models import FeedTick

logger = logging.getLogger(__name__)

UPSTOX_AUTHORIZE_URL = "https://api.upstox.com/v2/market-data/feed/authorize"
KITE_WS_URL = "wss://ws.kite.trade"

Frame = str | bytes


class FeedConnection(Protocol):
    async def send(self, message: Frame) -> None: ...

    def __aiter__(self) -> AsyncIterator[Frame]: ...


class FeedConnector(Protocol):
    name: str

    def connect(self) -> Any:
        """Return an async context manager yielding an open ``FeedConnection``."""

    def subscription_messages(self, instrument_ids: Iterable[str]) -> list[Frame]: ...

    def decode(self, frame: Frame) -> list[FeedTick]: ...


def _number(value: object) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class UpstoxConnector:
    """Upstox market feed: fetch an authorized redirect URL, then open it."""

    name = "upstox"

    def __init__(
        self,
        *,
        access_token: str,
        authorize_url: str = UPSTOX_AUTHORIZE_URL,
        ping_interval_seconds: int = 15,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.access_token = access_token
        self.authorize_url = authorize_url
        self.ping_interval_seconds = ping_interval_seconds
        self._http_transport = http_transport

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[FeedConnection]:
        ws_url = await self._authorize()
        logger.info("[Upstox] Connecting")
        async with websockets.connect(ws_url, ping_interval=self.ping_interval_seconds) as ws:
            logger.info("[Upstox] Connected")
            yield ws

    async def _authorize(self) -> str:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }
        async with httpx.AsyncClient(timeout=10.0, transport=self._http_transport) as client:
            response = await client.get(self.authorize_url, headers=headers)
            if not response.is_success:
                raise ValueError(f"upstox authorize failed: HTTP {response.status_code}")

            body = response.json()
            data = body.get("data") if isinstance(body, dict) else None
            ws_url = data.get("authorizedRedirectUri") if isinstance(data, dict) else None
            if not isinstance(ws_url, str) or not ws_url.strip():
                raise ValueError("upstox authorize failed: missing authorizedRedirectUri")

            return ws_url

    def subscription_messages(self, instrument_ids: Iterable[str]) -> list[Frame]:
        payload = {
            "guid": uuid4().hex,
            "method": "sub",
            "data": {
                "mode": "full",
                "instrumentKeys": list(instrument_ids),
            },
        }
        return [json.dumps(payload)]

    def decode(self, frame: Frame) -> list[FeedTick]:
        try:
            data = json.loads(frame)
        except (TypeError, ValueError):
            return []

        if not isinstance(data, dict):
            return []
        body = data.get("data")
        feeds = body.get("feeds") if isinstance(body, dict) else None
        if not isinstance(feeds, dict):
            return []

        ticks: list[FeedTick] = []
        for key, feed in feeds.items():
            if not isinstance(feed, dict):
                continue

            instrument_id = feed.get("instrumentKey") or key
            if not isinstance(instrument_id, str) or not instrument_id:
                continue

            ohlc = feed.get("ohlc") if isinstance(feed.get("ohlc"), dict) else {}
            ticks.append(
                FeedTick(
                    instrument_id=instrument_id,
                    price=_number(feed.get("ltp")),
                    volume=_number(feed.get("volume")),
                    high=_number(ohlc.get("prevHigh")) or None,
                    low=_number(ohlc.get("prevLow")) or None,
                )
            )
        return ticks


# Kite exchange segment codes carried in the low byte of an instrument token.
_KITE_SEGMENT_CDS = 3
_KITE_SEGMENT_BCD = 6
_KITE_SEGMENT_INDICES = 9

_KITE_LTP_PACKET = 8
_KITE_INDEX_QUOTE_PACKET = 28
_KITE_INDEX_FULL_PACKET = 32
_KITE_QUOTE_PACKET = 44
_KITE_FULL_PACKET = 184


def _kite_divisor(token: int) -> float:
    segment = token & 0xFF
    if segment == _KITE_SEGMENT_CDS:
        return 10_000_000.0
    if segment == _KITE_SEGMENT_BCD:
        return 10_000.0
    return 100.0


def _unpack_ints(packet: bytes, start: int, end: int) -> tuple[int, ...]:
    return struct.unpack(f">{(end - start) // 4}I", packet[start:end])


class KiteConnector:
    """Kite Connect ticker: direct connect with the API key and access token."""

    name = "kite"

    def __init__(
        self,
        *,
        api_key: str,
        access_token: str,
        ws_url: str = KITE_WS_URL,
        ping_interval_seconds: int = 15,
    ) -> None:
        self.api_key = api_key
        self.access_token = access_token
        self.ws_url = ws_url
        self.ping_interval_seconds = ping_interval_seconds

    def _resolve_ws_url(self) -> str:
        query = urlencode({"api_key": self.api_key, "access_token": self.access_token})
        return f"{self.ws_url}?{query}"

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[FeedConnection]:
        logger.info("[Kite] Connecting")
        async with websockets.connect(self._resolve_ws_url(), ping_interval=self.ping_interval_seconds) as ws:
            logger.info("[Kite] Connected")
            yield ws

    def subscription_messages(self, instrument_ids: Iterable[str]) -> list[Frame]:
        tokens = [int(instrument_id) for instrument_id in instrument_ids]
        return [
            json.dumps({"a": "subscribe", "v": tokens}),
            json.dumps({"a": "mode", "v": ["full", tokens]}),
        ]

    def decode(self, frame: Frame) -> list[FeedTick]:
        if isinstance(frame, str):
            self._log_text_message(frame)
            return []

        # Single byte frames are heartbeats.
        if len(frame) < 2:
            return []

        try:
            return self._decode_binary(frame)
        except struct.error:
            return []

    def _log_text_message(self, frame: str) -> None:
        try:
            message = json.loads(frame)
        except ValueError:
            return
        if isinstance(message, dict) and message.get("type") == "error":
            logger.warning("[Kite] Server error: %s", message.get("data"))

    def _decode_binary(self, frame: bytes) -> list[FeedTick]:
        (count,) = struct.unpack(">H", frame[0:2])
        offset = 2
        ticks: list[FeedTick] = []
        for _ in range(count):
            if len(frame) - offset < 2:
                break
            (length,) = struct.unpack(">H", frame[offset:offset + 2])
            packet = frame[offset + 2:offset + 2 + length]
            offset += 2 + length
            if len(packet) != length:
                break

            tick = self._decode_packet(packet)
            if tick is not None:
                ticks.append(tick)
        return ticks

    def _decode_packet(self, packet: bytes) -> FeedTick | None:
        length = len(packet)
        if length < _KITE_LTP_PACKET:
            return None

        token, ltp = _unpack_ints(packet, 0, 8)
        divisor = _kite_divisor(token)
        instrument_id = str(token)

        if length == _KITE_LTP_PACKET:
            return FeedTick(instrument_id=instrument_id, price=ltp / divisor)

        if (token & 0xFF) == _KITE_SEGMENT_INDICES or length in (_KITE_INDEX_QUOTE_PACKET, _KITE_INDEX_FULL_PACKET):
            if length < _KITE_INDEX_QUOTE_PACKET:
                return None
            _, _, high, low = _unpack_ints(packet, 0, 16)
            ts = None
            if length >= _KITE_INDEX_FULL_PACKET:
                (ts,) = _unpack_ints(packet, 28, 32)
            return FeedTick(
                instrument_id=instrument_id,
                price=ltp / divisor,
                high=(high / divisor) or None,
                low=(low / divisor) or None,
                ts=float(ts) if ts else None,
            )

        if length < _KITE_QUOTE_PACKET:
            return None

        fields = _unpack_ints(packet, 0, _KITE_QUOTE_PACKET)
        volume, high, low = fields[4], fields[8], fields[9]
        ts = None
        if length >= _KITE_FULL_PACKET:
            (ts,) = _unpack_ints(packet, 60, 64)
        return FeedTick(
            instrument_id=instrument_id,
            price=ltp / divisor,
            volume=float(volume),
            high=(high / divisor) or None,
            low=(low / divisor) or None,
            ts=float(ts) if ts else None,
        )
