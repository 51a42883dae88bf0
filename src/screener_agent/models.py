from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True)
class Instrument:
    instrument_id: str
    symbol: str


@dataclass(frozen=True)
class FeedTick:
    instrument_id: str
    price: float
    volume: float = 0.0
    high: float | None = None
    low: float | None = None
    ts: float | None = None


@dataclass(frozen=True)
class AlertRuleConfig:
    relative_volume_threshold: float = 1.5
    change_percent_threshold: float = 2.0
    cooldown_seconds: float = 15.0
    high_cross_enabled: bool = True


@dataclass(frozen=True)
class AlertRecord:
    symbol: str
    price: float
    criteria: str
    fired_at: float

    @property
    def fired_at_iso(self) -> str:
        return datetime.fromtimestamp(self.fired_at, tz=timezone.utc).isoformat()
