from __future__ import annotations

import threading
from dataclasses import asdict, dataclass

from .models import FeedTick

DEFAULT_AVERAGE_VOLUME = 1000.0
SYNTHETIC_BAND = 0.01


@dataclass
class SymbolState:
    symbol: str
    previous_price: float
    current_price: float
    reference_high: float
    reference_low: float
    volume: float
    average_volume: float
    relative_volume: float = 0.0
    change_percent: float = 0.0
    last_alert_at: float = 0.0

    @property
    def midpoint(self) -> float:
        return (self.reference_high + self.reference_low) / 2

    @classmethod
    def from_first_tick(cls, symbol: str, tick: FeedTick) -> "SymbolState":
        price = tick.price or 0.0
        volume = tick.volume or 0.0
        # Falsy hints (missing or zero) fall back to a synthetic band around the first price.
        reference_high = tick.high or price * (1 + SYNTHETIC_BAND)
        reference_low = tick.low or price * (1 - SYNTHETIC_BAND)
        average_volume = volume or DEFAULT_AVERAGE_VOLUME

        state = cls(
            symbol=symbol,
            previous_price=price,
            current_price=price,
            reference_high=float(reference_high),
            reference_low=float(reference_low),
            volume=float(volume),
            average_volume=float(average_volume),
        )
        state.refresh_derived()
        return state

    def refresh_derived(self) -> None:
        self.relative_volume = self.volume / self.average_volume
        mid = self.midpoint
        self.change_percent = ((self.current_price - mid) / mid) * 100 if mid else 0.0


class SymbolStateStore:
    """Owns the rolling state of every watched symbol.

    States are created on the first tick for a symbol and live for the rest
    of the process, across feed reconnects. Callers update the returned
    state in place; ticks for one symbol must be applied in arrival order.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: dict[str, SymbolState] = {}

    def get_or_init(self, symbol: str, tick: FeedTick) -> tuple[SymbolState, bool]:
        with self._lock:
            state = self._states.get(symbol)
            if state is not None:
                return state, False

            state = SymbolState.from_first_tick(symbol, tick)
            self._states[symbol] = state
            return state, True

    def get(self, symbol: str) -> SymbolState | None:
        with self._lock:
            return self._states.get(symbol)

    def symbols(self) -> list[str]:
        with self._lock:
            return list(self._states)

    def snapshot(self) -> dict[str, dict]:
        with self._lock:
            return {symbol: asdict(state) for symbol, state in self._states.items()}

    def __contains__(self, symbol: object) -> bool:
        with self._lock:
            return symbol in self._states

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)
