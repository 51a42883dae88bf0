from __future__ import annotations

from typing import Iterable

from .models import Instrument


def parse_watchlist(raw: str, provider: str) -> list[Instrument]:
    """Parse a comma separated watchlist into instruments.

    ``upstox`` entries are instrument keys such as ``NSE_EQ|RELIANCE``; the
    display symbol is the part after the pipe. ``kite`` entries are
    ``token:SYMBOL`` pairs since Kite tokens carry no ticker.
    """
    instruments: list[Instrument] = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue

        if provider == "kite":
            token, sep, symbol = entry.partition(":")
            if not sep or not token.strip().isdigit() or not symbol.strip():
                raise ValueError(f"invalid kite watchlist entry '{entry}', expected token:SYMBOL")
            instruments.append(Instrument(instrument_id=token.strip(), symbol=symbol.strip().upper()))
            continue

        _, sep, symbol = entry.partition("|")
        if not sep or not symbol.strip():
            raise ValueError(f"invalid watchlist entry '{entry}', expected SEGMENT|SYMBOL")
        instruments.append(Instrument(instrument_id=entry, symbol=symbol.strip()))

    return instruments


class InstrumentDirectory:
    def __init__(self, instruments: Iterable[Instrument]) -> None:
        self._instruments: list[Instrument] = []
        self._by_id: dict[str, Instrument] = {}
        self._by_symbol: dict[str, Instrument] = {}

        for instrument in instruments:
            if instrument.instrument_id in self._by_id:
                raise ValueError(f"duplicate instrument id '{instrument.instrument_id}'")
            if instrument.symbol in self._by_symbol:
                raise ValueError(f"duplicate symbol '{instrument.symbol}'")
            self._instruments.append(instrument)
            self._by_id[instrument.instrument_id] = instrument
            self._by_symbol[instrument.symbol] = instrument

    def resolve(self, instrument_id: str) -> str | None:
        instrument = self._by_id.get(instrument_id)
        if instrument is None:
            return None
        return instrument.symbol

    def instrument_for(self, symbol: str) -> Instrument | None:
        return self._by_symbol.get(symbol)

    def ids(self) -> list[str]:
        return [instrument.instrument_id for instrument in self._instruments]

    def __iter__(self):
        return iter(self._instruments)

    def __len__(self) -> int:
        return len(self._instruments)
