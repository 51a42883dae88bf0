from __future__ import annotations

import logging
import time
from typing import Protocol

from .evaluator import evaluate
from .instruments import InstrumentDirectory
from .models import AlertRecord, AlertRuleConfig, FeedTick
from .state import SymbolStateStore

logger = logging.getLogger(__name__)


class AlertDispatcher(Protocol):
    def dispatch(self, record: AlertRecord) -> None: ...


class AlertEngine:
    def __init__(
        self,
        *,
        directory: InstrumentDirectory,
        store: SymbolStateStore,
        rules: AlertRuleConfig,
        sink: AlertDispatcher,
    ) -> None:
        self.directory = directory
        self.store = store
        self.rules = rules
        self._sink = sink

    def on_tick(self, tick: FeedTick, now: float | None = None) -> AlertRecord | None:
        symbol = self.directory.resolve(tick.instrument_id)
        if symbol is None:
            return None

        state, is_new = self.store.get_or_init(symbol, tick)
        if is_new:
            logger.info(
                "Baseline %s price=%s ref_high=%s ref_low=%s avg_volume=%s",
                symbol,
                state.current_price,
                state.reference_high,
                state.reference_low,
                state.average_volume,
            )
            return None

        now = now if now is not None else time.time()
        _, alert = evaluate(state, tick, self.rules, now)
        if alert is None:
            return None

        logger.info("ALERT: %s %s price=%s", alert.symbol, alert.criteria, alert.price)
        self._sink.dispatch(alert)
        return alert
