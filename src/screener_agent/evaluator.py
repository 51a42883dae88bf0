from __future__ import annotations

from .models import AlertRecord, AlertRuleConfig, FeedTick
from .state import SymbolState


def describe_criteria(config: AlertRuleConfig) -> str:
    return (
        f"High Cross + RelVol > {config.relative_volume_threshold:g}"
        f" + Change% > {config.change_percent_threshold:g}"
    )


def crossed_above(previous: float, current: float, level: float) -> bool:
    return previous <= level and current > level


def evaluate(
    state: SymbolState,
    tick: FeedTick,
    config: AlertRuleConfig,
    now: float,
) -> tuple[SymbolState, AlertRecord | None]:
    """Apply ``tick`` to ``state`` and decide whether the alert rule fires.

    The state is updated in place and returned. All gates are strict and
    read the same post-update values; the cooldown is checked last so a
    suppressed firing never moves ``last_alert_at``.
    """
    state.previous_price = state.current_price
    state.current_price = tick.price
    state.volume = tick.volume
    state.refresh_derived()

    if not config.high_cross_enabled:
        return state, None

    if not crossed_above(state.previous_price, state.current_price, state.reference_high):
        return state, None

    if not state.relative_volume > config.relative_volume_threshold:
        return state, None

    if not state.change_percent > config.change_percent_threshold:
        return state, None

    if not now - state.last_alert_at >= config.cooldown_seconds:
        return state, None

    state.last_alert_at = now
    record = AlertRecord(
        symbol=state.symbol,
        price=state.current_price,
        criteria=describe_criteria(config),
        fired_at=now,
    )
    return state, record
