from __future__ import annotations

import math
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .models import AlertRuleConfig, Instrument
from .instruments import parse_watchlist

DEFAULT_WATCHLIST = ",".join(
    [
        "NSE_EQ|RELIANCE",
        "NSE_EQ|TCS",
        "NSE_EQ|INFY",
        "NSE_EQ|HDFCBANK",
        "NSE_EQ|ICICIBANK",
        "NSE_EQ|SBIN",
    ]
)
FEED_PROVIDERS = {"upstox", "kite"}
ALERT_STORES = {"sqlite", "supabase"}


@dataclass(frozen=True)
class Config:
    feed_provider: str
    upstox_access_token: str | None
    upstox_authorize_url: str
    kite_api_key: str | None
    kite_access_token: str | None
    kite_ws_url: str
    watchlist: tuple[Instrument, ...]
    rules: AlertRuleConfig
    reconnect_delay_seconds: float
    ws_ping_interval_seconds: int
    alert_store: str
    alert_db_path: str
    alert_table: str
    alert_user_id: str
    supabase_url: str | None
    supabase_service_key: str | None
    port: int



def _bool_from_env(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _float_from_env(name: str, default: str) -> float:
    raw = os.getenv(name, default).strip()
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'") from None
    if not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number, got '{raw}'")
    return value


def _int_from_env(name: str, default: str) -> int:
    raw = os.getenv(name, default).strip()
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from None


def _optional(name: str) -> str | None:
    return os.getenv(name, "").strip() or None



def load_config() -> Config:
    load_dotenv()

    feed_provider = os.getenv("FEED_PROVIDER", "upstox").strip().lower()
    if feed_provider not in FEED_PROVIDERS:
        raise ValueError(f"FEED_PROVIDER must be one of {sorted(FEED_PROVIDERS)}, got '{feed_provider}'")

    upstox_access_token = _optional("UPSTOX_ACCESS_TOKEN")
    kite_api_key = _optional("KITE_API_KEY")
    kite_access_token = _optional("KITE_ACCESS_TOKEN")

    if feed_provider == "upstox" and not upstox_access_token:
        raise ValueError("UPSTOX_ACCESS_TOKEN is required when FEED_PROVIDER is 'upstox'")

    if feed_provider == "kite":
        if not kite_api_key:
            raise ValueError("KITE_API_KEY is required when FEED_PROVIDER is 'kite'")
        if not kite_access_token:
            raise ValueError("KITE_ACCESS_TOKEN is required when FEED_PROVIDER is 'kite'")

    watchlist = parse_watchlist(os.getenv("WATCHLIST", DEFAULT_WATCHLIST), feed_provider)
    if not watchlist:
        raise ValueError("WATCHLIST must name at least one instrument")

    rules = AlertRuleConfig(
        relative_volume_threshold=_float_from_env("RELVOL_THRESHOLD", "1.5"),
        change_percent_threshold=_float_from_env("CHANGE_PCT_THRESHOLD", "2"),
        cooldown_seconds=_float_from_env("ALERT_COOLDOWN_SECONDS", "15"),
        high_cross_enabled=_bool_from_env(os.getenv("HIGH_CROSS_ENABLED"), True),
    )
    if rules.cooldown_seconds < 0:
        raise ValueError("ALERT_COOLDOWN_SECONDS must not be negative")

    reconnect_delay_seconds = _float_from_env("FEED_RECONNECT_DELAY_SECONDS", "5")
    if reconnect_delay_seconds <= 0:
        raise ValueError("FEED_RECONNECT_DELAY_SECONDS must be positive")

    alert_store = os.getenv("ALERT_STORE", "sqlite").strip().lower()
    if alert_store not in ALERT_STORES:
        raise ValueError(f"ALERT_STORE must be one of {sorted(ALERT_STORES)}, got '{alert_store}'")

    supabase_url = _optional("SUPABASE_URL")
    supabase_service_key = _optional("SUPABASE_SERVICE_KEY")
    if alert_store == "supabase":
        if not supabase_url:
            raise ValueError("SUPABASE_URL is required when ALERT_STORE is 'supabase'")
        if not supabase_service_key:
            raise ValueError("SUPABASE_SERVICE_KEY is required when ALERT_STORE is 'supabase'")

    return Config(
        feed_provider=feed_provider,
        upstox_access_token=upstox_access_token,
        upstox_authorize_url=os.getenv(
            "UPSTOX_AUTHORIZE_URL",
            "https://api.upstox.com/v2/market-data/feed/authorize",
        ).strip(),
        kite_api_key=kite_api_key,
        kite_access_token=kite_access_token,
        kite_ws_url=os.getenv("KITE_WS_URL", "wss://ws.kite.trade").strip(),
        watchlist=tuple(watchlist),
        rules=rules,
        reconnect_delay_seconds=reconnect_delay_seconds,
        ws_ping_interval_seconds=_int_from_env("WS_PING_INTERVAL_SECONDS", "15"),
        alert_store=alert_store,
        alert_db_path=os.getenv("ALERT_DB_PATH", "logs/alerts.sqlite3").strip(),
        alert_table=os.getenv("ALERT_TABLE", "nse_screener_alerts").strip(),
        alert_user_id=os.getenv("ALERT_USER_ID", "server").strip(),
        supabase_url=supabase_url,
        supabase_service_key=supabase_service_key,
        port=_int_from_env("PORT", "3000"),
    )
