import asyncio

import pytest

from src.screener_agent.config import load_config
from src.screener_agent.connectors import KiteConnector, UpstoxConnector
from src.screener_agent.main import build_runtime, run
from src.screener_agent.repository import SqliteAlertRepository


def test_build_runtime_wires_upstox_and_sqlite(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("FEED_PROVIDER", "upstox")
    monkeypatch.setenv("UPSTOX_ACCESS_TOKEN", "token")
    monkeypatch.setenv("WATCHLIST", "NSE_EQ|RELIANCE,NSE_EQ|TCS")
    monkeypatch.setenv("ALERT_STORE", "sqlite")
    monkeypatch.setenv("ALERT_DB_PATH", str(tmp_path / "alerts.sqlite3"))
    monkeypatch.setenv("FEED_RECONNECT_DELAY_SECONDS", "3")

    runtime = build_runtime(load_config())

    assert isinstance(runtime.supervisor.connector, UpstoxConnector)
    assert runtime.supervisor.reconnect_delay_seconds == 3.0
    assert runtime.directory.ids() == ["NSE_EQ|RELIANCE", "NSE_EQ|TCS"]
    assert runtime.engine.store is runtime.store
    assert isinstance(runtime.sink._store, SqliteAlertRepository)  # noqa: SLF001


def test_build_runtime_selects_kite_connector(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("FEED_PROVIDER", "kite")
    monkeypatch.setenv("KITE_API_KEY", "key")
    monkeypatch.setenv("KITE_ACCESS_TOKEN", "access")
    monkeypatch.setenv("WATCHLIST", "738561:RELIANCE")
    monkeypatch.setenv("ALERT_STORE", "sqlite")
    monkeypatch.setenv("ALERT_DB_PATH", str(tmp_path / "alerts.sqlite3"))

    runtime = build_runtime(load_config())

    connector = runtime.supervisor.connector
    assert isinstance(connector, KiteConnector)
    assert connector.api_key == "key"
    assert runtime.engine.directory.resolve("738561") == "RELIANCE"


class ClosingStore:
    def __init__(self) -> None:
        self.closed = False

    def insert(self, record) -> None:
        pass

    def close(self) -> None:
        self.closed = True


def test_run_closes_alert_store_when_feed_stops(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FEED_PROVIDER", "upstox")
    monkeypatch.setenv("UPSTOX_ACCESS_TOKEN", "token")
    monkeypatch.setenv("WATCHLIST", "NSE_EQ|RELIANCE")
    alert_store = ClosingStore()
    runtime = build_runtime(load_config(), alert_store=alert_store)

    async def _feed_stops() -> None:
        raise RuntimeError("feed stopped")

    monkeypatch.setattr(runtime.supervisor, "run", _feed_stops)

    with pytest.raises(RuntimeError, match="feed stopped"):
        asyncio.run(run(runtime))

    assert runtime.alert_store is alert_store
    assert alert_store.closed is True
