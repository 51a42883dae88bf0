import json
import sqlite3

import httpx
import pytest

from src.screener_agent.models import AlertRecord
from src.screener_agent.repository import SqliteAlertRepository, SupabaseAlertRepository

RECORD = AlertRecord(
    symbol="RELIANCE",
    price=2850.5,
    criteria="High Cross + RelVol > 1.5 + Change% > 2",
    fired_at=1_700_000_000.0,
)


def test_sqlite_insert_uses_alert_columns(tmp_path) -> None:
    db_path = tmp_path / "alerts.sqlite3"
    repo = SqliteAlertRepository(db_path=str(db_path))

    repo.insert(RECORD)

    with sqlite3.connect(str(db_path)) as conn:
        columns = [row[1] for row in conn.execute("PRAGMA table_info(nse_screener_alerts)")]
    assert columns == ["id", "timestamp", "symbol", "price", "criteria_hit", "user_id"]

    rows = repo.list_alerts(limit=10)
    assert len(rows) == 1
    assert rows[0].symbol == "RELIANCE"
    assert rows[0].price == 2850.5
    assert rows[0].criteria_hit == RECORD.criteria
    assert rows[0].user_id == "server"
    assert rows[0].timestamp == "2023-11-14T22:13:20+00:00"


def test_sqlite_list_filters_by_symbol_newest_first(tmp_path) -> None:
    repo = SqliteAlertRepository(db_path=str(tmp_path / "alerts.sqlite3"), user_id="screener")
    repo.insert(RECORD)
    repo.insert(AlertRecord(symbol="TCS", price=3900.0, criteria="c", fired_at=1_700_000_100.0))
    repo.insert(AlertRecord(symbol="RELIANCE", price=2860.0, criteria="c", fired_at=1_700_000_200.0))

    rows = repo.list_alerts(limit=10, symbol="RELIANCE")

    assert [row.price for row in rows] == [2860.0, 2850.5]
    assert {row.user_id for row in rows} == {"screener"}


def test_sqlite_rejects_unsafe_table_name(tmp_path) -> None:
    with pytest.raises(ValueError, match="invalid table name"):
        SqliteAlertRepository(db_path=str(tmp_path / "alerts.sqlite3"), table="alerts; DROP TABLE x")


def test_supabase_insert_posts_row() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["apikey"] = request.headers["apikey"]
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(201)

    repo = SupabaseAlertRepository(
        base_url="https://project.supabase.co/",
        service_key="service-key",
        transport=httpx.MockTransport(handler),
    )

    repo.insert(RECORD)

    assert seen["url"] == "https://project.supabase.co/rest/v1/nse_screener_alerts"
    assert seen["apikey"] == "service-key"
    assert seen["auth"] == "Bearer service-key"
    assert seen["body"] == [
        {
            "timestamp": "2023-11-14T22:13:20+00:00",
            "symbol": "RELIANCE",
            "price": 2850.5,
            "criteria_hit": RECORD.criteria,
            "user_id": "server",
        }
    ]


def test_supabase_insert_raises_on_error_status() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
    repo = SupabaseAlertRepository(base_url="https://project.supabase.co", service_key="k", transport=transport)

    with pytest.raises(RuntimeError, match="HTTP 500"):
        repo.insert(RECORD)


def test_supabase_close_releases_http_client() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(201))
    repo = SupabaseAlertRepository(base_url="https://project.supabase.co", service_key="k", transport=transport)

    repo.close()

    assert repo._client.is_closed  # noqa: SLF001
