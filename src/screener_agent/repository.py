from __future__ import annotations

import re
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx

from .models import AlertRecord

DEFAULT_TABLE = "nse_screener_alerts"
_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class AlertStore(Protocol):
    def insert(self, record: AlertRecord) -> None: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class AlertRow:
    id: int
    timestamp: str
    symbol: str
    price: float
    criteria_hit: str
    user_id: str


def record_to_row(record: AlertRecord, user_id: str) -> dict:
    return {
        "timestamp": record.fired_at_iso,
        "symbol": record.symbol,
        "price": record.price,
        "criteria_hit": record.criteria,
        "user_id": user_id,
    }


def _validate_table_name(table: str) -> str:
    if not _TABLE_NAME_RE.match(table):
        raise ValueError(f"invalid table name '{table}'")
    return table


class SqliteAlertRepository:
    def __init__(
        self,
        db_path: str = "logs/alerts.sqlite3",
        *,
        table: str = DEFAULT_TABLE,
        user_id: str = "server",
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._table = _validate_table_name(table)
        self._user_id = user_id
        self._bootstrap()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _bootstrap(self) -> None:
        with self._connect() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self._table} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    price REAL NOT NULL,
                    criteria_hit TEXT NOT NULL,
                    user_id TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"""
                CREATE INDEX IF NOT EXISTS idx_{self._table}_symbol_ts
                ON {self._table} (symbol, timestamp)
                """
            )

    def insert(self, record: AlertRecord) -> None:
        row = record_to_row(record, self._user_id)
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO {self._table} (timestamp, symbol, price, criteria_hit, user_id)
                VALUES (:timestamp, :symbol, :price, :criteria_hit, :user_id)
                """,
                row,
            )

    def close(self) -> None:
        # Connections are opened per call; nothing is held between inserts.
        return None

    def list_alerts(self, *, limit: int = 50, symbol: str | None = None) -> list[AlertRow]:
        query = f"SELECT * FROM {self._table}"
        params: list = []
        if symbol is not None:
            query += " WHERE symbol = ?"
            params.append(symbol)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()

        return [
            AlertRow(
                id=row["id"],
                timestamp=row["timestamp"],
                symbol=row["symbol"],
                price=row["price"],
                criteria_hit=row["criteria_hit"],
                user_id=row["user_id"],
            )
            for row in rows
        ]


class SupabaseAlertRepository:
    """Appends alert rows to a Supabase table through its PostgREST endpoint."""

    def __init__(
        self,
        *,
        base_url: str,
        service_key: str,
        table: str = DEFAULT_TABLE,
        user_id: str = "server",
        timeout_seconds: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}/rest/v1/{_validate_table_name(table)}"
        self._user_id = user_id
        self._client = httpx.Client(
            timeout=timeout_seconds,
            transport=transport,
            headers={
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
                "Prefer": "return=minimal",
            },
        )

    def insert(self, record: AlertRecord) -> None:
        response = self._client.post(self._url, json=[record_to_row(record, self._user_id)])
        if not response.is_success:
            raise RuntimeError(f"supabase insert failed: HTTP {response.status_code} {response.text}")

    def close(self) -> None:
        self._client.close()
