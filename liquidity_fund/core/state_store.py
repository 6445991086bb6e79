from __future__ import annotations

import json
import sqlite3
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from liquidity_fund.core.constants import STATE_NAMESPACE
from liquidity_fund.core.events import EventBase

_UPSERT_KV = """
INSERT INTO kv(namespace, key, value_json, updated_at) VALUES (?, ?, ?, ?)
ON CONFLICT(namespace, key) DO UPDATE SET
  value_json = excluded.value_json, updated_at = excluded.updated_at
"""
_INSERT_EVENT = (
    "INSERT INTO events(operation, type, payload_json, created_at) VALUES (?, ?, ?, ?)"
)


def _utc_epoch_s() -> int:
    return int(time.time())


def _json_dumps(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False, default=str)


@dataclass(frozen=True)
class EventRow:
    id: int
    operation: str | None
    type: str
    payload: dict[str, Any]
    created_at: int


class StateStore:
    """SQLite-backed durable copy of committed component state and audit events.

    ``commit`` writes every state blob and every event of one operation inside a
    single SQLite transaction.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # autocommit
        )
        self._conn.row_factory = sqlite3.Row
        with self._lock:
            self._init_schema()

    @property
    def path(self) -> Path:
        return self._db_path

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _init_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute("PRAGMA journal_mode=WAL;")
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
              namespace TEXT NOT NULL,
              key TEXT NOT NULL,
              value_json TEXT NOT NULL,
              updated_at INTEGER NOT NULL,
              PRIMARY KEY(namespace, key)
            );
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              operation TEXT,
              type TEXT NOT NULL,
              payload_json TEXT NOT NULL,
              created_at INTEGER NOT NULL
            );
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_events_type ON events(type);")

    def commit(
        self,
        *,
        states: dict[str, dict[str, Any]],
        events: list[EventBase],
    ) -> None:
        now = _utc_epoch_s()
        with self._lock:
            cur = self._conn.cursor()
            cur.execute("BEGIN")
            try:
                for key, value in states.items():
                    cur.execute(
                        _UPSERT_KV,
                        (STATE_NAMESPACE, key, _json_dumps(value), now),
                    )
                for event in events:
                    payload = event.model_dump(mode="json")
                    cur.execute(
                        _INSERT_EVENT,
                        (event.operation, payload["type"], _json_dumps(payload), now),
                    )
            except BaseException:
                cur.execute("ROLLBACK")
                raise
            cur.execute("COMMIT")

    def kv_get(self, *, namespace: str, key: str) -> Any | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                "SELECT value_json FROM kv WHERE namespace = ? AND key = ?",
                (namespace, key),
            )
            row = cur.fetchone()
        if not row:
            return None
        return json.loads(row["value_json"])

    def kv_set(self, *, namespace: str, key: str, value: Any) -> None:
        now = _utc_epoch_s()
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                _UPSERT_KV,
                (namespace, key, _json_dumps(value), now),
            )

    def load_state(self, key: str) -> dict[str, Any] | None:
        return self.kv_get(namespace=STATE_NAMESPACE, key=key)

    def state_keys(self) -> list[str]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                "SELECT key FROM kv WHERE namespace = ? ORDER BY key",
                (STATE_NAMESPACE,),
            )
            rows = cur.fetchall()
        return [str(r["key"]) for r in rows]

    def events(self, *, limit: int = 50, type: str | None = None) -> list[EventRow]:
        with self._lock:
            cur = self._conn.cursor()
            if type is None:
                cur.execute(
                    "SELECT * FROM events ORDER BY id DESC LIMIT ?", (int(limit),)
                )
            else:
                cur.execute(
                    "SELECT * FROM events WHERE type = ? ORDER BY id DESC LIMIT ?",
                    (type, int(limit)),
                )
            rows = cur.fetchall()
        return [
            EventRow(
                id=int(r["id"]),
                operation=r["operation"],
                type=str(r["type"]),
                payload=json.loads(r["payload_json"]),
                created_at=int(r["created_at"]),
            )
            for r in reversed(rows)
        ]
