from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

import psycopg2

"""Durable key-value property store.

The batch orchestrator persists its BatchState here and the scheduler its
recurring trigger. Two backends:

- JsonFilePropertyStore: one JSON object in a file, replaced atomically on each write
- PostgresPropertyStore: `hrsync_properties` table, upsert per key

Any failure to read or write is a FatalInfrastructureError: the current chunk is
abandoned and the next scheduled invocation resumes from the last persisted state.
"""

__all__ = [
    "FatalInfrastructureError",
    "PropertyStore",
    "JsonFilePropertyStore",
    "PostgresPropertyStore",
]


class FatalInfrastructureError(Exception):
    """Durable state or the exclusive lock is unavailable."""


class PropertyStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class JsonFilePropertyStore:
    """Property store kept in a single JSON file.

    Every call re-reads the file so that separate invocations (cron ticks,
    a `batch cancel` from another shell) always observe each other's writes.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data: Any = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            raise FatalInfrastructureError(f"cannot read property store {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise FatalInfrastructureError(f"property store {self.path} is not a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _dump(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except OSError as e:
            raise FatalInfrastructureError(f"cannot write property store {self.path}: {e}") from e

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._dump(data)


class PostgresPropertyStore:
    """Property store in PostgreSQL (shared by every host running the scheduler).

    The connection runs in autocommit mode: each set/delete is durable on return.
    """

    TABLE = "hrsync_properties"

    def __init__(self, conn: Any) -> None:
        self._conn = conn
        self._ensure_table()

    @classmethod
    def connect(cls, dsn: str) -> PostgresPropertyStore:
        try:
            conn = psycopg2.connect(dsn)
            conn.autocommit = True
        except psycopg2.Error as e:
            raise FatalInfrastructureError(f"cannot connect to property store: {e}") from e
        return cls(conn)

    @property
    def connection(self) -> Any:
        return self._conn

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> Any:
        try:
            cur = self._conn.cursor()
            cur.execute(sql, params)
            return cur
        except psycopg2.Error as e:
            raise FatalInfrastructureError(f"property store query failed: {e}") from e

    def _ensure_table(self) -> None:
        self._execute(
            f"CREATE TABLE IF NOT EXISTS {self.TABLE} ("
            "key TEXT PRIMARY KEY, value TEXT NOT NULL, updated_at TIMESTAMPTZ NOT NULL DEFAULT now())"
        )

    def get(self, key: str) -> str | None:
        cur = self._execute(f"SELECT value FROM {self.TABLE} WHERE key = %s", (key,))
        row = cur.fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self._execute(
            f"INSERT INTO {self.TABLE} (key, value) VALUES (%s, %s) "
            "ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = now()",
            (key, value),
        )

    def delete(self, key: str) -> None:
        self._execute(f"DELETE FROM {self.TABLE} WHERE key = %s", (key,))

    def close(self) -> None:
        try:
            self._conn.close()
        except psycopg2.Error:  # pragma: no cover
            pass
