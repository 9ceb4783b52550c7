"""SQLite-backed store for local development and tests."""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from dynashard.errors import ConditionalCheckFailed, StorageBackendError, TableNotFoundError
from dynashard.store import (
    ItemUpdate,
    RangeKeyInfo,
    TableInfo,
    normalize_number,
    range_condition,
    range_matches,
)

_SET_MARKER = "$set"


def _encode(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return {_SET_MARKER: sorted(value, key=lambda v: (type(v).__name__, str(v)))}
    if isinstance(value, Decimal):
        return normalize_number(value)
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _decode_hook(obj: dict[str, Any]) -> Any:
    if len(obj) == 1 and _SET_MARKER in obj:
        return set(obj[_SET_MARKER])
    return obj


def _dumps(item: dict[str, Any]) -> str:
    return json.dumps(_encode(item), sort_keys=True)


def _loads(raw: str) -> dict[str, Any]:
    return json.loads(raw, object_hook=_decode_hook)


class SqliteStore:
    """Store implementation over a single sqlite3 database.

    Every table shares one physical ``ds_items`` table keyed by
    ``(table_name, hash_value, range_value)``. Mutations run under one lock and one
    transaction each, so set deltas and conditional deletes are atomic with respect to
    every other caller of the same handle.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._lock = threading.RLock()
        self._tables: dict[str, TableInfo] = {}
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS ds_tables (
                name TEXT PRIMARY KEY,
                hash_key TEXT NOT NULL,
                range_key_name TEXT,
                range_key_type TEXT,
                read_capacity INTEGER NOT NULL,
                write_capacity INTEGER NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS ds_items (
                table_name TEXT NOT NULL,
                hash_value TEXT NOT NULL,
                range_value TEXT NOT NULL DEFAULT '',
                item_json TEXT NOT NULL,
                PRIMARY KEY (table_name, hash_value, range_value)
            );
        """)
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    def storage_info(self) -> dict[str, Any]:
        return {"backend": "sqlite", "db_path": self.db_path}

    # --- Tables ---

    def get_table(self, table_name: str) -> TableInfo:
        cached = self._tables.get(table_name)
        if cached is not None:
            return cached
        with self._lock:
            row = self._conn.execute(
                "SELECT hash_key, range_key_name, range_key_type FROM ds_tables WHERE name = ?",
                (table_name,),
            ).fetchone()
        if row is None:
            raise TableNotFoundError(table_name)
        range_key = RangeKeyInfo(row[1], row[2]) if row[1] else None
        info = TableInfo(name=table_name, hash_key=row[0], range_key=range_key)
        self._tables[table_name] = info
        return info

    def list_tables(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute("SELECT name FROM ds_tables ORDER BY name").fetchall()
        return [r[0] for r in rows]

    def create_table(
        self,
        table_name: str,
        key: str = "id",
        *,
        range_key: RangeKeyInfo | None = None,
        read_capacity: int = 100,
        write_capacity: int = 20,
    ) -> TableInfo:
        now = datetime.now(timezone.utc).isoformat()
        with self._lock, self._conn:
            try:
                self._conn.execute(
                    "INSERT INTO ds_tables "
                    "(name, hash_key, range_key_name, range_key_type, "
                    "read_capacity, write_capacity, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        table_name,
                        key,
                        range_key.name if range_key else None,
                        range_key.type if range_key else None,
                        read_capacity,
                        write_capacity,
                        now,
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise StorageBackendError(
                    "create_table", f"Table '{table_name}' already exists"
                ) from e
        info = TableInfo(name=table_name, hash_key=key, range_key=range_key)
        self._tables[table_name] = info
        return info

    def delete_table(self, table_name: str) -> None:
        self.get_table(table_name)
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM ds_items WHERE table_name = ?", (table_name,))
            self._conn.execute("DELETE FROM ds_tables WHERE name = ?", (table_name,))
        self._tables.pop(table_name, None)

    # --- Key helpers ---

    def _range_token(self, info: TableInfo, range_value: Any) -> str:
        if info.range_key is None:
            return ""
        if range_value is None:
            raise ValueError(
                f"Table '{info.name}' requires a value for range key '{info.range_key.name}'"
            )
        if info.range_key.type == "number":
            return json.dumps(normalize_number(range_value))
        return str(range_value)

    def _split_key(self, key: Any) -> tuple[Any, Any]:
        if isinstance(key, tuple):
            return key[0], key[1]
        return key, None

    def _fetch(self, info: TableInfo, hash_value: Any, range_value: Any) -> dict[str, Any] | None:
        row = self._conn.execute(
            "SELECT item_json FROM ds_items "
            "WHERE table_name = ? AND hash_value = ? AND range_value = ?",
            (info.name, str(hash_value), self._range_token(info, range_value)),
        ).fetchone()
        return _loads(row[0]) if row else None

    def _store(self, info: TableInfo, item: dict[str, Any]) -> None:
        hash_value = item.get(info.hash_key)
        if hash_value is None:
            raise ValueError(f"Item for '{info.name}' is missing hash key '{info.hash_key}'")
        range_value = item.get(info.range_key.name) if info.range_key else None
        self._conn.execute(
            "INSERT OR REPLACE INTO ds_items "
            "(table_name, hash_value, range_value, item_json) VALUES (?, ?, ?, ?)",
            (info.name, str(hash_value), self._range_token(info, range_value), _dumps(item)),
        )

    def _remove(self, info: TableInfo, hash_value: Any, range_value: Any) -> None:
        self._conn.execute(
            "DELETE FROM ds_items WHERE table_name = ? AND hash_value = ? AND range_value = ?",
            (info.name, str(hash_value), self._range_token(info, range_value)),
        )

    # --- Items ---

    def get_item(
        self,
        table_name: str,
        key: Any,
        *,
        range_key: Any = None,
        consistent_read: bool = False,
    ) -> dict[str, Any] | None:
        info = self.get_table(table_name)
        with self._lock:
            return self._fetch(info, key, range_key)

    def batch_get_item(
        self,
        requests: dict[str, list[Any]],
        *,
        consistent_read: bool = False,
    ) -> dict[str, list[dict[str, Any]]]:
        results: dict[str, list[dict[str, Any]]] = {}
        with self._lock:
            for table_name, keys in requests.items():
                info = self.get_table(table_name)
                found: list[dict[str, Any]] = []
                for key in keys:
                    hash_value, range_value = self._split_key(key)
                    item = self._fetch(info, hash_value, range_value)
                    if item is not None:
                        found.append(item)
                results[table_name] = found
        return results

    def put_item(
        self,
        table_name: str,
        item: dict[str, Any],
        *,
        unless_exists: str | None = None,
    ) -> None:
        info = self.get_table(table_name)
        with self._lock, self._conn:
            if unless_exists is not None:
                range_value = item.get(info.range_key.name) if info.range_key else None
                existing = self._fetch(info, item.get(info.hash_key), range_value)
                if existing is not None and unless_exists in existing:
                    raise ConditionalCheckFailed(
                        table_name,
                        item.get(info.hash_key),
                        f"attribute_not_exists({unless_exists})",
                    )
            self._store(info, item)

    def delete_item(
        self,
        table_name: str,
        key: Any,
        *,
        range_key: Any = None,
        unless_exists: str | None = None,
    ) -> None:
        info = self.get_table(table_name)
        with self._lock, self._conn:
            if unless_exists is not None:
                existing = self._fetch(info, key, range_key)
                if existing is not None and unless_exists in existing:
                    raise ConditionalCheckFailed(
                        table_name, key, f"attribute_not_exists({unless_exists})"
                    )
            self._remove(info, key, range_key)

    def batch_delete_item(self, requests: dict[str, list[Any]]) -> None:
        with self._lock, self._conn:
            for table_name, keys in requests.items():
                info = self.get_table(table_name)
                for key in keys:
                    hash_value, range_value = self._split_key(key)
                    self._remove(info, hash_value, range_value)

    def update_item(
        self,
        table_name: str,
        key: Any,
        update: ItemUpdate,
        *,
        range_key: Any = None,
    ) -> dict[str, Any] | None:
        info = self.get_table(table_name)
        with self._lock, self._conn:
            item = self._fetch(info, key, range_key)
            if item is None:
                item = {info.hash_key: key}
                if info.range_key is not None:
                    item[info.range_key.name] = range_key
            update.apply(item)
            self._store(info, item)
            return _loads(_dumps(item))

    # --- Reads over many rows ---

    def _rows(self, table_name: str, hash_value: Any = None) -> list[dict[str, Any]]:
        if hash_value is None:
            rows = self._conn.execute(
                "SELECT item_json FROM ds_items WHERE table_name = ? "
                "ORDER BY hash_value, range_value",
                (table_name,),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT item_json FROM ds_items WHERE table_name = ? AND hash_value = ?",
                (table_name, str(hash_value)),
            ).fetchall()
        return [_loads(r[0]) for r in rows]

    def scan(
        self,
        table_name: str,
        conditions: dict[str, Any] | None = None,
        *,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self.get_table(table_name)
        with self._lock:
            rows = self._rows(table_name)
        matched = [
            row
            for row in rows
            if all(row.get(attr) == value for attr, value in (conditions or {}).items())
        ]
        return matched[:limit] if limit is not None else matched

    def query(
        self,
        table_name: str,
        hash_value: Any,
        *,
        limit: int | None = None,
        scan_index_forward: bool = True,
        **range_options: Any,
    ) -> list[dict[str, Any]]:
        condition = range_condition(range_options)
        info = self.get_table(table_name)
        with self._lock:
            rows = self._rows(table_name, hash_value)

        if info.range_key is None:
            return rows[:limit] if limit is not None else rows

        range_name, range_type = info.range_key.name, info.range_key.type
        rows = [r for r in rows if range_matches(r.get(range_name), condition, range_type)]

        def sort_key(row: dict[str, Any]) -> Any:
            value = row.get(range_name)
            return normalize_number(value) if range_type == "number" else str(value)

        rows.sort(key=sort_key, reverse=not scan_index_forward)
        return rows[:limit] if limit is not None else rows
