"""
SQLite Record Store
===================

Local implementation of the record API, used when no remote store is
configured and by the test-suite (``":memory:"``).

Unlike a per-thread connection pool, one connection is shared behind a lock:
an in-memory database exists only inside the connection that created it, and
the telemetry pipeline writes at most a few rows per minute.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional

from greentech.domain.exceptions import StoreError
from greentech.infrastructure.store.base import (
    ALERTS_TABLE,
    ANALYTICS_TABLE,
    BOOL_COLUMNS,
    JSON_COLUMNS,
    RecordStore,
    require_columns,
    writable_values,
)
from greentech.utils.time import iso_now

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"


class SQLiteRecordStore(RecordStore):
    """Thread-safe SQLite store for the ``analytics`` and ``alerts`` tables."""

    name = "sqlite"

    def __init__(self, database_path: str = MEMORY_DATABASE) -> None:
        self._database_path = database_path
        self._lock = threading.RLock()
        self._connection: Optional[sqlite3.Connection] = None

        if database_path != MEMORY_DATABASE:
            db_path = Path(database_path)
            if not db_path.parent.exists():
                db_path.parent.mkdir(parents=True, exist_ok=True)
                logger.info("Created database directory: %s", db_path.parent)

        self.create_tables()

    # --- Lifecycle ------------------------------------------------------------
    @property
    def database_path(self) -> str:
        return self._database_path

    def get_db(self) -> sqlite3.Connection:
        if self._connection is None:
            self._connection = self._open_connection()
        return self._connection

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._database_path, check_same_thread=False)
        try:
            connection.row_factory = sqlite3.Row
            self._configure_connection(connection)
            return connection
        except Exception:
            connection.close()
            raise

    def _configure_connection(self, connection: sqlite3.Connection) -> None:
        """WAL + NORMAL synchronous for file databases; nothing to tune in memory."""
        if self._database_path == MEMORY_DATABASE:
            return
        connection.execute("PRAGMA journal_mode=WAL")
        connection.execute("PRAGMA synchronous=NORMAL")
        connection.execute("PRAGMA temp_store=MEMORY")
        connection.commit()

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                conn = self.get_db()
            except sqlite3.Error as exc:
                raise StoreError(f"Cannot open SQLite database {self._database_path}: {exc}") from exc
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                raise StoreError(f"SQLite operation failed: {exc}") from exc

    # --- Schema ----------------------------------------------------------------
    def create_tables(self) -> None:
        """Creates the necessary tables in the database if they do not already exist."""
        with self.connection() as db:
            db.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {ANALYTICS_TABLE} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    plant_health_score INTEGER NOT NULL,
                    irrigation_need_score INTEGER NOT NULL,
                    climate_risk_score INTEGER NOT NULL,
                    recommendations TEXT NOT NULL DEFAULT '[]',
                    snapshot TEXT NOT NULL DEFAULT '{{}}',
                    created_at TEXT NOT NULL
                )
                """
            )
            db.execute(
                f"CREATE INDEX IF NOT EXISTS idx_analytics_user_created ON {ANALYTICS_TABLE}(user_id, created_at)"
            )
            db.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {ALERTS_TABLE} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    severity TEXT NOT NULL DEFAULT 'medium',
                    category TEXT NOT NULL DEFAULT 'sensor',
                    is_read INTEGER NOT NULL DEFAULT 0,
                    is_resolved INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
                """
            )
            db.execute(f"CREATE INDEX IF NOT EXISTS idx_alerts_user_created ON {ALERTS_TABLE}(user_id, created_at)")

    # --- Encoding ----------------------------------------------------------------
    @staticmethod
    def _encode(column: str, value: Any) -> Any:
        if column in JSON_COLUMNS:
            return json.dumps(value if value is not None else ([] if column == "recommendations" else {}))
        if column in BOOL_COLUMNS:
            return 1 if value else 0
        return value

    @staticmethod
    def _decode(row: sqlite3.Row) -> Dict[str, Any]:
        record = dict(row)
        for column in record.keys() & JSON_COLUMNS:
            raw = record[column]
            try:
                record[column] = json.loads(raw) if raw else None
            except (TypeError, ValueError):
                logger.warning("Undecodable JSON in column %s (row id=%s)", column, record.get("id"))
                record[column] = None
        for column in record.keys() & BOOL_COLUMNS:
            record[column] = bool(record[column])
        return record

    @staticmethod
    def _where(filters: Mapping[str, Any]) -> tuple[str, list]:
        if not filters:
            return "", []
        clauses = []
        params: list = []
        for column, value in filters.items():
            if value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = ?")
                params.append(SQLiteRecordStore._encode(column, value))
        return " WHERE " + " AND ".join(clauses), params

    # --- Record API ----------------------------------------------------------------
    def insert(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        cols = writable_values(table, values, operation="insert")
        cols.setdefault("created_at", iso_now())
        names = list(cols)
        placeholders = ", ".join("?" for _ in names)
        params = [self._encode(name, cols[name]) for name in names]

        with self.connection() as db:
            cur = db.execute(
                f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders})",
                params,
            )
            row = db.execute(f"SELECT * FROM {table} WHERE id = ?", (cur.lastrowid,)).fetchone()
        return self._decode(row)

    def select(
        self,
        table: str,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: str = "created_at",
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        filters = dict(filters or {})
        require_columns(table, list(filters) + [order_by], context=f"select:{table}")

        where, params = self._where(filters)
        direction = "DESC" if descending else "ASC"
        query = f"SELECT * FROM {table}{where} ORDER BY {order_by} {direction}, id {direction}"
        if limit is not None:
            query += " LIMIT ?"
            params.append(int(limit))

        with self.connection() as db:
            rows = db.execute(query, params).fetchall()
        return [self._decode(row) for row in rows]

    def update(self, table: str, filters: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        if not filters:
            raise StoreError(f"update:{table} requires at least one filter")
        require_columns(table, list(filters), context=f"update:{table}")
        cols = writable_values(table, values, operation="update")
        if not cols:
            return 0

        set_clause = ", ".join(f"{name} = ?" for name in cols)
        set_params = [self._encode(name, value) for name, value in cols.items()]
        where, where_params = self._where(filters)

        with self.connection() as db:
            cur = db.execute(f"UPDATE {table} SET {set_clause}{where}", [*set_params, *where_params])
            return cur.rowcount
