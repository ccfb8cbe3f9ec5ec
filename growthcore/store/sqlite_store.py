"""
SqliteStore: SQLite + WAL mode reference implementation of the transactional store.
"""

import sqlite3
import json
import re
from pathlib import Path
from typing import Optional, Dict, Any, List, Iterable, Callable, TypeVar
from contextlib import contextmanager

from growthcore.shared.config import settings
from growthcore.shared.exceptions import ConcurrencyConflictError, StoreError
from growthcore.shared.logging import get_logger
from growthcore.store.base import INDEXES, TABLES, Record, StoreSession, TransactionalStore

logger = get_logger(__name__)

T = TypeVar("T")

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_table(table: str):
    if table not in TABLES:
        raise StoreError(f"Unknown table: {table}")


def _json_path(field: str) -> str:
    if not _FIELD_RE.match(field):
        raise StoreError(f"Invalid index field: {field}")
    return f"$.{field}"


def _is_lock_error(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


class _ConnectionSession(StoreSession):
    """Table access bound to one open connection."""

    def __init__(self, conn: sqlite3.Connection, tables: Optional[Iterable[str]] = None):
        self._conn = conn
        self._tables = set(tables) if tables is not None else None

    def _scope(self, table: str):
        _check_table(table)
        if self._tables is not None and table not in self._tables:
            raise StoreError(f"Table {table} is not part of this transaction")

    def get(self, table: str, record_id: str) -> Optional[Record]:
        self._scope(table)
        row = self._conn.execute(
            f"SELECT data FROM {table} WHERE id = ?", (record_id,)
        ).fetchone()
        return json.loads(row["data"]) if row else None

    def put(self, table: str, record: Record) -> None:
        self._scope(table)
        if not record.get("id"):
            raise StoreError(f"Record for {table} has no id")
        self._conn.execute(
            f"""INSERT INTO {table} (id, data) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET data = excluded.data""",
            (record["id"], json.dumps(record, ensure_ascii=False))
        )

    def delete(self, table: str, record_id: str) -> None:
        self._scope(table)
        self._conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))

    def query_by_index(self, table: str, field: str, value: Any) -> List[Record]:
        self._scope(table)
        rows = self._conn.execute(
            f"SELECT data FROM {table} WHERE json_extract(data, ?) = ? ORDER BY rowid",
            (_json_path(field), value)
        ).fetchall()
        return [json.loads(row["data"]) for row in rows]

    def all(self, table: str) -> List[Record]:
        self._scope(table)
        rows = self._conn.execute(f"SELECT data FROM {table} ORDER BY rowid").fetchall()
        return [json.loads(row["data"]) for row in rows]


class SqliteStore(TransactionalStore):
    """Document-per-row store with WAL mode and serialized write transactions."""

    def __init__(self, db_path: Optional[Path] = None, timeout: Optional[float] = None):
        self.db_path = Path(db_path or settings.store.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout if timeout is not None else settings.store.busy_timeout_seconds

        self._init_database()

    def _init_database(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")

            for table in TABLES:
                conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {table} (id TEXT PRIMARY KEY, data TEXT NOT NULL)"
                )
                for field in INDEXES.get(table, ()):
                    conn.execute(
                        f"CREATE INDEX IF NOT EXISTS idx_{table}_{field} "
                        f"ON {table} (json_extract(data, '$.{field}'))"
                    )

    @contextmanager
    def _get_connection(self):
        """Get an autocommit connection; callers manage BEGIN/COMMIT explicitly."""
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _begin(self, immediate: bool = False):
        with self._get_connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            except sqlite3.OperationalError as e:
                if _is_lock_error(e):
                    logger.warning(f"Store transaction conflict on {self.db_path.name}: {e}")
                    raise ConcurrencyConflictError(f"Could not start transaction: {e}") from e
                raise StoreError(str(e)) from e
            try:
                yield conn
                conn.execute("COMMIT")
            except sqlite3.OperationalError as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                if _is_lock_error(e):
                    logger.warning(f"Store transaction conflict on {self.db_path.name}: {e}")
                    raise ConcurrencyConflictError(str(e)) from e
                raise StoreError(str(e)) from e
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    def transaction(self, tables: Iterable[str], fn: Callable[[StoreSession], T]) -> T:
        tables = list(tables)
        for table in tables:
            _check_table(table)
        with self._begin(immediate=True) as conn:
            return fn(_ConnectionSession(conn, tables))

    # Single-statement access, each in its own short transaction

    def get(self, table: str, record_id: str) -> Optional[Record]:
        with self._begin() as conn:
            return _ConnectionSession(conn).get(table, record_id)

    def put(self, table: str, record: Record) -> None:
        with self._begin(immediate=True) as conn:
            _ConnectionSession(conn).put(table, record)

    def delete(self, table: str, record_id: str) -> None:
        with self._begin(immediate=True) as conn:
            _ConnectionSession(conn).delete(table, record_id)

    def delete_many(self, table: str, record_ids: Iterable[str]) -> int:
        with self._begin(immediate=True) as conn:
            return _ConnectionSession(conn).delete_many(table, record_ids)

    def query_by_index(self, table: str, field: str, value: Any) -> List[Record]:
        with self._begin() as conn:
            return _ConnectionSession(conn).query_by_index(table, field, value)

    def all(self, table: str) -> List[Record]:
        with self._begin() as conn:
            return _ConnectionSession(conn).all(table)
