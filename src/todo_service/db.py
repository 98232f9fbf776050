from __future__ import annotations

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generator, Iterator, List, Mapping, Optional, Tuple

from .models import TodoEntity
from .repositories import ListQuery, Repository, check_changes, normalize_sort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Cols:
    table: str = "todos"
    id: str = "id"
    title: str = "title"
    description: str = "description"
    status: str = "status"
    priority: str = "priority"
    due_date: str = "due_date"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


_COLS = _Cols()

_DATETIME_FIELDS = {_COLS.due_date, _COLS.created_at, _COLS.updated_at}


def _to_db(field: str, value: Any) -> Any:
    if field in _DATETIME_FIELDS and value is not None:
        return value.isoformat()
    return value


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteRepository(Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.
    """

    name = "sqlite"

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        # Per-thread connection of the open transaction, if any
        self._local = threading.local()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        shared = getattr(self._local, "conn", None)
        if shared is not None:
            # Commit and close belong to the enclosing transaction
            yield shared
            return
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if getattr(self._local, "conn", None) is not None:
            yield
            return
        conn = self._connect()
        self._local.conn = conn
        try:
            yield
            conn.commit()
        except BaseException:
            conn.rollback()
            logger.debug("Rolled back SQLite transaction on %s", self._db_path)
            raise
        finally:
            self._local.conn = None
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} INTEGER PRIMARY KEY AUTOINCREMENT,
                    {_COLS.title} TEXT NOT NULL,
                    {_COLS.description} TEXT NULL,
                    {_COLS.status} TEXT NOT NULL DEFAULT 'active'
                        CHECK ({_COLS.status} IN ('active', 'completed', 'archived')),
                    {_COLS.priority} INTEGER NULL,
                    {_COLS.due_date} TEXT NULL,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.updated_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_status_priority "
                f"ON {_COLS.table}({_COLS.status}, {_COLS.priority})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_created_at ON {_COLS.table}({_COLS.created_at})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_updated_at ON {_COLS.table}({_COLS.updated_at})"
            )
        logger.debug("SQLite schema ready at %s", self._db_path)

    def _row_to_entity(self, row: sqlite3.Row) -> TodoEntity:
        def parse_dt(s: Optional[str]) -> Optional[datetime]:
            if s is None:
                return None
            return datetime.fromisoformat(s)

        return {
            "id": int(row[_COLS.id]),
            "title": str(row[_COLS.title]),
            "description": row[_COLS.description],
            "status": row[_COLS.status],
            "priority": int(row[_COLS.priority]) if row[_COLS.priority] is not None else None,
            "due_date": parse_dt(row[_COLS.due_date]),
            "created_at": parse_dt(row[_COLS.created_at]),  # type: ignore
            "updated_at": parse_dt(row[_COLS.updated_at]),  # type: ignore
        }  # type: ignore

    def _fetch(self, conn: sqlite3.Connection, todo_id: int) -> Optional[TodoEntity]:
        row = conn.execute(f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ?", (todo_id,)).fetchone()
        return self._row_to_entity(row) if row else None

    def all(self) -> List[TodoEntity]:
        with self._conn() as conn:
            rows = conn.execute(f"SELECT * FROM {_COLS.table} ORDER BY {_COLS.id} ASC").fetchall()
            return [self._row_to_entity(r) for r in rows]

    def get(self, todo_id: int) -> Optional[TodoEntity]:
        with self._conn() as conn:
            return self._fetch(conn, todo_id)

    def insert(self, fields: Mapping[str, Any]) -> TodoEntity:
        with self._conn() as conn:
            cur = conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.title}, {_COLS.description}, {_COLS.status},
                    {_COLS.priority}, {_COLS.due_date}, {_COLS.created_at}, {_COLS.updated_at})
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    fields["title"],
                    fields.get("description"),
                    fields.get("status", "active"),
                    fields.get("priority"),
                    _to_db(_COLS.due_date, fields.get("due_date")),
                    _to_db(_COLS.created_at, fields["created_at"]),
                    _to_db(_COLS.updated_at, fields["updated_at"]),
                ),
            )
            created = self._fetch(conn, cur.lastrowid)
            assert created is not None
            return created

    def update(self, todo_id: int, changes: Mapping[str, Any]) -> Optional[TodoEntity]:
        check_changes(changes)
        with self._conn() as conn:
            if not changes:
                return self._fetch(conn, todo_id)
            # Column names come from the MUTABLE_FIELDS whitelist checked above
            assignments = ", ".join(f"{field} = ?" for field in changes)
            params = [_to_db(field, value) for field, value in changes.items()]
            cur = conn.execute(
                f"UPDATE {_COLS.table} SET {assignments} WHERE {_COLS.id} = ?",
                [*params, todo_id],
            )
            if cur.rowcount == 0:
                return None
            return self._fetch(conn, todo_id)

    def delete(self, todo_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute(f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ?", (todo_id,))
            return cur.rowcount > 0

    def list(self, query: Optional[ListQuery] = None) -> Tuple[List[TodoEntity], int]:
        q = query or ListQuery()
        clauses = []
        params: list = []

        if q.status is not None:
            clauses.append(f"{_COLS.status} = ?")
            params.append(q.status)

        if q.search:
            # LIKE is case-insensitive for ASCII in SQLite; % and _ in the search are literal
            clauses.append(
                f"({_COLS.title} LIKE ? ESCAPE '\\' OR {_COLS.description} LIKE ? ESCAPE '\\')"
            )
            like = f"%{_escape_like(q.search)}%"
            params.extend([like, like])

        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        field, descending = normalize_sort(q.sort)
        direction = "DESC" if descending else "ASC"
        if field == _COLS.priority:
            # NULL priorities last in both directions
            order_sql = (
                f"ORDER BY {_COLS.priority} IS NULL, {_COLS.priority} {direction}, {_COLS.id} {direction}"
            )
        else:
            order_sql = f"ORDER BY {field} {direction}, {_COLS.id} {direction}"

        limit = max(q.limit, 0)
        offset = max(q.offset, 0)

        with self._conn() as conn:
            count_row = conn.execute(
                f"SELECT COUNT(*) as cnt FROM {_COLS.table} {where_sql}", params
            ).fetchone()
            total = int(count_row["cnt"]) if count_row else 0

            rows = conn.execute(
                f"""
                SELECT * FROM {_COLS.table}
                {where_sql}
                {order_sql}
                LIMIT ? OFFSET ?
                """,
                [*params, limit, offset],
            ).fetchall()
            return [self._row_to_entity(r) for r in rows], total

    def clear(self) -> None:
        with self._conn() as conn:
            conn.execute(f"DELETE FROM {_COLS.table}")
