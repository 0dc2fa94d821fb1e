from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Generator, List, Optional, Tuple

from .models import FriendRequestEntity, TrackedDateEntity
from .repositories import (
    FRIEND_STATUSES,
    DateQuery,
    FriendLinkExists,
    FriendRequestRepository,
    Repository,
    _new_id,
    _blocking_status,
    _normalize_sort,
)
from .schemas import TrackedDateCreate, TrackedDateUpdate


@dataclass(frozen=True)
class _Cols:
    table: str = "tracked_dates"
    id: str = "id"
    owner_id: str = "owner_id"
    title: str = "title"
    date: str = "date"
    type: str = "type"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


@dataclass(frozen=True)
class _FriendCols:
    table: str = "friend_requests"
    id: str = "id"
    from_user_id: str = "from_user_id"
    to_user_id: str = "to_user_id"
    status: str = "status"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


_COLS = _Cols()
_FCOLS = _FriendCols()


def _like_contains(text: str) -> str:
    """LIKE pattern matching text literally as a substring (paired with a backslash ESCAPE)."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class _SQLiteBase:
    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self) -> None:
        raise NotImplementedError


class SQLiteRepository(_SQLiteBase, Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.
    """

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} TEXT PRIMARY KEY,
                    {_COLS.owner_id} TEXT NOT NULL,
                    {_COLS.title} TEXT NOT NULL,
                    {_COLS.date} TEXT NOT NULL,
                    {_COLS.type} TEXT NOT NULL,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.updated_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_owner ON {_COLS.table}({_COLS.owner_id})"
            )

    def _row_to_entity(self, row: sqlite3.Row) -> TrackedDateEntity:
        return {
            "id": str(row[_COLS.id]),
            "owner_id": str(row[_COLS.owner_id]),
            "title": str(row[_COLS.title]),
            "date": str(row[_COLS.date]),
            "type": str(row[_COLS.type]),
            "created_at": datetime.fromisoformat(row[_COLS.created_at]),
            "updated_at": datetime.fromisoformat(row[_COLS.updated_at]),
        }

    def _fetch(self, conn: sqlite3.Connection, date_id: str) -> Optional[sqlite3.Row]:
        return conn.execute(f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ?", (date_id,)).fetchone()

    def create(self, owner_id: str, data: TrackedDateCreate) -> TrackedDateEntity:
        now = datetime.now().isoformat()
        new_id = _new_id()
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.id}, {_COLS.owner_id}, {_COLS.title}, {_COLS.date},
                    {_COLS.type}, {_COLS.created_at}, {_COLS.updated_at})
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (new_id, owner_id, data.title, data.date, data.type.value, now, now),
            )
            row = self._fetch(conn, new_id)
            assert row is not None
            return self._row_to_entity(row)

    def get(self, date_id: str) -> Optional[TrackedDateEntity]:
        with self._conn() as conn:
            row = self._fetch(conn, date_id)
            return self._row_to_entity(row) if row else None

    def update(self, date_id: str, data: TrackedDateUpdate) -> Optional[TrackedDateEntity]:
        with self._conn() as conn:
            row = self._fetch(conn, date_id)
            if not row:
                return None
            current = self._row_to_entity(row)

            title = data.title if data.title is not None else current["title"]
            date_value = data.date if data.date is not None else current["date"]
            conn.execute(
                f"""
                UPDATE {_COLS.table}
                SET {_COLS.title} = ?, {_COLS.date} = ?, {_COLS.updated_at} = ?
                WHERE {_COLS.id} = ?
                """,
                (title, date_value, datetime.now().isoformat(), date_id),
            )
            row2 = self._fetch(conn, date_id)
            assert row2 is not None
            return self._row_to_entity(row2)

    def delete(self, date_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ?", (date_id,))
            return cur.rowcount > 0

    def list(self, query: DateQuery) -> Tuple[List[TrackedDateEntity], int]:
        q = query
        clauses = [f"{_COLS.owner_id} = ?"]
        params: list = [q.owner_id]

        if q.type is not None:
            clauses.append(f"{_COLS.type} = ?")
            params.append(q.type)

        if q.search:
            # LIKE is case-insensitive for ASCII in SQLite
            clauses.append(f"{_COLS.title} LIKE ? ESCAPE '\\'")
            params.append(_like_contains(q.search))

        where_sql = f"WHERE {' AND '.join(clauses)}"

        field, reverse = _normalize_sort(q.sort)
        collate = " COLLATE NOCASE" if field == "title" else ""
        order_sql = f"ORDER BY {field}{collate} {'DESC' if reverse else 'ASC'}"

        page_sql = "LIMIT ? OFFSET ?"
        # SQLite treats a negative LIMIT as "no limit"
        limit = -1 if q.limit is None else max(q.limit, 0)
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
                {page_sql}
                """,
                [*params, limit, offset],
            ).fetchall()
            return [self._row_to_entity(r) for r in rows], total


class SQLiteFriendRequestRepository(_SQLiteBase, FriendRequestRepository):
    """
    SQLite friend request store sharing the date database file.
    """

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_FCOLS.table} (
                    {_FCOLS.id} TEXT PRIMARY KEY,
                    {_FCOLS.from_user_id} TEXT NOT NULL,
                    {_FCOLS.to_user_id} TEXT NOT NULL,
                    {_FCOLS.status} TEXT NOT NULL DEFAULT 'pending',
                    {_FCOLS.created_at} TEXT NOT NULL,
                    {_FCOLS.updated_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_FCOLS.table}_to ON {_FCOLS.table}({_FCOLS.to_user_id})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_FCOLS.table}_from ON {_FCOLS.table}({_FCOLS.from_user_id})"
            )

    def _row_to_entity(self, row: sqlite3.Row) -> FriendRequestEntity:
        return {
            "id": str(row[_FCOLS.id]),
            "from_user_id": str(row[_FCOLS.from_user_id]),
            "to_user_id": str(row[_FCOLS.to_user_id]),
            "status": str(row[_FCOLS.status]),
            "created_at": datetime.fromisoformat(row[_FCOLS.created_at]),
            "updated_at": datetime.fromisoformat(row[_FCOLS.updated_at]),
        }

    def _fetch(self, conn: sqlite3.Connection, request_id: str) -> Optional[sqlite3.Row]:
        return conn.execute(
            f"SELECT * FROM {_FCOLS.table} WHERE {_FCOLS.id} = ?", (request_id,)
        ).fetchone()

    def create(self, from_user_id: str, to_user_id: str) -> FriendRequestEntity:
        now = datetime.now().isoformat()
        new_id = _new_id()
        with self._conn() as conn:
            # Write lock before the check so concurrent senders serialize
            conn.execute("BEGIN IMMEDIATE")
            blocking = _blocking_status(self._between(conn, from_user_id, to_user_id))
            if blocking is not None:
                conn.rollback()
                raise FriendLinkExists(blocking)
            conn.execute(
                f"""
                INSERT INTO {_FCOLS.table} ({_FCOLS.id}, {_FCOLS.from_user_id}, {_FCOLS.to_user_id},
                    {_FCOLS.status}, {_FCOLS.created_at}, {_FCOLS.updated_at})
                VALUES (?, ?, ?, 'pending', ?, ?)
                """,
                (new_id, from_user_id, to_user_id, now, now),
            )
            row = self._fetch(conn, new_id)
            assert row is not None
            return self._row_to_entity(row)

    def get(self, request_id: str) -> Optional[FriendRequestEntity]:
        with self._conn() as conn:
            row = self._fetch(conn, request_id)
            return self._row_to_entity(row) if row else None

    def set_status(
        self, request_id: str, status: str, expected_status: Optional[str] = None
    ) -> Optional[FriendRequestEntity]:
        if status not in FRIEND_STATUSES:
            raise ValueError(f"unknown friend request status {status!r}")
        sql = f"UPDATE {_FCOLS.table} SET {_FCOLS.status} = ?, {_FCOLS.updated_at} = ? WHERE {_FCOLS.id} = ?"
        params: list = [status, datetime.now().isoformat(), request_id]
        if expected_status is not None:
            sql += f" AND {_FCOLS.status} = ?"
            params.append(expected_status)
        with self._conn() as conn:
            cur = conn.execute(sql, params)
            if cur.rowcount == 0:
                return None
            row = self._fetch(conn, request_id)
            return self._row_to_entity(row) if row else None

    def _between(self, conn: sqlite3.Connection, user_a: str, user_b: str) -> List[FriendRequestEntity]:
        rows = conn.execute(
            f"""
            SELECT * FROM {_FCOLS.table}
            WHERE ({_FCOLS.from_user_id} = ? AND {_FCOLS.to_user_id} = ?)
               OR ({_FCOLS.from_user_id} = ? AND {_FCOLS.to_user_id} = ?)
            ORDER BY {_FCOLS.created_at} ASC
            """,
            (user_a, user_b, user_b, user_a),
        ).fetchall()
        return [self._row_to_entity(r) for r in rows]

    def find_between(self, user_a: str, user_b: str) -> List[FriendRequestEntity]:
        with self._conn() as conn:
            return self._between(conn, user_a, user_b)

    def list_for_user(
        self, user_id: str, status: Optional[str] = None, direction: str = "any"
    ) -> List[FriendRequestEntity]:
        if direction == "incoming":
            clauses, params = [f"{_FCOLS.to_user_id} = ?"], [user_id]
        elif direction == "outgoing":
            clauses, params = [f"{_FCOLS.from_user_id} = ?"], [user_id]
        else:
            clauses = [f"({_FCOLS.from_user_id} = ? OR {_FCOLS.to_user_id} = ?)"]
            params = [user_id, user_id]
        if status is not None:
            clauses.append(f"{_FCOLS.status} = ?")
            params.append(status)

        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM {_FCOLS.table} WHERE {' AND '.join(clauses)} ORDER BY {_FCOLS.created_at} ASC",
                params,
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]
