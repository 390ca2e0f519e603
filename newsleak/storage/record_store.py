"""
Record Store
============

Generic row-store interface used by the repositories, with two backends:

- ``InMemoryRecordStore``: dict-backed, lock-protected; used by tests and
  offline runs.
- ``SQLiteRecordStore``: SQL over the pooled ``DatabaseConnection``.

Filters are plain mappings of column -> value. A value may be a literal
(equality, ``None`` meaning IS NULL) or one of the predicates ``In``,
``Gte`` and ``Contains``.
"""

import copy
import re
import sqlite3
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..database.connection import DatabaseConnection
from ..utils.exceptions import StoreError, StoreUnavailableError, ErrorCode
from ..utils.logging import get_logger_for_component

Record = Dict[str, Any]
Filters = Dict[str, Any]


class In:
    """Column value is one of ``values``."""

    def __init__(self, values: Iterable[Any]):
        self.values = list(values)

    def matches(self, candidate: Any) -> bool:
        return candidate in self.values

    def __repr__(self) -> str:
        return f"In({self.values!r})"


class Gte:
    """Column value is greater than or equal to ``value``."""

    def __init__(self, value: Any):
        self.value = value

    def matches(self, candidate: Any) -> bool:
        return candidate is not None and candidate >= self.value

    def __repr__(self) -> str:
        return f"Gte({self.value!r})"


class Contains:
    """Column text contains ``value``, case-insensitively."""

    def __init__(self, value: str):
        self.value = value

    def matches(self, candidate: Any) -> bool:
        return candidate is not None and self.value.lower() in str(candidate).lower()

    def __repr__(self) -> str:
        return f"Contains({self.value!r})"


def _matches(record: Record, filters: Optional[Filters]) -> bool:
    for column, expected in (filters or {}).items():
        actual = record.get(column)
        if isinstance(expected, (In, Gte, Contains)):
            if not expected.matches(actual):
                return False
        elif actual != expected:
            return False
    return True


class RecordStore(ABC):
    """Abstract row store consumed by the repositories."""

    @abstractmethod
    def ping(self) -> None:
        """Raise StoreUnavailableError if the backend cannot be reached."""

    @abstractmethod
    def insert(self, table: str, record: Record) -> Record:
        """Insert a record and return it with its generated ``id``.

        Raises:
            StoreError: On constraint violations (``STORE_CONSTRAINT``)
        """

    @abstractmethod
    def upsert(
        self,
        table: str,
        record: Record,
        conflict_key: str,
        update_fields: Sequence[str],
        keep_newest: Sequence[str] = (),
    ) -> bool:
        """Insert, or update ``update_fields`` of the row sharing ``conflict_key``.

        Fields in ``keep_newest`` are only overwritten when the incoming value
        is greater than the stored one. The whole operation is atomic.

        Returns:
            True if a new row was created, False if an existing row was updated
        """

    @abstractmethod
    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Record]:
        """Return matching records."""

    def get(self, table: str, key: str, value: Any) -> Optional[Record]:
        """Return the single record whose ``key`` equals ``value``."""
        rows = self.select(table, {key: value}, limit=1)
        return rows[0] if rows else None

    @abstractmethod
    def update(self, table: str, filters: Filters, patch: Record) -> int:
        """Apply ``patch`` to matching records; return the number updated."""

    @abstractmethod
    def increment(
        self,
        table: str,
        filters: Filters,
        field: str,
        patch: Optional[Record] = None,
    ) -> int:
        """Add one to ``field`` and apply ``patch`` atomically on matching records."""

    @abstractmethod
    def delete(self, table: str, filters: Filters) -> int:
        """Delete matching records; return the number deleted."""

    @abstractmethod
    def count(self, table: str, filters: Optional[Filters] = None) -> int:
        """Count matching records."""

    @abstractmethod
    def count_by(self, table: str, field: str, filters: Optional[Filters] = None) -> Dict[Any, int]:
        """Count matching records grouped by ``field``."""


class InMemoryRecordStore(RecordStore):
    """Dict-backed record store guarded by a single lock."""

    DEFAULT_UNIQUE_KEYS = {"feeds": ("url",), "articles": ("link",)}

    def __init__(self, unique_keys: Optional[Dict[str, Sequence[str]]] = None):
        self._tables: Dict[str, List[Record]] = {}
        self._sequences: Dict[str, int] = {}
        self._unique_keys = dict(self.DEFAULT_UNIQUE_KEYS if unique_keys is None else unique_keys)
        self._lock = threading.RLock()
        self.available = True

    def set_available(self, available: bool) -> None:
        """Simulate the backend going away (or coming back)."""
        self.available = available

    def _check_available(self) -> None:
        if not self.available:
            raise StoreUnavailableError("In-memory store marked unavailable")

    def _rows(self, table: str) -> List[Record]:
        return self._tables.setdefault(table, [])

    def _check_unique(self, table: str, record: Record, ignore: Optional[Record] = None) -> None:
        for column in self._unique_keys.get(table, ()):
            value = record.get(column)
            for row in self._rows(table):
                if row is not ignore and value is not None and row.get(column) == value:
                    raise StoreError(
                        f"UNIQUE constraint failed: {table}.{column}",
                        table=table,
                        error_code=ErrorCode.STORE_CONSTRAINT,
                    )

    def ping(self) -> None:
        self._check_available()

    def insert(self, table: str, record: Record) -> Record:
        with self._lock:
            self._check_available()
            row = dict(record)
            self._check_unique(table, row)
            if row.get("id") is None:
                self._sequences[table] = self._sequences.get(table, 0) + 1
                row["id"] = self._sequences[table]
            self._rows(table).append(row)
            return dict(row)

    def upsert(
        self,
        table: str,
        record: Record,
        conflict_key: str,
        update_fields: Sequence[str],
        keep_newest: Sequence[str] = (),
    ) -> bool:
        with self._lock:
            self._check_available()
            key_value = record.get(conflict_key)
            existing = next(
                (row for row in self._rows(table) if row.get(conflict_key) == key_value),
                None,
            )

            if existing is None:
                self.insert(table, record)
                return True

            for column in update_fields:
                existing[column] = record.get(column)
            for column in keep_newest:
                incoming = record.get(column)
                if incoming is not None and (existing.get(column) is None or incoming > existing[column]):
                    existing[column] = incoming
            return False

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Record]:
        with self._lock:
            self._check_available()
            rows = [copy.deepcopy(row) for row in self._rows(table) if _matches(row, filters)]

        if order_by:
            # None sorts first in ascending order and last in descending order,
            # matching SQLite
            rows.sort(
                key=lambda row: (row.get(order_by) is not None, row.get(order_by) or 0),
                reverse=descending,
            )
        if limit is not None:
            rows = rows[:limit]
        return rows

    def update(self, table: str, filters: Filters, patch: Record) -> int:
        with self._lock:
            self._check_available()
            matched = [row for row in self._rows(table) if _matches(row, filters)]
            for row in matched:
                self._check_unique(table, {**row, **patch}, ignore=row)
                row.update(patch)
            return len(matched)

    def increment(
        self,
        table: str,
        filters: Filters,
        field: str,
        patch: Optional[Record] = None,
    ) -> int:
        with self._lock:
            self._check_available()
            matched = [row for row in self._rows(table) if _matches(row, filters)]
            for row in matched:
                row[field] = (row.get(field) or 0) + 1
                row.update(patch or {})
            return len(matched)

    def delete(self, table: str, filters: Filters) -> int:
        with self._lock:
            self._check_available()
            rows = self._rows(table)
            kept = [row for row in rows if not _matches(row, filters)]
            self._tables[table] = kept
            return len(rows) - len(kept)

    def count(self, table: str, filters: Optional[Filters] = None) -> int:
        with self._lock:
            self._check_available()
            return sum(1 for row in self._rows(table) if _matches(row, filters))

    def count_by(self, table: str, field: str, filters: Optional[Filters] = None) -> Dict[Any, int]:
        counts: Dict[Any, int] = {}
        with self._lock:
            self._check_available()
            for row in self._rows(table):
                if _matches(row, filters):
                    counts[row.get(field)] = counts.get(row.get(field), 0) + 1
        return counts


_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _ident(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise StoreError(
            f"Invalid identifier: {name!r}",
            error_code=ErrorCode.STORE_SCHEMA,
        )
    return name


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _where(filters: Optional[Filters]) -> tuple:
    """Build a WHERE clause and its parameters from a filter mapping."""
    clauses = []
    params: List[Any] = []

    for column, expected in (filters or {}).items():
        column = _ident(column)
        if isinstance(expected, In):
            if not expected.values:
                clauses.append("0")
                continue
            placeholders = ", ".join("?" for _ in expected.values)
            clauses.append(f"{column} IN ({placeholders})")
            params.extend(expected.values)
        elif isinstance(expected, Gte):
            clauses.append(f"{column} >= ?")
            params.append(expected.value)
        elif isinstance(expected, Contains):
            clauses.append(f"LOWER({column}) LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(expected.value.lower())}%")
        elif expected is None:
            clauses.append(f"{column} IS NULL")
        else:
            clauses.append(f"{column} = ?")
            params.append(expected)

    if not clauses:
        return "", []
    return " WHERE " + " AND ".join(clauses), params


class SQLiteRecordStore(RecordStore):
    """Record store over the pooled SQLite connection manager."""

    def __init__(self, db_connection: DatabaseConnection):
        self.db = db_connection
        self.logger = get_logger_for_component("record_store")

    def _wrap(self, error: sqlite3.Error, table: Optional[str], query: Optional[str]) -> StoreError:
        if isinstance(error, sqlite3.IntegrityError):
            code = ErrorCode.STORE_CONSTRAINT
        elif isinstance(error, sqlite3.OperationalError) and "no such" in str(error):
            code = ErrorCode.STORE_SCHEMA
        else:
            code = ErrorCode.STORE_ERROR
        return StoreError(str(error), table=table, query=query, error_code=code)

    def ping(self) -> None:
        try:
            with self.db.get_connection() as conn:
                conn.execute("SELECT 1").fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"SQLite store unreachable: {e}")

    def insert(self, table: str, record: Record) -> Record:
        columns = [_ident(c) for c in record]
        query = (
            f"INSERT INTO {_ident(table)} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(query, tuple(record.values()))
                row = dict(record)
                if row.get("id") is None:
                    row["id"] = cursor.lastrowid
                return row
        except sqlite3.Error as e:
            raise self._wrap(e, table, query)

    def upsert(
        self,
        table: str,
        record: Record,
        conflict_key: str,
        update_fields: Sequence[str],
        keep_newest: Sequence[str] = (),
    ) -> bool:
        table = _ident(table)
        conflict_key = _ident(conflict_key)
        columns = [_ident(c) for c in record]

        assignments = [f"{_ident(c)} = excluded.{c}" for c in update_fields]
        assignments += [
            f"{_ident(c)} = CASE WHEN excluded.{c} > {table}.{c} "
            f"THEN excluded.{c} ELSE {table}.{c} END"
            for c in keep_newest
        ]

        query = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT({conflict_key}) DO UPDATE SET {', '.join(assignments)}"
        )
        try:
            # BEGIN IMMEDIATE holds the write lock across the probe and the write
            with self.db.transaction() as conn:
                existed = conn.execute(
                    f"SELECT 1 FROM {table} WHERE {conflict_key} = ?",
                    (record.get(conflict_key),),
                ).fetchone()
                conn.execute(query, tuple(record.values()))
                return existed is None
        except sqlite3.Error as e:
            raise self._wrap(e, table, query)

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Record]:
        where, params = _where(filters)
        query = f"SELECT * FROM {_ident(table)}{where}"
        if order_by:
            query += f" ORDER BY {_ident(order_by)} {'DESC' if descending else 'ASC'}"
        if limit is not None:
            query += " LIMIT ?"
            params.append(int(limit))
        try:
            return [dict(row) for row in self.db.execute_query(query, tuple(params))]
        except sqlite3.Error as e:
            raise self._wrap(e, table, query)

    def update(self, table: str, filters: Filters, patch: Record) -> int:
        if not patch:
            return 0
        where, params = _where(filters)
        assignments = ", ".join(f"{_ident(c)} = ?" for c in patch)
        query = f"UPDATE {_ident(table)} SET {assignments}{where}"
        try:
            return self.db.execute_update(query, tuple(patch.values()) + tuple(params))
        except sqlite3.Error as e:
            raise self._wrap(e, table, query)

    def increment(
        self,
        table: str,
        filters: Filters,
        field: str,
        patch: Optional[Record] = None,
    ) -> int:
        patch = patch or {}
        where, params = _where(filters)
        field = _ident(field)
        assignments = [f"{field} = COALESCE({field}, 0) + 1"]
        assignments += [f"{_ident(c)} = ?" for c in patch]
        query = f"UPDATE {_ident(table)} SET {', '.join(assignments)}{where}"
        try:
            return self.db.execute_update(query, tuple(patch.values()) + tuple(params))
        except sqlite3.Error as e:
            raise self._wrap(e, table, query)

    def delete(self, table: str, filters: Filters) -> int:
        where, params = _where(filters)
        query = f"DELETE FROM {_ident(table)}{where}"
        try:
            return self.db.execute_update(query, tuple(params))
        except sqlite3.Error as e:
            raise self._wrap(e, table, query)

    def count(self, table: str, filters: Optional[Filters] = None) -> int:
        where, params = _where(filters)
        query = f"SELECT COUNT(*) FROM {_ident(table)}{where}"
        try:
            row = self.db.execute_one(query, tuple(params))
            return row[0] if row else 0
        except sqlite3.Error as e:
            raise self._wrap(e, table, query)

    def count_by(self, table: str, field: str, filters: Optional[Filters] = None) -> Dict[Any, int]:
        where, params = _where(filters)
        field = _ident(field)
        query = f"SELECT {field}, COUNT(*) FROM {_ident(table)}{where} GROUP BY {field}"
        try:
            return {row[0]: row[1] for row in self.db.execute_query(query, tuple(params))}
        except sqlite3.Error as e:
            raise self._wrap(e, table, query)
