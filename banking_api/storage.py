"""
Storage Backend Module

Provides abstract storage interface and implementations for in-memory (testing)
and SQLite (persistence). All monetary values stored as Decimal strings.

Both backends support atomic units of work through ``atomic()`` and a
conditional write, ``compare_and_swap()``, used to detect concurrent
interference on a record.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Tuple, Union
from decimal import Decimal
from datetime import datetime, timezone
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager

from .errors import ConflictError, UnavailableError


DEFAULT_LOCK_TIMEOUT = 5.0


def _copy(data: Any) -> Any:
    """JSON round-trip: deep copy that also normalises Decimal/datetime to str"""
    return json.loads(json.dumps(data, default=str))


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        result['created_at'] = self.created_at.isoformat()
        result['updated_at'] = self.updated_at.isoformat()
        for key, value in result.items():
            if isinstance(value, Decimal):
                result[key] = str(value)
            elif isinstance(value, datetime):
                result[key] = value.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary"""
        data = dict(data)
        if 'created_at' in data and isinstance(data['created_at'], str):
            data['created_at'] = datetime.fromisoformat(data['created_at'])
        if 'updated_at' in data and isinstance(data['updated_at'], str):
            data['updated_at'] = datetime.fromisoformat(data['updated_at'])

        return cls(**data)


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def compare_and_swap(self, table: str, record_id: str, field: str,
                         expected: Any, updates: Dict[str, Any]) -> bool:
        """
        Apply ``updates`` to a record only if ``record[field] == expected``.

        Returns False when the record is missing or the field has moved on.
        Inside an atomic unit the expectation is verified again at commit,
        which raises ConflictError if another writer got there first.
        """
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
        except BaseException:
            self.rollback()
            raise
        self.commit()


class _PendingUnit:
    """Writes and CAS expectations buffered by one thread's atomic unit"""

    def __init__(self):
        self.depth = 0
        # (table, record_id) -> record, or None for a delete
        self.writes: Dict[Tuple[str, str], Optional[Dict[str, Any]]] = {}
        self.checks: List[Tuple[str, str, str, Any]] = []


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._lock_timeout = lock_timeout
        self._local = threading.local()

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists"""
        if table not in self._data:
            self._data[table] = {}

    def _unit(self) -> Optional[_PendingUnit]:
        return getattr(self._local, 'unit', None)

    @contextmanager
    def _locked(self):
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise UnavailableError("In-memory storage lock timed out")
        try:
            yield
        finally:
            self._lock.release()

    def _visible(self, table: str) -> Dict[str, Dict[str, Any]]:
        """Committed records of a table overlaid with this thread's pending writes"""
        with self._locked():
            self._ensure_table(table)
            records = dict(self._data[table])
        unit = self._unit()
        if unit:
            for (write_table, record_id), record in unit.writes.items():
                if write_table != table:
                    continue
                if record is None:
                    records.pop(record_id, None)
                else:
                    records[record_id] = record
        return records

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        record = _copy(data)
        unit = self._unit()
        if unit:
            unit.writes[(table, record_id)] = record
            return
        with self._locked():
            self._ensure_table(table)
            self._data[table][record_id] = record

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        record = self._visible(table).get(record_id)
        if record:
            return _copy(record)
        return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        return [_copy(record) for record in self._visible(table).values()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from memory"""
        unit = self._unit()
        if unit:
            existed = record_id in self._visible(table)
            unit.writes[(table, record_id)] = None
            return existed
        with self._locked():
            self._ensure_table(table)
            if record_id in self._data[table]:
                del self._data[table][record_id]
                return True
            return False

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        return record_id in self._visible(table)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        filters = _copy(filters)
        results = []
        for record in self._visible(table).values():
            match = True
            for key, value in filters.items():
                if key not in record or record[key] != value:
                    match = False
                    break
            if match:
                results.append(_copy(record))
        return results

    def count(self, table: str) -> int:
        """Count records in table"""
        return len(self._visible(table))

    def compare_and_swap(self, table: str, record_id: str, field: str,
                         expected: Any, updates: Dict[str, Any]) -> bool:
        expected = _copy(expected)
        updates = _copy(updates)
        unit = self._unit()
        if unit:
            record = self._visible(table).get(record_id)
            if record is None or record.get(field) != expected:
                return False
            if (table, record_id) not in unit.writes:
                unit.checks.append((table, record_id, field, expected))
            new_record = dict(record)
            new_record.update(updates)
            unit.writes[(table, record_id)] = new_record
            return True

        with self._locked():
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record is None or record.get(field) != expected:
                return False
            new_record = dict(record)
            new_record.update(updates)
            self._data[table][record_id] = new_record
            return True

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._locked():
            self._data[table] = {}

    def begin_transaction(self) -> None:
        """Start buffering this thread's writes"""
        unit = self._unit()
        if unit is None:
            unit = _PendingUnit()
            self._local.unit = unit
        unit.depth += 1

    def commit(self) -> None:
        """Verify CAS expectations and apply buffered writes in one step"""
        unit = self._unit()
        if unit is None:
            return
        unit.depth -= 1
        if unit.depth > 0:
            return
        self._local.unit = None

        with self._locked():
            for table, record_id, field, expected in unit.checks:
                self._ensure_table(table)
                current = self._data[table].get(record_id)
                if current is None or current.get(field) != expected:
                    raise ConflictError(
                        f"Record {table}/{record_id} changed before commit"
                    )
            for (table, record_id), record in unit.writes.items():
                self._ensure_table(table)
                if record is None:
                    self._data[table].pop(record_id, None)
                else:
                    self._data[table][record_id] = record

    def rollback(self) -> None:
        """Discard everything buffered by this thread"""
        self._local.unit = None

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:",
                 lock_timeout: float = DEFAULT_LOCK_TIMEOUT):
        self.db_path = str(db_path)
        # Set isolation_level to 'DEFERRED' to enable manual transaction control
        self._connection = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level='DEFERRED',
            timeout=lock_timeout
        )
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._lock_timeout = lock_timeout
        self._tx_depth = 0
        self._tables = set()

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    @property
    def _in_transaction(self) -> bool:
        return self._tx_depth > 0

    @contextmanager
    def _locked(self):
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise UnavailableError("SQLite storage lock timed out")
        try:
            yield
        finally:
            self._lock.release()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._connection.execute(sql, params)
        except sqlite3.OperationalError as e:
            if "locked" in str(e) or "busy" in str(e):
                raise UnavailableError(f"SQLite database busy: {e}") from e
            raise

    def _maybe_commit(self) -> None:
        # Only commit if not in transaction
        if not self._in_transaction:
            self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        if table in self._tables:
            return
        self._execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{table}_created_at
            ON {table}(created_at)
        """)
        self._maybe_commit()
        self._tables.add(table)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to SQLite"""
        with self._locked():
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=str)

            # Use INSERT OR REPLACE to handle updates
            self._execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?,
                    COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                    ?)
            """, (record_id, data_json, record_id, now, now))
            self._maybe_commit()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite"""
        with self._locked():
            self._ensure_table(table)
            cursor = self._execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._locked():
            self._ensure_table(table)
            cursor = self._execute(f"""
                SELECT data FROM {table} ORDER BY created_at
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from SQLite"""
        with self._locked():
            self._ensure_table(table)
            cursor = self._execute(f"""
                DELETE FROM {table} WHERE id = ?
            """, (record_id,))
            self._maybe_commit()
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._locked():
            self._ensure_table(table)
            cursor = self._execute(f"""
                SELECT 1 FROM {table} WHERE id = ? LIMIT 1
            """, (record_id,))
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters (simple JSON key matching)"""
        filters = _copy(filters)
        with self._locked():
            self._ensure_table(table)
            cursor = self._execute(f"""
                SELECT data FROM {table} ORDER BY created_at
            """)

            results = []
            for row in cursor.fetchall():
                record = json.loads(row['data'])
                match = True
                for key, value in filters.items():
                    if key not in record or record[key] != value:
                        match = False
                        break
                if match:
                    results.append(record)

            return results

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._locked():
            self._ensure_table(table)
            cursor = self._execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def compare_and_swap(self, table: str, record_id: str, field: str,
                         expected: Any, updates: Dict[str, Any]) -> bool:
        expected = _copy(expected)
        with self._locked():
            self._ensure_table(table)
            cursor = self._execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row is None:
                return False
            record = json.loads(row['data'])
            if record.get(field) != expected:
                return False
            record.update(_copy(updates))
            self._execute(f"""
                UPDATE {table} SET data = ?, updated_at = ? WHERE id = ?
            """, (json.dumps(record, default=str),
                  datetime.now(timezone.utc).isoformat(), record_id))
            self._maybe_commit()
            return True

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._locked():
            self._ensure_table(table)
            self._execute(f"DELETE FROM {table}")
            self._maybe_commit()

    def begin_transaction(self) -> None:
        """Start a database transaction; the connection lock is held until it ends"""
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise UnavailableError("SQLite storage lock timed out")
        self._tx_depth += 1

    def commit(self) -> None:
        """Commit current transaction"""
        try:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                try:
                    self._connection.commit()
                except sqlite3.OperationalError as e:
                    self._connection.rollback()
                    raise UnavailableError(f"SQLite commit failed: {e}") from e
        finally:
            self._lock.release()

    def rollback(self) -> None:
        """Rollback current transaction"""
        try:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self._connection.rollback()
                # A CREATE TABLE issued inside the transaction is undone too
                self._tables.clear()
        finally:
            self._lock.release()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str,
                   lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> StorageInterface:
    """
    Build a storage backend from a URL.

    ``memory://`` gives InMemoryStorage, ``sqlite://`` an in-memory SQLite
    database and ``sqlite:///path/to.db`` a file-backed one.
    """
    if database_url == "memory://":
        return InMemoryStorage(lock_timeout=lock_timeout)
    if database_url.startswith("sqlite://"):
        path = database_url[len("sqlite://"):]
        if path.startswith("/"):
            path = path[1:]
        return SQLiteStorage(path or ":memory:", lock_timeout=lock_timeout)
    raise ValueError(f"Unsupported database URL: {database_url}")
