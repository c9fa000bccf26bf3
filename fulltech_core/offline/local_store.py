# =============================================================================
# fulltech_core/offline/local_store.py
# Local SQLite Store with Named Collections
# =============================================================================
"""
LocalStore - SQLite-backed key/value collections for offline operation.

Each named collection is a table keyed by ``id`` with a secondary index on
``timestamp``, so retention sweeps walk the index instead of the whole table.

Features:
- Idempotent schema creation
- Whole-collection replace in a single transaction
- ``last_accessed`` refresh on read
- Storage leases for cross-process coordination
- Thread-local connections (shared connection for ``:memory:``)
"""

from __future__ import annotations
import json
import re
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Union
import logging

from fulltech_core.errors import StorageError
from fulltech_core.offline.models import CachedRecord

logger = logging.getLogger(__name__)

_COLLECTION_NAME = re.compile(r"^[a-z_][a-z0-9_]*$")

MEMORY = ":memory:"


class LocalStore:
    """
    Local database holding a fixed set of named collections.

    Usage:
        store = LocalStore("local_data/fulltech_cache.db", ["products", "images"])
        store.initialize()
        store.put("products", "P1", {"id": "P1", "name": "Router"})
        record = store.get("products", "P1", touch=True)
    """

    COLLECTION_SCHEMA = """
        CREATE TABLE IF NOT EXISTS {name} (
            id TEXT PRIMARY KEY,
            payload TEXT,
            blob BLOB,
            timestamp REAL NOT NULL,
            last_accessed REAL
        )
    """
    TIMESTAMP_INDEX = "CREATE INDEX IF NOT EXISTS idx_{name}_timestamp ON {name} (timestamp)"
    LEASE_SCHEMA = """
        CREATE TABLE IF NOT EXISTS sync_leases (
            name TEXT PRIMARY KEY,
            owner TEXT NOT NULL,
            expires_at REAL NOT NULL
        )
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        collections: Sequence[str],
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize local store.

        Args:
            db_path: Path to SQLite database file, or ``":memory:"``
            collections: Names of the collections to provision
            clock: Time source in epoch seconds
        """
        for name in collections:
            if not _COLLECTION_NAME.match(name):
                raise ValueError(f"Invalid collection name: {name!r}")

        self.db_path = str(db_path)
        self.collections = tuple(collections)
        self.clock = clock
        self._local = threading.local()
        self._shared: Optional[sqlite3.Connection] = None
        self._write_lock = threading.RLock()
        self._initialized = False

    @property
    def is_memory(self) -> bool:
        return self.db_path == MEMORY

    def _connect(self) -> sqlite3.Connection:
        if not self.is_memory:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(self.db_path, check_same_thread=False)
        connection.row_factory = sqlite3.Row
        return connection

    def _get_connection(self) -> sqlite3.Connection:
        """Get the connection for the current thread."""
        if self.is_memory:
            # Every :memory: connection is a distinct database
            if self._shared is None:
                self._shared = self._connect()
            return self._shared

        if getattr(self._local, "connection", None) is None:
            self._local.connection = self._connect()
        return self._local.connection

    @contextmanager
    def transaction(self, collection: Optional[str] = None, operation: str = "write"):
        """Context manager for a write transaction; SQLite errors become StorageError."""
        with self._write_lock:
            conn = self._get_connection()
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StorageError(
                    f"Local store {operation} failed: {e}",
                    collection=collection,
                    operation=operation,
                ) from e
            except Exception:
                conn.rollback()
                raise

    def query(self, sql: str, params: Sequence = (), collection: Optional[str] = None) -> List[sqlite3.Row]:
        """Execute a read query under the store lock."""
        try:
            with self._write_lock:
                return self._get_connection().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(
                f"Local store read failed: {e}",
                collection=collection,
                operation="read",
            ) from e

    def _check(self, collection: str) -> None:
        if not self._initialized:
            self.initialize()
        if collection not in self.collections:
            raise StorageError(
                f"Unknown collection '{collection}'",
                collection=collection,
                recoverable=False,
            )

    def initialize(self) -> None:
        """Create every collection table and its timestamp index (idempotent)."""
        if self._initialized:
            return

        with self.transaction(operation="initialize") as conn:
            for name in self.collections:
                conn.execute(self.COLLECTION_SCHEMA.format(name=name))
                conn.execute(self.TIMESTAMP_INDEX.format(name=name))
                logger.debug(f"Created/verified collection: {name}")
            conn.execute(self.LEASE_SCHEMA)

        self._initialized = True
        logger.info(f"Local store initialized at: {self.db_path}")

    # =========================================================================
    # RECORD OPERATIONS
    # =========================================================================

    @staticmethod
    def _encode(payload: Any) -> Optional[str]:
        return None if payload is None else json.dumps(payload, default=str)

    @staticmethod
    def _to_record(row: sqlite3.Row) -> CachedRecord:
        return CachedRecord(
            id=row["id"],
            payload=json.loads(row["payload"]) if row["payload"] is not None else None,
            timestamp=row["timestamp"],
            last_accessed=row["last_accessed"],
            blob=row["blob"],
        )

    def _upsert(
        self,
        conn: sqlite3.Connection,
        collection: str,
        record_id: str,
        payload: Any,
        blob: Optional[bytes],
        now: float,
    ) -> None:
        # ON CONFLICT keeps the rowid, so re-queued records keep their position
        conn.execute(
            f"""
            INSERT INTO {collection} (id, payload, blob, timestamp, last_accessed)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                payload = excluded.payload,
                blob = excluded.blob,
                timestamp = excluded.timestamp,
                last_accessed = excluded.last_accessed
            """,
            [str(record_id), self._encode(payload), blob, now, now],
        )

    def put(
        self,
        collection: str,
        record_id: Any,
        payload: Any,
        blob: Optional[bytes] = None,
    ) -> CachedRecord:
        """Write one record, superseding any record with the same id."""
        self._check(collection)
        now = self.clock()
        with self.transaction(collection, "put") as conn:
            self._upsert(conn, collection, record_id, payload, blob, now)
        return CachedRecord(str(record_id), payload, now, now, blob)

    def replace_all(self, collection: str, items: Iterable[Tuple[Any, Any]]) -> int:
        """
        Clear a collection and write ``(id, payload)`` pairs in one transaction.

        Returns:
            Number of records written
        """
        self._check(collection)
        now = self.clock()
        written = 0
        with self.transaction(collection, "replace") as conn:
            conn.execute(f"DELETE FROM {collection}")
            for record_id, payload in items:
                self._upsert(conn, collection, record_id, payload, None, now)
                written += 1
        return written

    def get(self, collection: str, record_id: Any, touch: bool = False) -> Optional[CachedRecord]:
        """Get a record by id, optionally refreshing its ``last_accessed``."""
        self._check(collection)
        rows = self.query(
            f"SELECT * FROM {collection} WHERE id = ?", [str(record_id)], collection
        )
        if not rows:
            return None

        record = self._to_record(rows[0])
        if touch:
            record.last_accessed = self.clock()
            with self.transaction(collection, "touch") as conn:
                conn.execute(
                    f"UPDATE {collection} SET last_accessed = ? WHERE id = ?",
                    [record.last_accessed, record.id],
                )
        return record

    def get_all(self, collection: str, touch: bool = False) -> List[CachedRecord]:
        """Get every record of a collection in insertion order."""
        self._check(collection)
        rows = self.query(f"SELECT * FROM {collection} ORDER BY rowid", (), collection)
        records = [self._to_record(row) for row in rows]

        if touch and records:
            now = self.clock()
            with self.transaction(collection, "touch") as conn:
                conn.execute(f"UPDATE {collection} SET last_accessed = ?", [now])
            for record in records:
                record.last_accessed = now
        return records

    def delete(self, collection: str, record_id: Any) -> bool:
        """Delete a record. Returns True if a record was removed."""
        self._check(collection)
        with self.transaction(collection, "delete") as conn:
            cursor = conn.execute(
                f"DELETE FROM {collection} WHERE id = ?", [str(record_id)]
            )
            return cursor.rowcount > 0

    def clear(self, collection: str) -> int:
        """Remove every record of a collection."""
        self._check(collection)
        with self.transaction(collection, "clear") as conn:
            return conn.execute(f"DELETE FROM {collection}").rowcount

    def count(self, collection: str) -> int:
        self._check(collection)
        rows = self.query(f"SELECT COUNT(*) AS count FROM {collection}", (), collection)
        return rows[0]["count"] if rows else 0

    def delete_older_than(self, collection: str, cutoff: float) -> int:
        """Delete records whose ``timestamp`` is before ``cutoff`` (uses the index)."""
        self._check(collection)
        with self.transaction(collection, "sweep") as conn:
            cursor = conn.execute(
                f"DELETE FROM {collection} WHERE timestamp < ?", [cutoff]
            )
            return cursor.rowcount

    # =========================================================================
    # LEASES
    # =========================================================================

    def acquire_lease(self, name: str, owner: str, ttl: float) -> bool:
        """
        Take (or renew) a named lease for ``ttl`` seconds.

        Succeeds when the lease is free, expired, or already held by ``owner``.
        The upsert is one statement, so two processes cannot both win.
        """
        if not self._initialized:
            self.initialize()
        now = self.clock()
        with self.transaction(operation="lease") as conn:
            conn.execute(
                """
                INSERT INTO sync_leases (name, owner, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    owner = excluded.owner,
                    expires_at = excluded.expires_at
                WHERE sync_leases.expires_at < ? OR sync_leases.owner = excluded.owner
                """,
                [name, owner, now + ttl, now],
            )
            row = conn.execute(
                "SELECT owner FROM sync_leases WHERE name = ?", [name]
            ).fetchone()
        return row is not None and row["owner"] == owner

    def release_lease(self, name: str, owner: str) -> None:
        """Release a lease if ``owner`` still holds it."""
        if not self._initialized:
            return
        with self.transaction(operation="lease") as conn:
            conn.execute(
                "DELETE FROM sync_leases WHERE name = ? AND owner = ?", [name, owner]
            )

    def close(self) -> None:
        """Close database connections."""
        if self._shared is not None:
            self._shared.close()
            self._shared = None
        if getattr(self._local, "connection", None) is not None:
            self._local.connection.close()
            self._local.connection = None
        self._initialized = False
