# =============================================================================
# fulltech_core/offline/response_cache.py
# Named Response Caches (Cache Storage equivalent)
# =============================================================================
"""
ResponseCache - named caches of full HTTP responses keyed by request URL.

The fetch router keeps its static, dynamic and image caches here. Cache names
carry a version suffix; stale generations are deleted on activation.
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

import requests

from fulltech_core.offline.local_store import LocalStore
from fulltech_core.offline.models import is_success

logger = logging.getLogger(__name__)


@dataclass
class StoredResponse:
    """Snapshot of an HTTP response with the body read, so it can be cached and served twice."""
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: str = ""
    reason: str = ""
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return is_success(self.status)

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return ""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body)

    @classmethod
    def from_requests(cls, response: requests.Response) -> StoredResponse:
        return cls(
            status=response.status_code,
            headers=dict(response.headers),
            body=response.content or b"",
            url=response.url or "",
            reason=response.reason or "",
        )

    @classmethod
    def json_response(cls, data: Any, status: int = 200, url: str = "") -> StoredResponse:
        return cls(
            status=status,
            headers={"Content-Type": "application/json"},
            body=json.dumps(data).encode("utf-8"),
            url=url,
        )


class NamedCache:
    """One named cache; obtained from ResponseCache.open()."""

    def __init__(self, owner: ResponseCache, name: str):
        self._owner = owner
        self.name = name

    def match(self, url: str) -> Optional[StoredResponse]:
        rows = self._owner.store.query(
            "SELECT * FROM response_cache WHERE cache_name = ? AND url = ?",
            [self.name, url],
        )
        if not rows:
            return None
        row = rows[0]
        return StoredResponse(
            status=row["status"],
            headers=json.loads(row["headers"] or "{}"),
            body=row["body"] or b"",
            url=row["url"],
            reason=row["reason"] or "",
            from_cache=True,
        )

    def put(self, url: str, response: StoredResponse) -> None:
        with self._owner.store.transaction(operation="cache put") as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO response_cache
                    (cache_name, url, status, reason, headers, body, stored_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    self.name,
                    url,
                    response.status,
                    response.reason,
                    json.dumps(response.headers),
                    response.body,
                    self._owner.store.clock(),
                ],
            )

    def delete(self, url: str) -> bool:
        with self._owner.store.transaction(operation="cache delete") as conn:
            cursor = conn.execute(
                "DELETE FROM response_cache WHERE cache_name = ? AND url = ?",
                [self.name, url],
            )
            return cursor.rowcount > 0

    def keys(self) -> List[str]:
        rows = self._owner.store.query(
            "SELECT url FROM response_cache WHERE cache_name = ? ORDER BY stored_at",
            [self.name],
        )
        return [row["url"] for row in rows]


class ResponseCache:
    """
    Collection of named response caches sharing one database.

    Usage:
        caches = ResponseCache(store)
        static = caches.open("fulltech-static-v1.0.1")
        static.put(url, response)
        cached = static.match(url)
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS response_cache (
            cache_name TEXT NOT NULL,
            url TEXT NOT NULL,
            status INTEGER NOT NULL,
            reason TEXT,
            headers TEXT,
            body BLOB,
            stored_at REAL NOT NULL,
            PRIMARY KEY (cache_name, url)
        )
    """

    def __init__(self, store: LocalStore):
        self.store = store
        self._initialized = False

    def initialize(self) -> None:
        if self._initialized:
            return
        self.store.initialize()
        with self.store.transaction(operation="initialize") as conn:
            conn.execute(self.SCHEMA)
        self._initialized = True

    def open(self, name: str) -> NamedCache:
        self.initialize()
        return NamedCache(self, name)

    def names(self) -> List[str]:
        """Names of every cache holding at least one entry."""
        self.initialize()
        rows = self.store.query("SELECT DISTINCT cache_name FROM response_cache")
        return [row["cache_name"] for row in rows]

    def delete(self, name: str) -> bool:
        """Delete a whole named cache."""
        self.initialize()
        with self.store.transaction(operation="cache drop") as conn:
            cursor = conn.execute(
                "DELETE FROM response_cache WHERE cache_name = ?", [name]
            )
            removed = cursor.rowcount > 0
        if removed:
            logger.info(f"Deleted cache: {name}")
        return removed
