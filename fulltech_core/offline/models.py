# =============================================================================
# fulltech_core/offline/models.py
# Records shared by the cache manager, sync layer and fetch router
# =============================================================================

from __future__ import annotations
import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


def is_success(status_code: int) -> bool:
    """True for 2xx answers only; redirects and 304 do not count."""
    return 200 <= status_code < 300


@dataclass
class CachedRecord:
    """Envelope stored once per id in a named collection."""
    id: str
    payload: Any = None
    timestamp: float = 0.0
    last_accessed: Optional[float] = None
    blob: Optional[bytes] = None


@dataclass
class OfflineAction:
    """A mutating request deferred until connectivity returns."""
    id: str
    type: str
    url: str
    method: str = "POST"
    body: Any = None
    headers: Optional[Dict[str, str]] = None
    timestamp: float = field(default_factory=time.time)
    retries: int = 0

    @classmethod
    def create(
        cls,
        type: str,
        url: str,
        method: str = "POST",
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        action_id: Optional[str] = None,
        timestamp: Optional[float] = None,
    ) -> OfflineAction:
        """Build a fresh action with a generated id and zero retries."""
        return cls(
            id=action_id or uuid.uuid4().hex,
            type=type,
            url=url,
            method=method.upper(),
            body=body,
            headers=dict(headers) if headers else None,
            timestamp=time.time() if timestamp is None else timestamp,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> OfflineAction:
        return cls(
            id=str(data["id"]),
            type=data.get("type", "api-request"),
            url=data["url"],
            method=data.get("method", "POST"),
            body=data.get("body"),
            headers=data.get("headers"),
            timestamp=data.get("timestamp", time.time()),
            retries=int(data.get("retries", 0)),
        )


@dataclass
class QueueProcessingReport:
    """Outcome of one replay pass over the offline queue."""
    succeeded: List[str] = field(default_factory=list)
    retried: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.succeeded) + len(self.retried) + len(self.dropped)
