# =============================================================================
# fulltech_core/offline/__init__.py
# Offline cache & sync layer for the FULLTECH storefront
# =============================================================================
"""
Offline Cache & Sync Module

The storefront keeps browsing and recording customer activity while the
network is down, and replays deferred writes when it comes back.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                     OFFLINE CACHE & SYNC                         │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────┐        ┌──────────────────────┐          │
│   │ Optimistic UI    │◄──────►│    OfflineSync       │          │
│   │ (pending overlay)│ report │ (write path, replay) │          │
│   └──────────────────┘        └──────────────────────┘          │
│                                   │             │                │
│                                   ▼             ▼                │
│                       ┌──────────────┐  ┌──────────────────┐    │
│                       │ CacheManager │  │ ConnectionManager│    │
│                       │ (SQLite)     │  │ (Online/Offline) │    │
│                       └──────────────┘  └──────────────────┘    │
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │ FetchRouter: static / dynamic / image caches + mirror     │  │
│   └──────────────────────────────────────────────────────────┘  │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from fulltech_core.config import load_config
from fulltech_core.offline import CacheManager, ConnectionManager, OfflineSync

config = load_config()
manager = CacheManager(config)
connection = ConnectionManager(config)
sync = OfflineSync(manager, connection)
connection.initialize()
sync.initialize()

result = sync.make_offline_request("/api/customer/activity", "POST", body={...})
print(sync.is_online, len(sync.pending_actions))
"""

from fulltech_core.offline.models import (
    CachedRecord,
    OfflineAction,
    QueueProcessingReport,
)

from fulltech_core.offline.local_store import LocalStore

from fulltech_core.offline.response_cache import (
    NamedCache,
    ResponseCache,
    StoredResponse,
)

from fulltech_core.offline.cache_manager import (
    CacheManager,
    StoredFile,
)

from fulltech_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
)

from fulltech_core.offline.sync import (
    OfflineSync,
    RequestResult,
)

from fulltech_core.offline.optimistic import OptimisticCollection

from fulltech_core.offline.fetch_router import (
    CacheStrategy,
    FetchRequest,
    FetchRouter,
    MirrorRoute,
    WorkerState,
)

from fulltech_core.offline.image_loader import ImageLoader

__all__ = [
    # Records
    "CachedRecord",
    "OfflineAction",
    "QueueProcessingReport",
    # Storage
    "LocalStore",
    "NamedCache",
    "ResponseCache",
    "StoredResponse",
    "CacheManager",
    "StoredFile",
    # Connection
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    # Sync
    "OfflineSync",
    "RequestResult",
    "OptimisticCollection",
    # Fetch routing
    "CacheStrategy",
    "FetchRequest",
    "FetchRouter",
    "MirrorRoute",
    "WorkerState",
    "ImageLoader",
]
