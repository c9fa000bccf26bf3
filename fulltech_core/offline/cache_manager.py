# =============================================================================
# fulltech_core/offline/cache_manager.py
# Cache Manager for Products, Images and the Offline Queue
# =============================================================================
"""
CacheManager - durable local storage for the storefront's offline mode.

Features:
- Product snapshot with full-replace semantics
- Image caching as inline data URLs with a 24h freshness window
- Offline action queue with replay and a retry ceiling
- Temporary file store for uploads made while offline
- Retention sweep and per-collection counts

The manager is constructed explicitly and handed to its collaborators; call
``init()`` before use (other methods call it lazily) and ``dispose()`` when done.
"""

from __future__ import annotations
import base64
import time
import uuid
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Dict, List, Optional, Union
import logging

import requests

from fulltech_core.config import OfflineConfig
from fulltech_core.errors import ReplayError
from fulltech_core.offline.local_store import LocalStore
from fulltech_core.offline.models import OfflineAction, QueueProcessingReport, is_success
from fulltech_core.offline.replay import replay_action

logger = logging.getLogger(__name__)


@dataclass
class StoredFile:
    """A file kept locally until its queued upload is replayed."""
    data: bytes
    file_name: str
    file_type: str
    file_size: int


class CacheManager:
    """
    Page-side cache database with one collection per logical store.

    Usage:
        manager = CacheManager(config)
        manager.init()
        manager.save_products(products)
        report = manager.process_offline_queue()
    """

    PRODUCTS = "products"
    IMAGES = "images"
    USER_DATA = "user_data"
    ACTIVITIES = "activities"
    OFFLINE_QUEUE = "offline_queue"
    FILE_UPLOADS = "file_uploads"

    STORES = (PRODUCTS, IMAGES, USER_DATA, ACTIVITIES, OFFLINE_QUEUE, FILE_UPLOADS)

    FILE_UPLOAD_ACTION = "file-upload"

    def __init__(
        self,
        config: OfflineConfig,
        session: Optional[requests.Session] = None,
        store: Optional[LocalStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache manager.

        Args:
            config: Offline configuration
            session: HTTP session for image downloads and replays
            store: Backing store (defaults to ``config.cache_db_path``)
            clock: Time source in epoch seconds
        """
        self.config = config
        self.clock = clock
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.store = store or LocalStore(config.cache_db_path, self.STORES, clock=clock)
        self._initialized = False

    def init(self) -> None:
        """Open the database and provision the collections (idempotent)."""
        if self._initialized:
            return
        self.store.initialize()
        self._initialized = True
        logger.info("CacheManager initialized")

    def dispose(self) -> None:
        """Close the database and any session this manager created."""
        self.store.close()
        if self._owns_session:
            self.session.close()
        self._initialized = False

    # =========================================================================
    # PRODUCTS
    # =========================================================================

    def save_products(self, products: List[Dict[str, Any]]) -> int:
        """
        Replace the cached product snapshot.

        The previous snapshot is cleared first; products are never merged.

        Returns:
            Number of products written
        """
        self.init()
        written = self.store.replace_all(
            self.PRODUCTS,
            (
                (product.get("id", uuid.uuid4().hex), product)
                for product in products
            ),
        )
        logger.info(f"Cached {written} products")
        return written

    def get_products(self) -> List[Dict[str, Any]]:
        """Return the cached product snapshot, refreshing ``last_accessed``."""
        self.init()
        return [record.payload for record in self.store.get_all(self.PRODUCTS, touch=True)]

    # =========================================================================
    # IMAGES
    # =========================================================================

    def _is_image_fresh(self, timestamp: float) -> bool:
        return self.clock() - timestamp < self.config.image_freshness_seconds

    def cache_image(self, url: str) -> str:
        """
        Return an inline ``data:`` URL for an image, downloading it if needed.

        A cached copy younger than the freshness window is returned without a
        network request. If the download fails the original URL is returned.
        """
        self.init()
        record = self.store.get(self.IMAGES, url, touch=True)
        if record and self._is_image_fresh(record.timestamp):
            return record.payload["data"]

        try:
            response = self.session.get(
                self.config.absolute_url(url), timeout=self.config.image_timeout
            )
        except requests.RequestException as e:
            logger.warning(f"Error caching image {url}: {e}")
            return url
        if not is_success(response.status_code):
            logger.warning(f"Error caching image {url}: HTTP {response.status_code}")
            return url

        content_type = response.headers.get("Content-Type", "application/octet-stream")
        content_type = content_type.split(";")[0].strip()
        encoded = base64.b64encode(response.content).decode("ascii")
        data_url = f"data:{content_type};base64,{encoded}"

        self.store.put(self.IMAGES, url, {"data": data_url, "size": len(data_url)})
        return data_url

    # =========================================================================
    # OFFLINE QUEUE
    # =========================================================================

    def add_to_offline_queue(self, action: Union[OfflineAction, Dict[str, Any]]) -> OfflineAction:
        """Append an action to the offline queue."""
        self.init()
        if isinstance(action, dict):
            action = OfflineAction.from_dict(
                {"id": uuid.uuid4().hex, "timestamp": self.clock(), **action}
            )

        self.store.put(self.OFFLINE_QUEUE, action.id, action.to_dict())
        logger.info(f"Queued offline action {action.id}: {action.method} {action.url}")
        return action

    def get_offline_queue(self) -> List[OfflineAction]:
        """Return queued actions in storage order."""
        self.init()
        return [
            OfflineAction.from_dict(record.payload)
            for record in self.store.get_all(self.OFFLINE_QUEUE)
        ]

    def _upload_temp_id(self, action: OfflineAction) -> Optional[str]:
        if action.type == self.FILE_UPLOAD_ACTION and isinstance(action.body, dict):
            return action.body.get("tempId")
        return None

    def process_offline_queue(self) -> QueueProcessingReport:
        """
        Replay every queued action once.

        Successful actions are deleted. Failed actions have ``retries``
        incremented and are written back, or dropped once the retry ceiling
        is reached.

        Returns:
            QueueProcessingReport with the ids in each outcome
        """
        self.init()
        report = QueueProcessingReport()

        for action in self.get_offline_queue():
            temp_id = self._upload_temp_id(action)
            body_override = None
            if temp_id:
                stored = self.get_file_from_store(temp_id)
                if stored:
                    body_override = stored.data

            try:
                replay_action(
                    self.session,
                    action,
                    url=self.config.absolute_url(action.url),
                    body_override=body_override,
                )
            except ReplayError as e:
                action.retries += 1
                if action.retries < self.config.max_retries:
                    self.store.put(self.OFFLINE_QUEUE, action.id, action.to_dict())
                    report.retried.append(action.id)
                    logger.info(f"Offline action {action.id} failed ({action.retries} attempts): {e.message}")
                else:
                    self.store.delete(self.OFFLINE_QUEUE, action.id)
                    if temp_id:
                        self.store.delete(self.FILE_UPLOADS, temp_id)
                    report.dropped.append(action.id)
                    logger.warning(f"Dropping offline action {action.id} after {action.retries} attempts")
                continue

            self.store.delete(self.OFFLINE_QUEUE, action.id)
            if temp_id:
                self.store.delete(self.FILE_UPLOADS, temp_id)
            report.succeeded.append(action.id)

        if report.processed:
            logger.info(
                f"Offline queue processed: {len(report.succeeded)} synced, "
                f"{len(report.retried)} retrying, {len(report.dropped)} dropped"
            )
        return report

    # =========================================================================
    # OFFLINE FILE UPLOADS
    # =========================================================================

    def save_file_for_offline_upload(
        self,
        temp_id: str,
        file: Union[bytes, BinaryIO],
        file_name: Optional[str] = None,
        file_type: str = "application/octet-stream",
    ) -> StoredFile:
        """
        Hold a file until the queued upload referencing ``temp_id`` replays.

        Args:
            temp_id: Caller-chosen id, also placed in the action body as ``tempId``
            file: Raw bytes or a binary file object
            file_name: Original file name
            file_type: MIME type
        """
        self.init()
        if isinstance(file, (bytes, bytearray)):
            data = bytes(file)
        else:
            data = file.read()
            file_name = file_name or getattr(file, "name", None)

        stored = StoredFile(
            data=data,
            file_name=file_name or temp_id,
            file_type=file_type,
            file_size=len(data),
        )
        self.store.put(
            self.FILE_UPLOADS,
            temp_id,
            {
                "fileName": stored.file_name,
                "fileType": stored.file_type,
                "fileSize": stored.file_size,
            },
            blob=data,
        )
        return stored

    def get_file_from_store(self, temp_id: str) -> Optional[StoredFile]:
        """Return a held file, or None if nothing is stored under ``temp_id``."""
        self.init()
        record = self.store.get(self.FILE_UPLOADS, temp_id)
        if record is None:
            return None
        meta = record.payload or {}
        return StoredFile(
            data=record.blob or b"",
            file_name=meta.get("fileName", temp_id),
            file_type=meta.get("fileType", "application/octet-stream"),
            file_size=meta.get("fileSize", len(record.blob or b"")),
        )

    # =========================================================================
    # CACHE MANAGEMENT
    # =========================================================================

    def _retention_for(self, collection: str) -> float:
        if collection == self.IMAGES:
            return self.config.image_freshness_seconds
        return self.config.retention_seconds

    def clean_old_cache(self) -> int:
        """
        Delete records older than the retention window in every collection.

        Returns:
            Number of records removed
        """
        self.init()
        now = self.clock()
        removed = 0
        for collection in self.STORES:
            count = self.store.delete_older_than(collection, now - self._retention_for(collection))
            if count:
                logger.info(f"Removed {count} expired records from {collection}")
            removed += count
        return removed

    def get_cache_stats(self) -> Dict[str, int]:
        """Record counts per collection."""
        self.init()
        stats = {collection: self.store.count(collection) for collection in self.STORES}
        stats["total"] = sum(stats.values())
        return stats
