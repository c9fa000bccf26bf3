# =============================================================================
# fulltech_core/offline/sync.py
# Connectivity-aware write path and offline queue replay
# =============================================================================
"""
OfflineSync - orchestration layer above the CacheManager.

Features:
- Mirrors connectivity (``is_online``) and the persisted queue (``pending_actions``)
- Replays the queue automatically when connectivity returns
- One replay pass at a time per process (lock) and per database (storage lease)
- Unified write path returning a tri-state RequestResult
- Report listeners, so optimistic updates can be confirmed or reverted
"""

from __future__ import annotations
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import logging

import requests

from fulltech_core.errors import FulltechError, NetworkError, safe_execute
from fulltech_core.logging import LogContext
from fulltech_core.offline.cache_manager import CacheManager
from fulltech_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
)
from fulltech_core.offline.models import OfflineAction, QueueProcessingReport, is_success
from fulltech_core.ui.notifications import Notification, Notifier

logger = logging.getLogger(__name__)


@dataclass
class RequestResult:
    """
    Outcome of ``make_offline_request``.

    - ``success=True`` with ``data``: the server answered 2xx
    - ``success=False, offline=True``: queued without touching the network
    - ``success=False, error=...``: the request failed and was queued
    """
    success: bool
    data: Any = None
    offline: bool = False
    error: Optional[str] = None
    action_id: Optional[str] = None


class OfflineSync:
    """
    Offline write path for the storefront.

    Usage:
        sync = OfflineSync(cache_manager, connection_manager, notifier)
        sync.initialize()
        result = sync.make_offline_request(
            "/api/customer/activity", "POST", body={"activityType": "like"}
        )
    """

    SYNC_LEASE = "offline-queue"
    SYNC_TITLE = "FULLTECH"

    def __init__(
        self,
        cache_manager: CacheManager,
        connection: ConnectionManager,
        notifier: Optional[Notifier] = None,
        session: Optional[requests.Session] = None,
    ):
        self.cache_manager = cache_manager
        self.connection = connection
        self.notifier = notifier
        self.session = session or cache_manager.session
        self.config = cache_manager.config
        self.pending_actions: List[OfflineAction] = []
        self._sync_lock = threading.Lock()
        self._owner = uuid.uuid4().hex
        self._listeners: List[Callable[[QueueProcessingReport], None]] = []
        self._initialized = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def initialize(self) -> None:
        """Subscribe to connectivity changes and load the persisted queue."""
        if self._initialized:
            return
        self.cache_manager.init()
        self.connection.register_callback(self._on_connection_change)
        self.load_pending_actions()
        self._initialized = True
        logger.info(f"OfflineSync initialized with {len(self.pending_actions)} pending actions")

    def dispose(self) -> None:
        self.connection.unregister_callback(self._on_connection_change)
        self._listeners.clear()
        self._initialized = False

    def _on_connection_change(self, state: ConnectionState) -> None:
        if state.status == ConnectionStatus.ONLINE:
            logger.info("Connection restored, replaying offline queue")
            self.sync_pending_actions()

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def is_online(self) -> bool:
        return self.connection.is_online

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_lock.locked()

    def load_pending_actions(self) -> List[OfflineAction]:
        """Refresh the in-memory mirror of the persisted queue."""
        self.pending_actions = self.cache_manager.get_offline_queue()
        return self.pending_actions

    def add_report_listener(self, listener: Callable[[QueueProcessingReport], None]) -> None:
        """Call ``listener`` with every replay report."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_report_listener(self, listener: Callable[[QueueProcessingReport], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify_listeners(self, report: QueueProcessingReport) -> None:
        for listener in list(self._listeners):
            try:
                listener(report)
            except Exception as e:
                logger.error(f"Error in sync report listener: {e}")

    # =========================================================================
    # QUEUE
    # =========================================================================

    def add_offline_action(
        self,
        type: str,
        url: str,
        method: str = "POST",
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        action_id: Optional[str] = None,
    ) -> OfflineAction:
        """
        Persist a deferred request and, when online, try it immediately.

        Returns:
            The queued OfflineAction
        """
        action = OfflineAction.create(
            type, url, method, body, headers,
            action_id=action_id, timestamp=self.cache_manager.clock(),
        )
        self.cache_manager.add_to_offline_queue(action)
        self.pending_actions.append(action)

        if self.is_online:
            self.sync_pending_actions()

        return action

    def sync_pending_actions(self) -> Optional[QueueProcessingReport]:
        """
        Replay the offline queue once.

        No-op (returns None) when offline, when a pass is already running in
        this process or another one, or when the queue is empty.
        """
        if not self.is_online:
            return None

        if not self._sync_lock.acquire(blocking=False):
            logger.debug("Sync already in progress")
            return None

        try:
            if not self.load_pending_actions():
                return None

            store = self.cache_manager.store
            if not store.acquire_lease(self.SYNC_LEASE, self._owner, self.config.sync_lease_seconds):
                logger.info("Offline queue is being replayed by another process")
                return None

            try:
                with LogContext(logger, f"Replaying {len(self.pending_actions)} offline actions"):
                    report = self.cache_manager.process_offline_queue()
            except FulltechError:
                self._notify(
                    "No se pudieron sincronizar los datos", "sync-failed"
                )
                raise
            finally:
                store.release_lease(self.SYNC_LEASE, self._owner)

            self.load_pending_actions()

            if report.dropped:
                self._notify(
                    f"{len(report.dropped)} acciones no se pudieron sincronizar", "sync-failed"
                )
            elif report.retried:
                self._notify(
                    f"{len(report.retried)} acciones pendientes se reintentarán", "sync-failed"
                )
            elif report.succeeded:
                self._notify("Datos sincronizados correctamente", "sync-success")

            self._notify_listeners(report)
            return report

        finally:
            self._sync_lock.release()

    def _notify(self, body: str, tag: str) -> None:
        if self.notifier is None:
            return
        safe_execute(
            self.notifier.notify,
            Notification(title=self.SYNC_TITLE, body=body, tag=tag),
            error_message="Sync notification failed",
        )

    # =========================================================================
    # WRITE PATH
    # =========================================================================

    def _send(
        self,
        url: str,
        method: str,
        body: Any,
        headers: Optional[Dict[str, str]],
    ) -> requests.Response:
        target = self.config.absolute_url(url)
        kwargs: Dict[str, Any] = {"headers": headers}
        if isinstance(body, (dict, list)):
            kwargs["json"] = body
        elif body is not None:
            kwargs["data"] = body

        try:
            response = self.session.request(method, target, **kwargs)
        except requests.RequestException as e:
            raise NetworkError(f"Request to {target} failed: {e}", url=target) from e

        if not is_success(response.status_code):
            raise NetworkError(
                f"HTTP {response.status_code}", url=target, status=response.status_code
            )
        return response

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def make_offline_request(
        self,
        url: str,
        method: str = "GET",
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        fallback: Optional[Callable[[], None]] = None,
        action_id: Optional[str] = None,
    ) -> RequestResult:
        """
        Issue a request, queueing it when it cannot complete now.

        Args:
            url: Site-relative or absolute URL
            method: HTTP method
            body: JSON-serialisable body (dict/list) or raw data
            headers: Request headers
            fallback: Called when the request is queued (e.g. an optimistic update)
            action_id: Id to give the queued action, so callers can track it

        Returns:
            RequestResult
        """
        action_id = action_id or uuid.uuid4().hex

        if not self.is_online:
            self.add_offline_action("api-request", url, method, body, headers, action_id=action_id)
            if fallback:
                fallback()
            return RequestResult(success=False, offline=True, action_id=action_id)

        try:
            response = self._send(url, method, body, headers)
        except NetworkError as e:
            logger.warning(f"Request failed, queueing for later: {e}")
            self.add_offline_action("failed-request", url, method, body, headers, action_id=action_id)
            if fallback:
                fallback()
            return RequestResult(success=False, error=e.message, action_id=action_id)

        return RequestResult(success=True, data=self._decode(response))
