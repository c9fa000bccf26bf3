# =============================================================================
# fulltech_core/offline/fetch_router.py
# Request interception with per-route caching strategies
# =============================================================================
"""
FetchRouter - sits in front of every outgoing request and picks a caching
strategy for it.

Routing (first match wins):
    1. non-GET                                    -> bypass
    2. /api/admin/, /api/auth/, uploads/finalize  -> bypass
    3. /api/                                      -> stale-while-revalidate (dynamic cache + store mirror)
    4. images                                     -> cache-first (image cache, placeholder fallback)
    5. css/js/fonts                               -> cache-first (static cache, errors propagate)
    6. navigation / documents                     -> network-first (static cache, app shell fallback)
    7. everything else                            -> network-first (dynamic cache)

Lifecycle:
    NEW -> INSTALLING -> INSTALLED -> ACTIVATING -> ACTIVE

Before activation requests pass straight through to the network.
"""

from __future__ import annotations
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import urlparse
import logging

import requests

from fulltech_core.config import OfflineConfig
from fulltech_core.errors import NetworkError, ReplayError, RouteRegistryError, safe_execute
from fulltech_core.offline.local_store import LocalStore
from fulltech_core.offline.models import OfflineAction
from fulltech_core.offline.replay import replay_action
from fulltech_core.offline.response_cache import ResponseCache, StoredResponse
from fulltech_core.ui.notifications import Notification, Notifier

logger = logging.getLogger(__name__)


class CacheStrategy(Enum):
    """How a request is served."""
    CACHE_FIRST = "cache-first"
    NETWORK_FIRST = "network-first"
    STALE_WHILE_REVALIDATE = "stale-while-revalidate"
    BYPASS = "bypass"


class WorkerState(Enum):
    NEW = "new"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVE = "active"


@dataclass
class FetchRequest:
    """An outgoing request as seen by the router."""
    url: str
    method: str = "GET"
    destination: str = ""      # "image", "document", "script", "style", ...
    mode: str = "cors"         # "navigate" for page loads
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None

    @property
    def path(self) -> str:
        return urlparse(self.url).path or "/"


# =============================================================================
# ROUTE CLASSIFICATION
# =============================================================================

BYPASS_PREFIXES = ("/api/admin/", "/api/auth/", "/api/upload-url", "/api/objects/finalize")
API_PREFIX = "/api/"
IMAGE_EXTENSIONS = re.compile(r"\.(jpg|jpeg|png|gif|webp|svg)$", re.IGNORECASE)
STATIC_EXTENSIONS = re.compile(r"\.(css|js|woff|woff2|ttf|eot)$", re.IGNORECASE)


@dataclass(frozen=True)
class CacheStrategyRule:
    """Static mapping from a request predicate to a strategy and cache."""
    name: str
    matches: Callable[[FetchRequest], bool]
    strategy: CacheStrategy
    cache: Optional[str] = None     # "static", "dynamic" or "image"


ROUTE_RULES: Sequence[CacheStrategyRule] = (
    CacheStrategyRule(
        "non-get", lambda r: r.method.upper() != "GET", CacheStrategy.BYPASS
    ),
    CacheStrategyRule(
        "protected-api", lambda r: r.path.startswith(BYPASS_PREFIXES), CacheStrategy.BYPASS
    ),
    CacheStrategyRule(
        "api", lambda r: r.path.startswith(API_PREFIX),
        CacheStrategy.STALE_WHILE_REVALIDATE, "dynamic",
    ),
    CacheStrategyRule(
        "image",
        lambda r: r.destination == "image" or bool(IMAGE_EXTENSIONS.search(r.path)),
        CacheStrategy.CACHE_FIRST, "image",
    ),
    CacheStrategyRule(
        "static", lambda r: bool(STATIC_EXTENSIONS.search(r.path)),
        CacheStrategy.CACHE_FIRST, "static",
    ),
    CacheStrategyRule(
        "navigation", lambda r: r.mode == "navigate" or r.destination == "document",
        CacheStrategy.NETWORK_FIRST, "static",
    ),
    CacheStrategyRule(
        "dynamic", lambda r: True, CacheStrategy.NETWORK_FIRST, "dynamic"
    ),
)


# =============================================================================
# STORE MIRROR REGISTRY
# =============================================================================

def decode_list(payload: Any) -> List[Any]:
    if not isinstance(payload, list):
        raise ValueError(f"expected a JSON array, got {type(payload).__name__}")
    return payload


def decode_json(payload: Any) -> Any:
    return payload


@dataclass(frozen=True)
class MirrorRoute:
    """Which store collection keeps the last good JSON for an API route."""
    pattern: str
    collection: str
    decoder: Callable[[Any], Any] = decode_json
    prefix: bool = False

    def matches(self, path: str) -> bool:
        return path.startswith(self.pattern) if self.prefix else path == self.pattern

    def record_id(self, path: str) -> str:
        # Exact routes keep a single snapshot; prefix routes keep one per path
        return path if self.prefix else "1"


DEFAULT_MIRROR_ROUTES: Sequence[MirrorRoute] = (
    MirrorRoute("/api/products", "products", decode_list),
    MirrorRoute("/api/hero-slides", "hero_slides", decode_list),
    MirrorRoute("/api/customer/", "customer_data", decode_json, prefix=True),
)

OFFLINE_MESSAGE = "No hay conexión. Los datos se sincronizarán cuando vuelva la conexión."

PLACEHOLDER_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="300" height="200" viewBox="0 0 300 200">'
    '<rect width="300" height="200" fill="#f0f0f0"/>'
    '<text x="50%" y="50%" text-anchor="middle" dy=".3em" fill="#999">Sin conexión</text>'
    "</svg>"
)


class FetchRouter:
    """
    Caching proxy for the storefront's outgoing requests.

    Usage:
        router = FetchRouter(config)
        router.install()
        router.activate()
        response = router.handle(FetchRequest("/api/products"))
    """

    STORES = ("products", "hero_slides", "customer_data", "activities", "offline_actions")
    SYNC_TAG = "sync-offline-actions"
    APP_SHELL = "/"

    def __init__(
        self,
        config: OfflineConfig,
        session: Optional[requests.Session] = None,
        store: Optional[LocalStore] = None,
        notifier: Optional[Notifier] = None,
        open_window: Optional[Callable[[str], None]] = None,
        mirror_routes: Sequence[MirrorRoute] = DEFAULT_MIRROR_ROUTES,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.session = session or requests.Session()
        self.store = store or LocalStore(config.sw_db_path, self.STORES, clock=clock)
        self.caches = ResponseCache(self.store)
        self.notifier = notifier
        self.open_window = open_window
        self.clock = clock
        self.rules = ROUTE_RULES
        self.mirror_routes = tuple(mirror_routes)
        self.state = WorkerState.NEW
        self.clients_claimed = False
        self._validate_mirror_routes()

    def _validate_mirror_routes(self) -> None:
        for route in self.mirror_routes:
            if route.collection not in self.store.collections:
                raise RouteRegistryError(
                    f"Mirror route {route.pattern} targets unknown collection",
                    pattern=route.pattern,
                    collection=route.collection,
                )
            if not route.pattern.startswith(API_PREFIX):
                raise RouteRegistryError(
                    "Mirror routes must live under /api/",
                    pattern=route.pattern,
                )

    def _cache_name(self, cache: str) -> str:
        return {
            "static": self.config.static_cache,
            "dynamic": self.config.dynamic_cache,
            "image": self.config.image_cache,
        }[cache]

    @property
    def current_caches(self) -> List[str]:
        return [self.config.static_cache, self.config.dynamic_cache, self.config.image_cache]

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def install(self) -> Dict[str, bool]:
        """
        Precache the critical resources into the static cache.

        A failing URL is logged and skipped; installation always completes.

        Returns:
            Mapping of resource URL to whether it was cached
        """
        self.state = WorkerState.INSTALLING
        logger.info("Installing fetch router")
        static = self.caches.open(self.config.static_cache)
        results: Dict[str, bool] = {}

        for resource in self.config.critical_resources:
            url = self.config.absolute_url(resource)
            try:
                response = self._fetch(FetchRequest(url))
                if not response.ok:
                    raise NetworkError(f"HTTP {response.status}", url=url, status=response.status)
                static.put(url, response)
                results[resource] = True
            except NetworkError as e:
                logger.warning(f"Precache failed for {resource}: {e.message}")
                results[resource] = False

        self.state = WorkerState.INSTALLED
        logger.info(f"Precached {sum(results.values())}/{len(results)} critical resources")
        return results

    def activate(self) -> List[str]:
        """
        Delete caches from other versions and start intercepting.

        Returns:
            Names of the deleted caches
        """
        self.state = WorkerState.ACTIVATING
        current = set(self.current_caches)
        deleted = []
        for name in self.caches.names():
            if name not in current and self.caches.delete(name):
                deleted.append(name)

        self.clients_claimed = True
        self.state = WorkerState.ACTIVE
        logger.info(f"Fetch router active; removed {len(deleted)} old caches")
        return deleted

    @property
    def is_active(self) -> bool:
        return self.state == WorkerState.ACTIVE

    def dispose(self) -> None:
        self.store.close()
        self.state = WorkerState.NEW
        self.clients_claimed = False

    # =========================================================================
    # ROUTING
    # =========================================================================

    def classify(self, request: FetchRequest) -> CacheStrategyRule:
        """Return the first rule matching ``request``."""
        for rule in self.rules:
            if rule.matches(request):
                return rule
        raise RuntimeError("Route table has no catch-all rule")  # pragma: no cover

    def handle(self, request: FetchRequest) -> StoredResponse:
        """
        Serve a request according to its route.

        Raises:
            NetworkError: For bypassed and static requests when the network fails
        """
        request.url = self.config.absolute_url(request.url)
        if not self.is_active:
            return self._fetch(request)

        rule = self.classify(request)
        logger.debug(f"{request.method} {request.path} -> {rule.name} ({rule.strategy.value})")

        if rule.strategy == CacheStrategy.BYPASS:
            return self._fetch(request)
        if rule.strategy == CacheStrategy.STALE_WHILE_REVALIDATE:
            return self._handle_api(request)
        if rule.name == "image":
            return self._cache_first(request, self.config.image_cache, placeholder=True)
        if rule.strategy == CacheStrategy.CACHE_FIRST:
            return self._cache_first(request, self._cache_name(rule.cache), placeholder=False)
        if rule.name == "navigation":
            return self._handle_navigation(request)
        return self._network_first(request, self._cache_name(rule.cache))

    def _fetch(self, request: FetchRequest) -> StoredResponse:
        kwargs: Dict[str, Any] = {"headers": request.headers or None}
        if isinstance(request.body, (dict, list)):
            kwargs["json"] = request.body
        elif request.body is not None:
            kwargs["data"] = request.body

        try:
            response = self.session.request(request.method, request.url, **kwargs)
        except requests.RequestException as e:
            raise NetworkError(f"Network request failed: {e}", url=request.url) from e
        return StoredResponse.from_requests(response)

    # =========================================================================
    # STRATEGIES
    # =========================================================================

    def _handle_api(self, request: FetchRequest) -> StoredResponse:
        cache = self.caches.open(self.config.dynamic_cache)
        try:
            response = self._fetch(request)
        except NetworkError:
            logger.info(f"Network failed, serving from cache: {request.url}")
            cached = cache.match(request.url)
            if cached:
                return cached

            mirrored = self._read_mirror(request.path)
            if mirrored is not None:
                return StoredResponse.json_response(mirrored, url=request.url)

            return StoredResponse.json_response(
                {"error": "Offline", "message": OFFLINE_MESSAGE}, status=503, url=request.url
            )

        if response.ok:
            cache.put(request.url, response)
            safe_execute(
                self._write_mirror, request.path, response,
                error_message="Error saving response to the local store",
            )
        return response

    def _cache_first(self, request: FetchRequest, cache_name: str, placeholder: bool) -> StoredResponse:
        cache = self.caches.open(cache_name)
        cached = cache.match(request.url)
        if cached:
            return cached

        try:
            response = self._fetch(request)
        except NetworkError:
            if not placeholder:
                raise
            logger.info(f"Image failed to load: {request.url}")
            return StoredResponse(
                status=200,
                headers={"Content-Type": "image/svg+xml"},
                body=PLACEHOLDER_SVG.encode("utf-8"),
                url=request.url,
            )

        if response.ok:
            cache.put(request.url, response)
        return response

    def _handle_navigation(self, request: FetchRequest) -> StoredResponse:
        cache = self.caches.open(self.config.static_cache)
        try:
            response = self._fetch(request)
        except NetworkError:
            shell = self.config.absolute_url(self.APP_SHELL)
            return cache.match(request.url) or cache.match(shell) or self._offline_text(request)

        if response.ok:
            cache.put(request.url, response)
        return response

    def _network_first(self, request: FetchRequest, cache_name: str) -> StoredResponse:
        cache = self.caches.open(cache_name)
        try:
            response = self._fetch(request)
        except NetworkError:
            return cache.match(request.url) or self._offline_text(request)

        if response.ok:
            cache.put(request.url, response)
        return response

    @staticmethod
    def _offline_text(request: FetchRequest) -> StoredResponse:
        return StoredResponse(
            status=503,
            headers={"Content-Type": "text/plain"},
            body=b"Offline",
            url=request.url,
            reason="Service Unavailable",
        )

    # =========================================================================
    # STORE MIRROR
    # =========================================================================

    def _mirror_route_for(self, path: str) -> Optional[MirrorRoute]:
        for route in self.mirror_routes:
            if route.matches(path):
                return route
        return None

    def _write_mirror(self, path: str, response: StoredResponse) -> None:
        route = self._mirror_route_for(path)
        if route is None:
            return

        data = route.decoder(response.json())
        if route.prefix:
            self.store.put(route.collection, route.record_id(path), data)
        else:
            self.store.replace_all(route.collection, [(route.record_id(path), data)])

    def _read_mirror(self, path: str) -> Any:
        route = self._mirror_route_for(path)
        if route is None:
            return None
        record = self.store.get(route.collection, route.record_id(path))
        return record.payload if record else None

    # =========================================================================
    # BACKGROUND SYNC & PUSH
    # =========================================================================

    def queue_offline_action(self, action: OfflineAction) -> None:
        """Keep an action for the next ``sync-offline-actions`` event."""
        self.store.put("offline_actions", action.id, action.to_dict())

    def handle_sync(self, tag: str) -> int:
        """
        Handle a background sync event.

        Returns:
            Number of actions replayed
        """
        logger.info(f"Background sync: {tag}")
        if tag != self.SYNC_TAG:
            return 0

        synced = 0
        for record in self.store.get_all("offline_actions"):
            action = OfflineAction.from_dict(record.payload)
            try:
                replay_action(self.session, action, url=self.config.absolute_url(action.url))
            except ReplayError as e:
                logger.info(f"Failed to sync action {action.url}: {e.message}")
                continue
            self.store.delete("offline_actions", action.id)
            synced += 1
        return synced

    def handle_push(self, payload: Optional[Dict[str, Any]] = None) -> Notification:
        """Raise the catalog notification for a push message."""
        payload = payload or {}
        notification = Notification(
            title="FULLTECH",
            body=payload.get("body", "Nuevos productos disponibles en FULLTECH"),
            tag=payload.get("tag"),
            icon="/icon-192x192.png",
            actions=[
                {"action": "explore", "title": "Ver productos"},
                {"action": "close", "title": "Cerrar"},
            ],
            data={"dateOfArrival": self.clock(), "primaryKey": 1},
        )
        if self.notifier is not None:
            safe_execute(
                self.notifier.notify, notification,
                error_message="Push notification failed",
            )
        return notification

    def handle_notification_click(self, action: str) -> bool:
        """Open the catalog when the ``explore`` action is clicked."""
        if action == "explore" and self.open_window is not None:
            self.open_window(self.APP_SHELL)
            return True
        return False
