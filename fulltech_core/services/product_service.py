# =============================================================================
# fulltech_core/services/product_service.py
# Offline-first product catalog
# =============================================================================
"""
ProductCatalogService - the storefront's product list, served from the local
cache first and refreshed from the API when online.

Customer interactions (views, likes, shares) are posted as activities through
OfflineSync. Likes and shares update the visible product immediately; the
change is confirmed when the server accepts the activity and reverted when the
queued activity is finally dropped.
"""

from __future__ import annotations
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import requests

from fulltech_core.errors import NetworkError
from fulltech_core.offline.cache_manager import CacheManager
from fulltech_core.offline.models import QueueProcessingReport, is_success
from fulltech_core.offline.optimistic import OptimisticCollection
from fulltech_core.offline.sync import OfflineSync, RequestResult
from fulltech_core.services.base_service import BaseService, ServiceResult


class ProductCatalogService(BaseService):
    """
    Usage:
        catalog = ProductCatalogService(cache_manager, sync)
        catalog.load_from_cache()
        catalog.refresh()
        catalog.toggle_product_like("P1", True)
    """

    PRODUCTS_URL = "/api/products"
    SEARCH_URL = "/api/products/search"
    ACTIVITY_URL = "/api/customer/activity"

    PRIORITY_PRODUCTS = 10
    PRIORITY_IMAGES = 20
    REFRESH_IMAGES = 50
    MIN_REMOTE_QUERY = 3
    COUNTERS = ("likeCount", "shareCount")

    def __init__(
        self,
        cache_manager: CacheManager,
        sync: OfflineSync,
        session: Optional[requests.Session] = None,
        background: bool = True,
    ):
        """
        Args:
            cache_manager: Local product/image cache
            sync: Offline write path
            session: HTTP session for catalog reads (defaults to the cache manager's)
            background: Precache images on a daemon thread instead of inline
        """
        super().__init__()
        self.cache_manager = cache_manager
        self.sync = sync
        self.session = session or cache_manager.session
        self.config = cache_manager.config
        self.background = background
        self._collection = OptimisticCollection()
        self._tracked: Dict[str, Any] = {}   # queued action id -> product id
        self._lock = threading.Lock()
        self.sync.add_report_listener(self._on_sync_report)

    def dispose(self) -> None:
        self.sync.remove_report_listener(self._on_sync_report)

    @property
    def products(self) -> List[Dict[str, Any]]:
        """Visible products, including changes not yet confirmed."""
        return self._collection.data

    @property
    def pending_product_ids(self) -> List[Any]:
        return list(self._collection.pending_updates)

    # =========================================================================
    # LOADING
    # =========================================================================

    def load_from_cache(self) -> ServiceResult:
        """Show the cached snapshot and precache images of the first products."""
        return self.safe_execute("Loading products from cache", self._load_from_cache)

    def _load_from_cache(self) -> List[Dict[str, Any]]:
        cached = self.cache_manager.get_products()
        if cached:
            self._collection.update_base_data(cached, rebase=self._rebase_counters)
            images = self._image_urls(cached[: self.PRIORITY_PRODUCTS])
            self._precache_images(images[: self.PRIORITY_IMAGES])
        return cached

    def refresh(self) -> ServiceResult:
        """Fetch the catalog, replace the cached snapshot and precache images."""
        if not self.sync.is_online:
            return ServiceResult.fail("Sin conexión", error_code="NET_OFFLINE")
        return self.safe_execute("Refreshing products", self._refresh)

    def _refresh(self) -> List[Dict[str, Any]]:
        products = self._get_json(self.PRODUCTS_URL)
        if not isinstance(products, list):
            raise NetworkError("Unexpected product list payload", url=self.PRODUCTS_URL)

        if products:
            self._collection.update_base_data(products, rebase=self._rebase_counters)
            self.cache_manager.save_products(products)
            self._precache_images(self._image_urls(products)[: self.REFRESH_IMAGES])
        return products

    @classmethod
    def _rebase_counters(
        cls,
        previous: Optional[Dict[str, Any]],
        fresh: Dict[str, Any],
        update: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Carry pending counter deltas over to the refreshed product."""
        rebased = dict(update)
        for field in cls.COUNTERS:
            if field in update:
                delta = (update[field] or 0) - ((previous or {}).get(field) or 0)
                rebased[field] = (fresh.get(field) or 0) + delta
        return rebased

    def _get_json(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        url = self.config.absolute_url(path)
        try:
            response = self.session.get(url, params=params, timeout=self.config.connection_timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Request to {url} failed: {e}", url=url) from e
        if not is_success(response.status_code):
            raise NetworkError(f"HTTP {response.status_code}", url=url, status=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"Invalid JSON from {url}", url=url) from e

    @staticmethod
    def _image_urls(products: Iterable[Dict[str, Any]]) -> List[str]:
        return [url for product in products for url in product.get("images") or [] if url]

    def _precache_images(self, urls: List[str]) -> None:
        if not urls:
            return
        if self.background:
            threading.Thread(
                target=self._cache_images,
                args=(urls,),
                daemon=True,
                name="ImagePrecache",
            ).start()
        else:
            self._cache_images(urls)

    def _cache_images(self, urls: List[str]) -> None:
        for url in urls:
            try:
                self.cache_manager.cache_image(url)
            except Exception as e:
                self.logger.error(f"Error precaching image {url}: {e}")

    # =========================================================================
    # BROWSING
    # =========================================================================

    def search_products(self, query: str) -> List[Dict[str, Any]]:
        """
        Search the cached catalog; when online, add server matches not found locally.
        """
        needle = query.lower()
        local = [
            product
            for product in self.cache_manager.get_products()
            if needle in str(product.get("name", "")).lower()
            or needle in str(product.get("description", "")).lower()
            or needle in str(product.get("category", "")).lower()
        ]

        if not (self.sync.is_online and len(query) >= self.MIN_REMOTE_QUERY):
            return local

        try:
            remote = self._get_json(self.SEARCH_URL, params={"q": query})
        except NetworkError as e:
            self.logger.error(f"Error searching products online: {e.message}")
            return local

        seen = {product.get("id") for product in local}
        return local + [
            product for product in remote or [] if product.get("id") not in seen
        ]

    def filter_by_category(self, category: Optional[str]) -> List[Dict[str, Any]]:
        products = self.products
        if not category or category == "all":
            return products
        return [
            product
            for product in products
            if str(product.get("category", "")).lower() == category.lower()
        ]

    def get_categories(self) -> List[str]:
        return sorted({product["category"] for product in self.products if product.get("category")})

    # =========================================================================
    # CUSTOMER ACTIVITY
    # =========================================================================

    @staticmethod
    def _activity(activity_type: str, product_id: Any, **metadata) -> Dict[str, Any]:
        return {
            "activityType": activity_type,
            "productId": product_id,
            "metadata": {"timestamp": datetime.now(timezone.utc).isoformat(), **metadata},
        }

    def track_product_view(self, product_id: Any) -> Optional[RequestResult]:
        """Record a product view; views are not queued while offline."""
        if not self.sync.is_online:
            return None
        return self.sync.make_offline_request(
            self.ACTIVITY_URL, "POST", body=self._activity("view", product_id)
        )

    def toggle_product_like(self, product_id: Any, is_liked: bool) -> RequestResult:
        current = self._collection.get(product_id)
        update = None
        if current is not None:
            delta = 1 if is_liked else -1
            update = {"isLiked": is_liked, "likeCount": (current.get("likeCount") or 0) + delta}
        return self._post_activity(
            product_id, update, self._activity("like" if is_liked else "unlike", product_id)
        )

    def share_product(self, product_id: Any, platform: str) -> RequestResult:
        current = self._collection.get(product_id)
        update = None
        if current is not None:
            update = {"shareCount": (current.get("shareCount") or 0) + 1}
        return self._post_activity(
            product_id, update, self._activity("share", product_id, platform=platform)
        )

    def _post_activity(
        self,
        product_id: Any,
        update: Optional[Dict[str, Any]],
        body: Dict[str, Any],
    ) -> RequestResult:
        action_id = uuid.uuid4().hex
        if update is not None:
            self._collection.add_optimistic_update(product_id, update)
            # Registered before the request: a queued action may replay inside the call
            with self._lock:
                self._tracked[action_id] = product_id

        result = self.sync.make_offline_request(
            self.ACTIVITY_URL, "POST", body=body, action_id=action_id
        )

        if result.success and update is not None:
            with self._lock:
                self._tracked.pop(action_id, None)
            self._collection.confirm_update(product_id)
        return result

    def _on_sync_report(self, report: QueueProcessingReport) -> None:
        with self._lock:
            confirmed = [self._tracked.pop(i) for i in report.succeeded if i in self._tracked]
            reverted = [self._tracked.pop(i) for i in report.dropped if i in self._tracked]

        for product_id in confirmed:
            self._collection.confirm_update(product_id)
        for product_id in reverted:
            self.logger.info(f"Reverting unsynced change to product {product_id}")
            self._collection.revert_update(product_id)
