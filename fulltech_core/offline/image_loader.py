# =============================================================================
# fulltech_core/offline/image_loader.py
# Image loading with timeout, retries and load events
# =============================================================================
"""
ImageLoader - fetches catalog images with a per-attempt timeout and linear
backoff between retries.

Events:
    image-loaded  - emitted on every successful (or memoised) load
    image-failed  - emitted once when the retries for a source are exhausted
"""

from __future__ import annotations
import threading
import time
from typing import Callable, Dict, List, Optional, Set
import logging

import requests

from fulltech_core.config import OfflineConfig
from fulltech_core.errors import NetworkError
from fulltech_core.offline.models import is_success

logger = logging.getLogger(__name__)


class ImageLoader:
    """
    Usage:
        loader = ImageLoader(config)
        loader.on(ImageLoader.FAILED, show_placeholder)
        if not loader.load_image(product["images"][0]):
            ...
    """

    LOADED = "image-loaded"
    FAILED = "image-failed"
    RETRY_DELAY = 1.0  # seconds, multiplied by the attempt number

    def __init__(
        self,
        config: OfflineConfig,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.session = session or requests.Session()
        self.sleep = sleep
        self.is_loading = False
        self.has_error = False
        self._loaded: Set[str] = set()
        self._retry_attempts: Dict[str, int] = {}
        self._listeners: Dict[str, List[Callable[[str], None]]] = {
            self.LOADED: [],
            self.FAILED: [],
        }
        self._lock = threading.Lock()

    def on(self, event: str, callback: Callable[[str], None]) -> None:
        """Subscribe ``callback(src)`` to ``image-loaded`` or ``image-failed``."""
        if event not in self._listeners:
            raise ValueError(f"Unknown image event: {event}")
        self._listeners[event].append(callback)

    def off(self, event: str, callback: Callable[[str], None]) -> None:
        if callback in self._listeners.get(event, []):
            self._listeners[event].remove(callback)

    def _emit(self, event: str, src: str) -> None:
        for callback in list(self._listeners[event]):
            try:
                callback(src)
            except Exception as e:
                logger.error(f"Error in {event} listener: {e}")

    def _fetch(self, src: str) -> None:
        url = self.config.absolute_url(src)
        try:
            response = self.session.get(url, timeout=self.config.image_timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Image load failed: {e}", url=url) from e
        if not is_success(response.status_code):
            raise NetworkError(
                f"Image load failed: HTTP {response.status_code}",
                url=url,
                status=response.status_code,
            )

    def load_image(self, src: str) -> bool:
        """
        Load an image, retrying with linear backoff.

        Returns:
            True if the image loaded
        """
        if not src:
            self.is_loading = False
            self.has_error = True
            return False

        with self._lock:
            memoised = src in self._loaded
        if memoised:
            self.is_loading = False
            self.has_error = False
            self._emit(self.LOADED, src)
            return True

        self.is_loading = True
        self.has_error = False

        while True:
            try:
                self._fetch(src)
                break
            except NetworkError as e:
                with self._lock:
                    attempts = self._retry_attempts.get(src, 0)
                    exhausted = attempts >= self.config.max_retries
                    if not exhausted:
                        self._retry_attempts[src] = attempts + 1

                if exhausted:
                    logger.warning(f"Image load failed after retries: {src}")
                    self.is_loading = False
                    self.has_error = True
                    self._emit(self.FAILED, src)
                    return False

                logger.info(f"{e.message}; retrying {src} (attempt {attempts + 1})")
                self.sleep(self.RETRY_DELAY * (attempts + 1))

        with self._lock:
            self._loaded.add(src)
            self._retry_attempts.pop(src, None)
        self.is_loading = False
        self.has_error = False
        self._emit(self.LOADED, src)
        return True

    def retry_load(self, src: str) -> bool:
        """Forget earlier attempts for ``src`` and load it again."""
        with self._lock:
            self._retry_attempts.pop(src, None)
            self._loaded.discard(src)
        return self.load_image(src)
