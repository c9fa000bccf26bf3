# =============================================================================
# fulltech_core/offline/optimistic.py
# Optimistic updates over an in-memory collection
# =============================================================================
"""
OptimisticCollection - shows the effect of a mutation before the server
confirms it.

Each pending entry keeps the item as it was before the first speculative
update, so ``revert_update`` restores it. Items that did not exist before the
update are removed on revert. Replacing the base data moves every pending
entry onto the fresh item, so a later revert never brings back stale data.
Nothing here is persisted; base data reloads from the network or the cache.
"""

from __future__ import annotations
import copy
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

RebaseFn = Callable[[Optional[Dict[str, Any]], Dict[str, Any], Dict[str, Any]], Dict[str, Any]]


@dataclass
class OptimisticEntry:
    """A pending speculative update."""
    update: Dict[str, Any]
    previous: Optional[Dict[str, Any]]  # None: the item was appended


class OptimisticCollection:
    """
    List of dict items keyed by ``id`` with a pending-update overlay.

    Usage:
        products = OptimisticCollection(cached_products)
        products.add_optimistic_update("P123", {"is_liked": True})
        ...
        products.confirm_update("P123")   # or revert_update("P123")
    """

    def __init__(self, initial_data: Optional[List[Dict[str, Any]]] = None, key: str = "id"):
        self.key = key
        self._data: List[Dict[str, Any]] = [dict(item) for item in initial_data or []]
        self._pending: Dict[Any, OptimisticEntry] = {}
        self._lock = threading.RLock()

    @property
    def data(self) -> List[Dict[str, Any]]:
        """Visible items, including speculative changes."""
        with self._lock:
            return [dict(item) for item in self._data]

    @property
    def pending_updates(self) -> Dict[Any, Dict[str, Any]]:
        with self._lock:
            return {item_id: dict(entry.update) for item_id, entry in self._pending.items()}

    def is_pending(self, item_id: Any) -> bool:
        return item_id in self._pending

    def get(self, item_id: Any) -> Optional[Dict[str, Any]]:
        with self._lock:
            index = self._index_of(item_id)
            return dict(self._data[index]) if index >= 0 else None

    def _index_of(self, item_id: Any) -> int:
        for index, item in enumerate(self._data):
            if item.get(self.key) == item_id:
                return index
        return -1

    def add_optimistic_update(self, item_id: Any, update: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge ``update`` into the item with ``item_id``, or append it as new.

        Returns:
            The visible item after the update
        """
        with self._lock:
            index = self._index_of(item_id)
            if index >= 0:
                previous = copy.deepcopy(self._data[index])
                merged = {**self._data[index], **update}
                self._data[index] = merged
            else:
                previous = None
                merged = {self.key: item_id, **update}
                self._data.append(merged)

            entry = self._pending.get(item_id)
            if entry is None:
                self._pending[item_id] = OptimisticEntry(dict(update), previous)
            else:
                # Keep the snapshot from before the first pending update
                entry.update.update(update)
            return dict(merged)

    def confirm_update(self, item_id: Any, confirmed_data: Optional[Dict[str, Any]] = None) -> None:
        """Drop the pending marker; replace the item when the server sent data."""
        with self._lock:
            self._pending.pop(item_id, None)
            if confirmed_data is not None:
                index = self._index_of(item_id)
                if index >= 0:
                    self._data[index] = dict(confirmed_data)

    def revert_update(self, item_id: Any) -> None:
        """Drop the pending marker and restore the item as it was before the update."""
        with self._lock:
            entry = self._pending.pop(item_id, None)
            index = self._index_of(item_id)
            if entry is None or index < 0:
                return

            if entry.previous is None:
                del self._data[index]
            else:
                self._data[index] = entry.previous

    def update_base_data(
        self,
        new_data: List[Dict[str, Any]],
        rebase: Optional[RebaseFn] = None,
    ) -> None:
        """
        Replace the base collection with fresh data from the network.

        Pending updates are rebased: the fresh item becomes the revert
        snapshot and the pending changes are applied on top of it. Pending
        entries whose id is missing from ``new_data`` are discarded.

        Args:
            new_data: Fresh items
            rebase: ``rebase(previous, fresh, update)`` returning the update to
                re-apply, for updates derived from the old item (counters)
        """
        with self._lock:
            self._data = [dict(item) for item in new_data]
            for item_id in list(self._pending):
                index = self._index_of(item_id)
                if index < 0:
                    del self._pending[item_id]
                    continue
                entry = self._pending[item_id]
                fresh = copy.deepcopy(self._data[index])
                if rebase is not None:
                    entry.update = dict(rebase(entry.previous, fresh, dict(entry.update)))
                entry.previous = fresh
                self._data[index] = {**self._data[index], **entry.update}
