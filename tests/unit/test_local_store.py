# =============================================================================
# tests/unit/test_local_store.py
# Unit Tests for LocalStore
# =============================================================================

import pytest

from fulltech_core.errors import StorageError
from fulltech_core.offline.local_store import LocalStore


@pytest.fixture
def store(clock):
    local_store = LocalStore(":memory:", ["products", "offline_queue"], clock=clock)
    local_store.initialize()
    yield local_store
    local_store.close()


class TestLocalStoreRecords:
    """Test record operations"""

    def test_put_and_get(self, store, clock):
        """Stored records can be read back"""
        store.put("products", "P1", {"id": "P1", "name": "Router"})

        record = store.get("products", "P1")

        assert record.payload == {"id": "P1", "name": "Router"}
        assert record.timestamp == clock.now

    def test_put_supersedes_same_id(self, store):
        """Putting the same id replaces the record"""
        store.put("products", "P1", {"v": 1})
        store.put("products", "P1", {"v": 2})

        assert store.count("products") == 1
        assert store.get("products", "P1").payload == {"v": 2}

    def test_numeric_ids_are_stored_as_text(self, store):
        """Numeric ids are stored as text"""
        store.put("products", 1, ["a"])

        assert store.get("products", "1").payload == ["a"]
        assert store.get("products", 1).id == "1"

    def test_get_missing_returns_none(self, store):
        """Missing ids return None"""
        assert store.get("products", "missing") is None

    def test_get_all_keeps_insertion_order_on_update(self, store):
        """Updates keep the original insertion order"""
        for record_id in ("A", "B", "C"):
            store.put("offline_queue", record_id, {"id": record_id})
        store.put("offline_queue", "A", {"id": "A", "retries": 1})

        ids = [record.id for record in store.get_all("offline_queue")]

        assert ids == ["A", "B", "C"]

    def test_replace_all_clears_previous_records(self, store):
        """replace_all clears the previous records"""
        store.put("products", "OLD", {"id": "OLD"})

        written = store.replace_all("products", [("P1", {"id": "P1"}), ("P2", {"id": "P2"})])

        assert written == 2
        assert [r.id for r in store.get_all("products")] == ["P1", "P2"]

    def test_touch_refreshes_last_accessed(self, store, clock):
        """Touch refreshes last_accessed"""
        store.put("products", "P1", {"id": "P1"})
        clock.advance(60)

        record = store.get("products", "P1", touch=True)

        assert record.last_accessed == clock.now
        assert store.get("products", "P1").last_accessed == clock.now
        assert store.get("products", "P1").timestamp == clock.now - 60

    def test_blob_is_kept(self, store):
        """Binary blobs are stored with the record"""
        store.put("products", "F1", {"fileName": "a.bin"}, blob=b"\x00\x01")

        assert store.get("products", "F1").blob == b"\x00\x01"

    def test_delete_and_clear(self, store):
        """Delete removes one record and clear removes all"""
        store.put("products", "P1", {})
        store.put("products", "P2", {})

        assert store.delete("products", "P1")
        assert not store.delete("products", "P1")
        assert store.clear("products") == 1
        assert store.count("products") == 0

    def test_delete_older_than(self, store, clock):
        """Old records are swept by timestamp"""
        store.put("products", "old", {})
        clock.advance(100)
        store.put("products", "new", {})

        removed = store.delete_older_than("products", clock.now - 50)

        assert removed == 1
        assert store.get("products", "old") is None
        assert store.get("products", "new") is not None


class TestLocalStoreErrors:
    """Test error handling"""

    def test_unknown_collection_raises_storage_error(self, store):
        """Unknown collections raise StorageError"""
        with pytest.raises(StorageError) as exc_info:
            store.put("customers", "C1", {})

        assert exc_info.value.details["collection"] == "customers"
        assert not exc_info.value.recoverable

    def test_invalid_collection_name_rejected(self):
        """Invalid collection names are rejected"""
        with pytest.raises(ValueError):
            LocalStore(":memory:", ["products; DROP TABLE x"])

    def test_transaction_rolls_back_on_error(self, store):
        """Transactions roll back on error"""
        store.put("products", "P1", {"v": 1})

        with pytest.raises(RuntimeError):
            with store.transaction("products") as conn:
                conn.execute("DELETE FROM products")
                raise RuntimeError("boom")

        assert store.count("products") == 1

    def test_sqlite_errors_become_storage_errors(self, store):
        """SQLite errors become StorageError"""
        with pytest.raises(StorageError):
            with store.transaction("products", "bad write") as conn:
                conn.execute("INSERT INTO no_such_table VALUES (1)")


class TestLocalStoreLeases:
    """Test cross-process sync leases"""

    def test_lease_is_exclusive_until_expiry(self, store, clock):
        """A lease blocks other owners until it expires"""
        assert store.acquire_lease("offline-queue", "tab-a", ttl=60)
        assert not store.acquire_lease("offline-queue", "tab-b", ttl=60)

        clock.advance(61)

        assert store.acquire_lease("offline-queue", "tab-b", ttl=60)

    def test_owner_can_renew(self, store):
        """The owner can renew its lease"""
        assert store.acquire_lease("offline-queue", "tab-a", ttl=60)
        assert store.acquire_lease("offline-queue", "tab-a", ttl=60)

    def test_release_frees_lease(self, store):
        """Release frees the lease"""
        store.acquire_lease("offline-queue", "tab-a", ttl=60)
        store.release_lease("offline-queue", "tab-a")

        assert store.acquire_lease("offline-queue", "tab-b", ttl=60)

    def test_release_by_other_owner_is_ignored(self, store):
        """Release by another owner is ignored"""
        store.acquire_lease("offline-queue", "tab-a", ttl=60)
        store.release_lease("offline-queue", "tab-b")

        assert not store.acquire_lease("offline-queue", "tab-b", ttl=60)
