"""
Test suite for storage backends

Tests the in-memory and SQLite record stores, patch updates and the
database URL factory.
"""

import pytest

from collection_desk.storage import InMemoryStorage, SQLiteStorage, create_storage


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Each storage backend"""
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "collections.db")
    yield backend
    backend.close()


class TestStorageBackends:
    """Behaviour shared by all backends"""

    def test_save_and_load(self, storage):
        storage.save("collections", "c1", {"id": "c1", "amount": "1000.00"})
        assert storage.load("collections", "c1") == {"id": "c1", "amount": "1000.00"}
        assert storage.load("collections", "missing") is None

    def test_loaded_records_are_copies(self, storage):
        storage.save("collections", "c1", {"id": "c1", "notes": ""})
        record = storage.load("collections", "c1")
        record["notes"] = "changed"
        assert storage.load("collections", "c1")["notes"] == ""

    def test_find_by_fields(self, storage):
        storage.save("collections", "c1", {"id": "c1", "order_id": "o1", "collection_type": "cheque"})
        storage.save("collections", "c2", {"id": "c2", "order_id": "o1", "collection_type": "credit"})
        storage.save("collections", "c3", {"id": "c3", "order_id": "o2", "collection_type": "cheque"})

        found = storage.find("collections", {"order_id": "o1", "collection_type": "cheque"})
        assert [r["id"] for r in found] == ["c1"]

    def test_update_merges_patch(self, storage):
        storage.save("orders", "o1", {"id": "o1", "amountpaid": "0", "notes": "first"})
        assert storage.update("orders", "o1", {"amountpaid": "1000"}) is True
        assert storage.load("orders", "o1") == {"id": "o1", "amountpaid": "1000", "notes": "first"}

    def test_update_missing_record(self, storage):
        assert storage.update("orders", "missing", {"amountpaid": "1"}) is False
        assert storage.load("orders", "missing") is None

    def test_update_many(self, storage):
        storage.save("cheques", "q1", {"id": "q1", "collection_id": "c1"})
        storage.save("cheques", "q2", {"id": "q2", "collection_id": "c1"})
        count = storage.update_many("cheques", ["q1", "q2", "missing"], {"collection_id": "c2"})
        assert count == 2
        assert storage.load("cheques", "q2")["collection_id"] == "c2"

    def test_delete(self, storage):
        storage.save("collections", "c1", {"id": "c1"})
        assert storage.delete("collections", "c1") is True
        assert storage.delete("collections", "c1") is False
        assert storage.load("collections", "c1") is None
        assert storage.load_all("collections") == []


class TestSQLitePersistence:
    """SQLite keeps records across connections"""

    def test_reopen(self, tmp_path):
        path = tmp_path / "collections.db"
        first = SQLiteStorage(path)
        first.save("collections", "c1", {"id": "c1", "amount": "5"})
        first.close()

        second = SQLiteStorage(path)
        assert second.load("collections", "c1") == {"id": "c1", "amount": "5"}
        second.close()


class TestCreateStorage:
    """Test building backends from database URLs"""

    def test_memory(self):
        assert isinstance(create_storage("memory"), InMemoryStorage)
        assert isinstance(create_storage(""), InMemoryStorage)

    def test_sqlite_file(self, tmp_path):
        backend = create_storage(f"sqlite:///{tmp_path / 'x.db'}")
        assert isinstance(backend, SQLiteStorage)
        backend.close()

    def test_sqlite_in_memory(self):
        backend = create_storage("sqlite://")
        assert isinstance(backend, SQLiteStorage)
        assert backend.db_path == ":memory:"
        backend.close()

    def test_unsupported_url(self):
        with pytest.raises(ValueError):
            create_storage("postgresql://localhost/collections")
