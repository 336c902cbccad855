"""
Tests for Async Storage Interface

Tests the async adapter over the synchronous backends and the storage
factory.
"""

import pytest
import pytest_asyncio
import asyncio

from collection_desk.async_storage import (
    AsyncStorageAdapter,
    AsyncInMemoryStorage,
    create_async_storage
)
from collection_desk.storage import InMemoryStorage, SQLiteStorage


# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


class TestAsyncInMemoryStorage:
    """Test AsyncInMemoryStorage functionality"""

    @pytest_asyncio.fixture
    async def storage(self):
        """Create async in-memory storage instance"""
        return AsyncInMemoryStorage()

    @pytest.mark.asyncio
    async def test_basic_crud_operations(self, storage):
        """Test basic CRUD operations"""
        data = {"id": "c1", "amount": "1000.00", "status": "pending"}

        await storage.save("collections", "c1", data)
        assert await storage.load("collections", "c1") == data
        assert await storage.load_all("collections") == [data]

        assert await storage.delete("collections", "c1") is True
        assert await storage.load("collections", "c1") is None

    @pytest.mark.asyncio
    async def test_update_and_find(self, storage):
        """Test patching records and finding by field"""
        await storage.save("collections", "c1", {"id": "c1", "order_id": "o1", "amount": "300"})

        assert await storage.update("collections", "c1", {"amount": "800"}) is True
        assert await storage.update("collections", "missing", {"amount": "1"}) is False

        found = await storage.find("collections", {"order_id": "o1"})
        assert found == [{"id": "c1", "order_id": "o1", "amount": "800"}]

    @pytest.mark.asyncio
    async def test_update_many_accepts_generator(self, storage):
        """Test the id iterable is consumed once"""
        for cheque_id in ("q1", "q2"):
            await storage.save("cheques", cheque_id, {"id": cheque_id, "collection_id": "c1"})

        count = await storage.update_many("cheques", (i for i in ["q1", "q2"]), {"collection_id": "c2"})
        assert count == 2

    @pytest.mark.asyncio
    async def test_concurrent_updates_are_serialized(self, storage):
        """Test that concurrent patches to different fields all land"""
        await storage.save("orders", "o1", {"id": "o1"})

        await asyncio.gather(*[
            storage.update("orders", "o1", {f"field_{i}": str(i)}) for i in range(10)
        ])

        record = await storage.load("orders", "o1")
        assert all(record[f"field_{i}"] == str(i) for i in range(10))


class TestAsyncStorageAdapter:
    """Test wrapping a synchronous backend"""

    @pytest.mark.asyncio
    async def test_wraps_sqlite(self, tmp_path):
        backend = SQLiteStorage(tmp_path / "collections.db")
        storage = AsyncStorageAdapter(backend)

        await storage.save("orders", "o1", {"id": "o1", "amountpaid": "0"})
        assert backend.load("orders", "o1") == {"id": "o1", "amountpaid": "0"}
        assert storage.backend is backend
        await storage.close()


class TestAsyncStorageFactory:
    """Test async storage factory function"""

    def test_create_memory_storage(self):
        storage = create_async_storage("memory")
        assert isinstance(storage, AsyncStorageAdapter)
        assert isinstance(storage.backend, InMemoryStorage)

    def test_create_sqlite_storage(self):
        storage = create_async_storage("sqlite://")
        assert isinstance(storage.backend, SQLiteStorage)
        storage.backend.close()
