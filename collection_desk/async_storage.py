"""
Async Storage Backend Module

Async storage interface used by the collection store. Every call is a
suspension point: the lifecycle engine awaits each one in turn because later
steps depend on what earlier ones returned.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Iterable
import asyncio

from .storage import StorageInterface, InMemoryStorage, create_storage


class AsyncStorageInterface(ABC):
    """Abstract interface for async storage backends"""

    @abstractmethod
    async def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    async def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    async def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    async def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    async def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters"""
        pass

    @abstractmethod
    async def update(self, table: str, record_id: str, patch: Dict[str, Any]) -> bool:
        """Merge a patch into an existing record"""
        pass

    @abstractmethod
    async def update_many(self, table: str, record_ids: Iterable[str], patch: Dict[str, Any]) -> int:
        """Apply one patch to several records"""
        pass

    async def close(self) -> None:
        """Close storage connection (default no-op)"""
        pass


class AsyncStorageAdapter(AsyncStorageInterface):
    """Runs a synchronous backend off the event loop"""

    def __init__(self, sync_storage: StorageInterface):
        self._sync_storage = sync_storage
        self._lock = asyncio.Lock()

    @property
    def backend(self) -> StorageInterface:
        return self._sync_storage

    async def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        async with self._lock:
            await asyncio.to_thread(self._sync_storage.save, table, record_id, data)

    async def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            return await asyncio.to_thread(self._sync_storage.load, table, record_id)

    async def load_all(self, table: str) -> List[Dict[str, Any]]:
        async with self._lock:
            return await asyncio.to_thread(self._sync_storage.load_all, table)

    async def delete(self, table: str, record_id: str) -> bool:
        async with self._lock:
            return await asyncio.to_thread(self._sync_storage.delete, table, record_id)

    async def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        async with self._lock:
            return await asyncio.to_thread(self._sync_storage.find, table, filters)

    async def update(self, table: str, record_id: str, patch: Dict[str, Any]) -> bool:
        async with self._lock:
            return await asyncio.to_thread(self._sync_storage.update, table, record_id, patch)

    async def update_many(self, table: str, record_ids: Iterable[str], patch: Dict[str, Any]) -> int:
        ids = list(record_ids)
        async with self._lock:
            return await asyncio.to_thread(self._sync_storage.update_many, table, ids, patch)

    async def close(self) -> None:
        await asyncio.to_thread(self._sync_storage.close)


class AsyncInMemoryStorage(AsyncStorageAdapter):
    """Async wrapper around InMemoryStorage for tests"""

    def __init__(self):
        super().__init__(InMemoryStorage())


def create_async_storage(database_url: Optional[str] = None) -> AsyncStorageInterface:
    """Factory function to create async storage instances"""
    if database_url is None:
        from .config import get_config
        database_url = get_config().database_url
    return AsyncStorageAdapter(create_storage(database_url))
