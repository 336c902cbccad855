"""
Collection Store Module

The record store the lifecycle engine persists through: the ``collections``
and ``cheques`` record sets plus read/patch access to ``orders``. Stored
status strings are normalized to the closed status enum on the way out, so
nothing past this module compares raw status text.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from datetime import datetime, date
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .async_storage import AsyncStorageInterface
from .collections import (
    Cheque, Collection, CollectionKind, OrderBalances, OrderPatch
)
from .reporting import sort_by_effective_date


class RecordNotFound(LookupError):
    """A record the store was asked to read or patch does not exist"""

    def __init__(self, table: str, record_id: str):
        self.table = table
        self.record_id = record_id
        super().__init__(f"{table} record {record_id} not found")


class CollectionStoreInterface(ABC):
    """Operations the lifecycle engine needs from the record store"""

    @abstractmethod
    async def list_collections(self) -> List[Collection]:
        """All collections, newest effective date first"""
        pass

    @abstractmethod
    async def get_collection(self, collection_id: str) -> Optional[Collection]:
        pass

    @abstractmethod
    async def get_order_balances(self, order_id: str) -> OrderBalances:
        pass

    @abstractmethod
    async def update_order(self, order_id: str, patch: OrderPatch) -> None:
        pass

    @abstractmethod
    async def update_collection(self, collection_id: str, patch: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def delete_collection(self, collection_id: str) -> bool:
        pass

    @abstractmethod
    async def insert_cheques(self, cheques: Sequence[Cheque]) -> List[Cheque]:
        pass

    @abstractmethod
    async def find_existing_cheque_collection(self, order_id: str,
                                              exclude_id: Optional[str] = None) -> Optional[Collection]:
        pass

    @abstractmethod
    async def reassign_cheque_collection(self, cheque_ids: Sequence[str], new_collection_id: str) -> int:
        pass

    @abstractmethod
    async def list_cheques(self, collection_id: Optional[str] = None) -> List[Cheque]:
        pass


# Domain field name -> stored column name where they differ
_COLUMN_NAMES = {
    'kind': 'collection_type',
}


def serialize_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a domain-level collection patch to the stored layout"""
    data = {}
    for key, value in patch.items():
        column = _COLUMN_NAMES.get(key, key)
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, Decimal):
            value = str(value)
        elif isinstance(value, (datetime, date)):
            value = value.isoformat()
        data[column] = value
    return data


class RecordCollectionStore(CollectionStoreInterface):
    """Collection store backed by an async record-set storage"""

    def __init__(self, storage: AsyncStorageInterface):
        self.storage = storage

        self.collections_table = "collections"
        self.cheques_table = "cheques"
        self.orders_table = "orders"

    async def list_collections(self) -> List[Collection]:
        records = await self.storage.load_all(self.collections_table)
        return sort_by_effective_date(Collection.from_dict(r) for r in records)

    async def get_collection(self, collection_id: str) -> Optional[Collection]:
        record = await self.storage.load(self.collections_table, collection_id)
        if record:
            return Collection.from_dict(record)
        return None

    async def add_collection(self, collection: Collection) -> Collection:
        """Store a collection created elsewhere (order placement)"""
        await self.storage.save(self.collections_table, collection.id, collection.to_dict())
        return collection

    async def save_order(self, order_id: str, amount_paid: Decimal = Decimal('0'),
                         credit_balance: Decimal = Decimal('0'),
                         cheque_balance: Decimal = Decimal('0'), notes: str = "") -> None:
        """Store the balance fields of an order managed elsewhere"""
        await self.storage.save(self.orders_table, order_id, {
            'id': order_id,
            'amountpaid': str(amount_paid),
            'creditbalance': str(credit_balance),
            'chequebalance': str(cheque_balance),
            'notes': notes,
        })

    async def get_order_balances(self, order_id: str) -> OrderBalances:
        record = await self.storage.load(self.orders_table, order_id)
        if record is None:
            raise RecordNotFound(self.orders_table, order_id)
        record.setdefault('id', order_id)
        return OrderBalances.from_dict(record)

    async def update_order(self, order_id: str, patch: OrderPatch) -> None:
        updated = await self.storage.update(self.orders_table, order_id, patch.to_dict())
        if not updated:
            raise RecordNotFound(self.orders_table, order_id)

    async def update_collection(self, collection_id: str, patch: Dict[str, Any]) -> None:
        updated = await self.storage.update(self.collections_table, collection_id, serialize_patch(patch))
        if not updated:
            raise RecordNotFound(self.collections_table, collection_id)

    async def delete_collection(self, collection_id: str) -> bool:
        # Cheques pointing at the collection are left alone
        return await self.storage.delete(self.collections_table, collection_id)

    async def insert_cheques(self, cheques: Sequence[Cheque]) -> List[Cheque]:
        for cheque in cheques:
            await self.storage.save(self.cheques_table, cheque.id, cheque.to_dict())
        return list(cheques)

    async def find_existing_cheque_collection(self, order_id: str,
                                              exclude_id: Optional[str] = None) -> Optional[Collection]:
        records = await self.storage.find(self.collections_table, {
            'order_id': order_id,
            'collection_type': CollectionKind.CHEQUE.value,
        })
        for record in records:
            if record.get('id') != exclude_id:
                return Collection.from_dict(record)
        return None

    async def reassign_cheque_collection(self, cheque_ids: Sequence[str], new_collection_id: str) -> int:
        return await self.storage.update_many(
            self.cheques_table, cheque_ids, {'collection_id': new_collection_id}
        )

    async def list_cheques(self, collection_id: Optional[str] = None) -> List[Cheque]:
        if collection_id is None:
            records = await self.storage.load_all(self.cheques_table)
        else:
            records = await self.storage.find(self.cheques_table, {'collection_id': collection_id})
        return [Cheque.from_dict(r) for r in records]
