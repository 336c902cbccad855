"""
Collection Projection

The in-memory collection list the presentation layer renders. It is a cache
of the store, kept in step with lifecycle results. Converting a credit
collection to cheques is the one optimistic change: the view flips the kind
as soon as conversion starts and must be able to put it back.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .collections import ChequeForm, Collection, CollectionKind
from .errors import InvalidTransitionError, PersistenceError
from .lifecycle import CollectionLifecycleEngine, OperationResult
from .logging_config import get_logger
from .rbac import Caller
from .reporting import sort_by_effective_date
from .store import CollectionStoreInterface

logger = get_logger("collection_desk.projection")


@dataclass(frozen=True)
class ProjectionPatch:
    """An optimistic change to one projected collection and its pre-image"""
    collection_id: str
    before: Collection
    after: Collection


class CollectionProjection:
    """Cached collection view with reconciliation and conversion revert"""

    def __init__(self, store: CollectionStoreInterface):
        self.store = store
        self._items: Dict[str, Collection] = {}
        self._patches: Dict[str, ProjectionPatch] = {}

    async def load(self) -> List[Collection]:
        """Replace the cache with the store's current collections"""
        collections = await self.store.list_collections()
        self._items = {c.id: c for c in collections}
        self._patches.clear()
        return self.all()

    def all(self) -> List[Collection]:
        return sort_by_effective_date(self._items.values())

    def get(self, collection_id: str) -> Optional[Collection]:
        return self._items.get(collection_id)

    def put(self, collection: Collection) -> None:
        self._items[collection.id] = collection

    def is_converting(self, collection_id: str) -> bool:
        return collection_id in self._patches

    def pending_patch(self, collection_id: str) -> Optional[ProjectionPatch]:
        return self._patches.get(collection_id)

    def apply(self, result: OperationResult) -> None:
        """Reconcile the cache with a completed lifecycle operation"""
        if result.deleted_id:
            self._items.pop(result.deleted_id, None)
            self._patches.pop(result.deleted_id, None)
        for collection in result.collections:
            self._items[collection.id] = collection

    async def refresh(self, collection_id: str) -> Optional[Collection]:
        """Reload one collection from the store"""
        collection = await self.store.get_collection(collection_id)
        if collection is None:
            self._items.pop(collection_id, None)
        else:
            self._items[collection_id] = collection
        return collection

    def begin_conversion(self, collection: Collection) -> ProjectionPatch:
        """Show a pending credit collection as a cheque collection right away"""
        if not collection.is_pending or not collection.is_credit:
            raise InvalidTransitionError(collection.id, "convert", "only pending credit collections can be converted")
        existing = self._patches.get(collection.id)
        if existing is not None:
            return existing

        before = self._items.get(collection.id, collection)
        patch = ProjectionPatch(
            collection_id=collection.id,
            before=before,
            after=before.copy(kind=CollectionKind.CHEQUE)
        )
        self._items[collection.id] = patch.after
        self._patches[collection.id] = patch
        return patch

    def abort_conversion(self, patch: ProjectionPatch) -> Collection:
        """Put the pre-conversion collection back. Safe to call twice."""
        if self._patches.get(patch.collection_id) is patch:
            del self._patches[patch.collection_id]
            self._items[patch.collection_id] = patch.before
        return self._items.get(patch.collection_id, patch.before)

    async def commit_conversion(self, engine: CollectionLifecycleEngine, caller: Caller,
                                patch: ProjectionPatch, forms: Sequence[ChequeForm],
                                notes: str = "") -> OperationResult:
        """
        Record the conversion through the engine.

        Any failure reverts the optimistic kind change before re-raising.
        After a store failure the collection is reloaded, since earlier
        steps may already have completed it.
        """
        if self._patches.get(patch.collection_id) is not patch:
            raise InvalidTransitionError(patch.collection_id, "commit conversion", "no conversion in progress")

        try:
            result = await engine.record_cheques(caller, patch.before, forms, is_conversion=True, notes=notes)
        except PersistenceError:
            self.abort_conversion(patch)
            await self._refresh_after_failure(patch.collection_id)
            raise
        except Exception:
            self.abort_conversion(patch)
            raise

        del self._patches[patch.collection_id]
        self.apply(result)
        return result

    async def _refresh_after_failure(self, collection_id: str) -> None:
        try:
            await self.refresh(collection_id)
        except Exception as e:
            # Keep the reverted pre-image; the caller already has the original failure
            logger.warning(f"Could not reload collection {collection_id} after failed conversion: {e}")
