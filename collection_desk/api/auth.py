"""
System wiring and caller identity dependencies
"""

from datetime import datetime
from typing import Callable, List, Optional

from fastapi import Header, HTTPException

from ..aging import AgingBucket, AgingPolicy
from ..async_storage import AsyncStorageInterface, create_async_storage
from ..collections import Collection, Directory
from ..config import CollectionDeskConfig, get_config
from ..errors import AuthorizationError
from ..events import EventDispatcher
from ..lifecycle import CollectionLifecycleEngine
from ..projection import CollectionProjection
from ..rbac import Caller, Role
from ..store import RecordCollectionStore
from ..timeutils import utcnow


class CollectionDeskSystem:
    """Collection desk with all components initialized"""

    def __init__(self, config: Optional[CollectionDeskConfig] = None,
                 storage: Optional[AsyncStorageInterface] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.config = config or get_config()
        self.clock = clock

        # Initialize storage
        self.storage = storage or create_async_storage(self.config.database_url)
        self.store = RecordCollectionStore(self.storage)

        # Initialize core components
        self.dispatcher = EventDispatcher(enabled=self.config.enable_events)
        self.engine = CollectionLifecycleEngine.from_config(self.store, self.config, self.dispatcher)
        self.engine.clock = clock
        self.policy = AgingPolicy.from_config(self.config)
        self.projection = CollectionProjection(self.store)
        self.directory = Directory()
        self._loaded = False

    def now(self) -> datetime:
        return self.clock()

    def classify(self, collection: Collection) -> AgingBucket:
        return self.policy.classify(collection, self.now())

    async def collections(self) -> List[Collection]:
        """Projected collections, loading them from the store on first use"""
        if not self._loaded:
            await self.projection.load()
            self._loaded = True
        return self.projection.all()

    async def close(self) -> None:
        await self.storage.close()


# Global collection desk instance, created on first request
_system: Optional[CollectionDeskSystem] = None


def get_system() -> CollectionDeskSystem:
    global _system
    if _system is None:
        _system = CollectionDeskSystem()
    return _system


def get_caller(
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None)
) -> Caller:
    """Identity of the signed-in staff member, as forwarded by the front end"""
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        role = Role.parse(x_user_role)
    except AuthorizationError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return Caller(id=x_user_id, name=x_user_name or x_user_id, role=role)
