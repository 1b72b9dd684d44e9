"""Conversation id -> owning tenant, cached for the process lifetime."""

import threading
from typing import Dict, Optional

import structlog

from src.conversation_store.services.storage_router import StorageRouter

logger = structlog.get_logger(__name__)


class PartitionResolver:
    """
    Finds the partition (tenant) a conversation lives in.

    A hinted tenant is trusted as-is. Otherwise the cache is consulted and, on
    a miss, the directory entry is located with a cross-partition query. Only
    successful lookups are cached; backend errors propagate.
    """

    def __init__(self, router: StorageRouter):
        self.router = router
        self._cache: Dict[str, str] = {}
        self._lock = threading.Lock()

    async def resolve_owner(
        self,
        conversation_id: str,
        hinted_tenant: Optional[str] = None,
        force: bool = False,
    ) -> Optional[str]:
        """Owning tenant, or None. ``force`` skips the cache and refreshes it."""
        if hinted_tenant:
            return hinted_tenant

        if not force:
            with self._lock:
                cached = self._cache.get(conversation_id)
            if cached is not None:
                return cached

        owner = await self.router.call(lambda backend: backend.find_conversation_owner(conversation_id))
        if owner is None:
            logger.debug("conversation_owner_unknown", conversation_id=conversation_id)
            self.forget(conversation_id)
            return None

        self.remember(conversation_id, owner)
        logger.debug("conversation_owner_resolved", conversation_id=conversation_id, tenant_id=owner)
        return owner

    def remember(self, conversation_id: str, tenant_id: str) -> None:
        with self._lock:
            self._cache[conversation_id] = tenant_id

    def forget(self, conversation_id: str) -> None:
        with self._lock:
            self._cache.pop(conversation_id, None)
