"""
Rolling window of the last K entries of a conversation.

The window is a cache over the message log: a single document per
conversation, read in one point operation to build completion input.

``sync`` is a plain read-modify-write with no concurrency control. Two syncs
racing on the same conversation can both read the same window and the later
upsert wins, dropping one entry from the window. The message log still holds
both messages and a rebuild from it restores them.
"""

from datetime import datetime
from typing import Dict, List, Optional, Union

import structlog

from src.conversation_store.errors import BackendError, ValidationError
from src.conversation_store.models import ConversationWindow, MessageRole, WindowEntry, utcnow
from src.conversation_store.services.message_log import MessageLog
from src.conversation_store.services.partition_resolver import PartitionResolver
from src.conversation_store.services.storage_router import StorageRouter
from src.conversation_store.validation import require_id, require_role

logger = structlog.get_logger(__name__)


class ConversationWindowStore:
    """Maintains and serves per-conversation windows."""

    def __init__(
        self,
        router: StorageRouter,
        message_log: MessageLog,
        resolver: PartitionResolver,
        capacity: int = 20,
        ttl_seconds: int = 7776000,
    ):
        self.router = router
        self.message_log = message_log
        self.resolver = resolver
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds

    async def sync(
        self,
        conversation_id: str,
        tenant_id: str,
        role: Union[MessageRole, str],
        content: str,
        created_at: Optional[datetime] = None,
    ) -> bool:
        """Append one entry and trim to capacity.

        Pass the mirrored message's ``created_at`` so the entry matches one
        rebuilt from the log. Returns False when the backend call failed; the
        failure is logged.
        """
        conversation_id = require_id("conversation_id", conversation_id)
        tenant_id = require_id("tenant_id", tenant_id)
        role = require_role(role)
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("content", "must be a non-empty string")

        entry = WindowEntry(role=role, content=content, created_at=created_at or utcnow())
        try:
            window = await self.router.call(lambda backend: backend.read_window(conversation_id, tenant_id))
            if window is None:
                window = ConversationWindow.empty(conversation_id, tenant_id, self.capacity, self.ttl_seconds)
            window.append(entry, capacity=self.capacity)
            await self.router.call(lambda backend: backend.upsert_window(window))
        except BackendError as e:
            logger.warning("window_sync_failed",
                           conversation_id=conversation_id,
                           tenant_id=tenant_id,
                           error=e.message,
                           status_code=e.status_code)
            return False

        logger.debug("window_synced",
                     conversation_id=conversation_id,
                     tenant_id=tenant_id,
                     entries=len(window.entries))
        return True

    async def read(self, conversation_id: str, tenant_id: Optional[str] = None) -> List[WindowEntry]:
        """Current window entries, rebuilt from the message log when missing."""
        conversation_id = require_id("conversation_id", conversation_id)
        if tenant_id is not None:
            tenant_id = require_id("tenant_id", tenant_id)
        else:
            tenant_id = await self.resolver.resolve_owner(conversation_id)
            if tenant_id is None:
                logger.debug("window_owner_unknown", conversation_id=conversation_id)
                return []

        window = await self.router.call(lambda backend: backend.read_window(conversation_id, tenant_id))
        if window is not None:
            return list(window.entries)

        messages = await self.message_log.history(conversation_id, tenant_id, limit=self.capacity)
        if not messages:
            return []

        # History may have come from the owning partition rather than tenant_id
        rebuilt = ConversationWindow.from_messages(
            conversation_id,
            messages[-1].tenant_id,
            messages,
            self.capacity,
            self.ttl_seconds,
        )
        try:
            await self.router.call(lambda backend: backend.upsert_window(rebuilt))
            logger.info("window_rebuilt", conversation_id=conversation_id, entries=len(rebuilt.entries))
        except BackendError as e:
            logger.warning("window_rebuild_failed", conversation_id=conversation_id, error=e.message)
        return list(rebuilt.entries)

    async def as_completion_input(
        self,
        conversation_id: str,
        tenant_id: Optional[str] = None,
        include_system: bool = True,
    ) -> List[Dict[str, str]]:
        """Window entries as ``{"role", "content"}`` dicts, oldest first."""
        entries = await self.read(conversation_id, tenant_id)
        return [
            e.as_completion_message()
            for e in entries
            if include_system or e.role != MessageRole.SYSTEM
        ]

    async def drop(self, conversation_id: str, tenant_id: str) -> bool:
        conversation_id = require_id("conversation_id", conversation_id)
        tenant_id = require_id("tenant_id", tenant_id)
        await self.router.call(lambda backend: backend.delete_window(conversation_id, tenant_id))
        return True
