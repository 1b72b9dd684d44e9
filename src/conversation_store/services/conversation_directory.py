"""
Per-tenant directory of conversations.

Powers conversation lists in the UI: title, channel, counters and activity
timestamps for each conversation, plus lifecycle operations (rename, archive,
clear, delete).
"""

from typing import Any, Dict, List, Optional

import structlog

from src.conversation_store.errors import BackendError, ValidationError
from src.conversation_store.models import Conversation, new_conversation_id, utcnow
from src.conversation_store.services.conversation_window import ConversationWindowStore
from src.conversation_store.services.message_log import MessageLog
from src.conversation_store.services.partition_resolver import PartitionResolver
from src.conversation_store.services.storage_router import StorageRouter
from src.conversation_store.validation import require_id, require_limit

logger = structlog.get_logger(__name__)


class ConversationDirectory:
    """Directory entries, one per conversation, partitioned by tenant."""

    def __init__(
        self,
        router: StorageRouter,
        resolver: PartitionResolver,
        message_log: MessageLog,
        window: ConversationWindowStore,
        default_title: str = "New chat",
        max_title_chars: int = 120,
        max_list_limit: int = 100,
        ttl_seconds: int = 7776000,
    ):
        self.router = router
        self.resolver = resolver
        self.message_log = message_log
        self.window = window
        self.default_title = default_title
        self.max_title_chars = max_title_chars
        self.max_list_limit = max_list_limit
        self.ttl_seconds = ttl_seconds

    async def get_or_create(
        self,
        tenant_id: str,
        hint_conversation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        channel: str = "web",
        title: Optional[str] = None,
    ) -> str:
        """
        Return the hinted conversation if it exists, otherwise create one.

        An existing entry is returned untouched; ``metadata``, ``channel`` and
        ``title`` only apply to a new entry. Creation never overwrites, so a
        concurrent creator of the same id keeps its entry.

        Returns:
            The conversation id
        """
        tenant_id = require_id("tenant_id", tenant_id)
        if hint_conversation_id is not None:
            conversation_id = require_id("conversation_id", hint_conversation_id)
            existing = await self.router.call(lambda backend: backend.read_conversation(conversation_id, tenant_id))
            if existing is not None:
                self.resolver.remember(conversation_id, tenant_id)
                return conversation_id
        else:
            conversation_id = new_conversation_id()

        entry = Conversation.new(
            conversation_id=conversation_id,
            tenant_id=tenant_id,
            title=self._clean_title(title) if title is not None else self.default_title,
            channel=channel or "web",
            metadata=dict(metadata or {}),
            ttl=self.ttl_seconds,
        )
        created = await self.router.call(lambda backend: backend.create_conversation(entry))
        self.resolver.remember(conversation_id, tenant_id)
        if created is None:
            logger.debug("conversation_create_lost_race", conversation_id=conversation_id, tenant_id=tenant_id)
        else:
            logger.info("conversation_created",
                        conversation_id=conversation_id,
                        tenant_id=tenant_id,
                        channel=entry.channel)
        return conversation_id

    async def get(self, conversation_id: str, tenant_id: str) -> Optional[Conversation]:
        conversation_id = require_id("conversation_id", conversation_id)
        tenant_id = require_id("tenant_id", tenant_id)
        return await self.router.call(lambda backend: backend.read_conversation(conversation_id, tenant_id))

    async def touch(self, conversation_id: str, tenant_id: str) -> bool:
        """Count one more message and bump ``last_activity_at``.

        Creates the entry if it is missing. Concurrent touches are
        last-writer-wins, so the counter may undercount.
        """
        conversation_id = require_id("conversation_id", conversation_id)
        tenant_id = require_id("tenant_id", tenant_id)
        try:
            entry = await self.router.call(lambda backend: backend.read_conversation(conversation_id, tenant_id))
            if entry is None:
                entry = Conversation.new(
                    conversation_id=conversation_id,
                    tenant_id=tenant_id,
                    title=self.default_title,
                    channel="web",
                    metadata={},
                    ttl=self.ttl_seconds,
                )
                self.resolver.remember(conversation_id, tenant_id)
            entry.message_count += 1
            entry.last_activity_at = utcnow()
            await self.router.call(lambda backend: backend.upsert_conversation(entry))
        except BackendError as e:
            logger.warning("conversation_touch_failed",
                           conversation_id=conversation_id,
                           tenant_id=tenant_id,
                           error=e.message)
            return False
        return True

    async def list(self, tenant_id: str, limit: int = 20) -> List[Conversation]:
        """Active conversations, most recently active first."""
        tenant_id = require_id("tenant_id", tenant_id)
        limit = require_limit(limit, self.max_list_limit)
        return await self.router.call(lambda backend: backend.list_conversations(tenant_id, limit, active_only=True))

    def _clean_title(self, title: str) -> str:
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("title", "must be a non-empty string")
        return title.strip()[: self.max_title_chars]

    async def rename(self, conversation_id: str, tenant_id: str, title: str) -> bool:
        conversation_id = require_id("conversation_id", conversation_id)
        tenant_id = require_id("tenant_id", tenant_id)
        title = self._clean_title(title)

        entry = await self.router.call(lambda backend: backend.read_conversation(conversation_id, tenant_id))
        if entry is None:
            return False
        entry.title = title
        await self.router.call(lambda backend: backend.upsert_conversation(entry))
        logger.info("conversation_renamed", conversation_id=conversation_id, tenant_id=tenant_id)
        return True

    async def soft_delete(self, conversation_id: str, tenant_id: str) -> bool:
        """Hide the conversation from listings; its messages stay."""
        conversation_id = require_id("conversation_id", conversation_id)
        tenant_id = require_id("tenant_id", tenant_id)

        entry = await self.router.call(lambda backend: backend.read_conversation(conversation_id, tenant_id))
        if entry is None:
            return False
        entry.is_active = False
        entry.archived = True
        await self.router.call(lambda backend: backend.upsert_conversation(entry))
        logger.info("conversation_archived", conversation_id=conversation_id, tenant_id=tenant_id)
        return True

    async def hard_delete(self, conversation_id: str, tenant_id: str) -> bool:
        """
        Remove the directory entry, every message and the window.

        Best effort: each step runs even if an earlier one failed, and
        completed deletions are not rolled back. The directory entry goes
        last so a partial failure leaves it in place for a retry.

        Returns:
            True if the directory entry was removed
        """
        conversation_id = require_id("conversation_id", conversation_id)
        tenant_id = require_id("tenant_id", tenant_id)

        failures = 0
        try:
            purge = await self.message_log.purge(conversation_id, tenant_id)
            failures += purge.failed
        except BackendError as e:
            failures += 1
            logger.warning("conversation_delete_messages_failed", conversation_id=conversation_id, error=e.message)

        try:
            await self.window.drop(conversation_id, tenant_id)
        except BackendError as e:
            failures += 1
            logger.warning("conversation_delete_window_failed", conversation_id=conversation_id, error=e.message)

        removed = False
        try:
            removed = await self.router.call(lambda backend: backend.delete_conversation(conversation_id, tenant_id))
        except BackendError as e:
            failures += 1
            logger.warning("conversation_delete_entry_failed", conversation_id=conversation_id, error=e.message)

        self.resolver.forget(conversation_id)
        if failures:
            logger.error("conversation_delete_partial",
                         conversation_id=conversation_id,
                         tenant_id=tenant_id,
                         failures=failures)
        else:
            logger.info("conversation_deleted",
                        conversation_id=conversation_id,
                        tenant_id=tenant_id,
                        existed=removed)
        return removed

    async def clear(self, conversation_id: str, tenant_id: str) -> bool:
        """Delete all messages and the window but keep the entry, reset to zero."""
        conversation_id = require_id("conversation_id", conversation_id)
        tenant_id = require_id("tenant_id", tenant_id)

        entry = await self.router.call(lambda backend: backend.read_conversation(conversation_id, tenant_id))
        if entry is None:
            return False

        purge = await self.message_log.purge(conversation_id, tenant_id)
        await self.window.drop(conversation_id, tenant_id)

        entry.message_count = 0
        entry.last_activity_at = utcnow()
        entry.is_active = True
        await self.router.call(lambda backend: backend.upsert_conversation(entry))
        logger.info("conversation_cleared",
                    conversation_id=conversation_id,
                    tenant_id=tenant_id,
                    deleted_messages=purge.deleted,
                    failed_messages=purge.failed)
        return purge.complete

    async def trim(self, conversation_id: str, tenant_id: str, keep_last: int) -> bool:
        """Retention cleanup: keep only the newest ``keep_last`` messages.

        The window is dropped so the next read rebuilds it from what is left.
        """
        conversation_id = require_id("conversation_id", conversation_id)
        tenant_id = require_id("tenant_id", tenant_id)

        entry = await self.router.call(lambda backend: backend.read_conversation(conversation_id, tenant_id))
        if entry is None:
            return False

        purge = await self.message_log.purge(conversation_id, tenant_id, keep_last=keep_last)
        await self.window.drop(conversation_id, tenant_id)

        entry.message_count = max(entry.message_count - purge.deleted, 0)
        await self.router.call(lambda backend: backend.upsert_conversation(entry))
        logger.info("conversation_trimmed",
                    conversation_id=conversation_id,
                    tenant_id=tenant_id,
                    keep_last=keep_last,
                    deleted_messages=purge.deleted,
                    failed_messages=purge.failed)
        return purge.complete
