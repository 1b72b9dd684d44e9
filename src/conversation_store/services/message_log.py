"""
Append-only message log.

The source of truth for a conversation. One immutable document per message;
the rolling window and directory counters are derived from it.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Union

import structlog

from src.conversation_store.models import Message, MessageRole, new_message_id, utcnow
from src.conversation_store.services.backend import PurgeResult
from src.conversation_store.services.partition_resolver import PartitionResolver
from src.conversation_store.services.storage_router import StorageRouter
from src.conversation_store.errors import BackendError, ValidationError
from src.conversation_store.validation import require_id, require_limit, require_role, truncate_utf8

logger = structlog.get_logger(__name__)


class MessageLog:
    """Writes and reads chat messages for a conversation."""

    def __init__(
        self,
        router: StorageRouter,
        resolver: PartitionResolver,
        max_message_bytes: int = 4000,
        history_max_limit: int = 100,
        ttl_seconds: int = 7776000,
    ):
        self.router = router
        self.resolver = resolver
        self.max_message_bytes = max_message_bytes
        self.history_max_limit = history_max_limit
        self.ttl_seconds = ttl_seconds

    async def append(
        self,
        conversation_id: str,
        tenant_id: str,
        role: Union[MessageRole, str],
        content: str,
        message_id: Optional[str] = None,
    ) -> Message:
        """
        Persist one message.

        Content longer than the byte budget is truncated, not rejected. The
        write is a create: reusing ``message_id`` raises DuplicateMessageError.

        Returns:
            The stored message, with its assigned id and timestamp
        """
        conversation_id = require_id("conversation_id", conversation_id)
        tenant_id = require_id("tenant_id", tenant_id)
        role = require_role(role)
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("content", "must be a non-empty string")

        stored_content = truncate_utf8(content, self.max_message_bytes)
        if len(stored_content) != len(content):
            logger.info("message_content_truncated",
                        conversation_id=conversation_id,
                        original_chars=len(content),
                        stored_chars=len(stored_content))

        now = utcnow()
        message = Message(
            id=require_id("message_id", message_id) if message_id is not None else new_message_id(),
            conversation_id=conversation_id,
            tenant_id=tenant_id,
            role=role,
            content=stored_content,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
            ttl=self.ttl_seconds,
        )
        await self.router.call(lambda backend: backend.create_message(message))
        logger.debug("message_appended",
                     conversation_id=conversation_id,
                     tenant_id=tenant_id,
                     message_id=message.id,
                     role=role.value)
        return message

    async def history(
        self,
        conversation_id: str,
        tenant_id: str,
        limit: int = 20,
        before: Optional[datetime] = None,
    ) -> List[Message]:
        """Most recent ``limit`` messages in ascending order.

        Nothing found under ``tenant_id`` triggers one retry under the tenant
        that actually owns the conversation, if that differs.
        """
        conversation_id = require_id("conversation_id", conversation_id)
        tenant_id = require_id("tenant_id", tenant_id)
        limit = require_limit(limit, self.history_max_limit)

        messages = await self._query(conversation_id, tenant_id, limit, before)
        if messages:
            return messages

        owner = await self.resolver.resolve_owner(conversation_id, force=True)
        if owner is None or owner == tenant_id:
            return []

        logger.info("history_retry_with_resolved_tenant",
                    conversation_id=conversation_id,
                    requested_tenant=tenant_id,
                    resolved_tenant=owner)
        return await self._query(conversation_id, owner, limit, before)

    async def _query(
        self,
        conversation_id: str,
        tenant_id: str,
        limit: int,
        before: Optional[datetime],
    ) -> List[Message]:
        return await self.router.call(
            lambda backend: backend.query_messages(conversation_id, tenant_id, limit, before)
        )

    async def purge(self, conversation_id: str, tenant_id: str, keep_last: int = 0) -> PurgeResult:
        """Delete the messages of a conversation, continuing past failures.

        With ``keep_last`` the most recent ``keep_last`` messages survive
        (retention cleanup); the default deletes everything.
        """
        conversation_id = require_id("conversation_id", conversation_id)
        tenant_id = require_id("tenant_id", tenant_id)
        if isinstance(keep_last, bool) or not isinstance(keep_last, int) or keep_last < 0:
            raise ValidationError("keep_last", "must be a non-negative integer")

        message_ids = await self.router.call(
            lambda backend: backend.list_message_ids(conversation_id, tenant_id)
        )
        if keep_last:
            recent = await self._query(conversation_id, tenant_id, keep_last, None)
            kept = {m.id for m in recent}
            message_ids = [message_id for message_id in message_ids if message_id not in kept]

        result = PurgeResult()
        for message_id in message_ids:
            try:
                await self.router.call(
                    lambda backend, message_id=message_id: backend.delete_message(message_id, tenant_id)
                )
                result.deleted += 1
            except BackendError as e:
                result.failed += 1
                logger.warning("message_delete_failed",
                               conversation_id=conversation_id,
                               message_id=message_id,
                               error=e.message)

        logger.info("messages_purged",
                    conversation_id=conversation_id,
                    tenant_id=tenant_id,
                    deleted=result.deleted,
                    failed=result.failed,
                    kept=keep_last)
        return result
