"""
Conversation store facade.

The single entry point for the transport and completion layers: sessions,
message recording, completion context, history and directory management.
Build one instance per process with ``ConversationStore.from_settings()`` and
pass it by reference.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import structlog

from src.conversation_store.config import Settings, settings as default_settings
from src.conversation_store.errors import AuthError, BackendError
from src.conversation_store.logging import bind_conversation_context, clear_conversation_context
from src.conversation_store.models import Conversation, Credentials, Message, MessageRole, Session, StoreStats
from src.conversation_store.services.background import BackgroundTasks
from src.conversation_store.services.conversation_directory import ConversationDirectory
from src.conversation_store.services.conversation_window import ConversationWindowStore
from src.conversation_store.services.cosmos_backend import CosmosBackend
from src.conversation_store.services.fallback_store import FallbackStore
from src.conversation_store.services.identity_client import HttpIdentityProvider, IdentityProvider
from src.conversation_store.services.message_log import MessageLog
from src.conversation_store.services.partition_resolver import PartitionResolver
from src.conversation_store.services.session_store import SessionStore
from src.conversation_store.services.stats_aggregator import StatsAggregator
from src.conversation_store.services.storage_router import StorageRouter
from src.conversation_store.validation import require_id, require_limit

logger = structlog.get_logger(__name__)


class ConversationStore:
    """Wires the storage components together behind one object."""

    def __init__(
        self,
        router: StorageRouter,
        identity: Optional[IdentityProvider] = None,
        config: Optional[Settings] = None,
        background: Optional[BackgroundTasks] = None,
    ):
        self.config = config or default_settings
        self.router = router
        self.identity = identity
        self.background = background or BackgroundTasks()

        document_ttl = self.config.DOCUMENT_TTL_SECONDS
        self.resolver = PartitionResolver(router)
        self.sessions = SessionStore(router, ttl_seconds=self.config.SESSION_TTL_SECONDS)
        self.messages = MessageLog(
            router,
            self.resolver,
            max_message_bytes=self.config.MAX_MESSAGE_BYTES,
            history_max_limit=self.config.HISTORY_MAX_LIMIT,
            ttl_seconds=document_ttl,
        )
        self.window = ConversationWindowStore(
            router,
            self.messages,
            self.resolver,
            capacity=self.config.WINDOW_CAPACITY,
            ttl_seconds=document_ttl,
        )
        self.directory = ConversationDirectory(
            router,
            self.resolver,
            self.messages,
            self.window,
            default_title=self.config.DEFAULT_CONVERSATION_TITLE,
            max_title_chars=self.config.MAX_TITLE_CHARS,
            max_list_limit=self.config.HISTORY_MAX_LIMIT,
            ttl_seconds=document_ttl,
        )
        self.stats_aggregator = StatsAggregator(router, self.config)

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        identity: Optional[IdentityProvider] = None,
    ) -> "ConversationStore":
        """Build a store from configuration.

        Without ``COSMOS_DB_ENDPOINT`` the store runs on the fallback store
        from the start.
        """
        config = config or default_settings
        primary = CosmosBackend(config) if config.cosmos_configured else None
        if identity is None and config.IDENTITY_API_URL:
            identity = HttpIdentityProvider(config.IDENTITY_API_URL, timeout=config.IDENTITY_TIMEOUT_SECONDS)
        return cls(StorageRouter(primary, FallbackStore()), identity=identity, config=config)

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        await self.router.start(probe=self.config.COSMOS_PROBE_ON_STARTUP)
        logger.info("conversation_store_started", **self.router.describe())

    async def drain_background(self) -> None:
        await self.background.drain()

    async def close(self) -> None:
        await self.drain_background()
        await self.router.close()
        if self.identity is not None:
            await self.identity.close()
        logger.info("conversation_store_closed")

    async def __aenter__(self) -> "ConversationStore":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ========================================================================
    # Sessions
    # ========================================================================

    async def authenticate(self, tenant_id: str, credentials: Credentials) -> Session:
        """Verify credentials with the identity provider and persist a session."""
        tenant_id = require_id("tenant_id", tenant_id)
        if self.identity is None:
            raise AuthError("Identity provider not configured")
        profile = await self.identity.verify(tenant_id, credentials)
        return await self.sessions.create(tenant_id, profile)

    async def logout(self, tenant_id: str) -> bool:
        return await self.sessions.delete(tenant_id)

    async def get_session(self, tenant_id: str) -> Optional[Session]:
        return await self.sessions.get(tenant_id)

    async def is_authenticated(self, tenant_id: str) -> bool:
        return await self.sessions.is_authenticated(tenant_id)

    # ========================================================================
    # Messages
    # ========================================================================

    async def start_conversation(
        self,
        tenant_id: str,
        conversation_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        channel: str = "web",
        title: Optional[str] = None,
    ) -> str:
        return await self.directory.get_or_create(
            tenant_id,
            hint_conversation_id=conversation_id,
            metadata=metadata,
            channel=channel,
            title=title,
        )

    async def _record(
        self,
        tenant_id: str,
        conversation_id: str,
        role: Union[MessageRole, str],
        text: str,
        require_session: bool = False,
    ) -> Message:
        """Append to the log, then sync the window and touch the directory in the background."""
        bind_conversation_context(tenant_id, conversation_id)
        try:
            if require_session and not await self.sessions.is_authenticated(tenant_id):
                raise AuthError("Session expired or missing")

            message = await self.messages.append(conversation_id, tenant_id, role, text)
            self.background.spawn(
                self.window.sync(
                    message.conversation_id,
                    message.tenant_id,
                    message.role,
                    message.content,
                    created_at=message.created_at,
                ),
                name="window_sync",
                key=message.conversation_id,
                conversation_id=message.conversation_id,
            )
            self.background.spawn(
                self.directory.touch(message.conversation_id, message.tenant_id),
                name="directory_touch",
                key=message.conversation_id,
                conversation_id=message.conversation_id,
            )
            return message
        finally:
            clear_conversation_context()

    async def record_inbound(
        self,
        tenant_id: str,
        conversation_id: str,
        text: str,
        require_session: bool = False,
    ) -> Message:
        """Record a user message. With ``require_session`` an unauthenticated tenant raises AuthError."""
        return await self._record(tenant_id, conversation_id, MessageRole.USER, text, require_session)

    async def record_outbound(self, tenant_id: str, conversation_id: str, text: str) -> Message:
        return await self._record(tenant_id, conversation_id, MessageRole.ASSISTANT, text)

    async def record_system(self, tenant_id: str, conversation_id: str, text: str) -> Message:
        return await self._record(tenant_id, conversation_id, MessageRole.SYSTEM, text)

    async def get_completion_context(
        self,
        tenant_id: str,
        conversation_id: str,
        include_system: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, str]]:
        """
        Recent turns shaped for the completion engine: ``[{"role", "content"}]``.

        Up to the window capacity this is served from the window; larger
        limits read the message log. Storage failures yield an empty context
        so the reply can still be generated.
        """
        tenant_id = require_id("tenant_id", tenant_id)
        conversation_id = require_id("conversation_id", conversation_id)
        if limit is not None:
            limit = require_limit(limit, self.config.HISTORY_MAX_LIMIT)

        try:
            if limit is None or limit <= self.config.WINDOW_CAPACITY:
                context = await self.window.as_completion_input(conversation_id, tenant_id, include_system)
            else:
                messages = await self.messages.history(conversation_id, tenant_id, limit=limit)
                context = [
                    {"role": m.role.value, "content": m.content}
                    for m in messages
                    if include_system or m.role != MessageRole.SYSTEM
                ]
        except BackendError as e:
            logger.warning("completion_context_unavailable",
                           tenant_id=tenant_id,
                           conversation_id=conversation_id,
                           error=e.message)
            return []

        if limit is not None:
            context = context[-limit:]
        return context

    async def get_history(
        self,
        tenant_id: str,
        conversation_id: str,
        limit: int = 30,
        before: Optional[datetime] = None,
    ) -> List[Message]:
        return await self.messages.history(conversation_id, tenant_id, limit=limit, before=before)

    # ========================================================================
    # Directory
    # ========================================================================

    async def list_conversations(self, tenant_id: str, limit: int = 20) -> List[Conversation]:
        return await self.directory.list(tenant_id, limit=limit)

    async def _owner(self, conversation_id: str, tenant_id: Optional[str]) -> Optional[str]:
        """Wait for the conversation's pending window and directory writes, then find its tenant.

        A lifecycle change that ran ahead of those writes would be undone by
        them: ``touch`` recreates a deleted entry and ``sync`` a dropped window.
        """
        conversation_id = require_id("conversation_id", conversation_id)
        await self.background.drain(conversation_id)
        if tenant_id is not None:
            return require_id("tenant_id", tenant_id)
        owner = await self.resolver.resolve_owner(conversation_id)
        if owner is None:
            logger.info("conversation_owner_not_found", conversation_id=conversation_id)
        return owner

    async def rename_conversation(self, conversation_id: str, title: str, tenant_id: Optional[str] = None) -> bool:
        owner = await self._owner(conversation_id, tenant_id)
        if owner is None:
            return False
        return await self.directory.rename(conversation_id, owner, title)

    async def clear_conversation(self, conversation_id: str, tenant_id: Optional[str] = None) -> bool:
        owner = await self._owner(conversation_id, tenant_id)
        if owner is None:
            return False
        return await self.directory.clear(conversation_id, owner)

    async def trim_conversation(
        self,
        conversation_id: str,
        keep_last: int,
        tenant_id: Optional[str] = None,
    ) -> bool:
        owner = await self._owner(conversation_id, tenant_id)
        if owner is None:
            return False
        return await self.directory.trim(conversation_id, owner, keep_last)

    async def archive_conversation(self, conversation_id: str, tenant_id: Optional[str] = None) -> bool:
        owner = await self._owner(conversation_id, tenant_id)
        if owner is None:
            return False
        return await self.directory.soft_delete(conversation_id, owner)

    async def delete_conversation(self, conversation_id: str, tenant_id: Optional[str] = None) -> bool:
        owner = await self._owner(conversation_id, tenant_id)
        if owner is None:
            return False
        return await self.directory.hard_delete(conversation_id, owner)

    # ========================================================================
    # Diagnostics
    # ========================================================================

    async def stats(self) -> StoreStats:
        return await self.stats_aggregator.collect()

    def describe(self) -> Dict[str, Any]:
        info = self.stats_aggregator.describe()
        info["background_pending"] = self.background.pending
        info["background_failures"] = self.background.failures
        return info
