"""
In-process fallback store.

Implements the full storage contract with process-local maps so the chat keeps
its memory while the durable backend is unconfigured or unreachable.

Layout mirrors the durable partitioning:
- tenant -> partition (session + insertion-ordered conversations)
- conversation -> slot (directory entry, ordered messages, rolling window)

Everything is lost on restart. This is an outage substitute, not a
write-behind cache: nothing here is ever copied to the durable backend.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set

import structlog

from src.conversation_store.errors import DuplicateMessageError
from src.conversation_store.models import (
    Conversation,
    ConversationWindow,
    Message,
    MessageRole,
    Session,
    StoreStats,
)
from src.conversation_store.services.backend import ConversationBackend

logger = structlog.get_logger(__name__)


@dataclass
class _ConversationSlot:
    info: Optional[Conversation] = None
    messages: List[Message] = field(default_factory=list)
    window: Optional[ConversationWindow] = None

    def is_empty(self) -> bool:
        return self.info is None and not self.messages and self.window is None


@dataclass
class _TenantPartition:
    session: Optional[Session] = None
    conversations: Dict[str, _ConversationSlot] = field(default_factory=dict)
    message_ids: Set[str] = field(default_factory=set)


class FallbackStore(ConversationBackend):
    """
    Ephemeral backend keyed by tenant.

    Mutations run under a re-entrant lock and never await while holding it,
    so concurrent tasks (and threads) see consistent maps. Values are copied on
    the way in and out, matching document-store semantics where a read never
    aliases stored state.

    Expired sessions are never purged here; SessionStore filters them.
    """

    name = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._tenants: Dict[str, _TenantPartition] = {}
        logger.info("fallback_store_initialized")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _partition(self, tenant_id: str) -> _TenantPartition:
        partition = self._tenants.get(tenant_id)
        if partition is None:
            partition = _TenantPartition()
            self._tenants[tenant_id] = partition
        return partition

    def _slot(self, tenant_id: str, conversation_id: str, create: bool = False) -> Optional[_ConversationSlot]:
        if create:
            partition = self._partition(tenant_id)
        else:
            partition = self._tenants.get(tenant_id)
            if partition is None:
                return None
        slot = partition.conversations.get(conversation_id)
        if slot is None and create:
            slot = _ConversationSlot()
            partition.conversations[conversation_id] = slot
        return slot

    def _discard_if_empty(self, tenant_id: str, conversation_id: str) -> None:
        partition = self._tenants.get(tenant_id)
        if partition is None:
            return
        slot = partition.conversations.get(conversation_id)
        if slot is not None and slot.is_empty():
            del partition.conversations[conversation_id]

    @staticmethod
    def _copy(model):
        return model.model_copy(deep=True) if model is not None else None

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def upsert_session(self, session: Session) -> Session:
        with self._lock:
            self._partition(session.tenant_id).session = self._copy(session)
        return self._copy(session)

    async def read_session(self, tenant_id: str) -> Optional[Session]:
        with self._lock:
            partition = self._tenants.get(tenant_id)
            return self._copy(partition.session) if partition else None

    async def delete_session(self, tenant_id: str) -> bool:
        with self._lock:
            partition = self._tenants.get(tenant_id)
            if partition is None or partition.session is None:
                return False
            partition.session = None
            return True

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def create_message(self, message: Message) -> Message:
        with self._lock:
            partition = self._partition(message.tenant_id)
            if message.id in partition.message_ids:
                raise DuplicateMessageError(message.id)
            partition.message_ids.add(message.id)
            slot = self._slot(message.tenant_id, message.conversation_id, create=True)
            slot.messages.append(message)
        return message

    async def query_messages(
        self,
        conversation_id: str,
        tenant_id: str,
        limit: int,
        before: Optional[datetime] = None,
    ) -> List[Message]:
        with self._lock:
            slot = self._slot(tenant_id, conversation_id)
            if slot is None:
                return []
            messages = sorted(slot.messages, key=lambda m: m.created_at)
        if before is not None:
            messages = [m for m in messages if m.created_at < before]
        return messages[-limit:] if limit > 0 else []

    async def list_message_ids(self, conversation_id: str, tenant_id: str) -> List[str]:
        with self._lock:
            slot = self._slot(tenant_id, conversation_id)
            return [m.id for m in slot.messages] if slot else []

    async def delete_message(self, message_id: str, tenant_id: str) -> bool:
        with self._lock:
            partition = self._tenants.get(tenant_id)
            if partition is None or message_id not in partition.message_ids:
                return False
            partition.message_ids.discard(message_id)
            for conversation_id, slot in list(partition.conversations.items()):
                remaining = [m for m in slot.messages if m.id != message_id]
                if len(remaining) != len(slot.messages):
                    slot.messages = remaining
                    self._discard_if_empty(tenant_id, conversation_id)
                    break
            return True

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    async def read_window(self, conversation_id: str, tenant_id: str) -> Optional[ConversationWindow]:
        with self._lock:
            slot = self._slot(tenant_id, conversation_id)
            return self._copy(slot.window) if slot else None

    async def upsert_window(self, window: ConversationWindow) -> ConversationWindow:
        with self._lock:
            slot = self._slot(window.tenant_id, window.conversation_id, create=True)
            slot.window = self._copy(window)
        return self._copy(window)

    async def delete_window(self, conversation_id: str, tenant_id: str) -> bool:
        with self._lock:
            slot = self._slot(tenant_id, conversation_id)
            if slot is None or slot.window is None:
                return False
            slot.window = None
            self._discard_if_empty(tenant_id, conversation_id)
            return True

    # ------------------------------------------------------------------
    # Directory
    # ------------------------------------------------------------------

    async def read_conversation(self, conversation_id: str, tenant_id: str) -> Optional[Conversation]:
        with self._lock:
            slot = self._slot(tenant_id, conversation_id)
            return self._copy(slot.info) if slot else None

    async def create_conversation(self, conversation: Conversation) -> Optional[Conversation]:
        with self._lock:
            slot = self._slot(conversation.tenant_id, conversation.conversation_id, create=True)
            if slot.info is not None:
                return None
            slot.info = self._copy(conversation)
        return self._copy(conversation)

    async def upsert_conversation(self, conversation: Conversation) -> Conversation:
        with self._lock:
            slot = self._slot(conversation.tenant_id, conversation.conversation_id, create=True)
            slot.info = self._copy(conversation)
        return self._copy(conversation)

    async def list_conversations(self, tenant_id: str, limit: int, active_only: bool = True) -> List[Conversation]:
        with self._lock:
            partition = self._tenants.get(tenant_id)
            if partition is None:
                return []
            entries = [
                self._copy(slot.info)
                for slot in partition.conversations.values()
                if slot.info is not None and (slot.info.is_active or not active_only)
            ]
        entries.sort(key=lambda c: c.last_activity_at, reverse=True)
        return entries[:limit]

    async def delete_conversation(self, conversation_id: str, tenant_id: str) -> bool:
        with self._lock:
            slot = self._slot(tenant_id, conversation_id)
            if slot is None or slot.info is None:
                return False
            slot.info = None
            self._discard_if_empty(tenant_id, conversation_id)
            return True

    # ------------------------------------------------------------------
    # Cross-partition
    # ------------------------------------------------------------------

    async def find_conversation_owner(self, conversation_id: str) -> Optional[str]:
        with self._lock:
            for tenant_id, partition in self._tenants.items():
                slot = partition.conversations.get(conversation_id)
                if slot is not None and slot.info is not None:
                    return tenant_id
        return None

    async def collect_stats(self) -> StoreStats:
        with self._lock:
            partitions = list(self._tenants.values())
            sessions = sum(1 for p in partitions if p.session is not None)
            slots = [slot for p in partitions for slot in p.conversations.values()]
            infos = [s.info for s in slots if s.info is not None]
            windows = [s.window for s in slots if s.window is not None]
            messages = [m for s in slots for m in s.messages]

        by_role = {role: 0 for role in MessageRole}
        for message in messages:
            by_role[message.role] += 1

        return StoreStats(
            backend=self.name,
            total_documents=sessions + len(infos) + len(windows) + len(messages),
            sessions=sessions,
            conversations=len(infos),
            active_conversations=sum(1 for c in infos if c.is_active),
            windows=len(windows),
            user_messages=by_role[MessageRole.USER],
            assistant_messages=by_role[MessageRole.ASSISTANT],
            system_messages=by_role[MessageRole.SYSTEM],
            avg_window_entries=(
                round(sum(len(w.entries) for w in windows) / len(windows), 2) if windows else 0.0
            ),
            recent_activity=max((m.created_at for m in messages), default=None),
        )
