"""
Storage contract shared by the durable backend and the fallback store.

Components above this layer (session store, message log, window, directory,
stats) hold all validation and business rules, so switching backends never
changes return shapes or error behaviour.

Every point operation takes the exact tenant id (partition key). A wrong key
does not raise, it simply misses the data.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from src.conversation_store.models import (
    Conversation,
    ConversationWindow,
    Message,
    Session,
    StoreStats,
)


@dataclass
class PurgeResult:
    """Outcome of a best-effort multi-document delete."""
    deleted: int = 0
    failed: int = 0

    @property
    def complete(self) -> bool:
        return self.failed == 0


class ConversationBackend(ABC):
    """Abstract document-store operations used by the store components."""

    name: str = "abstract"

    async def probe(self) -> None:
        """Raise BackendUnavailable if the backend cannot serve requests."""
        return None

    async def close(self) -> None:
        return None

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @abstractmethod
    async def upsert_session(self, session: Session) -> Session: ...

    @abstractmethod
    async def read_session(self, tenant_id: str) -> Optional[Session]: ...

    @abstractmethod
    async def delete_session(self, tenant_id: str) -> bool:
        """Return True if a session document was removed."""

    # ------------------------------------------------------------------
    # Messages (append-only)
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_message(self, message: Message) -> Message:
        """Create, never upsert. Raise DuplicateMessageError on id collision."""

    @abstractmethod
    async def query_messages(
        self,
        conversation_id: str,
        tenant_id: str,
        limit: int,
        before: Optional[datetime] = None,
    ) -> List[Message]:
        """Most recent ``limit`` messages, returned in ascending order."""

    @abstractmethod
    async def list_message_ids(self, conversation_id: str, tenant_id: str) -> List[str]: ...

    @abstractmethod
    async def delete_message(self, message_id: str, tenant_id: str) -> bool: ...

    # ------------------------------------------------------------------
    # Rolling windows
    # ------------------------------------------------------------------

    @abstractmethod
    async def read_window(self, conversation_id: str, tenant_id: str) -> Optional[ConversationWindow]: ...

    @abstractmethod
    async def upsert_window(self, window: ConversationWindow) -> ConversationWindow: ...

    @abstractmethod
    async def delete_window(self, conversation_id: str, tenant_id: str) -> bool: ...

    # ------------------------------------------------------------------
    # Directory
    # ------------------------------------------------------------------

    @abstractmethod
    async def read_conversation(self, conversation_id: str, tenant_id: str) -> Optional[Conversation]: ...

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Optional[Conversation]:
        """Create the entry; return None if it already exists (never overwrites)."""

    @abstractmethod
    async def upsert_conversation(self, conversation: Conversation) -> Conversation: ...

    @abstractmethod
    async def list_conversations(self, tenant_id: str, limit: int, active_only: bool = True) -> List[Conversation]:
        """Entries ordered by last_activity_at descending."""

    @abstractmethod
    async def delete_conversation(self, conversation_id: str, tenant_id: str) -> bool: ...

    # ------------------------------------------------------------------
    # Cross-partition (slow path)
    # ------------------------------------------------------------------

    @abstractmethod
    async def find_conversation_owner(self, conversation_id: str) -> Optional[str]:
        """Tenant owning the directory entry, found without knowing the partition."""

    @abstractmethod
    async def collect_stats(self) -> StoreStats: ...
