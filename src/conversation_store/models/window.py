"""Capped rolling window of a conversation, shaped for the completion engine."""

from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, Field

from .message import Message, MessageRole
from .timestamps import Timestamp, utcnow

WINDOW_DOCUMENT_TYPE = "conversation_window"


def window_document_id(conversation_id: str) -> str:
    return f"window_{conversation_id}"


class WindowEntry(BaseModel):
    """One role-tagged entry; mirrors one Message."""

    role: MessageRole
    content: str
    created_at: Timestamp

    @classmethod
    def from_message(cls, message: Message) -> "WindowEntry":
        return cls(role=message.role, content=message.content, created_at=message.created_at)

    def as_completion_message(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class ConversationWindow(BaseModel):
    """Last K entries of a conversation, stored as a single document.

    Derived from the message log and rebuilt from it whenever missing.
    Entries are in chronological order and are only ever appended then trimmed.
    """

    id: str = Field(..., description="Document id: window_{conversation_id}")
    document_type: Literal["conversation_window"] = WINDOW_DOCUMENT_TYPE
    conversation_id: str
    tenant_id: str = Field(..., description="Tenant ID (partition key)")
    entries: List[WindowEntry] = Field(default_factory=list)
    capacity: int = Field(default=20, ge=1)
    updated_at: Timestamp = Field(default_factory=utcnow)
    ttl: int = Field(default=7776000, description="Time to live in seconds")

    @classmethod
    def empty(cls, conversation_id: str, tenant_id: str, capacity: int, ttl: int) -> "ConversationWindow":
        return cls(
            id=window_document_id(conversation_id),
            conversation_id=conversation_id,
            tenant_id=tenant_id,
            capacity=capacity,
            ttl=ttl,
        )

    @classmethod
    def from_messages(
        cls,
        conversation_id: str,
        tenant_id: str,
        messages: List[Message],
        capacity: int,
        ttl: int,
    ) -> "ConversationWindow":
        window = cls.empty(conversation_id, tenant_id, capacity, ttl)
        window.entries = [WindowEntry.from_message(m) for m in messages[-capacity:]]
        return window

    def append(self, entry: WindowEntry, capacity: Optional[int] = None) -> None:
        """Append then trim to the newest ``capacity`` entries."""
        if capacity is not None:
            self.capacity = capacity
        self.entries.append(entry)
        if len(self.entries) > self.capacity:
            self.entries = self.entries[-self.capacity:]
        self.updated_at = utcnow()

    def as_completion_input(self, include_system: bool = True) -> List[Dict[str, str]]:
        return [
            e.as_completion_message()
            for e in self.entries
            if include_system or e.role != MessageRole.SYSTEM
        ]
