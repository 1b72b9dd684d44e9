"""Chat message models."""

from enum import Enum
from typing import Literal
from pydantic import BaseModel, Field
import uuid

from .timestamps import Timestamp

MESSAGE_DOCUMENT_TYPE = "conversation_message"


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex}"


class MessageRole(str, Enum):
    """Role of a message author, as understood by the completion engine."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """Individual chat message. Immutable once written."""

    id: str = Field(default_factory=new_message_id, description="Document id (same as message_id)")
    document_type: Literal["conversation_message"] = MESSAGE_DOCUMENT_TYPE
    conversation_id: str = Field(..., description="Conversation ID")
    tenant_id: str = Field(..., description="Tenant ID (partition key)")
    role: MessageRole = Field(..., description="Message role (user, assistant, system)")
    content: str = Field(..., description="Message content (size-capped)")
    created_at: Timestamp
    expires_at: Timestamp
    ttl: int = Field(default=7776000, description="Time to live in seconds")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": "msg_4f1c2a9e0b7d4c55a1f3e2d1c0b9a8f7",
                "conversation_id": "conv-abc123",
                "tenant_id": "91004",
                "role": "user",
                "content": "What is my current balance?",
                "created_at": "2026-01-31T10:30:00.000000Z",
            }
        }

    @property
    def message_id(self) -> str:
        return self.id
