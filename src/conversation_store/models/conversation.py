"""Conversation directory models."""

from typing import Any, Dict, Literal
from pydantic import BaseModel, Field
import uuid

from .timestamps import Timestamp, utcnow

CONVERSATION_DOCUMENT_TYPE = "conversation_info"


def conversation_document_id(conversation_id: str) -> str:
    return f"conversation_{conversation_id}"


def new_conversation_id() -> str:
    return uuid.uuid4().hex


class Conversation(BaseModel):
    """Directory entry summarising one conversation of a tenant."""

    id: str = Field(..., description="Document id: conversation_{conversation_id}")
    document_type: Literal["conversation_info"] = CONVERSATION_DOCUMENT_TYPE
    conversation_id: str = Field(..., description="Conversation ID")
    tenant_id: str = Field(..., description="Tenant ID (partition key)")
    title: str = Field(default="New chat")
    channel: str = Field(default="web", description="Channel the conversation started on")
    created_at: Timestamp = Field(default_factory=utcnow)
    last_activity_at: Timestamp = Field(default_factory=utcnow)
    message_count: int = Field(default=0, ge=0)
    is_active: bool = True
    archived: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)
    ttl: int = Field(default=7776000, description="Time to live in seconds")

    class Config:
        json_schema_extra = {
            "example": {
                "id": "conversation_conv-abc123",
                "conversation_id": "conv-abc123",
                "tenant_id": "91004",
                "title": "Balance questions",
                "channel": "teams",
                "message_count": 6,
                "is_active": True,
            }
        }

    @classmethod
    def new(
        cls,
        conversation_id: str,
        tenant_id: str,
        title: str,
        channel: str,
        metadata: Dict[str, Any],
        ttl: int,
    ) -> "Conversation":
        now = utcnow()
        return cls(
            id=conversation_document_id(conversation_id),
            conversation_id=conversation_id,
            tenant_id=tenant_id,
            title=title,
            channel=channel,
            created_at=now,
            last_activity_at=now,
            metadata=metadata,
            ttl=ttl,
        )
