"""Operational statistics models."""

from typing import Optional
from pydantic import BaseModel, Field

from .timestamps import Timestamp, utcnow


class StoreStats(BaseModel):
    """Cross-partition counts. ``None`` marks a count that could not be computed."""

    backend: str = Field(..., description="Active backend: cosmos or memory")
    total_documents: Optional[int] = None
    sessions: Optional[int] = None
    conversations: Optional[int] = None
    active_conversations: Optional[int] = None
    windows: Optional[int] = None
    user_messages: Optional[int] = None
    assistant_messages: Optional[int] = None
    system_messages: Optional[int] = None
    avg_window_entries: Optional[float] = None
    recent_activity: Optional[Timestamp] = None
    generated_at: Timestamp = Field(default_factory=utcnow)

    @property
    def total_messages(self) -> int:
        return sum(
            count or 0
            for count in (self.user_messages, self.assistant_messages, self.system_messages)
        )
