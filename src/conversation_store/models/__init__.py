"""Document models for the conversation store."""

from .timestamps import Timestamp, utcnow, format_timestamp
from .session import Credentials, IdentityProfile, Session, session_document_id
from .message import Message, MessageRole, new_message_id
from .window import ConversationWindow, WindowEntry, window_document_id
from .conversation import Conversation, conversation_document_id, new_conversation_id
from .stats import StoreStats

__all__ = [
    "Timestamp",
    "utcnow",
    "format_timestamp",
    "Credentials",
    "IdentityProfile",
    "Session",
    "session_document_id",
    "Message",
    "MessageRole",
    "new_message_id",
    "ConversationWindow",
    "WindowEntry",
    "window_document_id",
    "Conversation",
    "conversation_document_id",
    "new_conversation_id",
    "StoreStats",
]
