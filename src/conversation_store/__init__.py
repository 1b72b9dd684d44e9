"""Conversation store: multi-tenant chat persistence on Cosmos DB.

Provides sessions, the append-only message log, rolling completion windows
and the per-tenant conversation directory, with an in-process fallback when
Cosmos DB is unreachable.
"""

from .config import settings, Settings
from .errors import (
    ConversationStoreError,
    ValidationError,
    BackendError,
    BackendUnavailable,
    BackendTransientError,
    DuplicateMessageError,
    AuthError,
)
from .logging import configure_structured_logging
from .store import ConversationStore

__all__ = [
    # Config
    "settings",
    "Settings",
    # Errors
    "ConversationStoreError",
    "ValidationError",
    "BackendError",
    "BackendUnavailable",
    "BackendTransientError",
    "DuplicateMessageError",
    "AuthError",
    # Logging
    "configure_structured_logging",
    # Facade
    "ConversationStore",
]
