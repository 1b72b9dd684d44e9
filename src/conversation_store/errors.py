"""
Error kinds raised by the conversation store.

Absent sessions, conversations and windows are not errors: lookups return
``None`` or an empty list and the caller applies its own defaulting.
"""

from typing import Optional


class ConversationStoreError(Exception):
    """Base class for every error raised by the store."""
    pass


class ValidationError(ConversationStoreError, ValueError):
    """Bad input from the caller. Never retried."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class BackendError(ConversationStoreError):
    """A failure reported by the storage backend."""

    def __init__(self, message: str, operation: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message
        self.operation = operation
        self.status_code = status_code
        super().__init__(message)


class BackendUnavailable(BackendError):
    """Configuration or connectivity failure.

    Triggers the one-time, process-lifetime switch to the fallback store.
    """
    pass


class BackendTransientError(BackendError):
    """Timeout, throttling or another single-call failure.

    Surfaced to the immediate caller; background work logs and drops it.
    """
    pass


class DuplicateMessageError(BackendError):
    """A message id already exists. Appends are creates, so this is a caller bug."""

    def __init__(self, message_id: str):
        self.message_id = message_id
        super().__init__(f"Message already exists: {message_id}", operation="create_message", status_code=409)


class AuthError(ConversationStoreError):
    """The identity provider rejected the credentials."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)
