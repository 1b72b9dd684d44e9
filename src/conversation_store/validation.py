"""Input checks shared by the store components."""

from typing import Optional, Union

from src.conversation_store.errors import ValidationError
from src.conversation_store.models import MessageRole

# Cosmos rejects these in document ids
_FORBIDDEN_ID_CHARS = frozenset("/\\?#")


def require_id(field: str, value: Optional[str]) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, "is required")
    value = value.strip()
    bad = sorted(_FORBIDDEN_ID_CHARS.intersection(value))
    if bad:
        raise ValidationError(field, f"contains forbidden characters: {''.join(bad)}")
    return value


def require_role(value: Union[MessageRole, str]) -> MessageRole:
    try:
        return MessageRole(value)
    except ValueError:
        raise ValidationError("role", f"must be one of system, user, assistant (got {value!r})") from None


def require_limit(limit: int, maximum: int) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValidationError("limit", "must be an integer >= 1")
    return min(limit, maximum)


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Cut ``text`` to at most ``max_bytes`` UTF-8 bytes without splitting a character."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")
