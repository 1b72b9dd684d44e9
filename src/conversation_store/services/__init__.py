"""Storage components for the conversation store."""

from .backend import ConversationBackend, PurgeResult
from .fallback_store import FallbackStore
from .cosmos_backend import CosmosBackend
from .storage_router import StorageRouter
from .background import BackgroundTasks
from .partition_resolver import PartitionResolver
from .session_store import SessionStore
from .message_log import MessageLog
from .conversation_window import ConversationWindowStore
from .conversation_directory import ConversationDirectory
from .stats_aggregator import StatsAggregator
from .identity_client import IdentityProvider, HttpIdentityProvider

__all__ = [
    "ConversationBackend",
    "PurgeResult",
    "FallbackStore",
    "CosmosBackend",
    "StorageRouter",
    "BackgroundTasks",
    "PartitionResolver",
    "SessionStore",
    "MessageLog",
    "ConversationWindowStore",
    "ConversationDirectory",
    "StatsAggregator",
    "IdentityProvider",
    "HttpIdentityProvider",
]
