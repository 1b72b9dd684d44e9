"""Operational counts and configuration info for diagnostics."""

from typing import Any, Dict

import structlog

from src.conversation_store.config import Settings
from src.conversation_store.models import StoreStats
from src.conversation_store.services.storage_router import StorageRouter

logger = structlog.get_logger(__name__)


class StatsAggregator:
    """Cross-partition reporting. Slow path, not for request handling."""

    def __init__(self, router: StorageRouter, config: Settings):
        self.router = router
        self.config = config

    async def collect(self) -> StoreStats:
        stats = await self.router.call(lambda backend: backend.collect_stats())
        logger.info("store_stats_collected",
                    backend=stats.backend,
                    conversations=stats.conversations,
                    total_messages=stats.total_messages)
        return stats

    def describe(self) -> Dict[str, Any]:
        info = self.router.describe()
        info.update({
            "database": self.config.COSMOS_DB_DATABASE_NAME,
            "container": self.config.COSMOS_DB_CONTAINER_NAME,
            "partition_key_path": self.config.COSMOS_DB_PARTITION_KEY_PATH,
            "endpoint_configured": self.config.cosmos_configured,
            "window_capacity": self.config.WINDOW_CAPACITY,
            "max_message_bytes": self.config.MAX_MESSAGE_BYTES,
            "session_ttl_seconds": self.config.SESSION_TTL_SECONDS,
            "document_ttl_seconds": self.config.DOCUMENT_TTL_SECONDS,
        })
        return info
