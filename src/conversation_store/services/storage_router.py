"""
Backend selection with a one-way switch to the fallback store.

The durable backend serves every call until it reports BackendUnavailable.
From then on, for the remaining lifetime of the process, every call goes to
the in-process fallback. There is no switching back and no reconciliation.
"""

from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import structlog

from src.conversation_store.errors import BackendUnavailable
from src.conversation_store.services.backend import ConversationBackend
from src.conversation_store.services.fallback_store import FallbackStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class StorageRouter:
    """Routes each storage call to the active backend."""

    def __init__(self, primary: Optional[ConversationBackend], fallback: Optional[FallbackStore] = None):
        self.primary = primary
        self.fallback = fallback or FallbackStore()
        self._degraded = primary is None
        self._degraded_reason: Optional[str] = None
        if self._degraded:
            self._degraded_reason = "durable backend not configured"
            logger.warning("storage_degraded", reason=self._degraded_reason, backend=self.fallback.name)

    @property
    def degraded(self) -> bool:
        return self._degraded

    @property
    def active(self) -> ConversationBackend:
        return self.fallback if self._degraded else self.primary

    def _switch_to_fallback(self, reason: str, operation: Optional[str] = None) -> None:
        if self._degraded:
            return
        self._degraded = True
        self._degraded_reason = reason
        logger.error("storage_switched_to_fallback",
                     reason=reason,
                     operation=operation,
                     primary=self.primary.name,
                     fallback=self.fallback.name)

    async def start(self, probe: bool = True) -> None:
        """Probe the durable backend once; an unavailable backend degrades the process."""
        if self._degraded or not probe:
            return
        try:
            await self.primary.probe()
        except BackendUnavailable as e:
            self._switch_to_fallback(e.message, operation="probe")

    async def call(self, operation: Callable[[ConversationBackend], Awaitable[T]]) -> T:
        """Run ``operation`` against the active backend.

        If the durable backend raises BackendUnavailable, the router switches
        and the same operation is retried once against the fallback store.
        Transient errors propagate unchanged.
        """
        if self._degraded:
            return await operation(self.fallback)
        try:
            return await operation(self.primary)
        except BackendUnavailable as e:
            self._switch_to_fallback(e.message, operation=e.operation)
            return await operation(self.fallback)

    def describe(self) -> Dict[str, Any]:
        return {
            "backend": self.active.name,
            "degraded": self._degraded,
            "degraded_reason": self._degraded_reason,
            "primary": self.primary.name if self.primary is not None else None,
        }

    async def close(self) -> None:
        if self.primary is not None:
            await self.primary.close()
        await self.fallback.close()
