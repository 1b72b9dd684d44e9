"""Authenticated sessions, one per tenant."""

from typing import Optional

import structlog

from src.conversation_store.models import IdentityProfile, Session
from src.conversation_store.services.storage_router import StorageRouter
from src.conversation_store.validation import require_id

logger = structlog.get_logger(__name__)


class SessionStore:
    """
    Session lifecycle on top of the active backend.

    Sessions have a fixed lifetime from creation. Reading never extends it;
    only a new ``create`` (re-authentication) resets the clock.
    """

    def __init__(self, router: StorageRouter, ttl_seconds: int = 3600):
        self.router = router
        self.ttl_seconds = ttl_seconds

    async def create(self, tenant_id: str, profile: IdentityProfile) -> Session:
        """Write a fresh session, replacing any existing one for the tenant."""
        tenant_id = require_id("tenant_id", tenant_id)
        session = Session.issue(tenant_id, profile, self.ttl_seconds)
        await self.router.call(lambda backend: backend.upsert_session(session))
        logger.info("session_created", tenant_id=tenant_id, expires_at=session.expires_at.isoformat())
        return session

    async def get(self, tenant_id: str) -> Optional[Session]:
        tenant_id = require_id("tenant_id", tenant_id)
        session = await self.router.call(lambda backend: backend.read_session(tenant_id))
        if session is None:
            return None
        # The backend purges by ttl on its own schedule
        if session.is_expired():
            logger.debug("session_expired", tenant_id=tenant_id)
            return None
        return session

    async def delete(self, tenant_id: str) -> bool:
        tenant_id = require_id("tenant_id", tenant_id)
        removed = await self.router.call(lambda backend: backend.delete_session(tenant_id))
        logger.info("session_deleted", tenant_id=tenant_id, existed=removed)
        return True

    async def is_authenticated(self, tenant_id: str) -> bool:
        return await self.get(tenant_id) is not None
