"""
Shared pytest fixtures for the Conversation Store test suite.

All fixtures build on the in-process FallbackStore so unit and scenario tests
run without a Cosmos DB account. Cosmos adapter tests use a mocked container
(see ``mock_container``).

Configuration:
- Window capacity: 20 (scenario tests override to 2)
- Session TTL: 3600s
- Message byte budget: 4000
"""

import pytest
from typing import Any, List
from unittest.mock import MagicMock, AsyncMock

from src.conversation_store.config import Settings
from src.conversation_store.errors import AuthError
from src.conversation_store.models import Credentials, IdentityProfile
from src.conversation_store.services.fallback_store import FallbackStore
from src.conversation_store.services.identity_client import IdentityProvider
from src.conversation_store.services.message_log import MessageLog
from src.conversation_store.services.partition_resolver import PartitionResolver
from src.conversation_store.services.storage_router import StorageRouter
from src.conversation_store.services.conversation_window import ConversationWindowStore
from src.conversation_store.services.conversation_directory import ConversationDirectory
from src.conversation_store.store import ConversationStore


# ============================================================================
# Constants
# ============================================================================

TENANT_ID = "91004"
OTHER_TENANT_ID = "91005"
CONVERSATION_ID = "conv-abc123"
VALID_PASSWORD = "correct-horse"


# ============================================================================
# Configuration
# ============================================================================

def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment and any .env file."""
    values = {
        "COSMOS_DB_ENDPOINT": None,
        "COSMOS_DB_KEY": None,
        "IDENTITY_API_URL": None,
        "WINDOW_CAPACITY": 20,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


# ============================================================================
# Identity
# ============================================================================

class StaticIdentityProvider(IdentityProvider):
    """Accepts exactly one password for any user."""

    def __init__(self, password: str = VALID_PASSWORD):
        self.password = password
        self.calls: List[str] = []

    async def verify(self, tenant_id: str, credentials: Credentials) -> IdentityProfile:
        self.calls.append(tenant_id)
        if credentials.password.get_secret_value() != self.password:
            raise AuthError("Invalid credentials")
        return IdentityProfile(
            user_key=credentials.username,
            display_name="Ana",
            token=f"token-{tenant_id}",
            extra_fields={"paternal_name": "Lopez"},
        )


@pytest.fixture
def identity() -> StaticIdentityProvider:
    return StaticIdentityProvider()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(username=TENANT_ID, password=VALID_PASSWORD)


# ============================================================================
# Storage components
# ============================================================================

@pytest.fixture
def fallback() -> FallbackStore:
    return FallbackStore()


@pytest.fixture
def router(fallback) -> StorageRouter:
    """Router running on the fallback store (no durable backend)."""
    return StorageRouter(None, fallback)


@pytest.fixture
def resolver(router) -> PartitionResolver:
    return PartitionResolver(router)


@pytest.fixture
def message_log(router, resolver) -> MessageLog:
    return MessageLog(router, resolver)


@pytest.fixture
def window_store(router, message_log, resolver) -> ConversationWindowStore:
    return ConversationWindowStore(router, message_log, resolver, capacity=20)


@pytest.fixture
def directory(router, resolver, message_log, window_store) -> ConversationDirectory:
    return ConversationDirectory(router, resolver, message_log, window_store)


@pytest.fixture
def store(test_settings, identity) -> ConversationStore:
    return ConversationStore(StorageRouter(None, FallbackStore()), identity=identity, config=test_settings)


# ============================================================================
# Mock Cosmos DB container
# ============================================================================

class AsyncItemIterator:
    """Stand-in for the SDK's AsyncItemPaged."""

    def __init__(self, items: List[Any]):
        self._items = list(items)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._items:
            raise StopAsyncIteration
        return self._items.pop(0)


@pytest.fixture
def mock_container():
    """Mock azure.cosmos.aio ContainerProxy."""
    container = MagicMock()
    container.read = AsyncMock(return_value={"id": "conversations"})
    container.read_item = AsyncMock(return_value={})
    container.create_item = AsyncMock(side_effect=lambda body: body)
    container.upsert_item = AsyncMock(side_effect=lambda body: body)
    container.delete_item = AsyncMock(return_value=None)
    container.query_items = MagicMock(side_effect=lambda **kwargs: AsyncItemIterator([]))
    return container


def query_results(*batches: List[Any]):
    """side_effect for ``query_items`` returning one batch per call."""
    pending = list(batches)

    def _next(**kwargs):
        return AsyncItemIterator(pending.pop(0) if pending else [])

    return _next


@pytest.fixture
def settings_factory():
    """Factory fixture for Settings with overrides."""
    return make_settings


@pytest.fixture
def cosmos_results():
    """Factory fixture building ``query_items`` side effects."""
    return query_results
