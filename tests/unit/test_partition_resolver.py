"""
Unit Tests: PartitionResolver

Run: pytest tests/unit/test_partition_resolver.py -v
"""

import pytest
from unittest.mock import MagicMock, AsyncMock

from src.conversation_store.errors import BackendTransientError
from src.conversation_store.services.partition_resolver import PartitionResolver


@pytest.fixture
def mock_router():
    router = MagicMock()
    router.call = AsyncMock(return_value="T1")
    return router


class TestResolveOwner:
    """Hint, cache and cross-partition lookup."""

    @pytest.mark.asyncio
    async def test_hint_returned_without_lookup(self, mock_router):
        resolver = PartitionResolver(mock_router)

        assert await resolver.resolve_owner("C1", hinted_tenant="T9") == "T9"
        mock_router.call.assert_not_called()

    @pytest.mark.asyncio
    async def test_lookup_result_cached(self, mock_router):
        resolver = PartitionResolver(mock_router)

        assert await resolver.resolve_owner("C1") == "T1"
        assert await resolver.resolve_owner("C1") == "T1"
        assert mock_router.call.await_count == 1

    @pytest.mark.asyncio
    async def test_unknown_not_cached(self, mock_router):
        mock_router.call.return_value = None
        resolver = PartitionResolver(mock_router)

        assert await resolver.resolve_owner("C1") is None
        assert await resolver.resolve_owner("C1") is None
        assert mock_router.call.await_count == 2

    @pytest.mark.asyncio
    async def test_errors_propagate_and_are_not_cached(self, mock_router):
        mock_router.call.side_effect = [BackendTransientError("timeout"), "T1"]
        resolver = PartitionResolver(mock_router)

        with pytest.raises(BackendTransientError):
            await resolver.resolve_owner("C1")
        assert await resolver.resolve_owner("C1") == "T1"

    @pytest.mark.asyncio
    async def test_remember_and_forget(self, mock_router):
        resolver = PartitionResolver(mock_router)
        resolver.remember("C1", "T5")

        assert await resolver.resolve_owner("C1") == "T5"
        mock_router.call.assert_not_called()

        resolver.forget("C1")
        resolver.forget("C1")
        assert await resolver.resolve_owner("C1") == "T1"

    @pytest.mark.asyncio
    async def test_lookup_against_fallback_store(self, resolver, directory):
        await directory.get_or_create("T7", hint_conversation_id="C7")
        resolver.forget("C7")

        assert await resolver.resolve_owner("C7") == "T7"

    @pytest.mark.asyncio
    async def test_force_bypasses_cache(self, mock_router):
        resolver = PartitionResolver(mock_router)
        resolver.remember("C1", "T-stale")

        assert await resolver.resolve_owner("C1", force=True) == "T1"
        mock_router.call.assert_awaited_once()
        assert await resolver.resolve_owner("C1") == "T1"

    @pytest.mark.asyncio
    async def test_forced_miss_evicts_cached_owner(self, mock_router):
        mock_router.call.return_value = None
        resolver = PartitionResolver(mock_router)
        resolver.remember("C1", "T-stale")

        assert await resolver.resolve_owner("C1", force=True) is None
        assert await resolver.resolve_owner("C1") is None
        assert mock_router.call.await_count == 2
