"""
Unit Tests: FallbackStore (in-process backend)

Tests the storage contract against process-local maps: copy semantics,
create-not-upsert, ordering, partition isolation and stats.

Run: pytest tests/unit/test_fallback_store.py -v
"""

import pytest
from datetime import timedelta

from src.conversation_store.errors import DuplicateMessageError
from src.conversation_store.models import (
    Conversation,
    ConversationWindow,
    IdentityProfile,
    Message,
    MessageRole,
    Session,
    WindowEntry,
    utcnow,
)
from src.conversation_store.services.fallback_store import FallbackStore


def _message(conversation_id: str, tenant_id: str, content: str, role: MessageRole = MessageRole.USER) -> Message:
    now = utcnow()
    return Message(
        conversation_id=conversation_id,
        tenant_id=tenant_id,
        role=role,
        content=content,
        created_at=now,
        expires_at=now + timedelta(days=90),
    )


def _conversation(conversation_id: str, tenant_id: str) -> Conversation:
    return Conversation.new(conversation_id, tenant_id, "New chat", "web", {}, ttl=60)


# ============================================================================
# Test Category 1: Sessions
# ============================================================================

class TestSessions:
    """Session documents keyed by tenant."""

    @pytest.mark.asyncio
    async def test_upsert_and_read(self):
        store = FallbackStore()
        session = Session.issue("t1", IdentityProfile(user_key="t1", token="tok"), 3600)
        await store.upsert_session(session)

        loaded = await store.read_session("t1")
        assert loaded == session
        assert loaded is not session

    @pytest.mark.asyncio
    async def test_read_returns_copy(self):
        """Mutating a returned value never changes stored state."""
        store = FallbackStore()
        await store.upsert_session(Session.issue("t1", IdentityProfile(user_key="t1", token="tok"), 3600))

        loaded = await store.read_session("t1")
        loaded.display_name = "changed"

        assert (await store.read_session("t1")).display_name == "User"

    @pytest.mark.asyncio
    async def test_delete_reports_existence(self):
        store = FallbackStore()
        await store.upsert_session(Session.issue("t1", IdentityProfile(user_key="t1", token="tok"), 3600))

        assert await store.delete_session("t1") is True
        assert await store.delete_session("t1") is False
        assert await store.read_session("t1") is None


# ============================================================================
# Test Category 2: Messages
# ============================================================================

class TestMessages:
    """Append-only message documents."""

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self):
        store = FallbackStore()
        message = _message("c1", "t1", "hi")
        await store.create_message(message)

        with pytest.raises(DuplicateMessageError) as exc_info:
            await store.create_message(message)
        assert exc_info.value.message_id == message.id
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_query_returns_latest_in_ascending_order(self):
        store = FallbackStore()
        for i in range(5):
            await store.create_message(_message("c1", "t1", f"m{i}"))

        messages = await store.query_messages("c1", "t1", limit=3)
        assert [m.content for m in messages] == ["m2", "m3", "m4"]

    @pytest.mark.asyncio
    async def test_query_before_cursor(self):
        store = FallbackStore()
        written = []
        for i in range(4):
            written.append(await store.create_message(_message("c1", "t1", f"m{i}")))

        messages = await store.query_messages("c1", "t1", limit=10, before=written[2].created_at)
        assert [m.content for m in messages] == ["m0", "m1"]

    @pytest.mark.asyncio
    async def test_wrong_partition_misses(self):
        store = FallbackStore()
        await store.create_message(_message("c1", "t1", "hi"))

        assert await store.query_messages("c1", "t2", limit=10) == []

    @pytest.mark.asyncio
    async def test_delete_message(self):
        store = FallbackStore()
        message = await store.create_message(_message("c1", "t1", "hi"))

        assert await store.list_message_ids("c1", "t1") == [message.id]
        assert await store.delete_message(message.id, "t1") is True
        assert await store.delete_message(message.id, "t1") is False
        assert await store.list_message_ids("c1", "t1") == []


# ============================================================================
# Test Category 3: Windows and directory
# ============================================================================

class TestWindowsAndDirectory:
    """Window documents and directory entries."""

    @pytest.mark.asyncio
    async def test_window_round_trip(self):
        store = FallbackStore()
        window = ConversationWindow.empty("c1", "t1", capacity=2, ttl=60)
        window.append(WindowEntry(role=MessageRole.USER, content="hi", created_at=utcnow()))
        await store.upsert_window(window)

        loaded = await store.read_window("c1", "t1")
        assert loaded.entries == window.entries
        assert await store.delete_window("c1", "t1") is True
        assert await store.read_window("c1", "t1") is None

    @pytest.mark.asyncio
    async def test_create_conversation_never_overwrites(self):
        store = FallbackStore()
        first = _conversation("c1", "t1")
        first.title = "Original"
        await store.create_conversation(first)

        second = _conversation("c1", "t1")
        assert await store.create_conversation(second) is None
        assert (await store.read_conversation("c1", "t1")).title == "Original"

    @pytest.mark.asyncio
    async def test_list_orders_by_activity_and_filters_inactive(self):
        store = FallbackStore()
        for conversation_id in ("old", "archived", "new"):
            await store.create_conversation(_conversation(conversation_id, "t1"))

        archived = await store.read_conversation("archived", "t1")
        archived.is_active = False
        await store.upsert_conversation(archived)

        new = await store.read_conversation("new", "t1")
        new.last_activity_at = utcnow()
        await store.upsert_conversation(new)

        active = await store.list_conversations("t1", limit=10)
        assert [c.conversation_id for c in active] == ["new", "old"]

        everything = await store.list_conversations("t1", limit=10, active_only=False)
        assert {c.conversation_id for c in everything} == {"old", "archived", "new"}

    @pytest.mark.asyncio
    async def test_find_owner_across_partitions(self):
        store = FallbackStore()
        await store.create_conversation(_conversation("c1", "t2"))

        assert await store.find_conversation_owner("c1") == "t2"
        assert await store.find_conversation_owner("missing") is None

    @pytest.mark.asyncio
    async def test_owner_requires_directory_entry(self):
        """Messages alone do not make a conversation discoverable."""
        store = FallbackStore()
        await store.create_message(_message("c1", "t1", "hi"))

        assert await store.find_conversation_owner("c1") is None


# ============================================================================
# Test Category 4: Stats
# ============================================================================

class TestStats:
    """Counts across all partitions."""

    @pytest.mark.asyncio
    async def test_collect_stats(self):
        store = FallbackStore()
        await store.upsert_session(Session.issue("t1", IdentityProfile(user_key="t1", token="tok"), 3600))
        await store.create_conversation(_conversation("c1", "t1"))
        await store.create_conversation(_conversation("c2", "t2"))
        await store.create_message(_message("c1", "t1", "hi"))
        last = await store.create_message(_message("c1", "t1", "hello", MessageRole.ASSISTANT))

        window = ConversationWindow.empty("c1", "t1", capacity=20, ttl=60)
        window.append(WindowEntry(role=MessageRole.USER, content="hi", created_at=utcnow()))
        window.append(WindowEntry(role=MessageRole.ASSISTANT, content="hello", created_at=utcnow()))
        await store.upsert_window(window)

        stats = await store.collect_stats()

        assert stats.backend == "memory"
        assert stats.sessions == 1
        assert stats.conversations == 2
        assert stats.active_conversations == 2
        assert stats.windows == 1
        assert stats.user_messages == 1
        assert stats.assistant_messages == 1
        assert stats.system_messages == 0
        assert stats.total_messages == 2
        assert stats.total_documents == 1 + 2 + 1 + 2
        assert stats.avg_window_entries == 2.0
        assert stats.recent_activity == last.created_at

    @pytest.mark.asyncio
    async def test_empty_store_stats(self):
        stats = await FallbackStore().collect_stats()

        assert stats.total_documents == 0
        assert stats.avg_window_entries == 0.0
        assert stats.recent_activity is None
