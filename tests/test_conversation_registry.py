"""Unit tests for ConversationRegistry."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import asyncio
from datetime import datetime

import pytest
from models.conversation import ConversationTurn, ParticipantRole, Role
from services.conversation_registry import ConversationRegistry


class TestConversationRegistry:
    """Test suite for ConversationRegistry."""

    @pytest.fixture
    def registry(self):
        """Create a ConversationRegistry instance."""
        return ConversationRegistry(max_conversations=3)

    def test_create_new_conversation(self, registry):
        """Test creating a new conversation."""
        state = registry.get_or_create()

        assert state.conversation_id.startswith("conv_")
        assert state.turns == []
        assert state.participant_role == ParticipantRole.USER
        assert isinstance(state.created_at, datetime)

    def test_conversation_id_uniqueness(self, registry):
        conv1 = registry.get_or_create()
        conv2 = registry.get_or_create()
        assert conv1.conversation_id != conv2.conversation_id

    def test_get_existing_conversation(self, registry):
        conv1 = registry.get_or_create()
        conv2 = registry.get_or_create(conv1.conversation_id)
        assert conv2 is conv1

    def test_unknown_id_is_created_under_same_id(self, registry):
        """A stale client-held id heals into a fresh conversation."""
        state = registry.get_or_create("conv_stale", ParticipantRole.ADMIN)

        assert state.conversation_id == "conv_stale"
        assert state.participant_role == ParticipantRole.ADMIN
        assert "conv_stale" in registry

    def test_commit_replaces_turns_and_stamps_time(self, registry):
        state = registry.get_or_create("c1")
        before = state.updated_at
        turns = [ConversationTurn(Role.USER, "Hi"), ConversationTurn(Role.ASSISTANT, "Hello")]

        registry.commit(state, turns)

        assert registry.get("c1").turns == turns
        assert state.updated_at >= before

    def test_get_unknown_returns_none(self, registry):
        assert registry.get("missing") is None

    def test_clear(self, registry):
        registry.get_or_create("c1")
        assert registry.clear("c1") is True
        assert registry.clear("c1") is False
        assert registry.get("c1") is None

    def test_fifo_eviction(self, registry):
        """The oldest conversation is evicted once capacity is exceeded."""
        for conversation_id in ("a", "b", "c", "d"):
            registry.get_or_create(conversation_id)

        assert len(registry) == 3
        assert "a" not in registry
        assert all(c in registry for c in ("b", "c", "d"))

    def test_stats(self, registry):
        first = registry.get_or_create("a")
        registry.get_or_create("b")
        registry.commit(first, [ConversationTurn(Role.USER, "Hi")])

        assert registry.stats() == {"total_conversations": 2, "total_messages": 1}

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ConversationRegistry(max_conversations=0)


class TestCheckout:
    """Tests for holding a conversation during a request."""

    @pytest.mark.asyncio
    async def test_checkout_creates_and_yields_state(self):
        registry = ConversationRegistry(max_conversations=5)

        async with registry.checkout("c1") as state:
            assert state.conversation_id == "c1"

        assert "c1" in registry

    @pytest.mark.asyncio
    async def test_checkout_without_id_generates_one(self):
        registry = ConversationRegistry(max_conversations=5)

        async with registry.checkout() as state:
            assert state.conversation_id.startswith("conv_")

        assert state.conversation_id in registry

    @pytest.mark.asyncio
    async def test_active_conversation_is_not_evicted(self):
        registry = ConversationRegistry(max_conversations=2)

        async with registry.checkout("a"):
            registry.get_or_create("b")
            registry.get_or_create("c")
            # "a" is the oldest but busy, so "b" goes instead
            assert "a" in registry
            assert "b" not in registry
        registry.get_or_create("d")
        assert "a" not in registry

    @pytest.mark.asyncio
    async def test_new_conversation_survives_when_others_are_busy(self):
        """With every older conversation mid-request, the new one is kept over capacity."""
        registry = ConversationRegistry(max_conversations=1)

        async with registry.checkout("a"):
            state = registry.get_or_create("b")

            assert registry.get("b") is state
            assert "a" in registry
            assert len(registry) == 2

        # Back within capacity once "a" is released
        assert len(registry) == 1
        assert "b" in registry

    @pytest.mark.asyncio
    async def test_requests_on_one_conversation_are_serialized(self):
        registry = ConversationRegistry(max_conversations=5)
        events = []

        async def request(name):
            async with registry.checkout("shared"):
                events.append(f"{name}-start")
                await asyncio.sleep(0.01)
                events.append(f"{name}-end")

        await asyncio.gather(request("first"), request("second"))

        assert events == ["first-start", "first-end", "second-start", "second-end"]

    @pytest.mark.asyncio
    async def test_distinct_conversations_run_concurrently(self):
        registry = ConversationRegistry(max_conversations=50)
        inside = 0
        peak = 0

        async def request(conversation_id):
            nonlocal inside, peak
            async with registry.checkout(conversation_id) as state:
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0.01)
                registry.commit(state, [ConversationTurn(Role.USER, conversation_id)])
                inside -= 1

        await asyncio.gather(*(request(f"conv_{i}") for i in range(20)))

        assert peak > 1
        assert registry.stats() == {"total_conversations": 20, "total_messages": 20}

    @pytest.mark.asyncio
    async def test_lock_released_after_error(self):
        registry = ConversationRegistry(max_conversations=5)

        with pytest.raises(RuntimeError):
            async with registry.checkout("c1"):
                raise RuntimeError("boom")

        # A second checkout must not deadlock
        async with registry.checkout("c1") as state:
            assert state.conversation_id == "c1"

    @pytest.mark.asyncio
    async def test_lock_released_after_cancellation(self):
        registry = ConversationRegistry(max_conversations=5)

        async def slow():
            async with registry.checkout("c1"):
                await asyncio.sleep(10)

        task = asyncio.create_task(slow())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        async with registry.checkout("c1") as state:
            assert state.conversation_id == "c1"

    @pytest.mark.asyncio
    async def test_clear_while_held_is_not_undone(self):
        registry = ConversationRegistry(max_conversations=5)

        async with registry.checkout("c1"):
            registry.clear("c1")
            assert "c1" not in registry

        # Nothing re-adds it once the holder is done
        assert "c1" not in registry

    @pytest.mark.asyncio
    async def test_request_queued_behind_clear_gets_fresh_conversation(self):
        registry = ConversationRegistry(max_conversations=5)
        seen = []

        async def holder():
            async with registry.checkout("c2") as state:
                registry.commit(state, [ConversationTurn(Role.USER, "old")])
                await asyncio.sleep(0.01)
                registry.clear("c2")

        async def waiter():
            await asyncio.sleep(0)
            async with registry.checkout("c2") as state:
                seen.append((state.turns, registry.get("c2") is state))

        await asyncio.gather(holder(), waiter())

        assert seen == [([], True)]

    @pytest.mark.asyncio
    async def test_clear_and_recreate_stays_serialized(self):
        """A request arriving after a mid-request clear still waits for the first one."""
        registry = ConversationRegistry(max_conversations=5)
        events = []

        async def first():
            async with registry.checkout("c3"):
                events.append("first-start")
                registry.clear("c3")
                await asyncio.sleep(0.02)
                events.append("first-end")

        async def second():
            await asyncio.sleep(0.005)
            # Arrives after the clear, while the first request still runs
            async with registry.checkout("c3") as state:
                events.append("second-start")
                assert registry.get("c3") is state

        await asyncio.gather(first(), second())

        assert events == ["first-start", "first-end", "second-start"]
