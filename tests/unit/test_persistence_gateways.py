"""Tests for the in-memory gateway, the resilient wrapper and backend selection."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from swarm_oracle.core.config import StorageConfig
from swarm_oracle.core.enums import AgentRole, AgentStatus, Direction, MessageType, StorageBackend
from swarm_oracle.core.models import (
    AgentRegistration,
    ConsensusRecord,
    MemoryEntry,
    Message,
    MessageFilter,
    Note,
    NoteBody,
    SwarmPrediction,
)
from swarm_oracle.storage.gateway import ResilientPersistence, create_persistence
from swarm_oracle.storage.memory_store import InMemoryPersistence

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------

def memory(text: str, at: datetime = T0) -> MemoryEntry:
    return MemoryEntry(type="note", timestamp=at, data=Note(text=text))


def message(sender: str, recipient: str, at: datetime = T0) -> Message:
    return Message(from_agent_id=sender, to_agent_id=recipient, body=NoteBody(text="x"), timestamp=at)


def prediction(market: str = "BTC/USD") -> SwarmPrediction:
    record = ConsensusRecord(
        has_consensus=True,
        direction=Direction.BULLISH,
        strength=1.0,
        threshold=0.8,
        supporting_agents=2,
        total_agents=2,
        average_confidence=0.7,
    )
    return SwarmPrediction(market=market, direction=Direction.BULLISH, consensus=record)


class FlakyPersistence(InMemoryPersistence):
    """Primary store that fails on chosen operations."""

    def __init__(self, fail_connect: bool = False, fail_store: bool = False) -> None:
        super().__init__()
        self.fail_connect = fail_connect
        self.fail_store = fail_store
        self.closed = False

    async def connect(self) -> None:
        if self.fail_connect:
            raise ConnectionError("refused")

    async def store_agent_memory(self, agent_id, entry):
        if self.fail_store:
            raise ConnectionError("lost")
        await super().store_agent_memory(agent_id, entry)

    async def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# InMemoryPersistence
# ---------------------------------------------------------------------------

class TestInMemoryPersistence:
    @pytest.mark.asyncio
    async def test_registration_and_status(self, persistence):
        await persistence.store_agent_registration(
            AgentRegistration(agent_id="a", role=AgentRole.ANALYST, kind="technical")
        )
        await persistence.update_agent_status("a", AgentStatus.ERROR)
        await persistence.update_agent_status("ghost", AgentStatus.ERROR)

        assert persistence.get_registration("a").status == AgentStatus.ERROR
        assert persistence.get_registration("ghost") is None

    @pytest.mark.asyncio
    async def test_memories_newest_first_and_capped(self):
        store = InMemoryPersistence(max_memories_per_agent=2)
        for i in range(3):
            await store.store_agent_memory("a", memory(f"m{i}", T0 + timedelta(seconds=i)))

        memories = await store.get_agent_memories("a")
        assert [m.data.text for m in memories] == ["m2", "m1"]
        assert [m.data.text for m in await store.get_agent_memories("a", limit=1)] == ["m2"]
        assert await store.get_agent_memories("nobody") == []

    @pytest.mark.asyncio
    async def test_message_filters(self, persistence):
        await persistence.store_message(message("a", "b", T0))
        await persistence.store_message(message("b", "c", T0 + timedelta(minutes=1)))
        await persistence.store_message(message("c", "d", T0 + timedelta(minutes=2)))

        involving_b = await persistence.get_messages(MessageFilter(agent_id="b"))
        assert [(m.from_agent_id, m.to_agent_id) for m in involving_b] == [("b", "c"), ("a", "b")]

        recent = await persistence.get_messages(MessageFilter(since=T0 + timedelta(minutes=1)))
        assert len(recent) == 2
        assert await persistence.get_messages(MessageFilter(message_type=MessageType.CONSENSUS)) == []
        assert len(await persistence.get_messages(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_state_round_trip_is_a_copy(self, persistence):
        state = {"tasks_completed": 3}
        await persistence.save_agent_state("a", state)
        state["tasks_completed"] = 99

        assert await persistence.load_agent_state("a") == {"tasks_completed": 3}
        assert await persistence.load_agent_state("b") is None

    @pytest.mark.asyncio
    async def test_predictions_per_market(self, persistence):
        first = await persistence.store_prediction("BTC/USD", "swarm", prediction(), 0.7)
        second = await persistence.store_prediction("BTC/USD", "swarm", prediction(), 0.6)
        await persistence.store_prediction("ETH/USD", "swarm", prediction("ETH/USD"), 0.5)

        btc = await persistence.get_predictions("BTC/USD")
        assert [p.id for p in btc] == [second.id, first.id]
        assert first.confidence == 0.7

    @pytest.mark.asyncio
    async def test_agent_stats(self, persistence):
        await persistence.store_agent_memory("a", memory("m", T0))
        await persistence.store_message(message("a", "b"))
        await persistence.store_message(message("b", "a"))
        await persistence.store_message(message("a", "c"))

        stats = await persistence.get_agent_stats("a")
        assert stats.memory_count == 1
        assert stats.messages_sent == 2
        assert stats.messages_received == 1
        assert stats.last_memory_at == T0

    @pytest.mark.asyncio
    async def test_cleanup_drops_old_records(self, persistence):
        old, new = T0, T0 + timedelta(days=2)
        await persistence.store_agent_memory("a", memory("old", old))
        await persistence.store_agent_memory("a", memory("new", new))
        await persistence.store_message(message("a", "b", old))
        await persistence.store_message(message("a", "b", new))

        removed = await persistence.cleanup(T0 + timedelta(days=1))

        assert removed == 2
        assert [m.data.text for m in await persistence.get_agent_memories("a")] == ["new"]
        assert len(await persistence.get_messages()) == 1


# ---------------------------------------------------------------------------
# ResilientPersistence
# ---------------------------------------------------------------------------

class TestResilientPersistence:
    @pytest.mark.asyncio
    async def test_healthy_primary_is_used(self):
        primary = FlakyPersistence()
        store = ResilientPersistence(primary)
        await store.connect()
        await store.store_agent_memory("a", memory("m"))

        assert not store.is_degraded
        assert store.active is primary
        assert len(await primary.get_agent_memories("a")) == 1

    @pytest.mark.asyncio
    async def test_connect_failure_degrades(self):
        fallback = InMemoryPersistence()
        store = ResilientPersistence(FlakyPersistence(fail_connect=True), fallback)
        await store.connect()

        assert store.is_degraded
        await store.store_agent_memory("a", memory("m"))
        assert len(await fallback.get_agent_memories("a")) == 1

    @pytest.mark.asyncio
    async def test_call_failure_degrades_and_retries_on_fallback(self):
        primary = FlakyPersistence(fail_store=True)
        fallback = InMemoryPersistence()
        store = ResilientPersistence(primary, fallback)
        await store.connect()

        await store.store_agent_memory("a", memory("m"))

        assert store.is_degraded
        assert store.active is fallback
        assert [m.data.text for m in await store.get_agent_memories("a")] == ["m"]

    @pytest.mark.asyncio
    async def test_close_skips_primary_once_degraded(self):
        primary = FlakyPersistence(fail_connect=True)
        store = ResilientPersistence(primary)
        await store.connect()
        await store.close()
        assert not primary.closed


class TestCreatePersistence:
    def test_memory_backend(self):
        store = create_persistence(StorageConfig(backend=StorageBackend.MEMORY))
        assert isinstance(store, InMemoryPersistence)

    @pytest.mark.parametrize("backend", [StorageBackend.POSTGRES, StorageBackend.REDIS])
    def test_durable_backends_are_wrapped(self, backend):
        store = create_persistence(StorageConfig(backend=backend))
        assert isinstance(store, ResilientPersistence)
        assert not store.is_degraded
