"""Tests for the Postgres gateway's record mapping, repositories and session scope.

These run without a database: repositories are exercised against a mocked
``AsyncSession``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from swarm_oracle.core.enums import AgentRole, AgentStatus
from swarm_oracle.core.errors import PersistenceError
from swarm_oracle.core.models import (
    AgentRegistration,
    MemoryEntry,
    Message,
    Note,
    NoteBody,
)
from swarm_oracle.storage.postgres.connection import session_scope
from swarm_oracle.storage.postgres.gateway import PostgresPersistence
from swarm_oracle.storage.postgres.models import AgentRecord, AgentStateRecord
from swarm_oracle.storage.postgres.repos import (
    AgentRepo,
    MemoryRepo,
    _memory_to_record,
    _message_to_record,
    _record_to_memory,
    _record_to_message,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def mock_session(get_result=None) -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    session.get.return_value = get_result
    return session


class TestRecordMapping:
    def test_memory_record_keeps_typed_data(self):
        entry = MemoryEntry(type="note", timestamp=T0, data=Note(text="hi", values={"k": 1}))

        record = _memory_to_record("agent-1", entry)

        assert record.agent_id == "agent-1"
        assert record.memory_type == "note"
        assert record.data_json == {"type": "note", "text": "hi", "values": {"k": 1}}
        restored = _record_to_memory(record)
        assert restored.id == entry.id
        assert isinstance(restored.data, Note)

    def test_message_record_carries_type_column(self):
        message = Message(from_agent_id="a", to_agent_id="b", body=NoteBody(text="x"), timestamp=T0)

        record = _message_to_record(message)

        assert record.message_type == "note"
        assert _record_to_message(record).body == message.body


class TestAgentRepo:
    @pytest.mark.asyncio
    async def test_insert_new_registration(self):
        session = mock_session()
        info = AgentRegistration(agent_id="a", role=AgentRole.EXECUTOR, kind="risk_manager")

        record = await AgentRepo(session).upsert_registration(info)

        session.add.assert_called_once_with(record)
        session.flush.assert_awaited()
        assert record.status == "active"

    @pytest.mark.asyncio
    async def test_update_existing_registration(self):
        existing = AgentRecord(agent_id="a", role="analyst", kind="technical", status="inactive")
        session = mock_session(existing)
        info = AgentRegistration(agent_id="a", role=AgentRole.ANALYST, kind="sentiment")

        record = await AgentRepo(session).upsert_registration(info)

        assert record is existing
        assert existing.kind == "sentiment"
        assert existing.status == "active"
        session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_set_status_unknown_agent(self):
        assert not await AgentRepo(mock_session()).set_status("ghost", AgentStatus.ERROR)

    @pytest.mark.asyncio
    async def test_state_upsert_and_load(self):
        session = mock_session()
        await AgentRepo(session).save_state("a", {"error_count": 1})
        added = session.add.call_args.args[0]
        assert isinstance(added, AgentStateRecord)

        session.get.return_value = added
        assert await AgentRepo(session).load_state("a") == {"error_count": 1}

    @pytest.mark.asyncio
    async def test_memory_add_maps_entry(self):
        session = mock_session()
        entry = MemoryEntry(type="note", data=Note(text="m"))
        await MemoryRepo(session).add("a", entry)
        assert session.add.call_args.args[0].id == entry.id


class TestSessionScope:
    @pytest.mark.asyncio
    async def test_commits_on_success(self):
        session = mock_session()
        async with session_scope(lambda: session) as s:
            assert s is session
        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()
        session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self):
        session = mock_session()
        with pytest.raises(RuntimeError):
            async with session_scope(lambda: session):
                raise RuntimeError("write failed")
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()
        session.close.assert_awaited_once()


class TestPostgresPersistence:
    @pytest.mark.asyncio
    async def test_calls_before_connect_raise(self):
        store = PostgresPersistence("postgresql+asyncpg://u:p@localhost/db")
        with pytest.raises(PersistenceError):
            await store.load_agent_state("a")

    @pytest.mark.asyncio
    async def test_close_without_connect_is_noop(self):
        await PostgresPersistence("postgresql+asyncpg://u:p@localhost/db").close()
