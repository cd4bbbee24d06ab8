"""Repository pattern for async database operations.

Each repository encapsulates query logic for a single aggregate.  All
methods accept an :class:`AsyncSession` obtained from
:func:`swarm_oracle.storage.postgres.connection.session_scope`.

Conversion helpers translate between core domain models
(:mod:`swarm_oracle.core.models`) and ORM records.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from swarm_oracle.core.enums import AgentRole, AgentStatus
from swarm_oracle.core.models import (
    AgentRegistration,
    MemoryEntry,
    Message,
    MessageFilter,
    PredictionRecord,
    SwarmPrediction,
)

from .models import (
    AgentMemoryRecord,
    AgentRecord,
    AgentStateRecord,
    MessageRecord,
    PredictionRow,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------

def _memory_to_record(agent_id: str, entry: MemoryEntry) -> AgentMemoryRecord:
    return AgentMemoryRecord(
        id=entry.id,
        agent_id=agent_id,
        memory_type=entry.type,
        timestamp=entry.timestamp,
        data_json=entry.data.model_dump(mode="json"),
        metadata_json=entry.metadata,
    )


def _record_to_memory(record: AgentMemoryRecord) -> MemoryEntry:
    return MemoryEntry.model_validate(
        {
            "id": record.id,
            "type": record.memory_type,
            "timestamp": record.timestamp,
            "data": record.data_json,
            "metadata": record.metadata_json,
        }
    )


def _message_to_record(message: Message) -> MessageRecord:
    return MessageRecord(
        id=message.id,
        from_agent_id=message.from_agent_id,
        to_agent_id=message.to_agent_id,
        message_type=message.type.value,
        body_json=message.body.model_dump(mode="json"),
        timestamp=message.timestamp,
    )


def _record_to_message(record: MessageRecord) -> Message:
    return Message.model_validate(
        {
            "id": record.id,
            "from_agent_id": record.from_agent_id,
            "to_agent_id": record.to_agent_id,
            "body": record.body_json,
            "timestamp": record.timestamp,
        }
    )


def _record_to_registration(record: AgentRecord) -> AgentRegistration:
    return AgentRegistration(
        agent_id=record.agent_id,
        role=AgentRole(record.role),
        kind=record.kind,
        status=AgentStatus(record.status),
        registered_at=record.registered_at,
        config=record.config_json or {},
    )


def _record_to_prediction(record: PredictionRow) -> PredictionRecord:
    return PredictionRecord(
        id=record.id,
        market_id=record.market_id,
        swarm_id=record.swarm_id,
        prediction=SwarmPrediction.model_validate(record.prediction_json),
        confidence=record.confidence,
        created_at=record.created_at,
    )


# ---------------------------------------------------------------------------
# AgentRepo
# ---------------------------------------------------------------------------

class AgentRepo:
    """Registrations, status and persisted state of agents."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert_registration(self, info: AgentRegistration) -> AgentRecord:
        """Insert a registration, or overwrite the row for the same agent_id."""
        existing = await self._session.get(AgentRecord, info.agent_id)
        if existing is not None:
            existing.role = info.role.value
            existing.kind = info.kind
            existing.status = info.status.value
            existing.config_json = info.config or None
            existing.registered_at = info.registered_at
            await self._session.flush()
            logger.debug("Updated registration for %s", info.agent_id)
            return existing

        record = AgentRecord(
            agent_id=info.agent_id,
            role=info.role.value,
            kind=info.kind,
            status=info.status.value,
            config_json=info.config or None,
            registered_at=info.registered_at,
        )
        self._session.add(record)
        await self._session.flush()
        logger.debug("Inserted registration for %s", info.agent_id)
        return record

    async def set_status(self, agent_id: str, status: AgentStatus) -> bool:
        record = await self._session.get(AgentRecord, agent_id)
        if record is None:
            logger.debug("Status update for unknown agent %s ignored", agent_id)
            return False
        record.status = status.value
        await self._session.flush()
        return True

    async def get_registration(self, agent_id: str) -> AgentRegistration | None:
        record = await self._session.get(AgentRecord, agent_id)
        return _record_to_registration(record) if record is not None else None

    async def save_state(self, agent_id: str, state: dict[str, Any]) -> None:
        existing = await self._session.get(AgentStateRecord, agent_id)
        if existing is not None:
            existing.state_json = state
        else:
            self._session.add(AgentStateRecord(agent_id=agent_id, state_json=state))
        await self._session.flush()

    async def load_state(self, agent_id: str) -> dict[str, Any] | None:
        record = await self._session.get(AgentStateRecord, agent_id)
        return dict(record.state_json) if record is not None else None


# ---------------------------------------------------------------------------
# MemoryRepo
# ---------------------------------------------------------------------------

class MemoryRepo:
    """Agent memory entries, newest first on read."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, agent_id: str, entry: MemoryEntry) -> None:
        self._session.add(_memory_to_record(agent_id, entry))
        await self._session.flush()

    async def recent(self, agent_id: str, limit: int = 50) -> list[MemoryEntry]:
        stmt = (
            select(AgentMemoryRecord)
            .where(AgentMemoryRecord.agent_id == agent_id)
            .order_by(AgentMemoryRecord.timestamp.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [_record_to_memory(r) for r in result.scalars().all()]

    async def count_for(self, agent_id: str) -> tuple[int, datetime | None]:
        """Return ``(count, latest timestamp)`` for an agent's memories."""
        stmt = select(
            func.count(AgentMemoryRecord.id), func.max(AgentMemoryRecord.timestamp)
        ).where(AgentMemoryRecord.agent_id == agent_id)
        result = await self._session.execute(stmt)
        count, latest = result.one()
        return int(count or 0), latest

    async def delete_before(self, cutoff: datetime) -> int:
        stmt = delete(AgentMemoryRecord).where(AgentMemoryRecord.timestamp < cutoff)
        result = await self._session.execute(stmt)
        return result.rowcount or 0


# ---------------------------------------------------------------------------
# MessageRepo
# ---------------------------------------------------------------------------

class MessageRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, message: Message) -> None:
        self._session.add(_message_to_record(message))
        await self._session.flush()

    async def query(self, filter: MessageFilter | None, limit: int = 100) -> list[Message]:
        stmt = select(MessageRecord)
        if filter is not None:
            if filter.agent_id is not None:
                stmt = stmt.where(
                    or_(
                        MessageRecord.from_agent_id == filter.agent_id,
                        MessageRecord.to_agent_id == filter.agent_id,
                    )
                )
            if filter.message_type is not None:
                stmt = stmt.where(MessageRecord.message_type == filter.message_type.value)
            if filter.since is not None:
                stmt = stmt.where(MessageRecord.timestamp >= filter.since)
        stmt = stmt.order_by(MessageRecord.timestamp.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return [_record_to_message(r) for r in result.scalars().all()]

    async def counts_for(self, agent_id: str) -> tuple[int, int]:
        """Return ``(sent, received)`` message counts for an agent."""
        sent = await self._session.scalar(
            select(func.count(MessageRecord.id)).where(MessageRecord.from_agent_id == agent_id)
        )
        received = await self._session.scalar(
            select(func.count(MessageRecord.id)).where(MessageRecord.to_agent_id == agent_id)
        )
        return int(sent or 0), int(received or 0)

    async def delete_before(self, cutoff: datetime) -> int:
        result = await self._session.execute(
            delete(MessageRecord).where(MessageRecord.timestamp < cutoff)
        )
        return result.rowcount or 0


# ---------------------------------------------------------------------------
# PredictionRepo
# ---------------------------------------------------------------------------

class PredictionRepo:
    """Swarm predictions keyed by market."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(
        self,
        market_id: str,
        swarm_id: str,
        prediction: SwarmPrediction,
        confidence: float,
    ) -> PredictionRecord:
        record = PredictionRecord(
            market_id=market_id,
            swarm_id=swarm_id,
            prediction=prediction,
            confidence=confidence,
        )
        self._session.add(
            PredictionRow(
                id=record.id,
                market_id=market_id,
                swarm_id=swarm_id,
                prediction_json=prediction.model_dump(mode="json"),
                confidence=confidence,
                created_at=record.created_at,
            )
        )
        await self._session.flush()
        logger.debug("Stored prediction %s for %s", record.id, market_id)
        return record

    async def for_market(self, market_id: str, limit: int = 10) -> list[PredictionRecord]:
        stmt = (
            select(PredictionRow)
            .where(PredictionRow.market_id == market_id)
            .order_by(PredictionRow.created_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [_record_to_prediction(r) for r in result.scalars().all()]

    async def delete_before(self, cutoff: datetime) -> int:
        result = await self._session.execute(
            delete(PredictionRow).where(PredictionRow.created_at < cutoff)
        )
        return result.rowcount or 0
