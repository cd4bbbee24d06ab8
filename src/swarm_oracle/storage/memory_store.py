"""In-process persistence gateway.

Serves as the default backend and as the fallback when a durable store is
unreachable.  Every history is capped so a long-running swarm cannot grow
without bound; nothing survives the process.

All ``get_*`` queries return newest entries first.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime
from typing import Any

from swarm_oracle.core.enums import AgentStatus
from swarm_oracle.core.models import (
    AgentRegistration,
    AgentStats,
    MemoryEntry,
    Message,
    MessageFilter,
    PredictionRecord,
    SwarmPrediction,
)

logger = logging.getLogger(__name__)


class InMemoryPersistence:
    """Capped in-memory implementation of ``IPersistenceGateway``.

    Parameters
    ----------
    max_memories_per_agent:
        Memory entries retained per agent.
    max_messages:
        Messages retained across the whole swarm.
    max_predictions:
        Prediction records retained across all markets.
    """

    def __init__(
        self,
        *,
        max_memories_per_agent: int = 100,
        max_messages: int = 1000,
        max_predictions: int = 1000,
    ) -> None:
        self._max_memories = max_memories_per_agent
        self._registrations: dict[str, AgentRegistration] = {}
        self._memories: dict[str, deque[MemoryEntry]] = {}
        self._messages: deque[Message] = deque(maxlen=max_messages)
        self._states: dict[str, dict[str, Any]] = {}
        self._predictions: deque[PredictionRecord] = deque(maxlen=max_predictions)

    async def connect(self) -> None:
        logger.debug("In-memory persistence ready")

    async def close(self) -> None:
        pass

    # -- registrations -------------------------------------------------------

    async def store_agent_registration(self, info: AgentRegistration) -> None:
        self._registrations[info.agent_id] = info.model_copy()

    async def update_agent_status(self, agent_id: str, status: AgentStatus) -> None:
        reg = self._registrations.get(agent_id)
        if reg is None:
            logger.debug("Status update for unknown agent %s ignored", agent_id)
            return
        self._registrations[agent_id] = reg.model_copy(update={"status": status})

    def get_registration(self, agent_id: str) -> AgentRegistration | None:
        return self._registrations.get(agent_id)

    # -- memories ------------------------------------------------------------

    async def store_agent_memory(self, agent_id: str, entry: MemoryEntry) -> None:
        bucket = self._memories.get(agent_id)
        if bucket is None:
            bucket = self._memories[agent_id] = deque(maxlen=self._max_memories)
        bucket.append(entry)

    async def get_agent_memories(self, agent_id: str, limit: int = 50) -> list[MemoryEntry]:
        bucket = self._memories.get(agent_id)
        if not bucket or limit <= 0:
            return []
        return list(reversed(bucket))[:limit]

    # -- messages ------------------------------------------------------------

    async def store_message(self, message: Message) -> None:
        self._messages.append(message)

    async def get_messages(
        self, filter: MessageFilter | None = None, limit: int = 100
    ) -> list[Message]:
        selected = []
        for message in reversed(self._messages):
            if filter is None or filter.matches(message):
                selected.append(message)
                if len(selected) >= limit:
                    break
        return selected

    # -- state ---------------------------------------------------------------

    async def save_agent_state(self, agent_id: str, state: dict[str, Any]) -> None:
        self._states[agent_id] = dict(state)

    async def load_agent_state(self, agent_id: str) -> dict[str, Any] | None:
        state = self._states.get(agent_id)
        return dict(state) if state is not None else None

    # -- predictions ---------------------------------------------------------

    async def store_prediction(
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
        self._predictions.append(record)
        return record

    async def get_predictions(self, market_id: str, limit: int = 10) -> list[PredictionRecord]:
        matching = [p for p in reversed(self._predictions) if p.market_id == market_id]
        return matching[:limit]

    # -- maintenance ---------------------------------------------------------

    async def get_agent_stats(self, agent_id: str) -> AgentStats:
        bucket = self._memories.get(agent_id) or deque()
        return AgentStats(
            agent_id=agent_id,
            memory_count=len(bucket),
            messages_sent=sum(1 for m in self._messages if m.from_agent_id == agent_id),
            messages_received=sum(1 for m in self._messages if m.to_agent_id == agent_id),
            last_memory_at=bucket[-1].timestamp if bucket else None,
        )

    async def cleanup(self, older_than: datetime) -> int:
        """Drop memories, messages and predictions older than *older_than*."""
        removed = 0
        for agent_id, bucket in self._memories.items():
            kept = [m for m in bucket if m.timestamp >= older_than]
            removed += len(bucket) - len(kept)
            self._memories[agent_id] = deque(kept, maxlen=self._max_memories)

        messages = [m for m in self._messages if m.timestamp >= older_than]
        removed += len(self._messages) - len(messages)
        self._messages = deque(messages, maxlen=self._messages.maxlen)

        predictions = [p for p in self._predictions if p.created_at >= older_than]
        removed += len(self._predictions) - len(predictions)
        self._predictions = deque(predictions, maxlen=self._predictions.maxlen)

        logger.info("In-memory cleanup removed %d records older than %s", removed, older_than)
        return removed
