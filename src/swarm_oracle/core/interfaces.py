"""Protocol interfaces for the swarm.

All module boundaries are defined here as Protocol classes.
Implementations can be swapped (memory/postgres/redis, live/static
providers) without changing callers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from .enums import AgentStatus
from .models import (
    AgentRegistration,
    AgentStats,
    MemoryEntry,
    Message,
    MessageFilter,
    PredictionRecord,
    SwarmPrediction,
)


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

@runtime_checkable
class IPersistenceGateway(Protocol):
    """Append/query store for registrations, memories, messages and predictions.

    Writes are idempotent upserts or appends; concurrent writers from other
    processes resolve last-write-wins.
    """

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def store_agent_registration(self, info: AgentRegistration) -> None: ...

    async def update_agent_status(self, agent_id: str, status: AgentStatus) -> None: ...

    async def store_agent_memory(self, agent_id: str, entry: MemoryEntry) -> None: ...

    async def get_agent_memories(self, agent_id: str, limit: int = 50) -> list[MemoryEntry]: ...

    async def store_message(self, message: Message) -> None: ...

    async def get_messages(
        self, filter: MessageFilter | None = None, limit: int = 100
    ) -> list[Message]: ...

    async def save_agent_state(self, agent_id: str, state: dict[str, Any]) -> None: ...

    async def load_agent_state(self, agent_id: str) -> dict[str, Any] | None: ...

    async def store_prediction(
        self,
        market_id: str,
        swarm_id: str,
        prediction: SwarmPrediction,
        confidence: float,
    ) -> PredictionRecord: ...

    async def get_predictions(self, market_id: str, limit: int = 10) -> list[PredictionRecord]: ...

    async def get_agent_stats(self, agent_id: str) -> AgentStats: ...

    async def cleanup(self, older_than: datetime) -> int: ...


# ---------------------------------------------------------------------------
# External data
# ---------------------------------------------------------------------------

@runtime_checkable
class IDataProvider(Protocol):
    """Source of raw items for one collector.

    ``fetch`` raises :class:`~swarm_oracle.core.errors.ProviderError` on
    failure and returns an empty list when there is simply nothing new.
    """

    name: str

    async def fetch(self, query: str) -> list[dict[str, Any]]: ...

    async def close(self) -> None: ...


class ISentimentScorer(Protocol):
    """Pluggable text polarity function, output in [-1, 1]."""

    def __call__(self, text: str) -> float: ...
