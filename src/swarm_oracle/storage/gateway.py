"""Persistence gateway with transparent in-memory fallback.

The swarm must keep running when its durable store does not.  The first
failure of the primary (on connect or on any call) switches the gateway to
an :class:`InMemoryPersistence` for the rest of the process.  No attempt is
made to reconcile data across that boundary.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, TypeVar, assert_never

from swarm_oracle.core.config import StorageConfig
from swarm_oracle.core.enums import AgentStatus, StorageBackend
from swarm_oracle.core.interfaces import IPersistenceGateway
from swarm_oracle.core.models import (
    AgentRegistration,
    AgentStats,
    MemoryEntry,
    Message,
    MessageFilter,
    PredictionRecord,
    SwarmPrediction,
)
from swarm_oracle.observability import metrics

from .memory_store import InMemoryPersistence

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ResilientPersistence:
    """Wraps a durable gateway and degrades to memory on its first failure.

    Parameters
    ----------
    primary:
        The durable backend (Postgres, Redis, ...).
    fallback:
        Store used once degraded. A default-capped in-memory store if omitted.
    """

    def __init__(
        self,
        primary: IPersistenceGateway,
        fallback: InMemoryPersistence | None = None,
    ) -> None:
        self._primary = primary
        self._fallback = fallback or InMemoryPersistence()
        self._degraded = False

    @property
    def is_degraded(self) -> bool:
        return self._degraded

    @property
    def active(self) -> IPersistenceGateway:
        return self._fallback if self._degraded else self._primary

    def _degrade(self, operation: str, exc: Exception) -> None:
        self._degraded = True
        metrics.update_persistence_degraded(True)
        logger.warning(
            "Persistence %s failed (%s: %s); switching to in-memory fallback",
            operation,
            type(exc).__name__,
            exc,
        )

    async def _call(self, operation: str, fn: Callable[[IPersistenceGateway], Awaitable[T]]) -> T:
        if not self._degraded:
            try:
                return await fn(self._primary)
            except Exception as exc:
                self._degrade(operation, exc)
        return await fn(self._fallback)

    async def connect(self) -> None:
        try:
            await self._primary.connect()
        except Exception as exc:
            self._degrade("connect", exc)
            await self._fallback.connect()

    async def close(self) -> None:
        if not self._degraded:
            try:
                await self._primary.close()
            except Exception:
                logger.exception("Error closing primary persistence")
        await self._fallback.close()

    async def store_agent_registration(self, info: AgentRegistration) -> None:
        await self._call("store_agent_registration", lambda g: g.store_agent_registration(info))

    async def update_agent_status(self, agent_id: str, status: AgentStatus) -> None:
        await self._call("update_agent_status", lambda g: g.update_agent_status(agent_id, status))

    async def store_agent_memory(self, agent_id: str, entry: MemoryEntry) -> None:
        await self._call("store_agent_memory", lambda g: g.store_agent_memory(agent_id, entry))

    async def get_agent_memories(self, agent_id: str, limit: int = 50) -> list[MemoryEntry]:
        return await self._call("get_agent_memories", lambda g: g.get_agent_memories(agent_id, limit))

    async def store_message(self, message: Message) -> None:
        await self._call("store_message", lambda g: g.store_message(message))

    async def get_messages(
        self, filter: MessageFilter | None = None, limit: int = 100
    ) -> list[Message]:
        return await self._call("get_messages", lambda g: g.get_messages(filter, limit))

    async def save_agent_state(self, agent_id: str, state: dict[str, Any]) -> None:
        await self._call("save_agent_state", lambda g: g.save_agent_state(agent_id, state))

    async def load_agent_state(self, agent_id: str) -> dict[str, Any] | None:
        return await self._call("load_agent_state", lambda g: g.load_agent_state(agent_id))

    async def store_prediction(
        self,
        market_id: str,
        swarm_id: str,
        prediction: SwarmPrediction,
        confidence: float,
    ) -> PredictionRecord:
        return await self._call(
            "store_prediction",
            lambda g: g.store_prediction(market_id, swarm_id, prediction, confidence),
        )

    async def get_predictions(self, market_id: str, limit: int = 10) -> list[PredictionRecord]:
        return await self._call("get_predictions", lambda g: g.get_predictions(market_id, limit))

    async def get_agent_stats(self, agent_id: str) -> AgentStats:
        return await self._call("get_agent_stats", lambda g: g.get_agent_stats(agent_id))

    async def cleanup(self, older_than: datetime) -> int:
        return await self._call("cleanup", lambda g: g.cleanup(older_than))


def create_persistence(config: StorageConfig) -> IPersistenceGateway:
    """Build the gateway selected by ``config.backend``.

    Durable backends are wrapped in :class:`ResilientPersistence` so an
    outage degrades to memory instead of failing the swarm.
    """
    fallback = InMemoryPersistence(
        max_memories_per_agent=config.max_memories_per_agent,
        max_messages=config.max_messages,
        max_predictions=config.max_predictions,
    )
    backend = config.backend
    match backend:
        case StorageBackend.MEMORY:
            return fallback
        case StorageBackend.POSTGRES:
            from .postgres.gateway import PostgresPersistence

            return ResilientPersistence(
                PostgresPersistence(config.postgres_url, create_tables=config.create_tables),
                fallback,
            )
        case StorageBackend.REDIS:
            from .redis_state import RedisPersistence

            return ResilientPersistence(
                RedisPersistence(
                    config.redis_url,
                    prefix=config.redis_prefix,
                    max_memories_per_agent=config.max_memories_per_agent,
                    max_messages=config.max_messages,
                    max_predictions=config.max_predictions,
                ),
                fallback,
            )
        case _:
            assert_never(backend)
