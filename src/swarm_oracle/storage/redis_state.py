"""Redis-backed persistence gateway.

Layout (all keys under a configurable prefix, default ``swarm:``):
  - ``agent:{id}``            registration JSON
  - ``state:{id}``            persisted agent state JSON
  - ``memories:{id}``         list of memory entries, newest at the head
  - ``messages``              list of messages, newest at the head
  - ``predictions:{market}``  list of prediction records, newest at the head

Lists are capped with LPUSH + LTRIM so history stays bounded.  Uses
``redis.asyncio`` for non-blocking I/O.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

import redis.asyncio as aioredis
from pydantic import BaseModel

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


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------

def _serialize(model: BaseModel) -> str:
    return model.model_dump_json()


def _deserialize(raw: str | bytes | None) -> dict[str, Any] | None:
    """Deserialize a JSON string back to a dict."""
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return json.loads(raw)


# ---------------------------------------------------------------------------
# Key builders
# ---------------------------------------------------------------------------

def _agent_key(prefix: str, agent_id: str) -> str:
    return f"{prefix}agent:{agent_id}"


def _state_key(prefix: str, agent_id: str) -> str:
    return f"{prefix}state:{agent_id}"


def _memories_key(prefix: str, agent_id: str) -> str:
    return f"{prefix}memories:{agent_id}"


def _messages_key(prefix: str) -> str:
    return f"{prefix}messages"


def _predictions_key(prefix: str, market_id: str) -> str:
    return f"{prefix}predictions:{market_id}"


# ---------------------------------------------------------------------------
# RedisPersistence
# ---------------------------------------------------------------------------

class RedisPersistence:
    """Async Redis implementation of ``IPersistenceGateway``.

    Args:
        redis_url: Redis connection URL (e.g. ``redis://localhost:6379/0``).
        prefix: Key namespace prefix.
        max_memories_per_agent: Length cap of each agent's memory list.
        max_messages: Length cap of the message list.
        max_predictions: Length cap of each market's prediction list.
        client: Pre-built client; ``connect()`` then only pings it.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        *,
        prefix: str = "swarm:",
        max_memories_per_agent: int = 100,
        max_messages: int = 1000,
        max_predictions: int = 1000,
        client: aioredis.Redis | None = None,
    ) -> None:
        self._url = redis_url
        self._prefix = prefix
        self._max_memories = max_memories_per_agent
        self._max_messages = max_messages
        self._max_predictions = max_predictions
        self._redis: aioredis.Redis | None = client

    # -- lifecycle -----------------------------------------------------------

    async def connect(self) -> None:
        """Establish the Redis connection pool."""
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._url,
                decode_responses=False,  # We handle decoding ourselves
                max_connections=20,
            )
        await self._redis.ping()
        logger.info("Redis connected: %s", self._url.split("@")[-1])

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis connection closed.")

    @property
    def redis(self) -> aioredis.Redis:
        """Return the underlying Redis client, raising if not connected."""
        if self._redis is None:
            raise RuntimeError("RedisPersistence not connected. Call connect() first.")
        return self._redis

    async def _push_capped(self, key: str, payload: str, cap: int) -> None:
        await self.redis.lpush(key, payload)
        await self.redis.ltrim(key, 0, cap - 1)

    async def _read_list(self, key: str, limit: int = -1) -> list[dict[str, Any]]:
        end = limit - 1 if limit > 0 else -1
        raws = await self.redis.lrange(key, 0, end)
        return [d for d in (_deserialize(r) for r in raws) if d is not None]

    # -- registrations -------------------------------------------------------

    async def store_agent_registration(self, info: AgentRegistration) -> None:
        await self.redis.set(_agent_key(self._prefix, info.agent_id), _serialize(info))

    async def update_agent_status(self, agent_id: str, status: AgentStatus) -> None:
        key = _agent_key(self._prefix, agent_id)
        data = _deserialize(await self.redis.get(key))
        if data is None:
            logger.debug("Status update for unknown agent %s ignored", agent_id)
            return
        reg = AgentRegistration.model_validate(data).model_copy(update={"status": status})
        await self.redis.set(key, _serialize(reg))

    async def get_registration(self, agent_id: str) -> AgentRegistration | None:
        data = _deserialize(await self.redis.get(_agent_key(self._prefix, agent_id)))
        return AgentRegistration.model_validate(data) if data is not None else None

    # -- memories ------------------------------------------------------------

    async def store_agent_memory(self, agent_id: str, entry: MemoryEntry) -> None:
        await self._push_capped(
            _memories_key(self._prefix, agent_id), _serialize(entry), self._max_memories
        )

    async def get_agent_memories(self, agent_id: str, limit: int = 50) -> list[MemoryEntry]:
        if limit <= 0:
            return []
        items = await self._read_list(_memories_key(self._prefix, agent_id), limit)
        return [MemoryEntry.model_validate(d) for d in items]

    # -- messages ------------------------------------------------------------

    async def store_message(self, message: Message) -> None:
        await self._push_capped(
            _messages_key(self._prefix), _serialize(message), self._max_messages
        )

    async def get_messages(
        self, filter: MessageFilter | None = None, limit: int = 100
    ) -> list[Message]:
        selected: list[Message] = []
        for data in await self._read_list(_messages_key(self._prefix)):
            message = Message.model_validate(data)
            if filter is None or filter.matches(message):
                selected.append(message)
                if len(selected) >= limit:
                    break
        return selected

    # -- state ---------------------------------------------------------------

    async def save_agent_state(self, agent_id: str, state: dict[str, Any]) -> None:
        await self.redis.set(_state_key(self._prefix, agent_id), json.dumps(state, default=str))

    async def load_agent_state(self, agent_id: str) -> dict[str, Any] | None:
        return _deserialize(await self.redis.get(_state_key(self._prefix, agent_id)))

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
        await self._push_capped(
            _predictions_key(self._prefix, market_id), _serialize(record), self._max_predictions
        )
        return record

    async def get_predictions(self, market_id: str, limit: int = 10) -> list[PredictionRecord]:
        if limit <= 0:
            return []
        items = await self._read_list(_predictions_key(self._prefix, market_id), limit)
        return [PredictionRecord.model_validate(d) for d in items]

    # -- maintenance ---------------------------------------------------------

    async def get_agent_stats(self, agent_id: str) -> AgentStats:
        key = _memories_key(self._prefix, agent_id)
        count = int(await self.redis.llen(key))
        latest = _deserialize(await self.redis.lindex(key, 0))
        sent = received = 0
        for data in await self._read_list(_messages_key(self._prefix)):
            if data.get("from_agent_id") == agent_id:
                sent += 1
            if data.get("to_agent_id") == agent_id:
                received += 1
        return AgentStats(
            agent_id=agent_id,
            memory_count=count,
            messages_sent=sent,
            messages_received=received,
            last_memory_at=MemoryEntry.model_validate(latest).timestamp if latest else None,
        )

    async def _prune(self, key: str, field: str, cutoff: datetime) -> int:
        raws = await self.redis.lrange(key, 0, -1)
        kept = []
        for raw in raws:
            data = _deserialize(raw)
            if data is not None and datetime.fromisoformat(data[field]) >= cutoff:
                kept.append(raw)
        removed = len(raws) - len(kept)
        if removed:
            await self.redis.delete(key)
            if kept:
                await self.redis.rpush(key, *kept)
        return removed

    async def cleanup(self, older_than: datetime) -> int:
        """Drop memories, messages and predictions older than *older_than*."""
        removed = 0
        for pattern, field in (
            (_memories_key(self._prefix, "*"), "timestamp"),
            (_predictions_key(self._prefix, "*"), "created_at"),
        ):
            keys = [key async for key in self.redis.scan_iter(match=pattern, count=100)]
            for key in keys:
                removed += await self._prune(key, field, older_than)
        removed += await self._prune(_messages_key(self._prefix), "timestamp", older_than)
        logger.info("Redis cleanup removed %d entries older than %s", removed, older_than)
        return removed
