"""PostgreSQL implementation of the persistence gateway.

Each call runs in its own short transaction via :func:`session_scope`.
Errors propagate unchanged; :class:`ResilientPersistence` decides what to do
with them.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from swarm_oracle.core.enums import AgentStatus
from swarm_oracle.core.errors import PersistenceError
from swarm_oracle.core.models import (
    AgentRegistration,
    AgentStats,
    MemoryEntry,
    Message,
    MessageFilter,
    PredictionRecord,
    SwarmPrediction,
)

from .connection import create_all, create_engine, create_session_factory, session_scope
from .repos import AgentRepo, MemoryRepo, MessageRepo, PredictionRepo

logger = logging.getLogger(__name__)


class PostgresPersistence:
    """Durable gateway backed by SQLAlchemy + asyncpg.

    Parameters
    ----------
    url:
        ``postgresql+asyncpg://`` connection URL.
    create_tables:
        Run ``metadata.create_all`` on connect.
    """

    def __init__(self, url: str, *, create_tables: bool = True, **engine_kwargs: Any) -> None:
        self._url = url
        self._create_tables = create_tables
        self._engine_kwargs = engine_kwargs
        self._engine: AsyncEngine | None = None
        self._factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def factory(self) -> async_sessionmaker[AsyncSession]:
        if self._factory is None:
            raise PersistenceError("PostgresPersistence not connected. Call connect() first.")
        return self._factory

    async def connect(self) -> None:
        engine = create_engine(self._url, **self._engine_kwargs)
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            if self._create_tables:
                await create_all(engine)
        except Exception:
            await engine.dispose()
            raise
        self._engine = engine
        self._factory = create_session_factory(engine)
        logger.info("Connected to Postgres at %s", self._url.split("@")[-1])

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._factory = None
            logger.info("Postgres engine disposed.")

    # -- registrations -------------------------------------------------------

    async def store_agent_registration(self, info: AgentRegistration) -> None:
        async with session_scope(self.factory) as session:
            await AgentRepo(session).upsert_registration(info)

    async def update_agent_status(self, agent_id: str, status: AgentStatus) -> None:
        async with session_scope(self.factory) as session:
            await AgentRepo(session).set_status(agent_id, status)

    # -- memories ------------------------------------------------------------

    async def store_agent_memory(self, agent_id: str, entry: MemoryEntry) -> None:
        async with session_scope(self.factory) as session:
            await MemoryRepo(session).add(agent_id, entry)

    async def get_agent_memories(self, agent_id: str, limit: int = 50) -> list[MemoryEntry]:
        async with session_scope(self.factory) as session:
            return await MemoryRepo(session).recent(agent_id, limit)

    # -- messages ------------------------------------------------------------

    async def store_message(self, message: Message) -> None:
        async with session_scope(self.factory) as session:
            await MessageRepo(session).add(message)

    async def get_messages(
        self, filter: MessageFilter | None = None, limit: int = 100
    ) -> list[Message]:
        async with session_scope(self.factory) as session:
            return await MessageRepo(session).query(filter, limit)

    # -- state ---------------------------------------------------------------

    async def save_agent_state(self, agent_id: str, state: dict[str, Any]) -> None:
        async with session_scope(self.factory) as session:
            await AgentRepo(session).save_state(agent_id, state)

    async def load_agent_state(self, agent_id: str) -> dict[str, Any] | None:
        async with session_scope(self.factory) as session:
            return await AgentRepo(session).load_state(agent_id)

    # -- predictions ---------------------------------------------------------

    async def store_prediction(
        self,
        market_id: str,
        swarm_id: str,
        prediction: SwarmPrediction,
        confidence: float,
    ) -> PredictionRecord:
        async with session_scope(self.factory) as session:
            return await PredictionRepo(session).add(market_id, swarm_id, prediction, confidence)

    async def get_predictions(self, market_id: str, limit: int = 10) -> list[PredictionRecord]:
        async with session_scope(self.factory) as session:
            return await PredictionRepo(session).for_market(market_id, limit)

    # -- maintenance ---------------------------------------------------------

    async def get_agent_stats(self, agent_id: str) -> AgentStats:
        async with session_scope(self.factory) as session:
            count, latest = await MemoryRepo(session).count_for(agent_id)
            sent, received = await MessageRepo(session).counts_for(agent_id)
        return AgentStats(
            agent_id=agent_id,
            memory_count=count,
            messages_sent=sent,
            messages_received=received,
            last_memory_at=latest,
        )

    async def cleanup(self, older_than: datetime) -> int:
        async with session_scope(self.factory) as session:
            removed = await MemoryRepo(session).delete_before(older_than)
            removed += await MessageRepo(session).delete_before(older_than)
            removed += await PredictionRepo(session).delete_before(older_than)
        logger.info("Postgres cleanup removed %d rows older than %s", removed, older_than)
        return removed
