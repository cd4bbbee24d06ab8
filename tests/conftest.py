"""Shared fixtures for the swarm-oracle test suite."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest
import structlog

from swarm_oracle.coordination.coordinator import AgentCoordinator
from swarm_oracle.core.clock import SimClock
from swarm_oracle.core.enums import Direction, ObservationKind
from swarm_oracle.core.models import Observation, Prediction, PricePayload, SentimentPayload
from swarm_oracle.orchestrator.scheduler import Scheduler
from swarm_oracle.storage.memory_store import InMemoryPersistence

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------

@pytest.fixture
def sim_clock() -> SimClock:
    """Simulated clock pinned to 2024-01-01 UTC."""
    return SimClock(start=START)


@pytest.fixture
def persistence() -> InMemoryPersistence:
    return InMemoryPersistence()


@pytest.fixture
def coordinator(persistence: InMemoryPersistence, sim_clock: SimClock) -> AgentCoordinator:
    return AgentCoordinator(persistence, clock=sim_clock)


@pytest.fixture
async def scheduler():
    sched = Scheduler()
    yield sched
    await sched.cancel_all()


# ---------------------------------------------------------------------------
# Observation / prediction builders
# ---------------------------------------------------------------------------

@pytest.fixture
def price_series():
    """Factory: one market price observation per price, a minute apart."""

    def _build(prices: list[float], volumes: list[float] | None = None, symbol: str = "BTC/USD"):
        volumes = volumes or [0.0] * len(prices)
        return [
            Observation(
                source="market",
                kind=ObservationKind.PRICE,
                timestamp=START + timedelta(minutes=i),
                payload=PricePayload(symbol=symbol, price=price, volume=volume),
                confidence=0.9,
            )
            for i, (price, volume) in enumerate(zip(prices, volumes))
        ]

    return _build


@pytest.fixture
def sentiment_obs():
    """Factory: a scored sentiment observation from *source*."""

    def _build(
        sentiment: float,
        *,
        source: str = "twitter",
        kind: ObservationKind = ObservationKind.SOCIAL,
        timestamp: datetime = START,
        topic: str = "BTC",
    ) -> Observation:
        return Observation(
            source=source,
            kind=kind,
            timestamp=timestamp,
            payload=SentimentPayload(topic=topic, sentiment=sentiment, item_count=10),
            confidence=0.2,
        )

    return _build


@pytest.fixture
def make_prediction():
    def _build(direction: Direction, confidence: float = 0.7, agent_id: str | None = None) -> Prediction:
        return Prediction(
            agent_id=agent_id or f"{direction.value}-agent",
            direction=direction,
            confidence=confidence,
        )

    return _build


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """``setup_logging`` replaces the root handlers; put pytest's back."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.contextvars.clear_contextvars()
