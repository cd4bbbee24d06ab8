"""Application bootstrap.

Wires settings, persistence, coordinator, scheduler, agents and the
orchestrator together, and runs the swarm until interrupted or for a
single prediction pass.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Any

from .agents.base import BaseAgent
from .agents.factory import create_agents
from .coordination.coordinator import AgentCoordinator
from .core.clock import IClock, WallClock
from .core.config import Settings, load_settings
from .core.enums import CollectorSource
from .core.interfaces import IDataProvider, IPersistenceGateway
from .core.models import PipelineOutcome
from .observability.logger import setup_logging
from .orchestrator.orchestrator import SwarmOrchestrator
from .orchestrator.scheduler import Scheduler
from .storage.gateway import create_persistence

logger = logging.getLogger(__name__)


@dataclass
class Swarm:
    """Everything one running swarm is made of."""

    settings: Settings
    persistence: IPersistenceGateway
    coordinator: AgentCoordinator
    scheduler: Scheduler
    agents: list[BaseAgent]
    orchestrator: SwarmOrchestrator


def build_swarm(
    settings: Settings,
    *,
    providers: dict[CollectorSource, IDataProvider] | None = None,
    persistence: IPersistenceGateway | None = None,
    clock: IClock | None = None,
) -> Swarm:
    """Construct a swarm from settings without starting anything."""
    settings.validate_roster()
    clock = clock or WallClock()
    persistence = persistence or create_persistence(settings.storage)
    coordinator = AgentCoordinator(
        persistence,
        clock=clock,
        mailbox_size=settings.orchestrator.mailbox_size,
        health_threshold=settings.orchestrator.health_threshold,
    )
    scheduler = Scheduler()
    agents = create_agents(
        settings,
        coordinator=coordinator,
        clock=clock,
        scheduler=scheduler,
        providers=providers,
    )
    orchestrator = SwarmOrchestrator(
        settings, coordinator, agents, scheduler=scheduler, clock=clock
    )
    return Swarm(
        settings=settings,
        persistence=persistence,
        coordinator=coordinator,
        scheduler=scheduler,
        agents=agents,
        orchestrator=orchestrator,
    )


def _setup_logging(settings: Settings) -> None:
    obs = settings.observability
    setup_logging(level=obs.log_level, format=obs.log_format, swarm_id=settings.swarm_id)


def _start_metrics(settings: Settings) -> None:
    port = settings.observability.metrics_port
    if port <= 0:
        return
    try:
        from .observability.metrics import start_metrics_server

        start_metrics_server(port=port, swarm_id=settings.swarm_id)
        logger.info("Prometheus metrics server started on port %d", port)
    except Exception:
        logger.warning("Failed to start metrics server", exc_info=True)


async def run(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> None:
    """Main entry point. Load config, wire the swarm, run until signalled."""
    settings = load_settings(config_path=config_path, overrides=overrides)
    _setup_logging(settings)
    _start_metrics(settings)

    swarm = build_swarm(settings)
    await swarm.persistence.connect()
    await swarm.orchestrator.start()

    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    logger.info(
        "Swarm %s running with %d agents. Press Ctrl+C to stop.",
        settings.swarm_id,
        len(swarm.agents),
    )
    try:
        await stop_event.wait()
    finally:
        await swarm.orchestrator.stop()


async def run_once(
    market: str,
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
    *,
    providers: dict[CollectorSource, IDataProvider] | None = None,
) -> PipelineOutcome:
    """Start the swarm, run one prediction pass for *market*, shut down.

    The queue and supervisor jobs are never started; agent jobs are
    cancelled once the pass completes.
    """
    settings = load_settings(config_path=config_path, overrides=overrides)
    _setup_logging(settings)

    swarm = build_swarm(settings, providers=providers)
    await swarm.persistence.connect()
    for agent in swarm.agents:
        await agent.start()
    try:
        return await swarm.orchestrator.run_market_prediction(market)
    finally:
        await swarm.scheduler.cancel_all()
        await swarm.coordinator.shutdown()
