"""Build the configured agent roster."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, assert_never

from swarm_oracle.core.clock import IClock
from swarm_oracle.core.config import (
    AnalystConfig,
    CollectorConfig,
    DeliberatorConfig,
    ExecutorConfig,
    Settings,
)
from swarm_oracle.core.enums import CollectorSource
from swarm_oracle.core.interfaces import IDataProvider
from swarm_oracle.providers.factory import build_provider

from .analyst import AnalystAgent
from .base import BaseAgent
from .collector import CollectorAgent
from .deliberator import DeliberatorAgent
from .executor import ExecutorAgent

if TYPE_CHECKING:
    from swarm_oracle.coordination.coordinator import AgentCoordinator
    from swarm_oracle.orchestrator.scheduler import Scheduler

logger = logging.getLogger(__name__)

AgentConfig = CollectorConfig | AnalystConfig | DeliberatorConfig | ExecutorConfig


def create_agent(
    cfg: AgentConfig,
    settings: Settings,
    *,
    coordinator: AgentCoordinator,
    clock: IClock,
    scheduler: Scheduler,
    providers: dict[CollectorSource, IDataProvider] | None = None,
) -> BaseAgent:
    """Instantiate the agent described by *cfg*."""
    common: dict[str, Any] = {
        "agent_id": cfg.agent_id,
        "coordinator": coordinator,
        "clock": clock,
        "scheduler": scheduler,
        "memory_cap": settings.agents.memory_cap,
        "error_grace_seconds": settings.agents.error_grace_seconds,
        "inactivity_timeout_seconds": settings.agents.inactivity_timeout_seconds,
    }
    match cfg:
        case CollectorConfig():
            provider = (providers or {}).get(cfg.source) or build_provider(
                cfg.source, settings.providers
            )
            return CollectorAgent(
                source=cfg.source,
                provider=provider,
                topics=cfg.topics,
                expected_count=cfg.expected_count,
                interval=cfg.interval,
                **common,
            )
        case AnalystConfig():
            return AnalystAgent(specialty=cfg.specialty, window=cfg.window, **common)
        case DeliberatorConfig():
            return DeliberatorAgent(
                kind=cfg.kind, consensus_threshold=cfg.consensus_threshold, **common
            )
        case ExecutorConfig():
            return ExecutorAgent(
                kind=cfg.kind,
                max_position_size=cfg.max_position_size,
                risk_limits=cfg.risk_limits,
                supported_chains=cfg.supported_chains,
                default_liquidity=cfg.default_liquidity,
                max_slippage=cfg.max_slippage,
                **common,
            )
        case _:
            assert_never(cfg)


def create_agents(
    settings: Settings,
    *,
    coordinator: AgentCoordinator,
    clock: IClock,
    scheduler: Scheduler,
    providers: dict[CollectorSource, IDataProvider] | None = None,
) -> list[BaseAgent]:
    """Every enabled agent of the roster, in pipeline order."""
    configs: list[AgentConfig] = [
        *settings.collectors,
        *settings.analysts,
        *settings.deliberators,
        *settings.executors,
    ]
    agents = [
        create_agent(
            cfg,
            settings,
            coordinator=coordinator,
            clock=clock,
            scheduler=scheduler,
            providers=providers,
        )
        for cfg in configs
        if cfg.enabled
    ]
    logger.info("Created %d agents from settings", len(agents))
    return agents
