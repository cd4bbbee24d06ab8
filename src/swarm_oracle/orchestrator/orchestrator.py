"""Swarm orchestrator: task queue, pipeline and supervision.

Owns the agent roster, a FIFO task queue and three scheduled jobs:

1. **tick** drains at most one task from the queue
2. **synthesis** enqueues a ``market_prediction`` task for a random market
3. **supervisor** runs the coordinator health check and applies the
   configured remediation policy to unhealthy agents

A ``market_prediction`` task walks four stages, each a barrier-joined
fan-out (``asyncio.gather``) over the agents of one role::

    collect ──► analyze ──► deliberate ──► execute
                               │
                               └── no consensus: resolver (logged), stop

Usage::

    orch = SwarmOrchestrator(settings, coordinator, agents, scheduler=scheduler)
    await orch.start()
    orch.add_task(Task(payload=MarketPredictionPayload(market="BTC/USD")))
    # ...
    await orch.stop()
"""

from __future__ import annotations

import asyncio
import logging
import random
import statistics
import time
from datetime import datetime
from typing import Sequence, assert_never

from swarm_oracle.agents.base import BaseAgent
from swarm_oracle.core.clock import IClock, WallClock
from swarm_oracle.core.config import Settings
from swarm_oracle.core.enums import (
    AgentRole,
    CollectorSource,
    Direction,
    EvidenceSource,
    RemediationPolicy,
    TaskType,
)
from swarm_oracle.core.ids import utc_now
from swarm_oracle.core.models import (
    AnalysisResult,
    AnalyzePayload,
    AssessRiskPayload,
    BuildConsensusPayload,
    CollectionBatch,
    CollectPayload,
    ConsensusRecord,
    CorrelationAnalysis,
    Evidence,
    FundamentalAnalysis,
    MarketPredictionPayload,
    MarketSnapshot,
    Observation,
    PipelineOutcome,
    Prediction,
    PricePayload,
    Resolution,
    ResolveDisputePayload,
    RiskAssessment,
    SentimentAnalysis,
    SentimentPayload,
    SwarmPrediction,
    SwarmStatus,
    Task,
    TaskResult,
    TechnicalAnalysis,
    prediction_from,
)
from swarm_oracle.coordination.coordinator import AgentCoordinator
from swarm_oracle.observability import metrics
from swarm_oracle.observability.logger import new_trace_id

from .scheduler import Scheduler

logger = logging.getLogger(__name__)

_ANALYSIS_TYPES = (TechnicalAnalysis, FundamentalAnalysis, SentimentAnalysis, CorrelationAnalysis)

_DEFAULT_VOLATILITY = 0.2

_EVIDENCE_SOURCES: dict[str, EvidenceSource] = {
    CollectorSource.ONCHAIN.value: EvidenceSource.ONCHAIN,
    CollectorSource.NEWS.value: EvidenceSource.NEWS,
    CollectorSource.TWITTER.value: EvidenceSource.SOCIAL,
    CollectorSource.REDDIT.value: EvidenceSource.SOCIAL,
}


# ---------------------------------------------------------------------------
# Snapshot aggregation
# ---------------------------------------------------------------------------

def price_volatility(prices: Sequence[float]) -> float:
    """Population stdev of simple returns, clamped to [0, 1].

    Fewer than two returns fall back to the neutral default of 0.2.
    """
    returns = [
        (b - a) / a for a, b in zip(prices, prices[1:]) if a != 0
    ]
    if len(returns) < 2:
        return _DEFAULT_VOLATILITY
    return max(0.0, min(1.0, statistics.pstdev(returns)))


def build_snapshot(
    market: str,
    observations: Sequence[Observation],
    now: datetime | None = None,
) -> MarketSnapshot:
    """Aggregate one collect stage into the analysts' shared input."""
    ordered = sorted(observations, key=lambda o: o.timestamp)
    prices = [o.payload for o in ordered if isinstance(o.payload, PricePayload)]
    sentiments = [o.payload.sentiment for o in ordered if isinstance(o.payload, SentimentPayload)]

    return MarketSnapshot(
        market=market,
        timestamp=now or utc_now(),
        sources=sorted({o.source for o in ordered}),
        observation_count=len(ordered),
        last_price=prices[-1].price if prices else None,
        total_volume=sum(p.volume or 0.0 for p in prices),
        total_market_cap=sum(p.market_cap or 0.0 for p in prices),
        average_sentiment=statistics.fmean(sentiments) if sentiments else 0.0,
        volatility=price_volatility([p.price for p in prices]),
        observations=list(ordered),
    )


def evidence_from(observations: Sequence[Observation]) -> list[Evidence]:
    """Turn observations into dispute evidence, newest provenance preserved."""
    evidence = []
    for obs in observations:
        polarity = obs.polarity
        if polarity > 0:
            direction: Direction | None = Direction.BULLISH
        elif polarity < 0:
            direction = Direction.BEARISH
        else:
            direction = None
        evidence.append(
            Evidence(
                source=_EVIDENCE_SOURCES.get(obs.source, EvidenceSource.OTHER),
                timestamp=obs.timestamp,
                description=f"{obs.source} {obs.kind.value} observation",
                direction=direction,
            )
        )
    return evidence


# ---------------------------------------------------------------------------
# SwarmOrchestrator
# ---------------------------------------------------------------------------

class SwarmOrchestrator:
    """Runs the prediction pipeline over a coordinated agent roster.

    Parameters
    ----------
    settings:
        Application settings (cadences, market universe, remediation).
    coordinator:
        Registry used for fan-out and health checks.
    agents:
        Roster started and stopped by this orchestrator, in pipeline order.
    scheduler:
        Owner of the tick, synthesis and supervisor jobs.
    clock:
        Time source for snapshots.
    rng:
        Market picker for synthetic tasks; seeded from settings if omitted.
    """

    def __init__(
        self,
        settings: Settings,
        coordinator: AgentCoordinator,
        agents: Sequence[BaseAgent],
        *,
        scheduler: Scheduler | None = None,
        clock: IClock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._config = settings.orchestrator
        self._coordinator = coordinator
        self._agents = list(agents)
        self._scheduler = scheduler or Scheduler()
        self._clock: IClock = clock or WallClock()
        self._rng = rng or random.Random(self._config.seed)
        self._queue: asyncio.Queue[Task] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._quarantined: set[str] = set()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def coordinator(self) -> AgentCoordinator:
        return self._coordinator

    @property
    def quarantined(self) -> list[str]:
        return sorted(self._quarantined)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start every agent, then the tick, synthesis and supervisor jobs."""
        if self._running:
            logger.warning("Orchestrator already running")
            return
        logger.info("Starting swarm %s with %d agents", self._settings.swarm_id, len(self._agents))
        self._loop = asyncio.get_running_loop()
        self._running = True

        for agent in self._agents:
            try:
                await agent.start()
            except Exception:
                logger.exception("Failed to start agent %s", agent.agent_id)

        cfg = self._config
        self._scheduler.schedule("orchestrator:tick", cfg.tick_seconds, self._tick)
        if cfg.synthesis_seconds > 0:
            self._scheduler.schedule(
                "orchestrator:synthesis", cfg.synthesis_seconds, self._synthesize
            )
        if cfg.supervisor_seconds > 0:
            self._scheduler.schedule(
                "orchestrator:supervisor", cfg.supervisor_seconds, self.supervise
            )
        logger.info("Swarm %s started", self._settings.swarm_id)

    async def stop(self) -> None:
        """Cancel every job, stop the agents and shut the coordinator down."""
        if not self._running:
            return
        logger.info("Stopping swarm %s", self._settings.swarm_id)
        self._running = False
        await self._scheduler.cancel_all()
        for agent in reversed(self._agents):
            try:
                await agent.stop()
            except Exception:
                logger.exception("Failed to stop agent %s", agent.agent_id)
        await self._coordinator.shutdown()
        logger.info("Swarm %s stopped", self._settings.swarm_id)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def add_task(self, task: Task) -> None:
        """Enqueue *task*; safe to call from threads other than the loop's."""
        loop = self._loop
        if loop is not None and loop.is_running():
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is not loop:
                loop.call_soon_threadsafe(self._enqueue, task)
                return
        self._enqueue(task)

    def _enqueue(self, task: Task) -> None:
        self._queue.put_nowait(task)
        metrics.update_queue_size(self._queue.qsize())
        logger.info("Task added to queue: %s (id=%s)", task.type.value, task.id)

    async def process_next_task(self) -> PipelineOutcome | list[TaskResult] | None:
        """Dequeue and run one task. Returns ``None`` when the queue is empty."""
        try:
            task = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        metrics.update_queue_size(self._queue.qsize())
        try:
            return await self.process_task(task)
        except Exception:
            logger.exception("Failed to process task %s (type=%s)", task.id, task.type.value)
            return None
        finally:
            self._queue.task_done()

    async def _tick(self) -> None:
        if self._running:
            await self.process_next_task()

    async def _synthesize(self) -> None:
        markets = self._config.markets
        if not self._running or not markets:
            return
        market = self._rng.choice(markets)
        self.add_task(Task(payload=MarketPredictionPayload(market=market)))
        logger.info("Added prediction task for %s", market)

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def _active(self, agents: Sequence[BaseAgent]) -> list[BaseAgent]:
        return [a for a in agents if a.agent_id not in self._quarantined]

    def agents_for(self, task_type: TaskType) -> list[BaseAgent]:
        """Registered, non-quarantined agents that accept *task_type*."""
        match task_type:
            case TaskType.DATA_COLLECTION:
                candidates = self._coordinator.get_agents_by_role(AgentRole.COLLECTOR)
            case TaskType.ANALYSIS:
                candidates = self._coordinator.get_agents_by_role(AgentRole.ANALYST)
            case _:
                candidates = [
                    a for a in self._coordinator.get_registered_agents()
                    if task_type in a.accepted_tasks()
                ]
        return self._active(candidates)

    async def _fan_out(self, task: Task, agents: Sequence[BaseAgent]) -> list[TaskResult]:
        if not agents:
            logger.warning("No agents available for %s", task.type.value)
            return []
        results = await asyncio.gather(*(a.process_task(task) for a in agents))
        for result in results:
            if not result.success:
                logger.warning(
                    "Agent %s failed %s: %s", result.agent_id, task.type.value, result.error
                )
        return list(results)

    async def process_task(self, task: Task) -> PipelineOutcome | list[TaskResult]:
        """Run *task*: the full pipeline for predictions, a fan-out otherwise."""
        logger.info("Processing task: %s (id=%s)", task.type.value, task.id)
        payload = task.payload
        if isinstance(payload, MarketPredictionPayload):
            return await self.run_market_prediction(payload.market, task_id=task.id)
        return await self._fan_out(task, self.agents_for(task.type))

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def run_market_prediction(
        self, market: str, *, task_id: str | None = None
    ) -> PipelineOutcome:
        """Collect, analyze, deliberate and, on consensus, execute for *market*."""
        trace_id = new_trace_id()
        started = time.monotonic()
        outcome = PipelineOutcome(
            task_id=task_id or trace_id, market=market, stage_reached="collect"
        )
        logger.info("Pipeline %s started for %s", trace_id, market)
        try:
            await self._run_stages(market, outcome)
        finally:
            metrics.observe_pipeline_latency(time.monotonic() - started)
        logger.info(
            "Market prediction task completed for %s (stage=%s, executed=%s)",
            market,
            outcome.stage_reached,
            outcome.executed,
        )
        return outcome

    async def _run_stages(self, market: str, outcome: PipelineOutcome) -> None:
        # 1. collect
        snapshot = await self._collect(market)
        outcome.snapshot = snapshot

        # 2. analyze
        outcome.stage_reached = "analyze"
        findings = await self._analyze(market, snapshot)
        outcome.analyses = [analysis for _, analysis in findings]
        predictions = [prediction_from(agent_id, a) for agent_id, a in findings]

        # 3. deliberate
        outcome.stage_reached = "deliberate"
        consensus = await self._deliberate(market, predictions)
        outcome.consensus = consensus
        if consensus is None or not consensus.has_consensus:
            if self._config.resolve_disputes_on_deadlock and predictions:
                outcome.resolution = await self._resolve(market, predictions, snapshot)
            return

        # 4. execute
        outcome.stage_reached = "execute"
        outcome.risk = await self._execute(market, consensus, snapshot)

    async def _collect(self, market: str) -> MarketSnapshot:
        task = Task(payload=CollectPayload(market=market))
        results = await self._fan_out(task, self.agents_for(TaskType.DATA_COLLECTION))
        observations: list[Observation] = []
        for result in results:
            if result.success and isinstance(result.payload, CollectionBatch):
                observations.extend(result.payload.observations)
        snapshot = build_snapshot(market, observations, now=self._clock.now())
        logger.info(
            "Collected %d observations for %s from %s",
            snapshot.observation_count,
            market,
            ", ".join(snapshot.sources) or "no sources",
        )
        return snapshot

    async def _analyze(
        self, market: str, snapshot: MarketSnapshot
    ) -> list[tuple[str, AnalysisResult]]:
        """Return ``(agent_id, analysis)`` for every analyst that succeeded."""
        task = Task(payload=AnalyzePayload(market=market, observations=snapshot.observations))
        results = await self._fan_out(task, self.agents_for(TaskType.ANALYSIS))
        return [
            (result.agent_id, result.payload)
            for result in results
            if result.success and isinstance(result.payload, _ANALYSIS_TYPES)
        ]

    async def _deliberate(
        self, market: str, predictions: list[Prediction]
    ) -> ConsensusRecord | None:
        facilitators = self.agents_for(TaskType.BUILD_CONSENSUS)
        if not facilitators:
            logger.error("No consensus facilitator available")
            return None
        task = Task(
            payload=BuildConsensusPayload(market=market, predictions=predictions)
        )
        result = await facilitators[0].process_task(task)
        if not result.success or not isinstance(result.payload, ConsensusRecord):
            logger.warning("Consensus building failed: %s", result.error)
            return None
        return result.payload

    async def _resolve(
        self,
        market: str,
        predictions: list[Prediction],
        snapshot: MarketSnapshot,
    ) -> Resolution | None:
        resolvers = self.agents_for(TaskType.RESOLVE_DISPUTE)
        if not resolvers:
            return None
        task = Task(
            payload=ResolveDisputePayload(
                market=market,
                predictions=predictions,
                evidence=evidence_from(snapshot.observations),
            )
        )
        result = await resolvers[0].process_task(task)
        if not result.success or not isinstance(result.payload, Resolution):
            logger.warning("Dispute resolution failed: %s", result.error)
            return None
        resolution = result.payload
        logger.info(
            "Deadlock on %s: %s suggests %s (confidence=%.2f, human_review=%s)",
            market,
            resolution.strategy.value,
            resolution.resolved_direction.value,
            resolution.confidence,
            resolution.requires_human_review,
        )
        return resolution

    async def _execute(
        self,
        market: str,
        consensus: ConsensusRecord,
        snapshot: MarketSnapshot,
    ) -> RiskAssessment | None:
        risk_managers = self.agents_for(TaskType.ASSESS_RISK)
        if not risk_managers:
            logger.warning("No risk manager available for execution")
            return None
        task = Task(
            payload=AssessRiskPayload(
                market=market,
                confidence=consensus.average_confidence,
                volatility=snapshot.volatility,
            )
        )
        result = await risk_managers[0].process_task(task)
        if not result.success or not isinstance(result.payload, RiskAssessment):
            logger.warning("Risk assessment failed: %s", result.error)
            return None
        risk = result.payload
        logger.info("Execution decision: %s for %s", risk.recommendation.value, market)

        prediction = SwarmPrediction(
            market=market, direction=consensus.direction, consensus=consensus, risk=risk
        )
        try:
            await self._coordinator.persistence.store_prediction(
                market, self._settings.swarm_id, prediction, consensus.average_confidence
            )
        except Exception:
            logger.exception("Failed to store prediction for %s", market)
        return risk

    # ------------------------------------------------------------------
    # Supervision
    # ------------------------------------------------------------------

    async def supervise(self) -> None:
        """Run a health check and remediate unhealthy agents."""
        health = self._coordinator.health_check()
        if health.is_healthy:
            logger.debug("Swarm healthy (%.0f%%)", health.ratio * 100)
            return
        logger.warning(
            "Swarm health check failed: %d/%d healthy, unhealthy=%s",
            health.healthy_agents,
            health.total_agents,
            health.unhealthy,
        )
        policy = self._config.remediation
        for agent_id in health.unhealthy:
            agent = self._coordinator.get_agent(agent_id)
            if agent is None:
                continue
            match policy:
                case RemediationPolicy.LOG_ONLY:
                    pass
                case RemediationPolicy.RESTART:
                    logger.info("Restarting unhealthy agent %s", agent_id)
                    try:
                        await agent.restart()
                    except Exception:
                        logger.exception("Restart of %s failed", agent_id)
                case RemediationPolicy.QUARANTINE:
                    logger.warning("Quarantining unhealthy agent %s", agent_id)
                    self._quarantined.add(agent_id)
                    try:
                        await agent.stop()
                    except Exception:
                        logger.exception("Stop of quarantined %s failed", agent_id)
                case _:
                    assert_never(policy)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> SwarmStatus:
        return SwarmStatus(
            swarm_id=self._settings.swarm_id,
            is_running=self._running,
            queue_size=self._queue.qsize(),
            agent_counts=self._coordinator.agent_counts(),
            registered_agents=len(self._coordinator.get_registered_agents()),
            quarantined=self.quarantined,
        )
