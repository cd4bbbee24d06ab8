"""Core domain models used across the swarm.

These are the canonical "truth models" for the system.  Every payload that
crosses an agent, coordinator or persistence boundary is one of the schema'd
unions below, so a stage can only hand the next stage a shape it understands.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import (
    AgentRole,
    AgentStatus,
    AnalysisType,
    CollectorSource,
    Direction,
    EvidenceSource,
    MessageType,
    ObservationKind,
    ResolutionStrategy,
    RiskLevel,
    RiskRecommendation,
    TaskType,
)
from .ids import new_id, prefixed_id, utc_now

Unit = Annotated[float, Field(ge=0.0, le=1.0)]
Signed = Annotated[float, Field(ge=-1.0, le=1.0)]


# ---------------------------------------------------------------------------
# Observations
# ---------------------------------------------------------------------------

class ScoredItem(BaseModel):
    """One raw provider item after scoring."""

    model_config = ConfigDict(frozen=True)

    text: str
    score: Signed
    engagement: float = 0.0


class SentimentPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["sentiment"] = "sentiment"
    topic: str
    sentiment: Signed
    item_count: int = 0
    samples: tuple[ScoredItem, ...] = ()


class PricePayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["price"] = "price"
    symbol: str
    price: float
    volume: float = 0.0
    market_cap: float = 0.0


class ChainPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["chain"] = "chain"
    network: str
    chain_id: int = 0
    block_number: int
    transaction_count: int = 0
    gas_price_gwei: float = 0.0


ObservationPayload = Annotated[
    Union[SentimentPayload, PricePayload, ChainPayload],
    Field(discriminator="type"),
]


class Observation(BaseModel):
    """A typed, confidence-scored unit of external data.

    Immutable once created.  ``value`` is the scalar a downstream analyst
    reads when it builds a series for this observation's kind.
    """

    model_config = ConfigDict(frozen=True)

    source: str
    kind: ObservationKind
    timestamp: datetime = Field(default_factory=utc_now)
    payload: ObservationPayload
    confidence: Unit
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def value(self) -> float:
        payload = self.payload
        if isinstance(payload, SentimentPayload):
            return payload.sentiment
        if isinstance(payload, PricePayload):
            return payload.price
        return float(payload.transaction_count)

    @property
    def polarity(self) -> int:
        """Sign of a sentiment observation (+1, -1 or 0)."""
        if not isinstance(self.payload, SentimentPayload):
            return 0
        if self.payload.sentiment > 0:
            return 1
        if self.payload.sentiment < 0:
            return -1
        return 0


# ---------------------------------------------------------------------------
# Predictions, evidence, consensus
# ---------------------------------------------------------------------------

class Prediction(BaseModel):
    """One analyst's vote in a deliberation."""

    agent_id: str
    direction: Direction
    confidence: Unit
    analysis_type: AnalysisType | None = None
    reasoning: str = ""


class Evidence(BaseModel):
    source: EvidenceSource
    timestamp: datetime = Field(default_factory=utc_now)
    description: str = ""
    direction: Direction | None = None


class ConsensusRecord(BaseModel):
    """Deterministic summary of agreement across analyst predictions."""

    type: Literal["consensus"] = "consensus"
    has_consensus: bool
    direction: Direction
    strength: Unit
    threshold: Unit
    supporting_agents: int
    total_agents: int
    average_confidence: Unit
    votes: dict[str, int] = Field(default_factory=dict)
    reasoning: str = ""


class Conflict(BaseModel):
    agent_a: str
    agent_b: str
    direction_a: Direction
    direction_b: Direction
    severity: Unit


class Resolution(BaseModel):
    type: Literal["resolution"] = "resolution"
    conflicts: list[Conflict] = Field(default_factory=list)
    average_severity: Unit = 0.0
    evidence_weights: list[float] = Field(default_factory=list)
    strategy: ResolutionStrategy
    resolved_direction: Direction
    confidence: Unit
    requires_human_review: bool = False
    reasoning: str = ""


# ---------------------------------------------------------------------------
# Analyses
# ---------------------------------------------------------------------------

class MacdValues(BaseModel):
    macd: float = 0.0
    signal: float = 0.0
    histogram: float = 0.0


class TechnicalIndicators(BaseModel):
    rsi: float = 50.0
    macd: MacdValues = Field(default_factory=MacdValues)
    price_change: float = 0.0
    current_price: float | None = None
    sample_count: int = 0


class TechnicalAnalysis(BaseModel):
    type: Literal["technical"] = "technical"
    direction: Direction = Direction.NEUTRAL
    signals: list[str] = Field(default_factory=list)
    confidence: Unit = 0.0
    indicators: TechnicalIndicators = Field(default_factory=TechnicalIndicators)

    @property
    def trend(self) -> Direction:
        return self.direction


class FundamentalAnalysis(BaseModel):
    type: Literal["fundamental"] = "fundamental"
    score: Unit = 0.5
    direction: Direction = Direction.NEUTRAL
    signals: list[str] = Field(default_factory=list)
    confidence: Unit = 0.0
    factors: dict[str, float] = Field(default_factory=dict)


class SentimentAnalysis(BaseModel):
    type: Literal["sentiment"] = "sentiment"
    sentiment: Unit = 0.5
    direction: Direction = Direction.NEUTRAL
    signals: list[str] = Field(default_factory=list)
    confidence: Unit = 0.0
    factors: dict[str, float] = Field(default_factory=dict)


class CorrelationAnalysis(BaseModel):
    type: Literal["correlation"] = "correlation"
    correlations: dict[str, float] = Field(default_factory=dict)
    direction: Direction = Direction.NEUTRAL
    signals: list[str] = Field(default_factory=list)
    confidence: Unit = 0.0


AnalysisResult = Annotated[
    Union[TechnicalAnalysis, FundamentalAnalysis, SentimentAnalysis, CorrelationAnalysis],
    Field(discriminator="type"),
]


def prediction_from(agent_id: str, analysis: AnalysisResult) -> Prediction:
    """Turn an analyst's typed finding into its deliberation vote."""
    return Prediction(
        agent_id=agent_id,
        direction=analysis.direction,
        confidence=analysis.confidence,
        analysis_type=AnalysisType(analysis.type),
        reasoning="; ".join(analysis.signals),
    )


# ---------------------------------------------------------------------------
# Execution plans
# ---------------------------------------------------------------------------

class RiskAssessment(BaseModel):
    type: Literal["risk"] = "risk"
    market: str | None = None
    overall_risk: Unit
    level: RiskLevel
    recommendation: RiskRecommendation
    max_exposure: Unit
    confidence_risk: Unit
    volatility_risk: Unit
    position_size: float = 0.0
    confidence: Unit = 0.8
    reasoning: str = ""


class ExecutionPlan(BaseModel):
    """Declarative cross-chain plan.  Never executed by the swarm."""

    type: Literal["cross_chain_plan"] = "cross_chain_plan"
    source_chain: str
    target_chain: str
    amount: float
    operation: str = "transfer"
    bridge: str = "Chainlink CCIP"
    estimated_time_minutes: int = 15
    fees: float
    status: Literal["planned"] = "planned"
    confidence: Unit = 0.9
    reasoning: str = ""


class MevProtection(BaseModel):
    type: Literal["mev_protection"] = "mev_protection"
    amount: float
    liquidity: float
    risk_score: Unit
    level: RiskLevel
    strategy: str
    gas_strategy: str
    max_slippage: float = 0.01
    confidence: Unit = 0.85
    reasoning: str = ""


# ---------------------------------------------------------------------------
# Task outputs & memory
# ---------------------------------------------------------------------------

class CollectionBatch(BaseModel):
    type: Literal["collection"] = "collection"
    source: CollectorSource
    observations: list[Observation] = Field(default_factory=list)


TaskOutput = Annotated[
    Union[
        CollectionBatch,
        TechnicalAnalysis,
        FundamentalAnalysis,
        SentimentAnalysis,
        CorrelationAnalysis,
        ConsensusRecord,
        Resolution,
        RiskAssessment,
        ExecutionPlan,
        MevProtection,
    ],
    Field(discriminator="type"),
]


class CollectionSummary(BaseModel):
    type: Literal["collection_summary"] = "collection_summary"
    source: CollectorSource
    topic: str
    summary: str
    observation: Observation | None = None


class Note(BaseModel):
    type: Literal["note"] = "note"
    text: str
    values: dict[str, Any] = Field(default_factory=dict)


MemoryData = Annotated[
    Union[
        CollectionSummary,
        Note,
        TechnicalAnalysis,
        FundamentalAnalysis,
        SentimentAnalysis,
        CorrelationAnalysis,
        ConsensusRecord,
        Resolution,
        RiskAssessment,
        ExecutionPlan,
        MevProtection,
    ],
    Field(discriminator="type"),
]


class MemoryEntry(BaseModel):
    """One append-only memory slot of an agent."""

    id: str = Field(default_factory=new_id)
    type: str
    timestamp: datetime = Field(default_factory=utc_now)
    data: MemoryData
    metadata: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

class CollectPayload(BaseModel):
    type: Literal["data_collection"] = "data_collection"
    market: str | None = None
    topics: list[str] = Field(default_factory=list)


class AnalyzePayload(BaseModel):
    type: Literal["analysis"] = "analysis"
    market: str | None = None
    observations: list[Observation] = Field(default_factory=list)


class MarketPredictionPayload(BaseModel):
    type: Literal["market_prediction"] = "market_prediction"
    market: str
    timeframe: str = "1h"


class BuildConsensusPayload(BaseModel):
    type: Literal["build_consensus"] = "build_consensus"
    market: str | None = None
    predictions: list[Prediction] = Field(default_factory=list)
    threshold: Unit | None = None


class ResolveDisputePayload(BaseModel):
    type: Literal["resolve_dispute"] = "resolve_dispute"
    market: str | None = None
    predictions: list[Prediction] = Field(default_factory=list)
    evidence: list[Evidence] = Field(default_factory=list)


class AssessRiskPayload(BaseModel):
    type: Literal["assess_risk"] = "assess_risk"
    market: str | None = None
    confidence: Unit
    volatility: float = Field(default=0.2, ge=0.0)


class PlanCrossChainPayload(BaseModel):
    type: Literal["plan_cross_chain"] = "plan_cross_chain"
    source_chain: str
    target_chain: str
    amount: float = Field(ge=0.0)
    operation: str = "transfer"


class ProtectMevPayload(BaseModel):
    type: Literal["protect_mev"] = "protect_mev"
    amount: float = Field(ge=0.0)
    liquidity: float | None = Field(default=None, gt=0.0)


TaskPayload = Annotated[
    Union[
        CollectPayload,
        AnalyzePayload,
        MarketPredictionPayload,
        BuildConsensusPayload,
        ResolveDisputePayload,
        AssessRiskPayload,
        PlanCrossChainPayload,
        ProtectMevPayload,
    ],
    Field(discriminator="type"),
]


class Task(BaseModel):
    """A unit of work consumed exactly once by its target agent(s).

    The task type is carried by the payload itself, so a task can never
    claim one type while carrying another type's payload.
    """

    id: str = Field(default_factory=lambda: prefixed_id("task"))
    payload: TaskPayload
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def type(self) -> TaskType:
        return TaskType(self.payload.type)


class TaskResult(BaseModel):
    """Outcome of ``process_task``.  ``success`` is always explicit."""

    agent_id: str
    task_type: TaskType
    timestamp: datetime = Field(default_factory=utc_now)
    success: bool
    payload: TaskOutput | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _error_iff_failed(self) -> TaskResult:
        if self.success and self.error is not None:
            raise ValueError("successful result cannot carry an error")
        if not self.success and not self.error:
            raise ValueError("failed result must carry an error message")
        return self


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class ObservationShared(BaseModel):
    type: Literal["observation"] = "observation"
    observations: list[Observation] = Field(default_factory=list)


class ConsensusReached(BaseModel):
    type: Literal["consensus"] = "consensus"
    market: str | None = None
    record: ConsensusRecord


class NoteBody(BaseModel):
    type: Literal["note"] = "note"
    text: str
    data: dict[str, Any] = Field(default_factory=dict)


MessageBody = Annotated[
    Union[ObservationShared, ConsensusReached, NoteBody],
    Field(discriminator="type"),
]


class Message(BaseModel):
    id: str = Field(default_factory=lambda: prefixed_id("msg"))
    from_agent_id: str
    to_agent_id: str | None = None
    body: MessageBody
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def type(self) -> MessageType:
        return MessageType(self.body.type)


class MessageFilter(BaseModel):
    """Query for stored messages; ``agent_id`` matches sender or recipient."""

    agent_id: str | None = None
    message_type: MessageType | None = None
    since: datetime | None = None

    def matches(self, message: Message) -> bool:
        if self.agent_id is not None and self.agent_id not in (
            message.from_agent_id,
            message.to_agent_id,
        ):
            return False
        if self.message_type is not None and message.type != self.message_type:
            return False
        if self.since is not None and message.timestamp < self.since:
            return False
        return True


# ---------------------------------------------------------------------------
# Agent bookkeeping
# ---------------------------------------------------------------------------

class AgentMetrics(BaseModel):
    """Derived on demand; never stored by the agent itself."""

    agent_id: str
    role: AgentRole
    kind: str
    status: AgentStatus
    uptime_seconds: float = 0.0
    tasks_completed: int = 0
    last_activity: datetime | None = None
    performance_score: float = 0.0
    error_count: int = 0
    extra: dict[str, Any] = Field(default_factory=dict)


class AgentHealthReport(BaseModel):
    """Health status report from an agent."""

    healthy: bool = True
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    last_activity: datetime | None = None
    error_count: int = 0


class AgentRegistration(BaseModel):
    agent_id: str
    role: AgentRole
    kind: str
    status: AgentStatus = AgentStatus.ACTIVE
    registered_at: datetime = Field(default_factory=utc_now)
    config: dict[str, Any] = Field(default_factory=dict)


class AgentStats(BaseModel):
    """Persistence-side activity counters for one agent."""

    agent_id: str
    memory_count: int = 0
    messages_sent: int = 0
    messages_received: int = 0
    last_memory_at: datetime | None = None


# ---------------------------------------------------------------------------
# Swarm level
# ---------------------------------------------------------------------------

class MarketSnapshot(BaseModel):
    """Aggregate of one collect stage, handed to every analyst."""

    market: str
    timestamp: datetime = Field(default_factory=utc_now)
    sources: list[str] = Field(default_factory=list)
    observation_count: int = 0
    last_price: float | None = None
    total_volume: float = 0.0
    total_market_cap: float = 0.0
    average_sentiment: float = 0.0
    volatility: Unit = 0.2
    observations: list[Observation] = Field(default_factory=list)


class SwarmPrediction(BaseModel):
    market: str
    direction: Direction
    consensus: ConsensusRecord
    risk: RiskAssessment | None = None


class PredictionRecord(BaseModel):
    id: str = Field(default_factory=new_id)
    market_id: str
    swarm_id: str
    prediction: SwarmPrediction
    confidence: Unit
    created_at: datetime = Field(default_factory=utc_now)


class SwarmHealth(BaseModel):
    total_agents: int = 0
    healthy_agents: int = 0
    ratio: Unit = 0.0
    is_healthy: bool = False
    unhealthy: list[str] = Field(default_factory=list)


class SwarmStatus(BaseModel):
    swarm_id: str
    is_running: bool
    queue_size: int
    agent_counts: dict[str, int] = Field(default_factory=dict)
    registered_agents: int = 0
    quarantined: list[str] = Field(default_factory=list)


class PipelineOutcome(BaseModel):
    """What one market_prediction pass produced, stage by stage."""

    task_id: str
    market: str
    stage_reached: Literal["collect", "analyze", "deliberate", "execute"]
    snapshot: MarketSnapshot | None = None
    analyses: list[AnalysisResult] = Field(default_factory=list)
    consensus: ConsensusRecord | None = None
    resolution: Resolution | None = None
    risk: RiskAssessment | None = None

    @property
    def executed(self) -> bool:
        return self.risk is not None
