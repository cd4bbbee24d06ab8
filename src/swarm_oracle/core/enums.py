"""Canonical enums shared across the swarm."""

from __future__ import annotations

from enum import Enum


class AgentRole(str, Enum):
    COLLECTOR = "collector"
    ANALYST = "analyst"
    DELIBERATOR = "deliberator"
    EXECUTOR = "executor"


class AgentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Role sub-kinds
# ---------------------------------------------------------------------------

class CollectorSource(str, Enum):
    TWITTER = "twitter"
    REDDIT = "reddit"
    NEWS = "news"
    ONCHAIN = "onchain"
    MARKET = "market"


class AnalysisType(str, Enum):
    TECHNICAL = "technical"
    FUNDAMENTAL = "fundamental"
    SENTIMENT = "sentiment"
    CORRELATION = "correlation"


class DeliberatorKind(str, Enum):
    FACILITATOR = "facilitator"
    RESOLVER = "resolver"


class ExecutorKind(str, Enum):
    RISK_MANAGER = "risk_manager"
    CROSS_CHAIN = "cross_chain"
    MEV_PROTECTOR = "mev_protector"


# ---------------------------------------------------------------------------
# Data
# ---------------------------------------------------------------------------

class ObservationKind(str, Enum):
    SENTIMENT = "sentiment"
    PRICE = "price"
    VOLUME = "volume"
    SOCIAL = "social"
    NEWS = "news"


class Direction(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskRecommendation(str, Enum):
    PROCEED = "proceed"
    PROCEED_WITH_CAUTION = "proceed_with_caution"
    REJECT = "reject"


class ResolutionStrategy(str, Enum):
    EVIDENCE_BASED = "evidence_based"
    MAJORITY_VOTE = "majority_vote"


class EvidenceSource(str, Enum):
    ONCHAIN = "onchain"
    NEWS = "news"
    SOCIAL = "social"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Tasks & messages
# ---------------------------------------------------------------------------

class TaskType(str, Enum):
    MARKET_PREDICTION = "market_prediction"
    DATA_COLLECTION = "data_collection"
    ANALYSIS = "analysis"
    BUILD_CONSENSUS = "build_consensus"
    RESOLVE_DISPUTE = "resolve_dispute"
    ASSESS_RISK = "assess_risk"
    PLAN_CROSS_CHAIN = "plan_cross_chain"
    PROTECT_MEV = "protect_mev"


class MessageType(str, Enum):
    OBSERVATION = "observation"
    CONSENSUS = "consensus"
    NOTE = "note"


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

class RemediationPolicy(str, Enum):
    LOG_ONLY = "log_only"
    RESTART = "restart"
    QUARANTINE = "quarantine"


class StorageBackend(str, Enum):
    MEMORY = "memory"
    POSTGRES = "postgres"
    REDIS = "redis"
