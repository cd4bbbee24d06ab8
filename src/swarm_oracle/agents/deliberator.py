"""Deliberator agent: consensus facilitation and dispute resolution.

The facilitator is a plain weighted-majority heuristic; it always returns a
record so the execute stage has a deterministic input.  The resolver weighs
evidence by provenance and recency and falls back to the majority when no
single item is strong enough.
"""

from __future__ import annotations

import logging
import statistics
from collections import Counter
from datetime import datetime
from typing import Any, assert_never

from swarm_oracle.core.enums import (
    AgentRole,
    DeliberatorKind,
    Direction,
    EvidenceSource,
    ResolutionStrategy,
    TaskType,
)
from swarm_oracle.core.models import (
    BuildConsensusPayload,
    Conflict,
    ConsensusReached,
    ConsensusRecord,
    Evidence,
    Prediction,
    Resolution,
    ResolveDisputePayload,
    Task,
    TaskOutput,
)
from swarm_oracle.observability import metrics

from .base import BaseAgent

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.8

# Plurality ties go to the earlier direction in this order
DIRECTION_ORDER = (Direction.BULLISH, Direction.BEARISH, Direction.NEUTRAL)

_PROVENANCE_BONUS = {
    EvidenceSource.ONCHAIN: 0.3,
    EvidenceSource.NEWS: 0.2,
    EvidenceSource.SOCIAL: 0.1,
    EvidenceSource.OTHER: 0.0,
}


def plurality(predictions: list[Prediction]) -> tuple[Direction, int]:
    """Dominant direction and its vote count; ``(neutral, 0)`` when empty."""
    votes = Counter(p.direction for p in predictions)
    best = Direction.NEUTRAL
    best_count = 0
    for direction in DIRECTION_ORDER:
        if votes[direction] > best_count:
            best, best_count = direction, votes[direction]
    return best, best_count


def build_consensus(predictions: list[Prediction], threshold: float = DEFAULT_THRESHOLD) -> ConsensusRecord:
    """Tally direction votes and test the dominant share against *threshold*."""
    total = len(predictions)
    direction, supporting = plurality(predictions)
    strength = supporting / total if total else 0.0
    has_consensus = total > 0 and strength >= threshold
    average_confidence = statistics.fmean(p.confidence for p in predictions) if total else 0.0
    votes = Counter(p.direction for p in predictions)

    return ConsensusRecord(
        has_consensus=has_consensus,
        direction=direction,
        strength=strength,
        threshold=threshold,
        supporting_agents=supporting,
        total_agents=total,
        average_confidence=average_confidence,
        votes={d.value: votes[d] for d in DIRECTION_ORDER},
        reasoning=(
            f"Consensus {'reached' if has_consensus else 'not reached'}: "
            f"{supporting}/{total} agents agree on {direction.value} direction"
        ),
    )


def evidence_weight(evidence: Evidence, now: datetime) -> float:
    """0.5 base, provenance and recency bonuses, capped at 1.0."""
    weight = 0.5 + _PROVENANCE_BONUS[evidence.source]
    age = (now - evidence.timestamp).total_seconds()
    if age < 3600:
        weight += 0.2
    elif age < 86400:
        weight += 0.1
    return min(weight, 1.0)


def find_conflicts(predictions: list[Prediction]) -> list[Conflict]:
    conflicts = []
    for i, a in enumerate(predictions):
        for b in predictions[i + 1:]:
            if a.direction != b.direction:
                conflicts.append(
                    Conflict(
                        agent_a=a.agent_id,
                        agent_b=b.agent_id,
                        direction_a=a.direction,
                        direction_b=b.direction,
                        severity=abs(a.confidence - b.confidence),
                    )
                )
    return conflicts


def resolve_dispute(
    predictions: list[Prediction],
    evidence: list[Evidence],
    now: datetime,
) -> Resolution:
    conflicts = find_conflicts(predictions)
    weights = [evidence_weight(e, now) for e in evidence]
    average_severity = statistics.fmean(c.severity for c in conflicts) if conflicts else 0.0
    evidence_based = any(w > 0.8 for w in weights)

    majority, _ = plurality(predictions)
    if evidence_based:
        strategy = ResolutionStrategy.EVIDENCE_BASED
        confidence = 0.9
        directional = [(w, e) for w, e in zip(weights, evidence) if e.direction is not None]
        if directional:
            weight, strongest = max(directional, key=lambda pair: pair[0])
            resolved = strongest.direction
            reasoning = (
                f"Follow strongest evidence: {strongest.source.value} "
                f"(weight {weight:.2f}) points {resolved.value}"
            )
        else:
            resolved = majority
            reasoning = f"Follow strongest evidence: no directional evidence, keeping {majority.value}"
    else:
        strategy = ResolutionStrategy.MAJORITY_VOTE
        confidence = max(0.3, 1 - average_severity)
        resolved = majority
        reasoning = f"Defer to majority consensus: {majority.value}"

    return Resolution(
        conflicts=conflicts,
        average_severity=average_severity,
        evidence_weights=weights,
        strategy=strategy,
        resolved_direction=resolved,
        confidence=confidence,
        requires_human_review=average_severity > 0.8,
        reasoning=f"{reasoning}. {len(conflicts)} conflicts identified.",
    )


class DeliberatorAgent(BaseAgent):
    """Facilitator or resolver, fixed at construction.

    Parameters
    ----------
    kind:
        ``facilitator`` builds consensus records, ``resolver`` resolves disputes.
    consensus_threshold:
        Vote share the dominant direction needs for consensus.
    """

    def __init__(
        self,
        *,
        kind: DeliberatorKind,
        consensus_threshold: float = DEFAULT_THRESHOLD,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._kind = kind
        self._threshold = consensus_threshold

    @property
    def role(self) -> AgentRole:
        return AgentRole.DELIBERATOR

    @property
    def kind(self) -> str:
        return self._kind.value

    @property
    def deliberator_kind(self) -> DeliberatorKind:
        return self._kind

    @property
    def threshold(self) -> float:
        return self._threshold

    def accepted_tasks(self) -> frozenset[TaskType]:
        kind = self._kind
        match kind:
            case DeliberatorKind.FACILITATOR:
                return frozenset({TaskType.BUILD_CONSENSUS})
            case DeliberatorKind.RESOLVER:
                return frozenset({TaskType.RESOLVE_DISPUTE})
            case _:
                assert_never(kind)

    async def _handle_task(self, task: Task) -> TaskOutput:
        payload = task.payload
        if isinstance(payload, BuildConsensusPayload):
            threshold = payload.threshold if payload.threshold is not None else self._threshold
            record = build_consensus(payload.predictions, threshold)
            metrics.record_consensus(record.direction.value, record.has_consensus)
            logger.info("%s: %s", self._agent_id, record.reasoning)
            await self.store_memory("consensus", record)
            if record.has_consensus:
                await self.broadcast_message(
                    AgentRole.EXECUTOR, ConsensusReached(market=payload.market, record=record)
                )
            return record

        assert isinstance(payload, ResolveDisputePayload)
        resolution = resolve_dispute(payload.predictions, payload.evidence, self._clock.now())
        logger.info(
            "%s: %s via %s (human review=%s)",
            self._agent_id,
            resolution.resolved_direction.value,
            resolution.strategy.value,
            resolution.requires_human_review,
        )
        await self.store_memory("resolution", resolution)
        return resolution
