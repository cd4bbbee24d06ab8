"""Executor agent: turns decisions into bounded, declarative plans.

Nothing here moves value.  The risk manager sizes exposure, the cross-chain
executor describes a bridge transfer and the MEV protector picks a
submission strategy; settlement belongs to the on-chain layer.
"""

from __future__ import annotations

import logging
from typing import Any, assert_never

from swarm_oracle.core.enums import (
    AgentRole,
    ExecutorKind,
    RiskLevel,
    RiskRecommendation,
    TaskType,
)
from swarm_oracle.core.errors import PlanningError
from swarm_oracle.core.models import (
    AssessRiskPayload,
    ConsensusReached,
    ExecutionPlan,
    Message,
    MevProtection,
    Note,
    PlanCrossChainPayload,
    ProtectMevPayload,
    RiskAssessment,
    Task,
    TaskOutput,
)

from .base import BaseAgent

logger = logging.getLogger(__name__)

HIGH_RISK = 0.7
MEDIUM_RISK = 0.4
VOLATILITY_SCALE = 0.5
BRIDGE_FEE_RATE = 0.005
DEFAULT_LIQUIDITY = 1_000_000.0

_RISK_POLICY = {
    RiskLevel.HIGH: (RiskRecommendation.REJECT, 0.0),
    RiskLevel.MEDIUM: (RiskRecommendation.PROCEED_WITH_CAUTION, 0.5),
    RiskLevel.LOW: (RiskRecommendation.PROCEED, 0.8),
}

_MEV_POLICY = {
    RiskLevel.HIGH: ("private_mempool", "aggressive_gas"),
    RiskLevel.MEDIUM: ("split_transaction", "standard_gas"),
    RiskLevel.LOW: ("standard_protection", "standard_gas"),
}


def risk_level(score: float) -> RiskLevel:
    if score > HIGH_RISK:
        return RiskLevel.HIGH
    if score > MEDIUM_RISK:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def assess_risk(
    confidence: float,
    volatility: float,
    *,
    market: str | None = None,
    max_position_size: float = 1000.0,
) -> RiskAssessment:
    """Blend confidence shortfall and normalized volatility into one score."""
    confidence_risk = max(0.0, min(1.0, 1 - confidence))
    volatility_risk = max(0.0, min(1.0, volatility / VOLATILITY_SCALE))
    overall = min(1.0, (confidence_risk + volatility / VOLATILITY_SCALE) / 2)
    level = risk_level(overall)
    recommendation, max_exposure = _RISK_POLICY[level]
    return RiskAssessment(
        market=market,
        overall_risk=overall,
        level=level,
        recommendation=recommendation,
        max_exposure=max_exposure,
        confidence_risk=confidence_risk,
        volatility_risk=volatility_risk,
        position_size=max_position_size * max_exposure,
        reasoning=f"Risk {overall:.2f} ({level.value}): {recommendation.value}",
    )


def plan_cross_chain(
    source_chain: str,
    target_chain: str,
    amount: float,
    operation: str = "transfer",
) -> ExecutionPlan:
    return ExecutionPlan(
        source_chain=source_chain,
        target_chain=target_chain,
        amount=amount,
        operation=operation,
        fees=amount * BRIDGE_FEE_RATE,
        reasoning=f"Cross-chain {operation} planned from {source_chain} to {target_chain}",
    )


def protect_mev(
    amount: float,
    liquidity: float | None = None,
    *,
    max_slippage: float = 0.01,
) -> MevProtection:
    pool = liquidity or DEFAULT_LIQUIDITY
    score = min(1.0, amount / pool * 100)
    level = risk_level(score)
    strategy, gas = _MEV_POLICY[level]
    return MevProtection(
        amount=amount,
        liquidity=pool,
        risk_score=score,
        level=level,
        strategy=strategy,
        gas_strategy=gas,
        max_slippage=max_slippage,
        reasoning=f"MEV risk {score:.2f} ({level.value}): {strategy} with {gas}",
    )


class ExecutorAgent(BaseAgent):
    """Risk manager, cross-chain planner or MEV protector.

    Parameters
    ----------
    kind:
        Which of the three executor duties this agent performs.
    max_position_size:
        Notional that ``max_exposure`` scales into a position size.
    supported_chains:
        Chains the cross-chain executor may plan between; empty allows any.
    default_liquidity:
        Pool depth assumed when a MEV task does not state one.
    max_slippage:
        Slippage bound attached to MEV protection plans.
    """

    def __init__(
        self,
        *,
        kind: ExecutorKind,
        max_position_size: float = 1000.0,
        risk_limits: dict[str, float] | None = None,
        supported_chains: list[str] | None = None,
        default_liquidity: float = DEFAULT_LIQUIDITY,
        max_slippage: float = 0.01,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._kind = kind
        self._max_position_size = max_position_size
        self._risk_limits = dict(risk_limits or {})
        self._supported_chains = list(supported_chains or [])
        self._default_liquidity = default_liquidity
        self._max_slippage = max_slippage

    @property
    def role(self) -> AgentRole:
        return AgentRole.EXECUTOR

    @property
    def kind(self) -> str:
        return self._kind.value

    @property
    def executor_kind(self) -> ExecutorKind:
        return self._kind

    def accepted_tasks(self) -> frozenset[TaskType]:
        kind = self._kind
        match kind:
            case ExecutorKind.RISK_MANAGER:
                return frozenset({TaskType.ASSESS_RISK})
            case ExecutorKind.CROSS_CHAIN:
                return frozenset({TaskType.PLAN_CROSS_CHAIN})
            case ExecutorKind.MEV_PROTECTOR:
                return frozenset({TaskType.PROTECT_MEV})
            case _:
                assert_never(kind)

    async def _handle_task(self, task: Task) -> TaskOutput:
        payload = task.payload
        if isinstance(payload, AssessRiskPayload):
            output: TaskOutput = assess_risk(
                payload.confidence,
                payload.volatility,
                market=payload.market,
                max_position_size=self._max_position_size,
            )
            await self.store_memory("risk_assessment", output)
        elif isinstance(payload, PlanCrossChainPayload):
            self._check_chains(payload.source_chain, payload.target_chain)
            output = plan_cross_chain(
                payload.source_chain, payload.target_chain, payload.amount, payload.operation
            )
            await self.store_memory("execution_plan", output)
        else:
            assert isinstance(payload, ProtectMevPayload)
            output = protect_mev(
                payload.amount,
                payload.liquidity or self._default_liquidity,
                max_slippage=self._max_slippage,
            )
            await self.store_memory("mev_protection", output)
        logger.info("%s: %s", self._agent_id, output.reasoning)
        return output

    def _check_chains(self, source: str, target: str) -> None:
        if not self._supported_chains:
            return
        unsupported = [c for c in (source, target) if c not in self._supported_chains]
        if unsupported:
            raise PlanningError(
                f"Unsupported chain(s) {', '.join(unsupported)}; "
                f"supported: {', '.join(self._supported_chains)}"
            )

    async def _on_message(self, message: Message) -> None:
        body = message.body
        if isinstance(body, ConsensusReached):
            record = body.record
            await self.store_memory(
                "advisory",
                Note(
                    text=(
                        f"Consensus advisory from {message.from_agent_id}: "
                        f"{record.direction.value} at {record.strength:.2f}"
                    ),
                    values={"market": body.market, "strength": record.strength},
                ),
            )

    def _metrics_extra(self) -> dict[str, Any]:
        match self._kind:
            case ExecutorKind.RISK_MANAGER:
                return {"max_position_size": self._max_position_size, "risk_limits": self._risk_limits}
            case ExecutorKind.CROSS_CHAIN:
                return {"supported_chains": self._supported_chains}
            case ExecutorKind.MEV_PROTECTOR:
                return {"default_liquidity": self._default_liquidity, "max_slippage": self._max_slippage}
            case _:
                assert_never(self._kind)
