"""Tests for risk assessment, cross-chain planning and MEV protection."""

from __future__ import annotations

import pytest

from swarm_oracle.agents.executor import (
    ExecutorAgent,
    assess_risk,
    plan_cross_chain,
    protect_mev,
    risk_level,
)
from swarm_oracle.core.enums import AgentStatus, ExecutorKind, RiskLevel, RiskRecommendation
from swarm_oracle.core.models import (
    AssessRiskPayload,
    ExecutionPlan,
    MevProtection,
    PlanCrossChainPayload,
    ProtectMevPayload,
    RiskAssessment,
    Task,
)


class TestAssessRisk:
    def test_high_confidence_low_volatility_proceeds(self):
        risk = assess_risk(0.9, 0.1)

        assert risk.overall_risk == pytest.approx(0.15)
        assert risk.level == RiskLevel.LOW
        assert risk.recommendation == RiskRecommendation.PROCEED
        assert risk.max_exposure == 0.8

    def test_confident_calm_market_proceeds(self):
        risk = assess_risk(0.9, 0.2)

        assert risk.overall_risk == pytest.approx(0.25)
        assert risk.level == RiskLevel.LOW
        assert risk.recommendation == RiskRecommendation.PROCEED
        assert risk.max_exposure == 0.8
        assert risk.position_size == pytest.approx(800.0)

    def test_medium_risk_proceeds_with_caution(self):
        risk = assess_risk(0.5, 0.2)
        assert risk.overall_risk == pytest.approx(0.45)
        assert risk.recommendation == RiskRecommendation.PROCEED_WITH_CAUTION
        assert risk.max_exposure == 0.5

    def test_high_risk_is_rejected(self):
        risk = assess_risk(0.1, 0.5)
        assert risk.level == RiskLevel.HIGH
        assert risk.recommendation == RiskRecommendation.REJECT
        assert risk.max_exposure == 0.0
        assert risk.position_size == 0.0

    def test_extreme_volatility_is_bounded(self):
        risk = assess_risk(1.0, 5.0)
        assert risk.overall_risk == 1.0
        assert risk.volatility_risk == 1.0

    def test_level_boundaries(self):
        assert risk_level(0.7) == RiskLevel.MEDIUM
        assert risk_level(0.71) == RiskLevel.HIGH
        assert risk_level(0.4) == RiskLevel.LOW


class TestPlans:
    def test_cross_chain_fees(self):
        plan = plan_cross_chain("ethereum", "arbitrum", 1000.0)
        assert plan.fees == pytest.approx(5.0)
        assert plan.bridge == "Chainlink CCIP"
        assert plan.estimated_time_minutes == 15
        assert plan.status == "planned"

    @pytest.mark.parametrize(
        "amount,level,strategy,gas",
        [
            (100.0, RiskLevel.LOW, "standard_protection", "standard_gas"),
            (5000.0, RiskLevel.MEDIUM, "split_transaction", "standard_gas"),
            (10000.0, RiskLevel.HIGH, "private_mempool", "aggressive_gas"),
        ],
    )
    def test_mev_strategy_by_size(self, amount, level, strategy, gas):
        protection = protect_mev(amount, 1_000_000.0)
        assert protection.level == level
        assert protection.strategy == strategy
        assert protection.gas_strategy == gas

    def test_mev_default_liquidity(self):
        assert protect_mev(5000.0).liquidity == 1_000_000.0


class TestExecutorAgent:
    @pytest.mark.asyncio
    async def test_risk_manager_sizes_position(self):
        agent = ExecutorAgent(kind=ExecutorKind.RISK_MANAGER, max_position_size=2000.0)
        await agent.start()

        result = await agent.process_task(
            Task(payload=AssessRiskPayload(market="BTC/USD", confidence=0.9, volatility=0.2))
        )

        assert result.success
        assert isinstance(result.payload, RiskAssessment)
        assert result.payload.market == "BTC/USD"
        assert result.payload.position_size == pytest.approx(1600.0)
        assert len(agent.get_memories_by_type("risk_assessment")) == 1

    @pytest.mark.asyncio
    async def test_cross_chain_rejects_unsupported_chain(self):
        agent = ExecutorAgent(kind=ExecutorKind.CROSS_CHAIN, supported_chains=["ethereum", "base"])
        await agent.start()

        result = await agent.process_task(
            Task(payload=PlanCrossChainPayload(source_chain="ethereum", target_chain="solana", amount=10))
        )

        assert not result.success
        assert result.error.startswith("PlanningError: Unsupported chain(s) solana")
        assert agent.error_count == 1
        assert agent.status == AgentStatus.ERROR

    @pytest.mark.asyncio
    async def test_cross_chain_plans_supported_route(self):
        agent = ExecutorAgent(kind=ExecutorKind.CROSS_CHAIN, supported_chains=["ethereum", "base"])
        result = await agent.process_task(
            Task(payload=PlanCrossChainPayload(source_chain="ethereum", target_chain="base", amount=200))
        )
        assert isinstance(result.payload, ExecutionPlan)
        assert result.payload.fees == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_mev_protector_uses_configured_liquidity(self):
        agent = ExecutorAgent(kind=ExecutorKind.MEV_PROTECTOR, default_liquidity=10_000.0)
        result = await agent.process_task(Task(payload=ProtectMevPayload(amount=100.0)))

        assert isinstance(result.payload, MevProtection)
        assert result.payload.liquidity == 10_000.0
        assert result.payload.risk_score == 1.0

    @pytest.mark.asyncio
    async def test_risk_manager_rejects_other_tasks(self):
        agent = ExecutorAgent(kind=ExecutorKind.RISK_MANAGER)
        result = await agent.process_task(Task(payload=ProtectMevPayload(amount=1.0)))
        assert not result.success
        assert result.error == "Unsupported task type: protect_mev"

    def test_metrics_extra_per_kind(self):
        agent = ExecutorAgent(kind=ExecutorKind.CROSS_CHAIN, supported_chains=["base"])
        assert agent.get_metrics().extra == {"supported_chains": ["base"]}
