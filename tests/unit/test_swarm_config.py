"""Tests for settings loading, roster validation and the core domain models."""

from __future__ import annotations

from datetime import timedelta

import pydantic
import pytest

from swarm_oracle.agents.factory import create_agents
from swarm_oracle.core.config import (
    AnalystConfig,
    DeliberatorConfig,
    ExecutorConfig,
    OrchestratorConfig,
    Settings,
    load_settings,
)
from swarm_oracle.core.enums import (
    AgentRole,
    AnalysisType,
    CollectorSource,
    DeliberatorKind,
    ExecutorKind,
    MessageType,
    ObservationKind,
    RemediationPolicy,
    StorageBackend,
    TaskType,
)
from swarm_oracle.core.errors import ConfigError
from swarm_oracle.core.models import (
    AssessRiskPayload,
    ConsensusReached,
    ConsensusRecord,
    Message,
    MessageFilter,
    NoteBody,
    Task,
    TaskResult,
)
from swarm_oracle.main import build_swarm
from swarm_oracle.providers.static import StaticProvider


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class TestSettingsDefaults:
    def test_default_roster(self):
        settings = Settings()

        assert [c.source for c in settings.collectors] == list(CollectorSource)
        twitter = settings.collectors[0]
        assert twitter.agent_id == "twitter-collector"
        assert len(twitter.topics) == 5
        assert settings.collectors[3].interval == 180
        market = settings.collectors[4]
        assert market.topics == [] and market.interval == 0

        assert [a.agent_id for a in settings.analysts] == [
            "technical-analyst",
            "fundamental-analyst",
            "sentiment-analyst",
            "correlation-analyst",
        ]
        assert [d.agent_id for d in settings.deliberators] == [
            "consensus-facilitator",
            "dispute-resolver",
        ]
        assert [e.agent_id for e in settings.executors] == [
            "risk-manager",
            "cross-chain-executor",
            "mev-protector",
        ]

    def test_orchestrator_defaults(self):
        cfg = Settings().orchestrator
        assert cfg.tick_seconds == 5
        assert cfg.markets == ["BTC/USD", "ETH/USD", "SOL/USD"]
        assert cfg.remediation == RemediationPolicy.LOG_ONLY
        assert cfg.resolve_disputes_on_deadlock
        assert cfg.health_threshold == 0.8
        assert cfg.seed is None

    def test_storage_defaults_to_memory(self):
        settings = Settings()
        assert settings.storage.backend == StorageBackend.MEMORY
        assert settings.observability.metrics_port == 0

    def test_duplicate_agent_ids_rejected(self):
        with pytest.raises(pydantic.ValidationError, match="Duplicate agent_id"):
            Settings(
                analysts=[
                    AnalystConfig(agent_id="same", specialty=AnalysisType.TECHNICAL),
                    AnalystConfig(agent_id="same", specialty=AnalysisType.SENTIMENT),
                ]
            )

    def test_threshold_bounds(self):
        with pytest.raises(pydantic.ValidationError):
            DeliberatorConfig(agent_id="f", kind=DeliberatorKind.FACILITATOR, consensus_threshold=1.5)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("SWARM_ORCHESTRATOR__TICK_SECONDS", "1")
        assert Settings().orchestrator.tick_seconds == 1.0


class TestValidateRoster:
    def test_default_roster_is_valid(self):
        Settings().validate_roster()

    def test_needs_markets(self):
        settings = Settings(orchestrator=OrchestratorConfig(markets=[]))
        with pytest.raises(ConfigError, match="markets"):
            settings.validate_roster()

    def test_needs_enabled_facilitator(self):
        settings = Settings(
            deliberators=[
                DeliberatorConfig(agent_id="f", kind=DeliberatorKind.FACILITATOR, enabled=False),
                DeliberatorConfig(agent_id="r", kind=DeliberatorKind.RESOLVER),
            ]
        )
        with pytest.raises(ConfigError, match="facilitator"):
            settings.validate_roster()

    def test_needs_risk_manager(self):
        settings = Settings(
            executors=[ExecutorConfig(agent_id="mev", kind=ExecutorKind.MEV_PROTECTOR)]
        )
        with pytest.raises(ConfigError, match="risk manager"):
            settings.validate_roster()


class TestLoadSettings:
    def test_toml_file_with_overrides(self, tmp_path):
        path = tmp_path / "swarm.toml"
        path.write_text(
            'swarm_id = "test-swarm"\n'
            "\n"
            "[orchestrator]\n"
            "tick_seconds = 2\n"
            'markets = ["ETH/USD"]\n'
            "\n"
            "[storage]\n"
            'backend = "redis"\n'
        )

        settings = load_settings(
            path, overrides={"orchestrator": {"markets": ["SOL/USD"]}, "swarm_id": "override"}
        )

        assert settings.swarm_id == "override"
        assert settings.orchestrator.tick_seconds == 2
        assert settings.orchestrator.markets == ["SOL/USD"]
        assert settings.storage.backend == StorageBackend.REDIS

    def test_missing_file_falls_back_to_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.toml")
        assert settings.swarm_id == "swarm-oracle"


class TestRosterConstruction:
    def test_build_swarm_creates_enabled_agents(self, persistence, sim_clock):
        settings = Settings(
            executors=[
                ExecutorConfig(agent_id="risk-manager", kind=ExecutorKind.RISK_MANAGER),
                ExecutorConfig(agent_id="mev", kind=ExecutorKind.MEV_PROTECTOR, enabled=False),
            ]
        )
        providers = {source: StaticProvider(source.value) for source in CollectorSource}

        swarm = build_swarm(settings, providers=providers, persistence=persistence, clock=sim_clock)

        roles = [agent.role for agent in swarm.agents]
        assert roles.count(AgentRole.COLLECTOR) == 5
        assert roles.count(AgentRole.ANALYST) == 4
        assert roles.count(AgentRole.DELIBERATOR) == 2
        assert roles.count(AgentRole.EXECUTOR) == 1
        assert swarm.coordinator.persistence is persistence
        assert swarm.orchestrator.scheduler is swarm.scheduler

    def test_invalid_roster_refused(self, persistence):
        settings = Settings(orchestrator=OrchestratorConfig(markets=[]))
        with pytest.raises(ConfigError):
            build_swarm(settings, persistence=persistence)

    @pytest.mark.asyncio
    async def test_create_agents_uses_injected_providers(self, coordinator, sim_clock, scheduler):
        provider = StaticProvider("news")
        agents = create_agents(
            Settings(),
            coordinator=coordinator,
            clock=sim_clock,
            scheduler=scheduler,
            providers={CollectorSource.NEWS: provider},
        )
        news = next(a for a in agents if a.kind == "news")
        assert news._provider is provider


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class TestTaskModels:
    def test_task_type_follows_payload(self):
        task = Task(payload=AssessRiskPayload(confidence=0.9))
        assert task.type == TaskType.ASSESS_RISK
        assert task.id.startswith("task")

    def test_task_parses_from_dict(self):
        task = Task.model_validate(
            {"payload": {"type": "plan_cross_chain", "source_chain": "ethereum",
                         "target_chain": "base", "amount": 10}}
        )
        assert task.type == TaskType.PLAN_CROSS_CHAIN
        assert task.payload.amount == 10

    def test_unknown_payload_type_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            Task.model_validate({"payload": {"type": "launch_rocket"}})

    def test_negative_amount_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            Task.model_validate(
                {"payload": {"type": "protect_mev", "amount": -1}}
            )

    def test_result_error_iff_failed(self):
        TaskResult(agent_id="a", task_type=TaskType.ANALYSIS, success=True)
        TaskResult(agent_id="a", task_type=TaskType.ANALYSIS, success=False, error="boom")
        with pytest.raises(pydantic.ValidationError):
            TaskResult(agent_id="a", task_type=TaskType.ANALYSIS, success=True, error="boom")
        with pytest.raises(pydantic.ValidationError):
            TaskResult(agent_id="a", task_type=TaskType.ANALYSIS, success=False)


class TestObservationModel:
    def test_value_and_polarity(self, sentiment_obs, price_series):
        positive = sentiment_obs(0.4)
        negative = sentiment_obs(-0.3)
        flat = sentiment_obs(0.0)
        (price,) = price_series([101.5])

        assert positive.value == 0.4 and positive.polarity == 1
        assert negative.polarity == -1
        assert flat.polarity == 0
        assert price.value == 101.5 and price.polarity == 0
        assert price.kind == ObservationKind.PRICE

    def test_observations_are_frozen(self, sentiment_obs):
        obs = sentiment_obs(0.4)
        with pytest.raises(pydantic.ValidationError):
            obs.confidence = 0.1

    def test_sentiment_bounds(self, sentiment_obs):
        with pytest.raises(pydantic.ValidationError):
            sentiment_obs(1.5)


class TestMessageFilter:
    def _record(self) -> ConsensusRecord:
        return ConsensusRecord(
            has_consensus=True,
            direction="bullish",
            strength=1.0,
            threshold=0.8,
            supporting_agents=1,
            total_agents=1,
            average_confidence=0.6,
        )

    def test_matches(self, sim_clock):
        now = sim_clock.now()
        note = Message(from_agent_id="a", to_agent_id="b", body=NoteBody(text="x"), timestamp=now)
        consensus = Message(
            from_agent_id="c", body=ConsensusReached(record=self._record()), timestamp=now
        )

        assert consensus.type == MessageType.CONSENSUS
        assert MessageFilter(agent_id="b").matches(note)
        assert not MessageFilter(agent_id="b").matches(consensus)
        assert MessageFilter(message_type=MessageType.CONSENSUS).matches(consensus)
        assert not MessageFilter(since=now + timedelta(seconds=1)).matches(note)
        assert MessageFilter().matches(note)
