"""Tests for the click command line."""

from __future__ import annotations

import json

from click.testing import CliRunner

from swarm_oracle import main as main_module
from swarm_oracle.cli import main
from swarm_oracle.core.enums import Direction, RiskLevel, RiskRecommendation
from swarm_oracle.core.models import ConsensusRecord, PipelineOutcome, RiskAssessment


# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------

def consensus(has_consensus: bool) -> ConsensusRecord:
    return ConsensusRecord(
        has_consensus=has_consensus,
        direction=Direction.BULLISH,
        strength=1.0 if has_consensus else 0.5,
        threshold=0.8,
        supporting_agents=2 if has_consensus else 1,
        total_agents=2,
        average_confidence=0.7,
    )


def fake_run_once(outcome: PipelineOutcome, calls: list):
    async def _run_once(market, config_path=None, overrides=None, **kwargs):
        calls.append((market, config_path, overrides))
        return outcome

    return _run_once


class TestAgentsCommand:
    def test_lists_default_roster(self):
        result = CliRunner().invoke(main, ["agents"])

        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert len(lines) == 14
        assert lines[0].startswith("collector")
        assert "twitter-collector" in lines[0]
        assert any("risk-manager" in line and "risk_manager" in line for line in lines)

    def test_marks_disabled_agents(self, tmp_path):
        path = tmp_path / "swarm.toml"
        path.write_text(
            "[[executors]]\n"
            'agent_id = "risk-manager"\n'
            'kind = "risk_manager"\n'
            "\n"
            "[[executors]]\n"
            'agent_id = "mev-protector"\n'
            'kind = "mev_protector"\n'
            "enabled = false\n"
        )

        result = CliRunner().invoke(main, ["agents", "--config", str(path)])

        assert result.exit_code == 0
        assert "mev-protector" in result.output
        assert "(disabled)" in result.output
        assert "cross-chain-executor" not in result.output


class TestPredictCommand:
    def test_prints_decision(self, monkeypatch):
        calls = []
        risk = RiskAssessment(
            market="BTC/USD",
            overall_risk=0.2,
            level=RiskLevel.LOW,
            recommendation=RiskRecommendation.PROCEED,
            max_exposure=0.8,
            confidence_risk=0.3,
            volatility_risk=0.1,
        )
        outcome = PipelineOutcome(
            task_id="t1",
            market="BTC/USD",
            stage_reached="execute",
            consensus=consensus(True),
            risk=risk,
        )
        monkeypatch.setattr(main_module, "run_once", fake_run_once(outcome, calls))

        result = CliRunner().invoke(main, ["predict", "BTC/USD", "--storage", "redis"])

        assert result.exit_code == 0, result.output
        assert calls == [("BTC/USD", None, {"storage": {"backend": "redis"}})]
        assert "Decision: proceed for BTC/USD" in result.output
        body = result.output.split("Decision:")[0]
        assert json.loads(body)["stage_reached"] == "execute"

    def test_reports_stage_without_execution(self, monkeypatch):
        outcome = PipelineOutcome(
            task_id="t2",
            market="ETH/USD",
            stage_reached="deliberate",
            consensus=consensus(False),
        )
        monkeypatch.setattr(main_module, "run_once", fake_run_once(outcome, []))

        result = CliRunner().invoke(main, ["predict", "ETH/USD"])

        assert result.exit_code == 0
        assert "No execution for ETH/USD (stopped at deliberate)" in result.output

    def test_rejects_unknown_storage(self):
        result = CliRunner().invoke(main, ["predict", "BTC/USD", "--storage", "sqlite"])
        assert result.exit_code != 0
