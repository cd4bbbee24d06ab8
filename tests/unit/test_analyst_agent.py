"""Tests for analyst specialties and their indicator helpers."""

from __future__ import annotations

import pytest

from swarm_oracle.agents.analyst import (
    AnalystAgent,
    _correlation,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
    direction_for_score,
    nudged_score,
)
from swarm_oracle.core.enums import AnalysisType, Direction, ObservationKind
from swarm_oracle.core.models import (
    AnalyzePayload,
    ChainPayload,
    CorrelationAnalysis,
    Observation,
    SentimentAnalysis,
    Task,
    TechnicalAnalysis,
)


def analyst(specialty: AnalysisType, **kwargs) -> AnalystAgent:
    return AnalystAgent(specialty=specialty, **kwargs)


# ---------------------------------------------------------------------------
# Indicators
# ---------------------------------------------------------------------------

class TestIndicators:
    def test_rsi_neutral_on_short_series(self):
        assert calculate_rsi([]) == 50.0
        assert calculate_rsi([100.0]) == 50.0

    def test_rsi_no_losses_is_100(self):
        assert calculate_rsi([1.0, 2.0, 3.0]) == 100.0

    def test_rsi_balanced_moves_is_50(self):
        assert calculate_rsi([1.0, 2.0, 1.0]) == pytest.approx(50.0)

    def test_rsi_mixed_moves(self):
        # gains 2 + 3, losses 1
        assert calculate_rsi([10.0, 12.0, 11.0, 14.0]) == pytest.approx(100 - 100 / 6)

    def test_ema_matches_recursive_definition(self):
        prices = [10.0, 11.0, 9.0, 12.0, 13.0]
        k = 2 / (3 + 1)
        expected = prices[0]
        for price in prices[1:]:
            expected = price * k + expected * (1 - k)
        assert calculate_ema(prices, 3) == pytest.approx(expected)
        assert calculate_ema([42.0], 12) == pytest.approx(42.0)
        assert calculate_ema([], 12) == 0.0

    def test_correlation_guards_and_sign(self):
        assert _correlation([1.0, 2.0, 3.0], [3.0, 2.0, 1.0]) == pytest.approx(-1.0)
        assert _correlation([1.0, 2.0], [1.0, 2.0]) == 0.0
        assert _correlation([5.0, 5.0, 5.0], [1.0, 2.0, 3.0]) == 0.0
        assert isinstance(_correlation([1.0, 2.0, 4.0], [2.0, 4.0, 9.0]), float)

    def test_macd_needs_twelve_samples(self):
        macd = calculate_macd([100.0] * 11)
        assert (macd.macd, macd.signal, macd.histogram) == (0.0, 0.0, 0.0)

    def test_macd_positive_on_uptrend(self):
        macd = calculate_macd([float(p) for p in range(100, 130)])
        assert macd.macd > 0
        assert macd.signal == pytest.approx(macd.macd * 0.9)

    def test_direction_thresholds(self):
        assert direction_for_score(0.61) == Direction.BULLISH
        assert direction_for_score(0.6) == Direction.NEUTRAL
        assert direction_for_score(0.4) == Direction.NEUTRAL
        assert direction_for_score(0.39) == Direction.BEARISH

    def test_nudged_score_clamps(self, sentiment_obs):
        assert nudged_score([sentiment_obs(0.5)] * 8) == 1.0
        assert nudged_score([sentiment_obs(-0.5)] * 8) == 0.0
        assert nudged_score([sentiment_obs(0.0)]) == 0.5


# ---------------------------------------------------------------------------
# Technical
# ---------------------------------------------------------------------------

class TestTechnical:
    def test_empty_input_is_low_confidence_neutral(self):
        result = analyst(AnalysisType.TECHNICAL).technical([])
        assert result.direction == Direction.NEUTRAL
        assert result.confidence == 0.1
        assert result.signals == ["No price data available"]

    def test_rising_price_is_bullish(self, price_series):
        result = analyst(AnalysisType.TECHNICAL).technical(price_series([100.0, 110.0]))

        assert result.trend == Direction.BULLISH
        assert result.confidence == pytest.approx(10 / 110 * 10)
        assert result.indicators.rsi == 100.0
        assert result.indicators.current_price == 110.0
        assert "Overbought (RSI 100.0)" in result.signals

    def test_falling_price_is_bearish(self, price_series):
        result = analyst(AnalysisType.TECHNICAL).technical(price_series([100.0, 90.0]))
        assert result.direction == Direction.BEARISH
        assert result.confidence == 1.0
        assert any(s.startswith("Oversold") for s in result.signals)

    def test_window_limits_samples(self, price_series):
        result = analyst(AnalysisType.TECHNICAL, window=5).technical(
            price_series([float(p) for p in range(100, 130)])
        )
        assert result.indicators.sample_count == 5

    def test_ignores_non_price_observations(self, sentiment_obs):
        result = analyst(AnalysisType.TECHNICAL).technical([sentiment_obs(0.9)])
        assert result.signals == ["No price data available"]


# ---------------------------------------------------------------------------
# Fundamental
# ---------------------------------------------------------------------------

class TestFundamental:
    def test_empty_input(self):
        result = analyst(AnalysisType.FUNDAMENTAL).fundamental([])
        assert result.signals == ["Limited fundamental data"]
        assert result.confidence == 0.1
        assert result.direction == Direction.NEUTRAL

    def test_positive_news_flow_is_bullish(self, sentiment_obs):
        news = [
            sentiment_obs(0.4, source="news", kind=ObservationKind.NEWS) for _ in range(6)
        ]
        result = analyst(AnalysisType.FUNDAMENTAL).fundamental(news)

        assert result.score == 1.0
        assert result.direction == Direction.BULLISH
        assert "High news activity detected" in result.signals
        assert result.confidence == pytest.approx(0.6)
        assert result.factors["news_count"] == 6

    def test_chain_data_is_noted(self):
        chain = Observation(
            source="onchain",
            kind=ObservationKind.VOLUME,
            payload=ChainPayload(network="ethereum", block_number=1, transaction_count=10),
            confidence=0.95,
        )
        result = analyst(AnalysisType.FUNDAMENTAL).fundamental([chain])
        assert result.signals == ["On-chain activity data available"]
        assert result.direction == Direction.NEUTRAL
        assert result.confidence == 0.0


# ---------------------------------------------------------------------------
# Sentiment
# ---------------------------------------------------------------------------

class TestSentiment:
    def test_empty_input(self):
        result = analyst(AnalysisType.SENTIMENT).sentiment([])
        assert result.signals == ["No sentiment data available"]
        assert result.confidence == 0.1

    def test_positive_flow(self, sentiment_obs):
        result = analyst(AnalysisType.SENTIMENT).sentiment([sentiment_obs(0.3)] * 3)

        assert result.sentiment == pytest.approx(0.8)
        assert result.direction == Direction.BULLISH
        assert result.signals == ["Very positive sentiment detected"]
        assert result.confidence == pytest.approx(0.15)
        assert result.factors["social"] == 3

    def test_negative_flow(self, sentiment_obs):
        result = analyst(AnalysisType.SENTIMENT).sentiment([sentiment_obs(-0.3)] * 2)
        assert result.direction == Direction.BEARISH
        assert result.signals == ["Negative sentiment trend"]


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------

class TestCorrelation:
    def test_price_volume_correlation(self, price_series):
        observations = price_series([1.0, 2.0, 3.0, 4.0], volumes=[10.0, 20.0, 30.0, 40.0])
        result = analyst(AnalysisType.CORRELATION).correlation(observations)

        assert result.correlations["price_volume"] == pytest.approx(1.0)
        assert "Strong price-volume correlation" in result.signals
        assert result.confidence == pytest.approx(0.4)

    def test_too_few_samples_is_zero(self, price_series):
        result = analyst(AnalysisType.CORRELATION).correlation(price_series([1.0, 2.0]))
        assert result.correlations["price_volume"] == 0.0
        assert result.signals == ["Weak correlations detected"]
        assert result.direction == Direction.NEUTRAL

    def test_constant_series_does_not_raise(self, price_series):
        result = analyst(AnalysisType.CORRELATION).correlation(
            price_series([5.0, 5.0, 5.0, 5.0], volumes=[1.0, 2.0, 3.0, 4.0])
        )
        assert result.correlations["price_volume"] == 0.0


# ---------------------------------------------------------------------------
# Task entry point
# ---------------------------------------------------------------------------

class TestAnalystTasks:
    @pytest.mark.asyncio
    async def test_dispatches_by_specialty_and_remembers(self, sentiment_obs):
        agent = analyst(AnalysisType.SENTIMENT)
        await agent.start()
        task = Task(payload=AnalyzePayload(market="BTC/USD", observations=[sentiment_obs(0.5)]))

        result = await agent.process_task(task)

        assert result.success
        assert isinstance(result.payload, SentimentAnalysis)
        memories = agent.get_memories_by_type("analysis")
        assert len(memories) == 1
        assert memories[0].metadata == {"market": "BTC/USD"}

    @pytest.mark.parametrize(
        "specialty,expected",
        [
            (AnalysisType.TECHNICAL, TechnicalAnalysis),
            (AnalysisType.CORRELATION, CorrelationAnalysis),
        ],
    )
    def test_analyze_returns_specialty_type(self, specialty, expected):
        assert isinstance(analyst(specialty).analyze([]), expected)

    def test_kind_is_specialty(self):
        assert analyst(AnalysisType.FUNDAMENTAL).kind == "fundamental"
