"""Analyst agent: synthesizes observations into one typed analysis.

The specialty is fixed at construction.  Every specialty treats empty input
as a first-class case and answers with a neutral, low-confidence result.
"""

from __future__ import annotations

import logging
import statistics
from typing import Any, assert_never

import numpy as np

from swarm_oracle.core.enums import AgentRole, AnalysisType, Direction, ObservationKind, TaskType
from swarm_oracle.core.models import (
    AnalysisResult,
    AnalyzePayload,
    CorrelationAnalysis,
    FundamentalAnalysis,
    MacdValues,
    Observation,
    PricePayload,
    SentimentAnalysis,
    SentimentPayload,
    Task,
    TaskOutput,
    TechnicalAnalysis,
    TechnicalIndicators,
)

from .base import BaseAgent

logger = logging.getLogger(__name__)

EMPTY_CONFIDENCE = 0.1
NUDGE = 0.1
BULLISH_ABOVE = 0.6
BEARISH_BELOW = 0.4

_SENTIMENT_KINDS = {ObservationKind.SENTIMENT, ObservationKind.SOCIAL, ObservationKind.NEWS}


# ---------------------------------------------------------------------------
# Indicators
# ---------------------------------------------------------------------------

def calculate_rsi(prices: list[float]) -> float:
    """Relative strength over the window: 50 on <2 samples, 100 with no losses."""
    if len(prices) < 2:
        return 50.0
    deltas = np.diff(np.asarray(prices, dtype=np.float64))
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)
    avg_loss = losses.sum() / len(prices)
    if avg_loss == 0:
        return 100.0
    rs = (gains.sum() / len(prices)) / avg_loss
    return float(100.0 - 100.0 / (1.0 + rs))


def calculate_ema(prices: list[float], period: int) -> float:
    """Final value of an EMA seeded with the first price."""
    close = np.asarray(prices, dtype=np.float64)
    if close.size == 0:
        return 0.0
    alpha = 2.0 / (period + 1)
    # Weight of each sample in the recursive EMA, oldest first
    weights = alpha * (1 - alpha) ** np.arange(close.size - 1, -1, -1)
    weights[0] = (1 - alpha) ** (close.size - 1)
    return float(np.dot(weights, close))


def calculate_macd(prices: list[float]) -> MacdValues:
    """Simplified MACD; zeros until 12 samples are available."""
    if len(prices) < 12:
        return MacdValues()
    macd = calculate_ema(prices, 12) - calculate_ema(prices, 26)
    return MacdValues(macd=macd, signal=macd * 0.9, histogram=macd * 0.1)


def nudged_score(observations: list[Observation]) -> float:
    """0.5 baseline moved 0.1 per signed observation, clamped to [0, 1]."""
    score = 0.5
    for obs in observations:
        score += NUDGE * obs.polarity
    return max(0.0, min(1.0, score))


def direction_for_score(score: float) -> Direction:
    if score > BULLISH_ABOVE:
        return Direction.BULLISH
    if score < BEARISH_BELOW:
        return Direction.BEARISH
    return Direction.NEUTRAL


def _correlation(xs: list[float], ys: list[float]) -> float:
    n = min(len(xs), len(ys))
    if n < 3:
        return 0.0
    a = np.asarray(xs[:n], dtype=np.float64)
    b = np.asarray(ys[:n], dtype=np.float64)
    # Constant series have no defined correlation
    if np.std(a) == 0 or np.std(b) == 0:
        return 0.0
    return float(np.corrcoef(a, b)[0, 1])


class AnalystAgent(BaseAgent):
    """Produces one analysis per task according to its specialty.

    Parameters
    ----------
    specialty:
        Which of the four analyses this agent performs.
    window:
        Most recent price samples considered by technical analysis.
    """

    def __init__(self, *, specialty: AnalysisType, window: int = 20, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._specialty = specialty
        self._window = max(window, 2)

    @property
    def role(self) -> AgentRole:
        return AgentRole.ANALYST

    @property
    def kind(self) -> str:
        return self._specialty.value

    @property
    def specialty(self) -> AnalysisType:
        return self._specialty

    def accepted_tasks(self) -> frozenset[TaskType]:
        return frozenset({TaskType.ANALYSIS})

    async def _handle_task(self, task: Task) -> TaskOutput:
        payload = task.payload
        assert isinstance(payload, AnalyzePayload)
        analysis = self.analyze(payload.observations)
        await self.store_memory(
            "analysis", analysis, metadata={"market": payload.market} if payload.market else None
        )
        return analysis

    def analyze(self, observations: list[Observation]) -> AnalysisResult:
        specialty = self._specialty
        match specialty:
            case AnalysisType.TECHNICAL:
                return self.technical(observations)
            case AnalysisType.FUNDAMENTAL:
                return self.fundamental(observations)
            case AnalysisType.SENTIMENT:
                return self.sentiment(observations)
            case AnalysisType.CORRELATION:
                return self.correlation(observations)
            case _:
                assert_never(specialty)

    # ------------------------------------------------------------------
    # Specialties
    # ------------------------------------------------------------------

    def technical(self, observations: list[Observation]) -> TechnicalAnalysis:
        series = sorted(
            (o for o in observations if o.kind == ObservationKind.PRICE),
            key=lambda o: o.timestamp,
        )
        prices = [o.value for o in series][-self._window:]
        if not prices:
            return TechnicalAnalysis(
                signals=["No price data available"],
                confidence=EMPTY_CONFIDENCE,
            )

        current = prices[-1]
        previous = prices[-2] if len(prices) > 1 else current
        change = current - previous
        if change > 0:
            trend = Direction.BULLISH
        elif change < 0:
            trend = Direction.BEARISH
        else:
            trend = Direction.NEUTRAL
        confidence = min(abs(change) / current * 10, 1.0) if current > 0 else 0.0

        rsi = calculate_rsi(prices)
        signals = [f"Price {trend.value} trend detected"]
        if len(prices) >= 2:
            if rsi > 70:
                signals.append(f"Overbought (RSI {rsi:.1f})")
            elif rsi < 30:
                signals.append(f"Oversold (RSI {rsi:.1f})")

        return TechnicalAnalysis(
            direction=trend,
            signals=signals,
            confidence=confidence,
            indicators=TechnicalIndicators(
                rsi=rsi,
                macd=calculate_macd(prices),
                price_change=change,
                current_price=current,
                sample_count=len(prices),
            ),
        )

    def fundamental(self, observations: list[Observation]) -> FundamentalAnalysis:
        news = [o for o in observations if o.kind == ObservationKind.NEWS]
        chain = [o for o in observations if o.kind == ObservationKind.VOLUME]
        if not news and not chain:
            return FundamentalAnalysis(
                signals=["Limited fundamental data"],
                confidence=EMPTY_CONFIDENCE,
                factors={"news_count": 0, "volume_observations": 0, "overall_sentiment": 0.5},
            )

        score = nudged_score(news)
        signals = []
        if len(news) > 5:
            signals.append("High news activity detected")
        if chain:
            signals.append("On-chain activity data available")

        return FundamentalAnalysis(
            score=score,
            direction=direction_for_score(score),
            signals=signals or ["Limited fundamental data"],
            confidence=min(len(news) / 10, 1.0),
            factors={
                "news_count": len(news),
                "volume_observations": len(chain),
                "overall_sentiment": score,
            },
        )

    def sentiment(self, observations: list[Observation]) -> SentimentAnalysis:
        scored = [
            o for o in observations
            if o.kind in _SENTIMENT_KINDS and isinstance(o.payload, SentimentPayload)
        ]
        if not scored:
            return SentimentAnalysis(
                signals=["No sentiment data available"],
                confidence=EMPTY_CONFIDENCE,
            )

        score = nudged_score(scored)
        if score > 0.7:
            signal = "Very positive sentiment detected"
        elif score > 0.6:
            signal = "Positive sentiment trend"
        elif score < 0.3:
            signal = "Very negative sentiment detected"
        elif score < 0.4:
            signal = "Negative sentiment trend"
        else:
            signal = "Neutral sentiment"

        return SentimentAnalysis(
            sentiment=score,
            direction=direction_for_score(score),
            signals=[signal],
            confidence=min(len(scored) / 20, 1.0),
            factors={
                "social": sum(1 for o in scored if o.kind != ObservationKind.NEWS),
                "news": sum(1 for o in scored if o.kind == ObservationKind.NEWS),
                "mean_raw_sentiment": statistics.fmean(o.value for o in scored),
            },
        )

    def correlation(self, observations: list[Observation]) -> CorrelationAnalysis:
        ordered = sorted(observations, key=lambda o: o.timestamp)
        prices = [o.value for o in ordered if o.kind == ObservationKind.PRICE]
        volumes = [o.payload.volume for o in ordered if isinstance(o.payload, PricePayload)]
        social = [o.value for o in ordered if isinstance(o.payload, SentimentPayload)]

        correlations = {
            "price_volume": _correlation(prices, volumes),
            "price_social": _correlation(prices, social),
            "volume_social": _correlation(volumes, social),
        }

        signals = []
        if correlations["price_volume"] > 0.5:
            signals.append("Strong price-volume correlation")
        direction = Direction.NEUTRAL
        if abs(correlations["price_social"]) > 0.5:
            signals.append("Social sentiment correlates with price")
            mood = statistics.fmean(social)
            if mood > 0:
                direction = Direction.BULLISH
            elif mood < 0:
                direction = Direction.BEARISH

        return CorrelationAnalysis(
            correlations=correlations,
            direction=direction,
            signals=signals or ["Weak correlations detected"],
            confidence=min(len(prices) / 10, 1.0),
        )
