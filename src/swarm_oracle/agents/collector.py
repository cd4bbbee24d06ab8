"""Collector agent: turns provider items into typed observations.

One collector wraps one provider.  Social and news sources are scored item
by item and aggregated into a single sentiment observation per topic; chain
and market sources map each item to its own observation.  Provider failures
skip the topic and never escape the agent.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, assert_never

from swarm_oracle.core.enums import AgentRole, CollectorSource, ObservationKind, TaskType
from swarm_oracle.core.errors import ProviderError
from swarm_oracle.core.interfaces import IDataProvider, ISentimentScorer
from swarm_oracle.core.models import (
    ChainPayload,
    CollectionBatch,
    CollectionSummary,
    CollectPayload,
    Observation,
    PricePayload,
    ScoredItem,
    SentimentPayload,
    Task,
    TaskOutput,
)
from swarm_oracle.observability import metrics

from .base import BaseAgent
from .sentiment import KeywordSentimentScorer

logger = logging.getLogger(__name__)

MAX_SAMPLES = 10
CHAIN_CONFIDENCE = 0.95
PRICE_CONFIDENCE = 0.9

_SENTIMENT_KINDS = {
    CollectorSource.TWITTER: ObservationKind.SOCIAL,
    CollectorSource.REDDIT: ObservationKind.SOCIAL,
    CollectorSource.NEWS: ObservationKind.NEWS,
}


def engagement_weight(engagement: float) -> float:
    return 1 + math.log1p(max(engagement, 0.0))


def aggregate_sentiment(items: list[ScoredItem]) -> float:
    """Engagement-weighted mean of item scores; stays within [-1, 1]."""
    if not items:
        return 0.0
    weights = [engagement_weight(i.engagement) for i in items]
    total = sum(w * i.score for w, i in zip(weights, items))
    return max(-1.0, min(1.0, total / sum(weights)))


def _parse_time(raw: Any, fallback: datetime) -> datetime:
    if isinstance(raw, (int, float)):
        seconds = raw / 1000 if raw > 1e11 else raw
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(raw, str) and raw:
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return fallback
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return fallback


class CollectorAgent(BaseAgent):
    """Periodically collects one source's topics into observations.

    Parameters
    ----------
    source:
        Which external feed this collector reads.
    provider:
        Provider that fetches raw items for a topic.
    topics:
        Topics, subreddits, outlets or chains collected on each cycle.
    expected_count:
        Item count that earns a sentiment observation full confidence.
    scorer:
        Text polarity function; defaults to :class:`KeywordSentimentScorer`.
    """

    def __init__(
        self,
        *,
        source: CollectorSource,
        provider: IDataProvider,
        topics: list[str] | None = None,
        expected_count: int = 50,
        scorer: ISentimentScorer | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._source = source
        self._provider = provider
        self._topics = list(topics or [])
        self._expected_count = max(expected_count, 1)
        self._scorer = scorer or KeywordSentimentScorer()
        self._last_collection: datetime | None = None

    @property
    def role(self) -> AgentRole:
        return AgentRole.COLLECTOR

    @property
    def kind(self) -> str:
        return self._source.value

    @property
    def source(self) -> CollectorSource:
        return self._source

    @property
    def topics(self) -> list[str]:
        return list(self._topics)

    def accepted_tasks(self) -> frozenset[TaskType]:
        return frozenset({TaskType.DATA_COLLECTION})

    async def _on_stop(self) -> None:
        await self._provider.close()

    async def _work(self) -> None:
        observations = await self.collect(self._topics)
        logger.info("%s: collected %d observations", self._agent_id, len(observations))

    async def _handle_task(self, task: Task) -> TaskOutput:
        payload = task.payload
        assert isinstance(payload, CollectPayload)
        topics = payload.topics or self._topics
        if not topics and payload.market and self._source == CollectorSource.MARKET:
            topics = [payload.market]
        observations = await self.collect(topics)
        return CollectionBatch(source=self._source, observations=observations)

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    async def collect(self, topics: list[str]) -> list[Observation]:
        """Collect every topic; a failing topic is logged and skipped."""
        observations: list[Observation] = []
        for topic in topics:
            try:
                items = await self._provider.fetch(topic)
            except ProviderError as exc:
                metrics.record_provider_error(self._source.value)
                logger.warning("%s: skipping %s: %s", self._agent_id, topic, exc)
                continue
            except Exception:
                metrics.record_provider_error(self._source.value)
                logger.exception("%s: provider crashed on %s, skipping", self._agent_id, topic)
                continue

            # Malformed items or a failing scorer drop only this topic
            try:
                produced = self._to_observations(topic, items)
            except Exception:
                metrics.record_provider_error(self._source.value)
                logger.exception("%s: unusable items for %s, skipping", self._agent_id, topic)
                continue

            if produced:
                await self.store_memory(
                    "data_collection",
                    CollectionSummary(
                        source=self._source,
                        topic=topic,
                        summary=self._summarize(produced),
                        observation=produced[-1],
                    ),
                )
            for obs in produced:
                metrics.record_observation(self._source.value, obs.kind.value)
            observations.extend(produced)

        self._last_collection = self._clock.now()
        return observations

    def _to_observations(self, topic: str, items: list[dict[str, Any]]) -> list[Observation]:
        if not items:
            return []
        now = self._clock.now()
        source = self._source
        match source:
            case CollectorSource.TWITTER | CollectorSource.REDDIT | CollectorSource.NEWS:
                return [self._sentiment_observation(topic, items, _SENTIMENT_KINDS[source], now)]
            case CollectorSource.ONCHAIN:
                return [
                    Observation(
                        source=source.value,
                        kind=ObservationKind.VOLUME,
                        timestamp=now,
                        payload=ChainPayload(
                            network=item.get("network", topic),
                            chain_id=int(item.get("chain_id") or 0),
                            block_number=int(item.get("block_number") or 0),
                            transaction_count=int(item.get("transaction_count") or 0),
                            gas_price_gwei=float(item.get("gas_price_gwei") or 0.0),
                        ),
                        confidence=CHAIN_CONFIDENCE,
                        metadata={"collection_method": "json_rpc"},
                    )
                    for item in items
                ]
            case CollectorSource.MARKET:
                return [
                    Observation(
                        source=source.value,
                        kind=ObservationKind.PRICE,
                        timestamp=_parse_time(item.get("timestamp_ms"), now),
                        payload=PricePayload(
                            symbol=item.get("symbol", topic),
                            price=float(item["price"]),
                            volume=float(item.get("volume") or 0.0),
                            market_cap=float(item.get("market_cap") or 0.0),
                        ),
                        confidence=PRICE_CONFIDENCE,
                    )
                    for item in items
                    if item.get("price") is not None
                ]
            case _:
                assert_never(source)

    def _sentiment_observation(
        self,
        topic: str,
        items: list[dict[str, Any]],
        kind: ObservationKind,
        now: datetime,
    ) -> Observation:
        scored = [
            ScoredItem(
                text=str(item.get("text") or "")[:280],
                score=max(-1.0, min(1.0, self._scorer(str(item.get("text") or "")))),
                engagement=float(item.get("engagement") or 0.0),
            )
            for item in items
        ]
        return Observation(
            source=self._source.value,
            kind=kind,
            timestamp=now,
            payload=SentimentPayload(
                topic=topic,
                sentiment=aggregate_sentiment(scored),
                item_count=len(scored),
                samples=tuple(scored[:MAX_SAMPLES]),
            ),
            confidence=min(len(scored) / self._expected_count, 1.0),
            metadata={"total_engagement": sum(i.engagement for i in scored)},
        )

    def _summarize(self, observations: list[Observation]) -> str:
        last = observations[-1]
        payload = last.payload
        if isinstance(payload, SentimentPayload):
            return (
                f"Collected {self._source.value} sentiment: "
                f"{payload.sentiment:.3f} with {payload.item_count} items"
            )
        if isinstance(payload, ChainPayload):
            return (
                f"On-chain data: Block {payload.block_number} "
                f"with {payload.transaction_count} transactions"
            )
        return f"Collected {len(observations)} price samples for {payload.symbol}, last {payload.price:.2f}"

    def _metrics_extra(self) -> dict[str, Any]:
        return {
            "collect_interval": self._interval,
            "sources": self.topics,
            "last_collection": self._last_collection.isoformat() if self._last_collection else None,
        }
