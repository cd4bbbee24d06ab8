"""Prometheus metrics endpoint.

Exposes swarm metrics for monitoring via Grafana.
"""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
)

# ---------------------------------------------------------------------------
# System metrics
# ---------------------------------------------------------------------------

SYSTEM_INFO = Info("swarm_system", "Swarm system information")

# ---------------------------------------------------------------------------
# Agent metrics
# ---------------------------------------------------------------------------

TASKS_TOTAL = Counter(
    "swarm_tasks_total",
    "Tasks processed by agents",
    ["role", "task_type", "outcome"],
)

AGENT_FAULTS = Counter(
    "swarm_agent_faults_total",
    "Unhandled faults caught inside process_task",
    ["role", "kind"],
)

OBSERVATIONS_TOTAL = Counter(
    "swarm_observations_total",
    "Observations produced by collectors",
    ["source", "kind"],
)

PROVIDER_ERRORS = Counter(
    "swarm_provider_errors_total",
    "External provider failures caught at the collector",
    ["source"],
)

# ---------------------------------------------------------------------------
# Coordination metrics
# ---------------------------------------------------------------------------

MESSAGES_TOTAL = Counter(
    "swarm_messages_total",
    "Messages routed by the coordinator",
    ["message_type"],
)

DEAD_LETTERS = Counter(
    "swarm_dead_letters_total",
    "Messages whose recipient handler raised",
)

REGISTERED_AGENTS = Gauge(
    "swarm_registered_agents",
    "Currently registered agents",
    ["role"],
)

HEALTH_RATIO = Gauge(
    "swarm_health_ratio",
    "Fraction of registered agents passing their health predicate",
)

PERSISTENCE_DEGRADED = Gauge(
    "swarm_persistence_degraded",
    "Durable store replaced by the in-memory fallback (1=degraded)",
)

# ---------------------------------------------------------------------------
# Pipeline metrics
# ---------------------------------------------------------------------------

QUEUE_SIZE = Gauge(
    "swarm_task_queue_size",
    "Tasks waiting in the orchestrator queue",
)

CONSENSUS_TOTAL = Counter(
    "swarm_consensus_total",
    "Deliberation outcomes",
    ["direction", "reached"],
)

PIPELINE_LATENCY = Histogram(
    "swarm_pipeline_latency_seconds",
    "Duration of one market_prediction pass",
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)


def start_metrics_server(port: int = 9090, swarm_id: str = "unknown") -> None:
    """Start Prometheus metrics HTTP server in a background thread."""
    SYSTEM_INFO.info({
        "version": "0.1.0",
        "swarm_id": swarm_id,
    })
    start_http_server(port)


# ---------------------------------------------------------------------------
# Convenience helpers for emitting metrics from the swarm
# ---------------------------------------------------------------------------


def record_task(role: str, task_type: str, success: bool) -> None:
    """Record one process_task outcome."""
    TASKS_TOTAL.labels(
        role=role, task_type=task_type, outcome="success" if success else "failure"
    ).inc()


def record_agent_fault(role: str, kind: str) -> None:
    AGENT_FAULTS.labels(role=role, kind=kind).inc()


def record_observation(source: str, kind: str) -> None:
    OBSERVATIONS_TOTAL.labels(source=source, kind=kind).inc()


def record_provider_error(source: str) -> None:
    PROVIDER_ERRORS.labels(source=source).inc()


def record_message(message_type: str) -> None:
    MESSAGES_TOTAL.labels(message_type=message_type).inc()


def record_dead_letter() -> None:
    DEAD_LETTERS.inc()


def update_registered(counts: dict[str, int]) -> None:
    """Update per-role registration gauges."""
    for role, count in counts.items():
        REGISTERED_AGENTS.labels(role=role).set(count)


def update_health_ratio(ratio: float) -> None:
    HEALTH_RATIO.set(ratio)


def update_persistence_degraded(degraded: bool) -> None:
    PERSISTENCE_DEGRADED.set(1 if degraded else 0)


def update_queue_size(size: int) -> None:
    QUEUE_SIZE.set(size)


def record_consensus(direction: str, reached: bool) -> None:
    CONSENSUS_TOTAL.labels(direction=direction, reached=str(reached).lower()).inc()


def observe_pipeline_latency(seconds: float) -> None:
    PIPELINE_LATENCY.observe(seconds)
