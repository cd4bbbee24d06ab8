"""Base agent ABC providing the shared lifecycle pattern.

All agents in the swarm extend BaseAgent, which provides:

- Unique agent identity (``agent_id``, ``role``, ``kind``)
- Lifecycle management (``start`` / ``stop``) with coordinator registration
- Optional periodic work, registered as a named job on the shared scheduler
- A single processing entry point, ``process_task``, that never raises
- Error tracking with time-based self-recovery from the ``error`` state
- Bounded private memory with write-through copies to the coordinator
- Health reporting and derived metrics

Subclasses must implement:
- ``role`` and ``kind`` properties
- ``accepted_tasks()``
- ``_handle_task()`` coroutine returning the typed task output
"""

from __future__ import annotations

import abc
import logging
from collections import deque
from datetime import datetime
from typing import TYPE_CHECKING, Any

from swarm_oracle.core.clock import IClock, WallClock
from swarm_oracle.core.enums import AgentRole, AgentStatus, TaskType
from swarm_oracle.core.errors import UnsupportedTaskError
from swarm_oracle.core.ids import new_id
from swarm_oracle.core.models import (
    AgentHealthReport,
    AgentMetrics,
    MemoryData,
    MemoryEntry,
    Message,
    MessageBody,
    Task,
    TaskOutput,
    TaskResult,
)
from swarm_oracle.observability import metrics

if TYPE_CHECKING:
    from swarm_oracle.coordination.coordinator import AgentCoordinator
    from swarm_oracle.orchestrator.scheduler import Scheduler

logger = logging.getLogger(__name__)


class BaseAgent(abc.ABC):
    """Abstract base for all swarm agents.

    Parameters
    ----------
    agent_id:
        Unique identifier for this agent instance. Auto-generated if omitted.
    coordinator:
        The coordinator this agent registers with for its whole lifetime.
    clock:
        Time source for uptime, activity and recovery bookkeeping.
    scheduler:
        Shared scheduler that owns the periodic job when ``interval > 0``.
    interval:
        Seconds between ``_work()`` invocations. ``0`` disables periodic work.
    memory_cap:
        Maximum retained memory entries; the oldest are evicted first.
    error_grace_seconds:
        Time spent in ``error`` before the agent reverts to ``active``.
    inactivity_timeout_seconds:
        Silence after which an active agent reports itself unhealthy.
    """

    def __init__(
        self,
        *,
        agent_id: str | None = None,
        coordinator: AgentCoordinator | None = None,
        clock: IClock | None = None,
        scheduler: Scheduler | None = None,
        interval: float = 0,
        memory_cap: int = 1000,
        error_grace_seconds: float = 5.0,
        inactivity_timeout_seconds: float = 300.0,
    ) -> None:
        self._agent_id = agent_id or new_id()
        self._coordinator = coordinator
        self._clock: IClock = clock or WallClock()
        self._scheduler = scheduler
        self._interval = interval
        self._grace = error_grace_seconds
        self._inactivity_timeout = inactivity_timeout_seconds

        self._status = AgentStatus.INACTIVE
        self._started_at: datetime | None = None
        self._last_activity: datetime | None = None
        self._error_since: datetime | None = None
        self._last_error: str | None = None
        self._tasks_completed = 0
        self._error_count = 0
        self._memory: deque[MemoryEntry] = deque(maxlen=memory_cap)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def agent_id(self) -> str:
        return self._agent_id

    @property
    @abc.abstractmethod
    def role(self) -> AgentRole:
        """Return the role of this agent."""
        ...

    @property
    @abc.abstractmethod
    def kind(self) -> str:
        """Return the role-specific sub-kind (source, specialty, ...)."""
        ...

    @abc.abstractmethod
    def accepted_tasks(self) -> frozenset[TaskType]:
        """Task types this agent is allowed to process."""
        ...

    @property
    def agent_name(self) -> str:
        """Human-readable name (defaults to class name)."""
        return self.__class__.__name__

    @property
    def coordinator(self) -> AgentCoordinator | None:
        return self._coordinator

    @property
    def error_count(self) -> int:
        return self._error_count

    @property
    def tasks_completed(self) -> int:
        return self._tasks_completed

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def status(self) -> AgentStatus:
        """Current status; an expired error grace period reverts to active."""
        if self._status == AgentStatus.ERROR and self._error_since is not None:
            elapsed = (self._clock.now() - self._error_since).total_seconds()
            if elapsed >= self._grace:
                self._status = AgentStatus.ACTIVE
                self._error_since = None
                logger.info("%s recovered from error state (id=%s)", self.agent_name, self._agent_id)
        return self._status

    @property
    def is_running(self) -> bool:
        return self.status != AgentStatus.INACTIVE

    @property
    def _job_name(self) -> str:
        return f"agent:{self._agent_id}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Activate the agent, register it and schedule its periodic work."""
        if self._status != AgentStatus.INACTIVE:
            logger.warning("%s is already running", self.agent_name)
            return

        now = self._clock.now()
        self._status = AgentStatus.ACTIVE
        self._started_at = now
        self._last_activity = now

        if self._coordinator is not None:
            await self._coordinator.register_agent(self)

        await self._on_start()

        if self._interval > 0:
            if self._scheduler is None:
                logger.warning(
                    "%s has interval=%s but no scheduler; periodic work disabled",
                    self.agent_name,
                    self._interval,
                )
            else:
                self._scheduler.schedule(self._job_name, self._interval, self._run_periodic)

        logger.info(
            "%s started (id=%s, role=%s, kind=%s)",
            self.agent_name,
            self._agent_id,
            self.role.value,
            self.kind,
        )

    async def stop(self) -> None:
        """Cancel periodic work, unregister and go inactive."""
        if self._status == AgentStatus.INACTIVE:
            return

        if self._scheduler is not None:
            await self._scheduler.cancel(self._job_name)

        await self._on_stop()

        self._status = AgentStatus.INACTIVE
        self._error_since = None

        if self._coordinator is not None:
            await self._coordinator.unregister_agent(self._agent_id)

        logger.info("%s stopped (id=%s)", self.agent_name, self._agent_id)

    async def restart(self) -> None:
        """Stop then start again; counters survive so error_count stays monotonic."""
        await self.stop()
        await self.start()

    # ------------------------------------------------------------------
    # Hooks for subclasses
    # ------------------------------------------------------------------

    async def _on_start(self) -> None:
        """Called during start after registration. Override for setup."""

    async def _on_stop(self) -> None:
        """Called during stop before unregistering. Override for cleanup."""

    async def _work(self) -> None:
        """Single unit of periodic work. Only called when ``interval > 0``."""

    async def _on_message(self, message: Message) -> None:
        """React to an inbound message. Default: nothing beyond activity."""

    def _metrics_extra(self) -> dict[str, Any]:
        return {}

    @abc.abstractmethod
    async def _handle_task(self, task: Task) -> TaskOutput:
        """Do the role-specific work for an accepted task."""
        ...

    # ------------------------------------------------------------------
    # Task processing
    # ------------------------------------------------------------------

    async def process_task(self, task: Task) -> TaskResult:
        """Process *task*; faults are caught and reported, never raised."""
        self._touch()
        task_type = task.type

        if task_type not in self.accepted_tasks():
            rejection = UnsupportedTaskError(self._agent_id, task_type.value)
            logger.warning("%s rejected task %s: %s", self.agent_name, task.id, rejection)
            return TaskResult(
                agent_id=self._agent_id,
                task_type=task_type,
                timestamp=self._clock.now(),
                success=False,
                error=str(rejection),
            )

        try:
            output = await self._handle_task(task)
        except Exception as exc:
            self._record_fault(exc)
            logger.exception(
                "%s failed task %s (errors=%d)",
                self.agent_name,
                task.id,
                self._error_count,
            )
            metrics.record_task(self.role.value, task_type.value, False)
            return TaskResult(
                agent_id=self._agent_id,
                task_type=task_type,
                timestamp=self._clock.now(),
                success=False,
                error=f"{type(exc).__name__}: {exc}",
            )

        self._tasks_completed += 1
        self._touch()
        metrics.record_task(self.role.value, task_type.value, True)
        return TaskResult(
            agent_id=self._agent_id,
            task_type=task_type,
            timestamp=self._clock.now(),
            success=True,
            payload=output,
        )

    async def _run_periodic(self) -> None:
        try:
            await self._work()
            self._touch()
        except Exception as exc:
            self._record_fault(exc)
            logger.exception(
                "%s work cycle failed (errors=%d)",
                self.agent_name,
                self._error_count,
            )

    def _record_fault(self, exc: BaseException) -> None:
        self._error_count += 1
        self._last_error = f"{type(exc).__name__}: {exc}"
        metrics.record_agent_fault(self.role.value, self.kind)
        if self._status != AgentStatus.INACTIVE:
            self._status = AgentStatus.ERROR
            self._error_since = self._clock.now()

    def _touch(self) -> None:
        self._last_activity = self._clock.now()

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def handle_message(self, message: Message) -> None:
        """Inbound delivery from the coordinator."""
        self._touch()
        logger.debug(
            "%s received %s from %s", self.agent_name, message.type.value, message.from_agent_id
        )
        await self._on_message(message)

    async def send_message(self, to_agent_id: str, body: MessageBody) -> Message | None:
        if self._coordinator is None:
            logger.warning("%s cannot send without a coordinator", self.agent_name)
            return None
        return await self._coordinator.send_message(self._agent_id, to_agent_id, body)

    async def broadcast_message(self, role: AgentRole, body: MessageBody) -> list[Message]:
        if self._coordinator is None:
            logger.warning("%s cannot broadcast without a coordinator", self.agent_name)
            return []
        return await self._coordinator.broadcast_message(self._agent_id, role, body)

    # ------------------------------------------------------------------
    # Memory
    # ------------------------------------------------------------------

    async def store_memory(
        self,
        type: str,
        data: MemoryData,
        metadata: dict[str, Any] | None = None,
    ) -> MemoryEntry:
        """Append a memory entry and hand a durable copy to the coordinator."""
        entry = MemoryEntry(
            type=type, timestamp=self._clock.now(), data=data, metadata=metadata
        )
        self._memory.append(entry)
        if self._coordinator is not None:
            await self._coordinator.store_agent_memory(self._agent_id, entry)
        return entry

    def get_memories_by_type(self, type: str, limit: int | None = None) -> list[MemoryEntry]:
        """Entries of *type* in insertion order, optionally only the last *limit*."""
        matching = [m for m in self._memory if m.type == type]
        if limit is not None:
            matching = matching[-limit:] if limit > 0 else []
        return matching

    def get_recent_memories(self, limit: int = 10) -> list[MemoryEntry]:
        """The *limit* most recent entries, newest first."""
        if limit <= 0:
            return []
        recent = list(self._memory)[-limit:]
        recent.reverse()
        return recent

    @property
    def memory_size(self) -> int:
        return len(self._memory)

    # ------------------------------------------------------------------
    # Health & metrics
    # ------------------------------------------------------------------

    def is_healthy(self) -> bool:
        if self.status != AgentStatus.ACTIVE or self._last_activity is None:
            return False
        idle = (self._clock.now() - self._last_activity).total_seconds()
        return idle < self._inactivity_timeout

    def performance_score(self) -> float:
        uptime_hours = self._uptime_seconds() / 3600
        tasks_per_hour = self._tasks_completed / max(uptime_hours, 1)
        error_rate = self._error_count / max(self._tasks_completed, 1)
        return max(0.0, min(100.0, tasks_per_hour * 10) - error_rate * 50)

    def _uptime_seconds(self) -> float:
        if self._started_at is None or self._status == AgentStatus.INACTIVE:
            return 0.0
        return (self._clock.now() - self._started_at).total_seconds()

    def get_metrics(self) -> AgentMetrics:
        return AgentMetrics(
            agent_id=self._agent_id,
            role=self.role,
            kind=self.kind,
            status=self.status,
            uptime_seconds=self._uptime_seconds(),
            tasks_completed=self._tasks_completed,
            last_activity=self._last_activity,
            performance_score=self.performance_score(),
            error_count=self._error_count,
            extra=self._metrics_extra(),
        )

    def snapshot_state(self) -> dict[str, Any]:
        """Counters worth keeping across process restarts."""
        return {
            "status": self.status.value,
            "tasks_completed": self._tasks_completed,
            "error_count": self._error_count,
            "last_error": self._last_error,
            "last_activity": self._last_activity.isoformat() if self._last_activity else None,
        }

    def health_check(self) -> AgentHealthReport:
        """Return current health status."""
        healthy = self.is_healthy()
        status = self.status
        message = ""
        if status == AgentStatus.INACTIVE:
            message = "Agent is not running"
        elif status == AgentStatus.ERROR:
            message = f"Recovering from error: {self._last_error}"
        elif not healthy:
            message = f"No activity for more than {self._inactivity_timeout:.0f}s"
        elif self._error_count > 0:
            message = f"Last error count: {self._error_count}"

        return AgentHealthReport(
            healthy=healthy,
            message=message,
            last_activity=self._last_activity,
            error_count=self._error_count,
            details={
                "agent_id": self._agent_id,
                "role": self.role.value,
                "kind": self.kind,
                "status": status.value,
            },
        )
