"""Agent coordinator: registry, messaging, memory relay and health.

The AgentCoordinator is the single point through which agents find each
other.  It owns:

- the registry of live agents (upsert on register, delete on unregister)
- a bounded mailbox per recipient, plus a dead-letter list for deliveries
  whose handler raised
- durable copies of registrations, memories and messages via the
  persistence gateway

Persistence failures are logged and never propagate to the sender.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import TYPE_CHECKING

from swarm_oracle.core.clock import IClock, WallClock
from swarm_oracle.core.enums import AgentRole, AgentStatus
from swarm_oracle.core.errors import CoordinationError
from swarm_oracle.core.interfaces import IPersistenceGateway
from swarm_oracle.core.models import (
    AgentMetrics,
    AgentRegistration,
    MemoryEntry,
    Message,
    MessageBody,
    MessageFilter,
    SwarmHealth,
)
from swarm_oracle.observability import metrics

if TYPE_CHECKING:
    from swarm_oracle.agents.base import BaseAgent

logger = logging.getLogger(__name__)


class DeadLetter:
    """A message whose recipient handler raised during delivery."""

    __slots__ = ("message", "error")

    def __init__(self, message: Message, error: str) -> None:
        self.message = message
        self.error = error

    def __repr__(self) -> str:
        return f"DeadLetter(message={self.message.id!r}, error={self.error!r})"


class AgentCoordinator:
    """Registry and message relay shared by all agents of one swarm.

    Usage::

        coordinator = AgentCoordinator(persistence)
        await agent.start()            # registers itself
        await coordinator.send_message("a", "b", NoteBody(text="hi"))
        health = coordinator.health_check()

    Parameters
    ----------
    persistence:
        Gateway receiving registrations, memories and messages.
    clock:
        Time source for message timestamps.
    mailbox_size:
        Per-recipient mailbox bound; the oldest messages are evicted.
    health_threshold:
        Minimum healthy fraction for the swarm to report healthy.
    """

    def __init__(
        self,
        persistence: IPersistenceGateway,
        *,
        clock: IClock | None = None,
        mailbox_size: int = 1000,
        health_threshold: float = 0.8,
    ) -> None:
        self._persistence = persistence
        self._clock: IClock = clock or WallClock()
        self._mailbox_size = mailbox_size
        self._health_threshold = health_threshold
        self._agents: dict[str, BaseAgent] = {}
        self._mailboxes: dict[str, deque[Message]] = {}
        self._dead_letters: deque[DeadLetter] = deque(maxlen=mailbox_size)
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def persistence(self) -> IPersistenceGateway:
        return self._persistence

    @property
    def clock(self) -> IClock:
        return self._clock

    def _check_loop(self) -> None:
        """Bind to the first running loop; reject mutations from any other."""
        loop = asyncio.get_running_loop()
        if self._loop is None or self._loop.is_closed():
            self._loop = loop
        elif self._loop is not loop:
            raise CoordinationError("Coordinator used from a foreign event loop")

    def _publish_counts(self) -> None:
        metrics.update_registered(self.agent_counts())

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register_agent(self, agent: BaseAgent) -> None:
        """Upsert *agent* into the registry and persist its registration."""
        self._check_loop()
        replaced = self._agents.get(agent.agent_id)
        if replaced is not None and replaced is not agent:
            logger.warning("Agent %s re-registered by a new instance", agent.agent_id)
        self._agents[agent.agent_id] = agent
        self._publish_counts()
        logger.info(
            "Registered agent: %s (role=%s, kind=%s, id=%s)",
            agent.agent_name,
            agent.role.value,
            agent.kind,
            agent.agent_id,
        )
        info = AgentRegistration(
            agent_id=agent.agent_id,
            role=agent.role,
            kind=agent.kind,
            status=agent.status,
            registered_at=self._clock.now(),
        )
        try:
            await self._persistence.store_agent_registration(info)
        except Exception:
            logger.exception("Failed to persist registration for %s", agent.agent_id)

    async def unregister_agent(self, agent_id: str) -> BaseAgent | None:
        """Remove an agent; unknown ids are a no-op."""
        self._check_loop()
        agent = self._agents.pop(agent_id, None)
        if agent is None:
            return None
        self._publish_counts()
        logger.info("Unregistered agent: %s (id=%s)", agent.agent_name, agent_id)
        try:
            await self._persistence.save_agent_state(agent_id, agent.snapshot_state())
            await self._persistence.update_agent_status(agent_id, AgentStatus.INACTIVE)
        except Exception:
            logger.exception("Failed to persist final state for %s", agent_id)
        return agent

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def get_registered_agents(self) -> list[BaseAgent]:
        return list(self._agents.values())

    def get_agent(self, agent_id: str) -> BaseAgent | None:
        return self._agents.get(agent_id)

    def get_agents_by_role(self, role: AgentRole) -> list[BaseAgent]:
        return [a for a in self._agents.values() if a.role == role]

    def agent_counts(self) -> dict[str, int]:
        """Registered agents per role, every role present."""
        counts = {role.value: 0 for role in AgentRole}
        for agent in self._agents.values():
            counts[agent.role.value] += 1
        return counts

    def get_agent_metrics(self) -> list[AgentMetrics]:
        return [a.get_metrics() for a in self._agents.values()]

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_message(
        self, from_agent_id: str, to_agent_id: str, body: MessageBody
    ) -> Message:
        """Deliver *body* to one agent at most once.

        The message is queued in the recipient's mailbox and handed to its
        handler.  A handler failure moves the message to the dead-letter
        list.  Either way the message is persisted.
        """
        self._check_loop()
        message = Message(
            from_agent_id=from_agent_id,
            to_agent_id=to_agent_id,
            body=body,
            timestamp=self._clock.now(),
        )
        metrics.record_message(message.type.value)

        recipient = self._agents.get(to_agent_id)
        if recipient is None:
            logger.warning("Message %s to unknown agent %s dropped", message.id, to_agent_id)
            self._dead_letter(message, "recipient not registered")
        else:
            self._mailbox(to_agent_id).append(message)
            try:
                await recipient.handle_message(message)
            except Exception as exc:
                logger.exception("Handler of %s failed for message %s", to_agent_id, message.id)
                self._dead_letter(message, f"{type(exc).__name__}: {exc}")

        try:
            await self._persistence.store_message(message)
        except Exception:
            logger.exception("Failed to persist message %s", message.id)
        return message

    async def broadcast_message(
        self, from_agent_id: str, role: AgentRole, body: MessageBody
    ) -> list[Message]:
        """Send *body* to every agent of *role* except the sender."""
        recipients = [
            a.agent_id for a in self.get_agents_by_role(role) if a.agent_id != from_agent_id
        ]
        sent = []
        for agent_id in recipients:
            sent.append(await self.send_message(from_agent_id, agent_id, body))
        logger.debug(
            "%s broadcast %s to %d %s agents",
            from_agent_id,
            body.type,
            len(sent),
            role.value,
        )
        return sent

    def _mailbox(self, agent_id: str) -> deque[Message]:
        box = self._mailboxes.get(agent_id)
        if box is None:
            box = self._mailboxes[agent_id] = deque(maxlen=self._mailbox_size)
        return box

    def _dead_letter(self, message: Message, error: str) -> None:
        self._dead_letters.append(DeadLetter(message, error))
        metrics.record_dead_letter()

    def get_mailbox(self, agent_id: str) -> list[Message]:
        """Messages queued for *agent_id*, oldest first."""
        return list(self._mailboxes.get(agent_id, ()))

    def drain_mailbox(self, agent_id: str) -> list[Message]:
        """Return and clear the mailbox of *agent_id*."""
        box = self._mailboxes.pop(agent_id, None)
        return list(box) if box else []

    @property
    def dead_letters(self) -> list[DeadLetter]:
        return list(self._dead_letters)

    async def get_messages(
        self, filter: MessageFilter | None = None, limit: int = 100
    ) -> list[Message]:
        return await self._persistence.get_messages(filter, limit)

    # ------------------------------------------------------------------
    # Memory relay
    # ------------------------------------------------------------------

    async def store_agent_memory(self, agent_id: str, entry: MemoryEntry) -> None:
        try:
            await self._persistence.store_agent_memory(agent_id, entry)
        except Exception:
            logger.exception("Failed to persist memory %s of %s", entry.id, agent_id)

    async def get_agent_memories(self, agent_id: str, limit: int = 50) -> list[MemoryEntry]:
        return await self._persistence.get_agent_memories(agent_id, limit)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def health_check(self) -> SwarmHealth:
        """Swarm is healthy when at least the threshold share of agents is.

        An empty registry is reported unhealthy.
        """
        total = len(self._agents)
        unhealthy = []
        for agent_id, agent in self._agents.items():
            try:
                ok = agent.is_healthy()
            except Exception:
                logger.exception("Health predicate of %s raised", agent_id)
                ok = False
            if not ok:
                unhealthy.append(agent_id)

        healthy = total - len(unhealthy)
        ratio = healthy / total if total else 0.0
        metrics.update_health_ratio(ratio)
        return SwarmHealth(
            total_agents=total,
            healthy_agents=healthy,
            ratio=ratio,
            is_healthy=total > 0 and ratio >= self._health_threshold,
            unhealthy=unhealthy,
        )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Stop every agent in reverse registration order, then close storage."""
        agents = list(self._agents.values())
        logger.info("Stopping %d agents...", len(agents))
        for agent in reversed(agents):
            try:
                await agent.stop()
            except Exception:
                logger.exception("Failed to stop agent %s", agent.agent_id)
        self._agents.clear()
        self._mailboxes.clear()
        self._publish_counts()
        try:
            await self._persistence.close()
        except Exception:
            logger.exception("Failed to close persistence")
        logger.info("Coordinator shut down")
