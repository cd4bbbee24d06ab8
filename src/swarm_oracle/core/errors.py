"""Custom exception hierarchy for the swarm."""


class SwarmError(Exception):
    """Base exception for all swarm errors."""


# --- Configuration ---
class ConfigError(SwarmError):
    """Invalid or missing configuration."""


# --- Data ---
class ProviderError(SwarmError):
    """External data provider failed or returned an unusable response."""

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"Provider [{provider}]: {reason}")


# --- Persistence ---
class PersistenceError(SwarmError):
    """Durable store unavailable or rejected a write."""


# --- Agents ---
class AgentError(SwarmError):
    """Agent-level processing failure."""


class UnsupportedTaskError(AgentError):
    """Task type is not accepted by the receiving agent."""

    def __init__(self, agent_id: str, task_type: str):
        self.agent_id = agent_id
        self.task_type = task_type
        super().__init__(f"Unsupported task type: {task_type}")


class PlanningError(AgentError):
    """An executor could not build a plan from its inputs."""


# --- Coordination ---
class CoordinationError(SwarmError):
    """Registry or routing misuse (unknown agent, wrong event loop)."""
