"""Swarm orchestration: the task pipeline and the shared job scheduler."""
