"""Agent coordination: registry, messaging and swarm health."""
