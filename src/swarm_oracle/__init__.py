"""Multi-agent swarm oracle: collect, analyze, deliberate, execute."""

__version__ = "0.1.0"
