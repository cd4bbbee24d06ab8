"""Swarm agents.

Provides the BaseAgent ABC and the four role implementations: collectors,
analysts, deliberators and executors.
"""
