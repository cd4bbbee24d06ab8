"""Persistence gateways: in-memory, Postgres and Redis."""
