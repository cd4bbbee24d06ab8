"""Canonical ID and timestamp factories for the swarm.

All modules import from here instead of defining local _uuid()/_now() copies.

ID Categories
-------------
1. Internal IDs: UUID v4 strings (memory ids, trace ids)
2. Prefixed IDs: ``<prefix>_<hex>`` for entities operators read in logs
   (``msg_``, ``task_``, ``swarm_``)

Timestamp Rule
--------------
All timestamps are ``datetime`` with ``tzinfo=timezone.utc`` -- never naive.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def new_id() -> str:
    """Generate a new UUID v4 string.  Use for all internal entity IDs."""
    return str(uuid.uuid4())


def prefixed_id(prefix: str) -> str:
    """Generate a short, log-friendly id such as ``msg_3f2a9c0d1e4b``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)
