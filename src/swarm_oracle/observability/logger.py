"""Structured logging for the swarm.

Module code logs through the stdlib (``logging.getLogger(__name__)`` with
%-style messages); ``setup_logging`` routes those records through structlog
so every line is rendered as JSON (or console text) with a timestamp,
level, logger name and the swarm id.  A pipeline pass opens a trace with
:func:`new_trace_id`, and every record emitted while it runs, from any
agent, carries that ``trace_id``.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Any

import structlog

from swarm_oracle.core.ids import prefixed_id

# Trace of the pipeline pass currently running in this context
_trace_id: ContextVar[str | None] = ContextVar("trace_id", default=None)


def new_trace_id() -> str:
    """Open a fresh trace (``trace_<hex>``) for the current context."""
    tid = prefixed_id("trace")
    _trace_id.set(tid)
    return tid


def _add_trace_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor: tag records emitted inside a pipeline pass."""
    tid = _trace_id.get()
    if tid is not None:
        event_dict.setdefault("trace_id", tid)
    return event_dict


def setup_logging(
    level: str = "INFO",
    format: str = "json",
    *,
    swarm_id: str | None = None,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        format: "json" for production, "console" for development.
        swarm_id: Bound to every record when given.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_trace_id,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[structlog.stdlib.ExtraAdder(), *shared],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)

    structlog.contextvars.clear_contextvars()
    if swarm_id:
        structlog.contextvars.bind_contextvars(swarm_id=swarm_id)
