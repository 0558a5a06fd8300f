"""Structured logging for kubewatchd.

Every component logs through structlog. Production output is one JSON object
per line on stderr; ``console`` format renders the same events for a terminal.
Session tasks bind ``path`` and ``context`` through contextvars so every line
they emit can be attributed to one kubeconfig.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import structlog


def setup_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog processors and the stderr logger factory."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    renderer = (
        structlog.dev.ConsoleRenderer(colors=False)
        if fmt == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]


def bind_session(path: Path, context_name: str = "") -> None:
    """Attach session identity to every log line emitted by the current task.

    asyncio copies the context when a task is created, so bindings made inside
    a session task never leak into the supervisor or sibling sessions.
    """
    structlog.contextvars.bind_contextvars(path=str(path))
    if context_name:
        structlog.contextvars.bind_contextvars(context=context_name)
