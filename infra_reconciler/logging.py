"""Infra Reconciler — Structured logging configuration.

Uses structlog for structured, levelled logging with consistent key names
across all layers.  All log entries include:
    - timestamp (ISO-8601)
    - level
    - module (Python logger name)
    - run_id / resource_id (bound via context variables when available)
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

import structlog
from structlog.types import EventDict, WrappedLogger

# Run-scoped context, copied into every log record while set.
_ctx_run_id: ContextVar[str | None] = ContextVar("run_id", default=None)
_ctx_resource_id: ContextVar[str | None] = ContextVar("resource_id", default=None)


def bind_run_context(run_id: str) -> None:
    """Bind the run id to the current async task."""
    _ctx_run_id.set(run_id)


def clear_run_context() -> None:
    _ctx_run_id.set(None)
    _ctx_resource_id.set(None)


@contextmanager
def resource_context(resource_id: str) -> Iterator[None]:
    """Tag log records emitted inside the block with *resource_id*."""
    token = _ctx_resource_id.set(resource_id)
    try:
        yield
    finally:
        _ctx_resource_id.reset(token)


def current_run_context() -> dict[str, str]:
    """Return the bound run_id / resource_id, omitting unset keys."""
    context = {"run_id": _ctx_run_id.get(), "resource_id": _ctx_resource_id.get()}
    return {key: value for key, value in context.items() if value is not None}


# ---------------------------------------------------------------------------
# Custom processors
# ---------------------------------------------------------------------------


def _inject_context_vars(
    _logger: WrappedLogger, _method: str, event_dict: EventDict
) -> EventDict:
    """Add the run context to every log record without overriding explicit keys."""
    for key, value in current_run_context().items():
        event_dict.setdefault(key, value)
    return event_dict


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def configure_logging(
    level: str = "info",
    format: str = "console",
    log_file: str | None = None,
) -> None:
    """Configure structlog and stdlib logging.

    Call once at CLI startup, before any log statements.  Logs go to stderr
    so that command output on stdout stays machine-readable.

    Args:
        level:    One of debug, info, warning, error, critical.
        format:   ``"console"`` for human-readable output, ``"json"`` for
                  machine-readable structured logs.
        log_file: Optional path to write logs to in addition to stderr.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _inject_context_vars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    handlers.append(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(level.upper())

    # Silence noisy third-party loggers.
    for noisy in ("aiosqlite", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger for *name*.

    Usage::

        log = get_logger(__name__)
        log.info("op_applied", resource_id="secret/db-password", action="create")
    """
    return structlog.get_logger(name)
