"""Structured logging for relstore.

Every module logs through ``get_logger(__name__)``; events carry the
emitting component (``storage_engine``, ``view_engine``, ...) and, when a
span is active, the OpenTelemetry trace and span ids so log lines can be
joined with commit and refresh traces.

Use ``log_context`` to attach fields such as ``txn_id`` to every event
logged inside a block, including events from lower layers.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, TextIO

import structlog
from opentelemetry import trace
from structlog.types import EventDict, Processor, WrappedLogger


def add_trace_context(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Attach the ids of the current span, if any."""
    context = trace.get_current_span().get_span_context()
    if context.is_valid:
        event_dict["trace_id"] = format(context.trace_id, "032x")
        event_dict["span_id"] = format(context.span_id, "016x")
    return event_dict


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    stream: TextIO | None = None,
) -> structlog.BoundLogger:
    """
    Configure structlog for the process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: 'json' for one object per line, 'console' for humans
        stream: Output stream (stdout by default)

    Returns:
        The root relstore logger
    """
    numeric_level = getattr(logging, level.upper())
    stream = stream or sys.stdout
    logging.basicConfig(format="%(message)s", stream=stream, level=numeric_level)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_trace_context,
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        # Table and person names are logged verbatim
        renderer: Processor = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )
    return get_logger("relstore")


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """
    Get a logger bound to the component that owns ``name``.

    ``relstore.domain.services.view_engine`` logs as ``component=view_engine``.
    """
    context = dict(initial_context)
    if name:
        context.setdefault("component", name.rsplit(".", 1)[-1])
    return structlog.get_logger(name, **context)


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """Bind fields to every event logged in this block, on this thread."""
    with structlog.contextvars.bound_contextvars(**values):
        yield
