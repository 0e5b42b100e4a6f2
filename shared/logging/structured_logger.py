"""Structlog setup shared by every entry point.

Events are rendered as one JSON object per line (or coloured console output
for local runs) and routed through the standard library ``logging`` module
so uvicorn and third-party loggers end up in the same stream. Every entry
carries the application name and environment, any context bound with
``bind_context`` and, inside a recording span, the OpenTelemetry trace ids.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from opentelemetry import trace
from structlog.types import EventDict, Processor

_app_context: dict[str, str] = {
    "app": "cpu-load-service",
    "environment": "production",
}


def add_app_context(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp the configured application name and environment on an entry."""
    for key, value in _app_context.items():
        event_dict.setdefault(key, value)
    return event_dict


def add_trace_context(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Attach trace and span ids when the entry is logged inside a recording span."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def _processors(json_logs: bool) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_app_context,
        add_trace_context,
    ]
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    chain.append(renderer)
    return chain


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    service_name: Optional[str] = None,
    environment: Optional[str] = None,
) -> None:
    """Configure structlog and the root stdlib logger.

    Safe to call more than once; the latest call wins.

    Args:
        log_level: Root log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render JSON lines instead of console output
        service_name: Value of the ``app`` field on every entry
        environment: Value of the ``environment`` field on every entry
    """
    if service_name:
        _app_context["app"] = service_name
    if environment:
        _app_context["environment"] = environment

    structlog.configure(
        processors=_processors(json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # structlog renders the message; stdlib only writes it out
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
        force=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named ``name`` (usually ``__name__``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Add key/values to every entry logged from the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Drop previously bound keys from the current context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Drop everything bound in the current context."""
    structlog.contextvars.clear_contextvars()
