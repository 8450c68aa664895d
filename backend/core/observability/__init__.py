"""Minimal observability: JSON logging with trace IDs and a liveness check."""
import uuid
from typing import Optional, TextIO

from . import logging as logging_module
from . import health


def generate_trace_id() -> str:
    """Generate a new trace ID for request/CLI context."""
    return str(uuid.uuid4())


def set_trace_id(trace_id: Optional[str] = None) -> str:
    """Set or generate trace ID for the current context and return it."""
    if not trace_id:
        trace_id = generate_trace_id()
    logging_module.set_trace_id(trace_id)
    return trace_id


def init_observability(level: Optional[str] = None, stream: Optional[TextIO] = None) -> None:
    """Initialize all observability components."""
    logging_module.init_logging(level, stream)


__all__ = [
    "logging_module",
    "health",
    "generate_trace_id",
    "set_trace_id",
    "init_observability",
]
