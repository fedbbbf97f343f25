# app/core/tracing.py
"""
Trace context for cross-system log correlation.

The trace id lives in a ContextVar so it follows the request through
sync code, async code and threadpool-executed dependencies alike.

Usage:
    token = set_trace_id(request.headers.get("X-Trace-ID"))
    try:
        ...
    finally:
        reset_trace_id(token)

    with trace_context(trace_id):
        ...  # e.g. inside a Celery task
"""
import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator, Optional

TRACE_HEADER = "X-Trace-ID"
LEGACY_TRACE_HEADER = "X-Correlation-ID"

_trace_id: ContextVar[str] = ContextVar("trace_id", default="")


def generate_trace_id() -> str:
    return str(uuid.uuid4())


def get_trace_id() -> str:
    """Return the trace id of the current context, or an empty string."""
    return _trace_id.get()


def set_trace_id(trace_id: Optional[str] = None) -> Token:
    """Set the trace id for the current context, generating one if missing.

    Returns:
        Token to pass to reset_trace_id()
    """
    return _trace_id.set(trace_id or generate_trace_id())


def reset_trace_id(token: Token) -> None:
    _trace_id.reset(token)


@contextmanager
def trace_context(trace_id: Optional[str] = None) -> Iterator[str]:
    """Run a block under a trace id, restoring the previous one afterwards"""
    token = set_trace_id(trace_id)
    try:
        yield get_trace_id()
    finally:
        reset_trace_id(token)


def ensure_trace_id() -> str:
    """Return the current trace id, starting a new trace if none is active"""
    current = get_trace_id()
    if current:
        return current
    set_trace_id()
    return get_trace_id()


class TraceIdFilter(logging.Filter):
    """Injects trace_id into every log record.

    A trace_id passed explicitly via `extra` is preserved.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        existing = getattr(record, "trace_id", None)
        record.trace_id = existing or get_trace_id() or "-"
        return True
