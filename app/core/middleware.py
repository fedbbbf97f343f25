# app/core/middleware.py
"""Custom middleware for request handling"""
import time
import logging
from starlette.requests import Request

from app.core.tracing import (
    TRACE_HEADER,
    LEGACY_TRACE_HEADER,
    get_trace_id,
    reset_trace_id,
    set_trace_id,
)

logger = logging.getLogger(__name__)


async def trace_id_middleware(request: Request, call_next):
    """Bind a trace id to the request so every log line and downstream call carries it"""
    incoming = request.headers.get(TRACE_HEADER) or request.headers.get(LEGACY_TRACE_HEADER)
    token = set_trace_id(incoming)
    trace_id = get_trace_id()
    request.state.trace_id = trace_id
    try:
        response = await call_next(request)
    finally:
        reset_trace_id(token)
    response.headers[TRACE_HEADER] = trace_id
    return response


async def request_logging_middleware(request: Request, call_next):
    """Log all incoming requests"""
    start_time = time.time()
    trace_id = getattr(request.state, "trace_id", None)

    logger.info(
        "Request started",
        extra={
            "trace_id": trace_id,
            "method": request.method,
            "url": str(request.url),
            "client": request.client.host if request.client else "unknown",
        }
    )

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"Request completed {request.method} {request.url.path} -> {response.status_code}",
        extra={
            "trace_id": trace_id,
            "method": request.method,
            "url": str(request.url),
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        }
    )

    return response
