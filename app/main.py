"""
FastAPI application for the booking workflow

Bookings are persisted first; calendar sync and confirmation emails are
attempted inline and their outcomes recorded on the booking.
"""
import logging

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from app.config.settings import get_settings
from app.core.exceptions import BookingPersistenceError, BookingValidationError
from app.core.middleware import trace_id_middleware, request_logging_middleware
from app.core.monitoring import health_router
from app.core.tracing import get_trace_id
from app.api.v1.router import api_v1_router
from app.utils.my_logging import setup_logging

settings = get_settings()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    setup_logging()
    logger.info(f"{settings.APP_NAME} starting up")
    if not settings.email_configured:
        logger.warning("EMAIL_HOST / EMAIL_FROM_ADDRESS not set; booking emails will not be sent")

    yield

    logger.info(f"{settings.APP_NAME} shutting down")


def _error(status_code: int, message: str, request: Request) -> JSONResponse:
    trace_id = getattr(request.state, "trace_id", None) or get_trace_id()
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "trace_id": trace_id},
    )


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request"


def register_exception_handlers(app: FastAPI):

    @app.exception_handler(BookingValidationError)
    async def booking_validation_handler(request: Request, exc: BookingValidationError):
        return _error(400, exc.message, request)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error(400, _validation_message(exc), request)

    @app.exception_handler(BookingPersistenceError)
    async def booking_persistence_handler(request: Request, exc: BookingPersistenceError):
        logger.error(f"Booking could not be saved: {exc.message}")
        return _error(500, exc.message, request)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        trace_id = getattr(request.state, "trace_id", None) or get_trace_id()
        logger.error(
            f"Unhandled error on {request.method} {request.url.path}: {type(exc).__name__}: {exc}",
            exc_info=exc,
            extra={"trace_id": trace_id},
        )
        return _error(500, "Internal server error", request)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""

    app = FastAPI(
        title=settings.APP_NAME,
        description="Booking workflow with calendar sync and confirmation emails",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    # Add custom middleware (last added runs first, so the trace id is bound
    # before the request is logged)
    app.middleware("http")(request_logging_middleware)
    app.middleware("http")(trace_id_middleware)

    register_exception_handlers(app)

    # Include routers
    app.include_router(health_router, prefix="/health", tags=["monitoring"])
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/")
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": "0.1.0",
            "status": "running",
            "endpoints": {
                "bookings": "/api/v1/public/bookings",
                "health": "/health",
                "docs": "/docs" if settings.DEBUG else "disabled"
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
