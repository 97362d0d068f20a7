"""
FastAPI application for clinic online booking

Public booking pages and the clinic dashboard API
"""
import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from clinicbook.api.middleware.rate_limit_middleware import RateLimitMiddleware
from clinicbook.api.v1.router import api_v1_router
from clinicbook.config.database import create_tables
from clinicbook.config.settings import get_settings
from clinicbook.core.middleware import correlation_id_middleware, request_logging_middleware
from clinicbook.core.monitoring import health_router
from clinicbook.core.results import ErrorCode
from clinicbook.services.booking.booking_service import BookingAdmissionController
from clinicbook.services.booking.idempotency_store import IdempotencyStore, build_idempotency_store
from clinicbook.utils.my_logging import setup_logging

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    setup_logging()
    if app.state.create_schema:
        create_tables()

    routes = sorted(
        (route.path, ",".join(sorted(route.methods)))
        for route in app.routes
        if isinstance(route, APIRoute)
    )
    logger.info(f"{settings.APP_NAME} starting up with {len(routes)} routes")
    for path, methods in routes:
        logger.debug(f"  {methods:12} {path}")

    yield

    logger.info(f"{settings.APP_NAME} shutting down")


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Render request validation errors in the {code, message, details} shape"""
    return JSONResponse(
        status_code=400,
        content={
            "code": ErrorCode.INVALID_BODY.value,
            "message": "Invalid request.",
            "details": jsonable_encoder(exc.errors()),
        },
    )


def create_app(
        idempotency_store: Optional[IdempotencyStore] = None,
        confirmation_enqueuer: Optional[Callable[..., None]] = None,
        public_rate_limit: Optional[int] = None,
        private_rate_limit: Optional[int] = None,
        create_schema: bool = True
) -> FastAPI:
    """
    Create and configure FastAPI application

    Collaborators default to the configured production ones; tests pass
    isolated instances.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        description="Multi-tenant clinic scheduling with public online booking",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    if idempotency_store is None:
        idempotency_store = build_idempotency_store(
            settings.IDEMPOTENCY_BACKEND, settings.IDEMPOTENCY_TTL_SECONDS
        )
    if public_rate_limit is None:
        public_rate_limit = settings.PUBLIC_RATE_LIMIT_PER_MINUTE
    if private_rate_limit is None:
        private_rate_limit = settings.PRIVATE_RATE_LIMIT_PER_MINUTE
    if confirmation_enqueuer is None:
        from clinicbook.tasks.notification_tasks import enqueue_booking_confirmation
        confirmation_enqueuer = enqueue_booking_confirmation

    app.state.create_schema = create_schema
    app.state.idempotency_store = idempotency_store
    app.state.booking_controller = BookingAdmissionController(idempotency_store)
    app.state.confirmation_enqueuer = confirmation_enqueuer

    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.add_middleware(
        RateLimitMiddleware,
        public_per_minute=public_rate_limit,
        private_per_minute=private_rate_limit,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "PUT"],
        allow_headers=["*"],
        expose_headers=["X-Idempotency-Key", "X-Correlation-ID", "Retry-After"],
    )

    # Registered last so they run first
    app.middleware("http")(request_logging_middleware)
    app.middleware("http")(correlation_id_middleware)

    app.include_router(health_router, prefix="/health", tags=["monitoring"])
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/")
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": "0.1.0",
            "status": "running",
            "endpoints": {
                "public": "/api/v1/public/",
                "dashboard": "/api/v1/dashboard/",
                "health": "/health",
                "docs": "/docs" if settings.DEBUG else "disabled"
            }
        }

    return app


if __name__ == "__main__":
    uvicorn.run(
        "clinicbook.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
