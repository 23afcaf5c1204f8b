"""
FastAPI application entry point: admin campaign API, health and metrics.
"""
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from campaign_engine.api.dependencies import get_campaign_service, get_resolver, get_store
from campaign_engine.api.middleware.error_handler import (
    AppException,
    app_exception_handler,
    campaign_engine_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)
from campaign_engine.api.routes import campaigns
from campaign_engine.lib.db import init_db
from campaign_engine.lib.errors import CampaignEngineError
from campaign_engine.lib.logging import get_logger, set_correlation_id
from campaign_engine.lib.metrics import get_metrics_collector
from campaign_engine.lib.settings import settings

logger = get_logger(__name__)


# Correlation ID middleware
class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation_id to all requests for distributed tracing.
    Accepts X-Correlation-ID from incoming requests or generates a new one.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))

        # Store in request state for access in route handlers
        request.state.correlation_id = correlation_id
        set_correlation_id(correlation_id)

        logger.info(
            "Incoming request",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "client": request.client.host if request.client else None,
            }
        )

        response = await call_next(request)

        response.headers["X-Correlation-ID"] = correlation_id

        logger.info(
            "Response sent",
            extra={
                "correlation_id": correlation_id,
                "status_code": response.status_code,
            }
        )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup/shutdown events.

    Creates the campaign tables and seeds the default templates into an
    empty store.
    """
    logger.info(f"{settings.app_name} starting up...")
    init_db()
    get_campaign_service(get_store(), get_resolver()).seed_default_templates()
    yield
    logger.info(f"{settings.app_name} shutting down...")


app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description="Scheduling, lifecycle and automation core for AI engagement campaigns",
    lifespan=lifespan,
)


app.add_middleware(CorrelationIdMiddleware)


# Register exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(CampaignEngineError, campaign_engine_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


app.include_router(campaigns.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics_endpoint():
    """
    Prometheus-compatible metrics endpoint.

    Metrics exposed:
    - campaign_ticks_total: Ticks run
    - campaign_tick_outcomes_total: Per-campaign tick outcomes
    - campaign_occurrences_total: Confirmed occurrences by frequency
    - campaign_execution_failures_total: Failed resolutions/executions
    - campaign_evaluations_total: Automation evaluations by result
    - campaign_adjustments_total: Levers pulled
    - campaign_audience_resolutions_total: Audience resolutions by status

    Returns:
        Prometheus text format metrics
    """
    metrics = get_metrics_collector()
    return PlainTextResponse(
        content=metrics.export_prometheus(),
        media_type="text/plain; version=0.0.4; charset=utf-8"
    )
