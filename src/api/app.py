"""
FastAPI application factory.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.alerts.broadcaster import AlertBroadcaster
from src.alerts.engine import AlertEngine
from src.alerts.errors import AlertNotFoundError, AlertValidationError, InvalidTransitionError
from src.alerts.persistence import AlertStorage
from src.alerts.providers import MetricProviderRegistry
from src.alerts.repository import AlertRepository
from src.api.dependencies import set_alert_broadcaster, set_alert_engine, set_database
from src.api.middleware.timeout import TimeoutMiddleware
from src.api.routes import alerts, health, monitoring, rules, thresholds, ws_alerts
from src.config.settings import Settings, get_settings
from src.observability.metrics import get_metrics
from src.storage.database import Database

logger = structlog.get_logger(__name__)

SERVICE_NAME = "Metric Alerts API"
VERSION = "0.1.0"


async def _build_engine(
    settings: Settings,
    providers: MetricProviderRegistry | None,
) -> tuple[AlertEngine, Database | None]:
    """Engine backed by PostgreSQL when configured, otherwise in memory."""
    database: Database | None = None
    storage: AlertStorage | None = None
    if settings.database_configured:
        database = Database()
        await database.connect()
        repository = AlertRepository(database)
        await repository.create_tables()
        storage = repository

    engine = AlertEngine(
        providers=providers,
        storage=storage,
        metrics=get_metrics() if settings.metrics_enabled else None,
    )
    return engine, database


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Metric alerts API starting up")

    settings = get_settings()
    if settings.tracing_enabled:
        from src.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
            sample_ratio=settings.otel_sample_ratio,
        )

    engine: AlertEngine | None = app.state.engine
    database: Database | None = None
    if engine is None:
        engine, database = await _build_engine(settings, app.state.providers)

    await engine.start()
    set_alert_engine(engine)
    set_database(database)

    broadcaster: AlertBroadcaster | None = None
    if settings.ws_alerts_enabled:
        broadcaster = AlertBroadcaster(
            max_connections=settings.ws_max_connections,
            heartbeat_interval=settings.ws_heartbeat_seconds,
        )
        await broadcaster.start(engine.events)
        set_alert_broadcaster(broadcaster)
        logger.info("WebSocket alert broadcaster started")

    yield

    logger.info("Metric alerts API shutting down")
    if broadcaster is not None:
        await broadcaster.stop()
    await engine.stop()
    if database is not None:
        await database.close()
    set_alert_broadcaster(None)
    set_alert_engine(None)
    set_database(None)

    if settings.tracing_enabled:
        from src.observability.tracing import shutdown_tracing

        shutdown_tracing()


def _error_response(status_code: int, exc: Exception, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": error_type},
    )


def create_app(
    engine: AlertEngine | None = None,
    providers: MetricProviderRegistry | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        engine: Pre-built engine to serve. When omitted the lifespan builds
            one from settings and owns its database connection.
        providers: Metric providers for the engine built by the lifespan.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    openapi_tags = [
        {"name": "health", "description": "Service health checks"},
        {"name": "thresholds", "description": "Threshold management"},
        {"name": "rules", "description": "Alert rule management"},
        {"name": "alerts", "description": "Alert listing and lifecycle"},
        {"name": "monitoring", "description": "On-demand evaluation"},
        {"name": "websocket", "description": "Real-time WebSocket alerts"},
    ]

    app = FastAPI(
        title=SERVICE_NAME,
        description="""
Threshold alerting for AI document-processing metrics.

Thresholds compare provider-supplied metric values against configured
limits; breaches become alerts that move through
active → acknowledged → resolved (or suppressed), and rules route alerts
to log, dashboard, webhook, email, Slack, and Teams channels.

## Authentication

Requires `X-API-KEY` header for all requests except `/health`.
        """,
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=openapi_tags,
    )
    app.state.engine = engine
    app.state.providers = providers

    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Added before the logging middleware so the timeout wraps the whole request
    if settings.request_timeout_seconds > 0:
        app.add_middleware(
            TimeoutMiddleware,
            timeout_seconds=settings.request_timeout_seconds,
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        from src.observability.tracing import get_tracer, is_tracing_enabled

        request_id = (
            request.headers.get("X-Request-ID")
            or request.headers.get("X-Correlation-ID")
            or str(uuid.uuid4())
        )
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start_time = time.perf_counter()

        try:
            if is_tracing_enabled():
                tracer = get_tracer("metric-alerts.api")
                with tracer.start_as_current_span(
                    f"{request.method} {request.url.path}",
                    attributes={
                        "http.method": request.method,
                        "http.url": str(request.url),
                        "http.route": request.url.path,
                        "http.request_id": request_id,
                    },
                ) as span:
                    response = await call_next(request)
                    duration = time.perf_counter() - start_time
                    span.set_attribute("http.status_code", response.status_code)
                    span.set_attribute("http.duration_ms", round(duration * 1000, 2))
            else:
                response = await call_next(request)
                duration = time.perf_counter() - start_time

            response.headers["X-Request-ID"] = request_id
            logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2),
            )
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(AlertNotFoundError)
    async def not_found_handler(request: Request, exc: AlertNotFoundError):
        return _error_response(status.HTTP_404_NOT_FOUND, exc, "not_found")

    @app.exception_handler(InvalidTransitionError)
    async def transition_handler(request: Request, exc: InvalidTransitionError):
        return _error_response(status.HTTP_409_CONFLICT, exc, "invalid_transition")

    @app.exception_handler(AlertValidationError)
    async def validation_handler(request: Request, exc: AlertValidationError):
        return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, exc, "validation")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal"},
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(thresholds.router, tags=["thresholds"])
    app.include_router(rules.router, tags=["rules"])
    app.include_router(alerts.router, tags=["alerts"])
    app.include_router(monitoring.router, tags=["monitoring"])
    app.include_router(ws_alerts.router, tags=["websocket"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": SERVICE_NAME,
            "version": VERSION,
            "docs": "/docs",
        }

    return app
