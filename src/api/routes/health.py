"""
Health check endpoint covering the engine and its storage.
"""

import time

import structlog
from fastapi import APIRouter, Depends

from src.alerts.engine import AlertEngine
from src.api.dependencies import get_database, peek_alert_engine
from src.api.models import ComponentHealth, HealthResponse
from src.storage.database import Database

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _check_database(db: Database | None) -> ComponentHealth:
    """Check database connectivity and measure latency."""
    if db is None:
        return ComponentHealth(status="disabled", details={"storage": "in-memory"})

    start = time.perf_counter()
    try:
        healthy = await db.health_check()
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="healthy" if healthy else "unhealthy",
            latency_ms=round(latency_ms, 2),
        )
    except Exception as e:
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="unhealthy",
            latency_ms=round(latency_ms, 2),
            details={"error": str(e)},
        )


def _check_persistence(engine: AlertEngine) -> ComponentHealth:
    writer = engine.writer
    return ComponentHealth(
        status="healthy" if writer.running else "unhealthy",
        details={"pending": writer.pending, "dropped": writer.dropped},
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Check the health of the alert engine and its dependencies.",
)
async def health_check(
    engine: AlertEngine | None = Depends(peek_alert_engine),
    db: Database | None = Depends(get_database),
) -> HealthResponse:
    """
    Check service health.

    Status logic:
    - unhealthy: engine not running or database down
    - degraded: persistence writer stopped or monitoring loop not running
    - healthy: all components operational
    """
    if engine is None or not engine.is_running:
        return HealthResponse(status="unhealthy")

    components: dict[str, ComponentHealth] = {
        "database": await _check_database(db),
        "persistence": _check_persistence(engine),
    }

    monitoring_running = engine.monitor.is_running
    if components["database"].status == "unhealthy":
        status = "unhealthy"
    elif components["persistence"].status == "unhealthy":
        status = "degraded"
    elif engine.config.monitoring_enabled and not monitoring_running:
        status = "degraded"
    else:
        status = "healthy"

    if status != "healthy":
        logger.warning("Health check degraded", status=status)

    return HealthResponse(
        status=status,
        engine_running=True,
        monitoring_running=monitoring_running,
        thresholds=len(engine.thresholds),
        rules=len(engine.rules),
        active_alerts=sum(1 for a in engine.alerts.all() if a.status == "active"),
        persistence_pending=engine.writer.pending,
        components=components,
    )
