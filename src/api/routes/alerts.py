"""Alert endpoints for listing alerts and driving their lifecycle."""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.alerts.engine import AlertEngine
from src.alerts.errors import AlertEngineError
from src.alerts.schemas import VALID_SEVERITIES, VALID_STATUSES, Alert
from src.api.auth import verify_api_key
from src.api.dependencies import get_alert_engine
from src.api.models import (
    AlertItem,
    AlertMetricsResponse,
    AlertsResponse,
    AlertSuppressRequest,
    AlertTransitionRequest,
    ErrorResponse,
)

logger = structlog.get_logger(__name__)
router = APIRouter()

_TRANSITION_ERRORS = {
    401: {"model": ErrorResponse, "description": "Invalid API key"},
    404: {"model": ErrorResponse, "description": "Alert not found"},
    409: {"model": ErrorResponse, "description": "Transition not allowed from the current status"},
    422: {"model": ErrorResponse, "description": "Missing actor"},
}


def _to_item(alert: Alert) -> AlertItem:
    return AlertItem(**alert.to_dict())


# ── GET /alerts ──


@router.get(
    "/alerts",
    response_model=AlertsResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        422: {"model": ErrorResponse, "description": "Invalid filter parameter"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="List alerts",
    description=(
        "List alerts with optional filtering by status, severity, metric, "
        "and project. Ordered by most recent first."
    ),
)
async def list_alerts(
    status_filter: str | None = Query(
        default=None,
        alias="status",
        description="Filter by status: active, acknowledged, resolved, suppressed",
    ),
    severity: str | None = Query(
        default=None,
        description="Filter by severity: info, warning, critical, emergency",
    ),
    metric: str | None = Query(default=None, description="Filter by metric key"),
    project_id: str | None = Query(default=None, description="Filter by context project"),
    limit: int = Query(default=100, ge=1, le=1000, description="Maximum alerts to return"),
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> AlertsResponse:
    start_time = time.perf_counter()

    try:
        if status_filter and status_filter not in VALID_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=(
                    f"Invalid status {status_filter!r}. "
                    f"Must be one of: {sorted(VALID_STATUSES)}"
                ),
            )
        if severity and severity not in VALID_SEVERITIES:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=(
                    f"Invalid severity {severity!r}. "
                    f"Must be one of: {sorted(VALID_SEVERITIES)}"
                ),
            )

        alerts = engine.list_alerts(
            status=status_filter,
            severity=severity,
            metric=metric,
            project_id=project_id,
            limit=limit,
        )
        items = [_to_item(a) for a in alerts]

        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Alerts listed",
            total=len(items),
            status=status_filter,
            severity=severity,
            latency_ms=round(latency_ms, 2),
        )
        return AlertsResponse(
            alerts=items,
            total=len(items),
            latency_ms=round(latency_ms, 2),
        )

    except (HTTPException, AlertEngineError):
        raise
    except Exception as e:
        logger.error(f"Failed to list alerts: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list alerts: {str(e)}",
        )


# ── GET /alerts/metrics ──


@router.get(
    "/alerts/metrics",
    response_model=AlertMetricsResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid API key"}},
    summary="Alert metrics",
    description=(
        "Counts by status, severity and metric, mean acknowledge-to-resolve "
        "time, and the most frequently triggered alerts."
    ),
)
async def alert_metrics(
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> AlertMetricsResponse:
    return AlertMetricsResponse(**engine.get_metrics().to_dict())


# ── GET /alerts/{alert_id} ──


@router.get(
    "/alerts/{alert_id}",
    response_model=AlertItem,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Alert not found"},
    },
    summary="Get an alert",
)
async def get_alert(
    alert_id: str,
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> AlertItem:
    return _to_item(engine.get_alert(alert_id))


# ── POST /alerts/{alert_id}/acknowledge ──


@router.post(
    "/alerts/{alert_id}/acknowledge",
    response_model=AlertItem,
    responses=_TRANSITION_ERRORS,
    summary="Acknowledge an alert",
    description="Acknowledge an active alert. Acknowledging twice is a no-op.",
)
async def acknowledge_alert(
    alert_id: str,
    request: AlertTransitionRequest,
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> AlertItem:
    alert = await engine.acknowledge_alert(alert_id, request.actor_id)
    logger.info("Alert acknowledged", alert_id=alert_id, actor_id=request.actor_id)
    return _to_item(alert)


# ── POST /alerts/{alert_id}/resolve ──


@router.post(
    "/alerts/{alert_id}/resolve",
    response_model=AlertItem,
    responses=_TRANSITION_ERRORS,
    summary="Resolve an alert",
    description="Resolve an alert from any non-resolved state. Resolving twice is a no-op.",
)
async def resolve_alert(
    alert_id: str,
    request: AlertTransitionRequest,
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> AlertItem:
    alert = await engine.resolve_alert(alert_id, request.actor_id, request.notes)
    logger.info("Alert resolved", alert_id=alert_id, actor_id=request.actor_id)
    return _to_item(alert)


# ── POST /alerts/{alert_id}/suppress ──


@router.post(
    "/alerts/{alert_id}/suppress",
    response_model=AlertItem,
    responses=_TRANSITION_ERRORS,
    summary="Suppress an alert",
)
async def suppress_alert(
    alert_id: str,
    request: AlertSuppressRequest | None = None,
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> AlertItem:
    request = request or AlertSuppressRequest()
    alert = await engine.suppress_alert(alert_id, request.actor_id, request.reason)
    logger.info("Alert suppressed", alert_id=alert_id, reason=request.reason)
    return _to_item(alert)
