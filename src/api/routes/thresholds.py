"""Threshold management endpoints."""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from src.alerts.engine import AlertEngine
from src.alerts.schemas import AlertThreshold
from src.api.auth import verify_api_key
from src.api.dependencies import get_alert_engine
from src.api.models import (
    ErrorResponse,
    ThresholdCreateRequest,
    ThresholdItem,
    ThresholdsResponse,
    ThresholdUpdateRequest,
)

logger = structlog.get_logger(__name__)
router = APIRouter()

_ERRORS = {
    401: {"model": ErrorResponse, "description": "Invalid API key"},
    404: {"model": ErrorResponse, "description": "Threshold not found"},
    422: {"model": ErrorResponse, "description": "Invalid threshold"},
}


def _to_item(threshold: AlertThreshold) -> ThresholdItem:
    return ThresholdItem(**threshold.to_dict())


# ── POST /thresholds ──


@router.post(
    "/thresholds",
    response_model=ThresholdItem,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Create a threshold",
)
async def create_threshold(
    request: ThresholdCreateRequest,
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> ThresholdItem:
    spec = request.model_dump(exclude_none=True)
    threshold = engine.create_threshold(spec)
    logger.info(
        "Threshold created",
        threshold_id=threshold.threshold_id,
        metric=threshold.metric,
        severity=threshold.severity,
    )
    return _to_item(threshold)


# ── GET /thresholds ──


@router.get(
    "/thresholds",
    response_model=ThresholdsResponse,
    responses=_ERRORS,
    summary="List thresholds",
    description="List thresholds ordered by creation time, optionally filtered by enabled flag.",
)
async def list_thresholds(
    enabled: bool | None = Query(default=None, description="Filter by enabled flag"),
    metric: str | None = Query(default=None, description="Filter by metric key"),
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> ThresholdsResponse:
    start_time = time.perf_counter()

    thresholds = engine.list_thresholds(enabled=enabled)
    if metric is not None:
        thresholds = [t for t in thresholds if t.metric == metric]
    items = [_to_item(t) for t in thresholds]

    latency_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        "Thresholds listed",
        total=len(items),
        enabled=enabled,
        latency_ms=round(latency_ms, 2),
    )
    return ThresholdsResponse(
        thresholds=items,
        total=len(items),
        latency_ms=round(latency_ms, 2),
    )


# ── GET /thresholds/{threshold_id} ──


@router.get(
    "/thresholds/{threshold_id}",
    response_model=ThresholdItem,
    responses=_ERRORS,
    summary="Get a threshold",
)
async def get_threshold(
    threshold_id: str,
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> ThresholdItem:
    return _to_item(engine.get_threshold(threshold_id))


# ── PATCH /thresholds/{threshold_id} ──


@router.patch(
    "/thresholds/{threshold_id}",
    response_model=ThresholdItem,
    responses=_ERRORS,
    summary="Update a threshold",
    description="Apply a partial update. Only the fields present in the body change.",
)
async def update_threshold(
    threshold_id: str,
    request: ThresholdUpdateRequest,
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> ThresholdItem:
    partial = request.model_dump(exclude_unset=True)
    if not partial:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No fields to update",
        )
    threshold = engine.update_threshold(threshold_id, partial)
    logger.info("Threshold updated", threshold_id=threshold_id, fields=sorted(partial))
    return _to_item(threshold)


# ── DELETE /thresholds/{threshold_id} ──


@router.delete(
    "/thresholds/{threshold_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_ERRORS,
    summary="Delete a threshold",
)
async def delete_threshold(
    threshold_id: str,
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> Response:
    if not engine.delete_threshold(threshold_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Threshold {threshold_id!r} not found",
        )
    logger.info("Threshold deleted", threshold_id=threshold_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── POST /thresholds/{threshold_id}/enable | disable ──


@router.post(
    "/thresholds/{threshold_id}/enable",
    response_model=ThresholdItem,
    responses=_ERRORS,
    summary="Enable a threshold",
)
async def enable_threshold(
    threshold_id: str,
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> ThresholdItem:
    return _to_item(engine.enable_threshold(threshold_id))


@router.post(
    "/thresholds/{threshold_id}/disable",
    response_model=ThresholdItem,
    responses=_ERRORS,
    summary="Disable a threshold",
)
async def disable_threshold(
    threshold_id: str,
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> ThresholdItem:
    return _to_item(engine.disable_threshold(threshold_id))
