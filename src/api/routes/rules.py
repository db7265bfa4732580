"""Alert rule management endpoints."""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from src.alerts.engine import AlertEngine
from src.alerts.schemas import AlertRule
from src.api.auth import verify_api_key
from src.api.dependencies import get_alert_engine
from src.api.models import (
    ErrorResponse,
    RuleCreateRequest,
    RuleItem,
    RulesResponse,
    RuleUpdateRequest,
)

logger = structlog.get_logger(__name__)
router = APIRouter()

_ERRORS = {
    401: {"model": ErrorResponse, "description": "Invalid API key"},
    404: {"model": ErrorResponse, "description": "Rule not found"},
    422: {"model": ErrorResponse, "description": "Invalid rule"},
}


def _to_item(rule: AlertRule) -> RuleItem:
    return RuleItem(**rule.to_dict())


@router.post(
    "/rules",
    response_model=RuleItem,
    status_code=status.HTTP_201_CREATED,
    responses=_ERRORS,
    summary="Create an alert rule",
    description=(
        "Create a rule mapping alert conditions to notification actions. "
        "Every enabled rule whose conditions all match an alert fires, "
        "in ascending priority order."
    ),
)
async def create_rule(
    request: RuleCreateRequest,
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> RuleItem:
    rule = engine.create_rule(request.model_dump())
    logger.info(
        "Rule created",
        rule_id=rule.rule_id,
        conditions=len(rule.conditions),
        actions=[a.type for a in rule.actions],
    )
    return _to_item(rule)


@router.get(
    "/rules",
    response_model=RulesResponse,
    responses=_ERRORS,
    summary="List alert rules",
)
async def list_rules(
    enabled: bool | None = Query(default=None, description="Filter by enabled flag"),
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> RulesResponse:
    start_time = time.perf_counter()
    items = [_to_item(r) for r in engine.list_rules(enabled=enabled)]
    latency_ms = (time.perf_counter() - start_time) * 1000
    logger.info("Rules listed", total=len(items), latency_ms=round(latency_ms, 2))
    return RulesResponse(rules=items, total=len(items), latency_ms=round(latency_ms, 2))


@router.get(
    "/rules/{rule_id}",
    response_model=RuleItem,
    responses=_ERRORS,
    summary="Get an alert rule",
)
async def get_rule(
    rule_id: str,
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> RuleItem:
    return _to_item(engine.get_rule(rule_id))


@router.patch(
    "/rules/{rule_id}",
    response_model=RuleItem,
    responses=_ERRORS,
    summary="Update an alert rule",
)
async def update_rule(
    rule_id: str,
    request: RuleUpdateRequest,
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> RuleItem:
    partial = request.model_dump(exclude_unset=True)
    if not partial:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No fields to update",
        )
    rule = engine.update_rule(rule_id, partial)
    logger.info("Rule updated", rule_id=rule_id, fields=sorted(partial))
    return _to_item(rule)


@router.delete(
    "/rules/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_ERRORS,
    summary="Delete an alert rule",
)
async def delete_rule(
    rule_id: str,
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> Response:
    if not engine.delete_rule(rule_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Rule {rule_id!r} not found",
        )
    logger.info("Rule deleted", rule_id=rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
