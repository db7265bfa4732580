"""On-demand evaluation endpoint."""

import structlog
from fastapi import APIRouter, Depends

from src.alerts.engine import AlertEngine
from src.api.auth import verify_api_key
from src.api.dependencies import get_alert_engine
from src.api.models import CheckResponse, ErrorResponse

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post(
    "/monitoring/check",
    response_model=CheckResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid API key"}},
    summary="Run all threshold checks now",
    description=(
        "Evaluate every enabled threshold once, outside the periodic schedule. "
        "Cooldowns apply exactly as they do for scheduled passes."
    ),
)
async def run_checks(
    api_key: str = Depends(verify_api_key),
    engine: AlertEngine = Depends(get_alert_engine),
) -> CheckResponse:
    summary = await engine.monitor.run_once()
    logger.info(
        "Manual check completed",
        evaluated=summary.evaluated,
        breaches=summary.breaches,
        created=summary.created,
    )
    return CheckResponse(**summary.to_dict())
