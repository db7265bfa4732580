"""WebSocket endpoint for real-time alert streaming.

Clients connect to ``/ws/alerts`` with optional ``severity`` and ``metric``
filters and receive every lifecycle event (triggered, acknowledged,
resolved, suppressed) of matching alerts as JSON.

Auth is via ``api_key`` query parameter since browsers cannot set
custom headers on WebSocket upgrade requests.
"""

import json
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from src.alerts.schemas import VALID_SEVERITIES
from src.api.auth import is_valid_api_key
from src.api.dependencies import get_alert_broadcaster
from src.config.settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/alerts")
async def ws_alerts(
    ws: WebSocket,
    severity: str | None = Query(default=None),
    metric: str | None = Query(default=None),
    api_key: str | None = Query(default=None),
) -> None:
    """Stream alert events.

    Query parameters:
        severity: Filter by alert severity (info, warning, critical, emergency).
        metric: Filter by metric key.
        api_key: API key for authentication.
    """
    if not get_settings().ws_alerts_enabled:
        await ws.close(code=1008, reason="WebSocket alerts not enabled")
        return

    if not is_valid_api_key(api_key):
        await ws.close(code=1008, reason="Invalid or missing API key")
        return

    if severity and severity not in VALID_SEVERITIES:
        await ws.close(code=1008, reason=f"Invalid severity: {severity}")
        return

    broadcaster = get_alert_broadcaster()
    if broadcaster is None:
        await ws.close(code=1011, reason="Broadcaster not available")
        return

    await ws.accept()

    if not broadcaster.connect(ws, severity=severity, metric=metric):
        await ws.close(code=1008, reason="Max connections reached")
        return

    try:
        while True:
            try:
                raw = await ws.receive_text()
            except WebSocketDisconnect:
                break
            try:
                msg = json.loads(raw)
            except (json.JSONDecodeError, TypeError):
                continue
            if isinstance(msg, dict) and msg.get("type") == "ping":
                await ws.send_text(json.dumps({"type": "pong"}))
    finally:
        broadcaster.disconnect(ws)
