"""WebSocket broadcaster streaming alert lifecycle events to dashboards.

Subscribes to the engine's ``EventBus`` and pushes each event to connected
WebSocket clients whose filters match. Events are handed to a bounded
queue by the bus listener and sent by a background task, so a slow client
never stalls the engine.

Pattern: Event-bus subscriber + background sender + per-client filters.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from starlette.websockets import WebSocket

from src.alerts.events import AlertEvent, EventBus
from src.alerts.schemas import utcnow

logger = logging.getLogger(__name__)


@dataclass
class ClientConnection:
    """A connected WebSocket client with optional filter preferences."""

    ws: WebSocket
    severity: str | None = None
    metric: str | None = None
    connected_at: datetime = field(default_factory=utcnow)


class AlertBroadcaster:
    """Manages WebSocket connections and the event-bus subscription.

    Lifecycle:
        1. ``start(bus)``: subscribe to the bus, spawn sender and heartbeat
        2. ``connect(ws, ...)`` / ``disconnect(ws)``: manage clients
        3. ``stop()``: unsubscribe and cancel background tasks
    """

    def __init__(
        self,
        max_connections: int = 100,
        heartbeat_interval: float = 30,
        queue_size: int = 1000,
    ) -> None:
        self._max_connections = max_connections
        self._heartbeat_interval = heartbeat_interval
        self._clients: dict[WebSocket, ClientConnection] = {}
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=queue_size)
        self._sender_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._unsubscribe = None
        self._running = False

    @property
    def active_connections(self) -> int:
        """Number of currently connected WebSocket clients."""
        return len(self._clients)

    @property
    def running(self) -> bool:
        return self._running

    def connect(
        self,
        ws: WebSocket,
        severity: str | None = None,
        metric: str | None = None,
    ) -> bool:
        """Register a new WebSocket client.

        Args:
            ws: WebSocket connection.
            severity: Only receive events for alerts of this severity.
            metric: Only receive events for alerts on this metric.

        Returns:
            True if registered, False if max connections reached.
        """
        if len(self._clients) >= self._max_connections:
            return False

        self._clients[ws] = ClientConnection(ws=ws, severity=severity, metric=metric)
        logger.info(
            "WebSocket client connected (total=%d, severity=%s, metric=%s)",
            len(self._clients), severity, metric,
        )
        return True

    def disconnect(self, ws: WebSocket) -> None:
        """Remove a WebSocket client."""
        removed = self._clients.pop(ws, None)
        if removed:
            logger.info("WebSocket client disconnected (total=%d)", len(self._clients))

    async def start(self, bus: EventBus) -> None:
        """Subscribe to the event bus and start background tasks."""
        if self._running:
            return

        self._running = True
        self._unsubscribe = bus.subscribe(self.on_event)
        self._sender_task = asyncio.create_task(
            self._send_loop(), name="alert-broadcaster-sender",
        )
        self._heartbeat_task = asyncio.create_task(
            self._send_heartbeats(), name="alert-broadcaster-heartbeat",
        )
        logger.info("AlertBroadcaster started (heartbeat=%ss)", self._heartbeat_interval)

    async def stop(self) -> None:
        """Unsubscribe, cancel background tasks, and forget clients."""
        self._running = False

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        for task in (self._sender_task, self._heartbeat_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._sender_task = None
        self._heartbeat_task = None

        self._clients.clear()
        logger.info("AlertBroadcaster stopped")

    def on_event(self, event: AlertEvent) -> None:
        """Event-bus listener: queue an event for delivery."""
        if not self._clients:
            return
        try:
            self._queue.put_nowait(event.to_dict())
        except asyncio.QueueFull:
            logger.warning(
                "Broadcast queue full, dropping %s for alert %s",
                event.type, event.alert.alert_id,
            )

    async def broadcast(self, payload: dict[str, Any]) -> int:
        """Send an event payload to every matching client.

        Returns:
            Number of clients the payload was delivered to.
        """
        alert = payload.get("alert", {})
        message = json.dumps(payload)
        delivered = 0
        disconnected: list[WebSocket] = []

        for ws, client in list(self._clients.items()):
            if not self._matches_filters(client, alert.get("severity"), alert.get("metric")):
                continue
            try:
                await ws.send_text(message)
                delivered += 1
            except Exception:
                disconnected.append(ws)

        for ws in disconnected:
            self.disconnect(ws)
        return delivered

    @staticmethod
    def _matches_filters(
        client: ClientConnection,
        alert_severity: str | None,
        alert_metric: str | None,
    ) -> bool:
        if client.severity and client.severity != alert_severity:
            return False
        if client.metric and client.metric != alert_metric:
            return False
        return True

    async def _send_loop(self) -> None:
        """Background task: drain the queue to clients."""
        while True:
            payload = await self._queue.get()
            try:
                await self.broadcast(payload)
            except Exception as e:
                logger.warning("Broadcast failed: %s", e)

    async def _send_heartbeats(self) -> None:
        """Background task: send periodic heartbeat messages to all clients."""
        while self._running:
            await asyncio.sleep(self._heartbeat_interval)
            if not self._clients:
                continue

            heartbeat = json.dumps({
                "type": "heartbeat",
                "timestamp": utcnow().isoformat(),
            })

            disconnected: list[WebSocket] = []
            for ws in list(self._clients):
                try:
                    await ws.send_text(heartbeat)
                except Exception:
                    disconnected.append(ws)

            for ws in disconnected:
                self.disconnect(ws)
