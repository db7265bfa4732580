"""Tests for AlertBroadcaster."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from src.alerts.broadcaster import AlertBroadcaster
from src.alerts.events import EventBus
from src.alerts.schemas import Alert

from tests.conftest import T0


def _alert(severity="critical", metric="daily_ai_cost") -> Alert:
    return Alert(
        threshold_id="t-1",
        metric=metric,
        current_value=150.0,
        expected_value=100.0,
        severity=severity,
        title=f"{severity.upper()}: Daily AI Cost Limit",
        description="over budget",
        triggered_at=T0,
    )


def _ws():
    ws = AsyncMock()
    ws.send_text = AsyncMock()
    return ws


class TestConnections:

    def test_connect_and_disconnect(self):
        broadcaster = AlertBroadcaster(max_connections=2)
        a, b, c = _ws(), _ws(), _ws()

        assert broadcaster.connect(a) is True
        assert broadcaster.connect(b, severity="critical") is True
        assert broadcaster.connect(c) is False
        assert broadcaster.active_connections == 2

        broadcaster.disconnect(a)
        broadcaster.disconnect(a)
        assert broadcaster.active_connections == 1


class TestBroadcast:

    @pytest.mark.asyncio
    async def test_filters(self):
        broadcaster = AlertBroadcaster()
        everything, critical, other_metric = _ws(), _ws(), _ws()
        broadcaster.connect(everything)
        broadcaster.connect(critical, severity="critical")
        broadcaster.connect(other_metric, metric="monthly_ai_cost")

        payload = {"type": "alert_triggered", "alert": _alert().to_dict()}
        delivered = await broadcaster.broadcast(payload)

        assert delivered == 2
        everything.send_text.assert_awaited_once_with(json.dumps(payload))
        critical.send_text.assert_awaited_once()
        other_metric.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_send_disconnects(self):
        broadcaster = AlertBroadcaster()
        dead = _ws()
        dead.send_text.side_effect = RuntimeError("closed")
        broadcaster.connect(dead)

        assert await broadcaster.broadcast({"alert": _alert().to_dict()}) == 0
        assert broadcaster.active_connections == 0


class TestBusIntegration:

    @pytest.mark.asyncio
    async def test_events_reach_clients(self):
        bus = EventBus()
        broadcaster = AlertBroadcaster(heartbeat_interval=3600)
        ws = _ws()
        await broadcaster.start(bus)
        broadcaster.connect(ws)

        await bus.emit("alert_acknowledged", _alert())
        for _ in range(50):
            if ws.send_text.await_count:
                break
            await asyncio.sleep(0.01)

        message = json.loads(ws.send_text.call_args.args[0])
        assert message["type"] == "alert_acknowledged"
        assert message["alert"]["severity"] == "critical"

        await broadcaster.stop()
        assert broadcaster.running is False
        assert len(bus) == 0

    @pytest.mark.asyncio
    async def test_no_clients_nothing_queued(self):
        broadcaster = AlertBroadcaster()
        bus = EventBus()
        bus.subscribe(broadcaster.on_event)
        await bus.emit("alert_triggered", _alert())
        assert broadcaster._queue.qsize() == 0

    @pytest.mark.asyncio
    async def test_heartbeat(self):
        broadcaster = AlertBroadcaster(heartbeat_interval=0.01)
        ws = _ws()
        broadcaster.connect(ws)
        await broadcaster.start(EventBus())

        await asyncio.sleep(0.05)
        await broadcaster.stop()

        message = json.loads(ws.send_text.call_args_list[0].args[0])
        assert message["type"] == "heartbeat"

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        bus = EventBus()
        broadcaster = AlertBroadcaster()
        await broadcaster.start(bus)
        await broadcaster.start(bus)
        assert len(bus) == 1
        await broadcaster.stop()
