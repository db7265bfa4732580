"""Tests for AlertStore: breach recording, dedup, and lifecycle transitions."""

import asyncio
import typing
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from src.alerts.errors import AlertNotFoundError, AlertValidationError, InvalidTransitionError
from src.alerts.lifecycle import AlertStore, format_description, format_title
from src.alerts.persistence import PersistenceWriter
from src.alerts.schemas import Alert, AlertThreshold

from tests.conftest import T0


@pytest.fixture
def writer():
    return MagicMock(spec=PersistenceWriter)


@pytest.fixture
def store(writer, clock):
    return AlertStore(writer, clock=clock)


async def _breach(store, threshold, value=0.62, now=None):
    return await store.record_breach(threshold, value, abs(value - threshold.value), 24.0, now=now)


# ── Formatting ───────────────────────────────────────────


class TestFormatting:

    def test_title(self, threshold):
        assert format_title(threshold) == "WARNING: High AI Cost per Document"

    def test_description(self, threshold):
        assert format_description(threshold, 0.62) == (
            "Alert when AI cost per document exceeds $0.50. "
            "Current value: 0.62, Expected: 0.5"
        )

    def test_description_falls_back_to_name(self):
        threshold = AlertThreshold(
            name="Queue depth", metric="queue_depth", operator="gt",
            value=100, severity="info",
        )
        assert format_description(threshold, 150).startswith("Queue depth.")


# ── Breaches and dedup ───────────────────────────────────


class TestRecordBreach:

    @pytest.mark.asyncio
    async def test_first_breach_creates_alert(self, store, writer, threshold):
        alert, created = await _breach(store, threshold)

        assert created is True
        assert alert.status == "active"
        assert alert.threshold_id == threshold.threshold_id
        assert alert.current_value == 0.62
        assert alert.expected_value == 0.5
        assert alert.deviation_percentage == 24.0
        assert alert.triggered_at == T0
        writer.submit.assert_called_once_with("save_alert", alert)

    @pytest.mark.asyncio
    async def test_repeat_breach_increments_active_alert(self, store, writer, threshold, clock):
        first, _ = await _breach(store, threshold, 0.62)
        clock.advance(minutes=40)
        second, created = await _breach(store, threshold, 0.9)

        assert created is False
        assert second is first
        assert first.trigger_count == 2
        assert first.current_value == 0.9
        assert first.last_triggered == T0 + timedelta(minutes=40)
        assert first.triggered_at == T0
        assert len(store) == 1
        writer.submit.assert_called_with("update_alert", first)

    @pytest.mark.asyncio
    async def test_new_alert_after_acknowledge(self, store, threshold):
        first, _ = await _breach(store, threshold)
        await store.acknowledge(first.alert_id, "ops")
        second, created = await _breach(store, threshold)

        assert created is True
        assert second.alert_id != first.alert_id

    @pytest.mark.asyncio
    async def test_contexts_get_separate_alerts(self, store, threshold_spec):
        p1 = AlertThreshold(**threshold_spec, context={"project_id": "p1"}, threshold_id="t")
        p2 = AlertThreshold(**threshold_spec, context={"project_id": "p2"}, threshold_id="t")
        a, _ = await _breach(store, p1)
        b, created = await _breach(store, p2)
        assert created is True
        assert a.alert_id != b.alert_id

    @pytest.mark.asyncio
    async def test_concurrent_breaches_create_one_alert(self, store, threshold):
        results = await asyncio.gather(*(_breach(store, threshold) for _ in range(5)))

        created = [c for _, c in results]
        assert created.count(True) == 1
        assert len(store) == 1
        assert results[0][0].trigger_count == 5

    @pytest.mark.asyncio
    async def test_metadata_copied_not_shared(self, store, threshold):
        threshold.metadata["category"] = "cost"
        alert, _ = await _breach(store, threshold)
        alert.metadata["extra"] = True
        assert "extra" not in threshold.metadata

    @pytest.mark.asyncio
    async def test_active_for(self, store, threshold):
        assert store.active_for(threshold) is None
        alert, _ = await _breach(store, threshold)
        assert store.active_for(threshold) is alert


# ── Transitions ──────────────────────────────────────────


class TestTransitions:

    @pytest.mark.asyncio
    async def test_acknowledge(self, store, threshold, clock):
        alert, _ = await _breach(store, threshold)
        clock.advance(minutes=5)

        result, changed = await store.acknowledge(alert.alert_id, "alice")

        assert changed is True
        assert result.status == "acknowledged"
        assert result.acknowledged_by == "alice"
        assert result.acknowledged_at == T0 + timedelta(minutes=5)

    @pytest.mark.asyncio
    async def test_acknowledge_twice_is_noop(self, store, threshold, clock):
        alert, _ = await _breach(store, threshold)
        await store.acknowledge(alert.alert_id, "alice")
        clock.advance(minutes=5)

        result, changed = await store.acknowledge(alert.alert_id, "bob")

        assert changed is False
        assert result.acknowledged_by == "alice"
        assert result.acknowledged_at == T0

    @pytest.mark.asyncio
    async def test_acknowledge_requires_actor(self, store, threshold):
        alert, _ = await _breach(store, threshold)
        with pytest.raises(AlertValidationError):
            await store.acknowledge(alert.alert_id, "")

    @pytest.mark.asyncio
    async def test_acknowledge_resolved_rejected(self, store, threshold):
        alert, _ = await _breach(store, threshold)
        await store.resolve(alert.alert_id, "alice")
        with pytest.raises(InvalidTransitionError):
            await store.acknowledge(alert.alert_id, "alice")

    @pytest.mark.asyncio
    async def test_unknown_alert(self, store):
        with pytest.raises(AlertNotFoundError):
            await store.acknowledge("missing", "alice")

    @pytest.mark.asyncio
    async def test_resolve_is_idempotent(self, store, threshold, clock):
        alert, _ = await _breach(store, threshold)
        clock.advance(minutes=10)
        first, changed = await store.resolve(alert.alert_id, "alice", "fixed")
        resolved_at = first.resolved_at
        clock.advance(minutes=10)
        second, changed_again = await store.resolve(alert.alert_id, "bob", "again")

        assert changed is True
        assert changed_again is False
        assert second.resolved_at == resolved_at
        assert second.resolved_by == "alice"
        assert second.resolution_notes == "fixed"

    @pytest.mark.asyncio
    async def test_resolve_from_suppressed(self, store, threshold):
        alert, _ = await _breach(store, threshold)
        await store.suppress(alert.alert_id, "alice")
        result, changed = await store.resolve(alert.alert_id, "alice")
        assert changed is True
        assert result.status == "resolved"

    @pytest.mark.asyncio
    async def test_timestamps_are_ordered(self, store, threshold, clock):
        alert, _ = await _breach(store, threshold)
        clock.advance(minutes=-30)
        await store.acknowledge(alert.alert_id, "alice")
        await store.resolve(alert.alert_id, "alice")

        assert alert.triggered_at <= alert.acknowledged_at <= alert.resolved_at

    @pytest.mark.asyncio
    async def test_suppress_records_reason(self, store, threshold):
        alert, _ = await _breach(store, threshold)
        result, changed = await store.suppress(alert.alert_id, "alice", "maintenance window")

        assert changed is True
        assert result.status == "suppressed"
        assert result.suppressed_by == "alice"
        assert result.metadata["suppression_reason"] == "maintenance window"

    @pytest.mark.asyncio
    async def test_suppress_only_from_active(self, store, threshold):
        alert, _ = await _breach(store, threshold)
        await store.acknowledge(alert.alert_id, "alice")
        with pytest.raises(InvalidTransitionError):
            await store.suppress(alert.alert_id)


# ── Listing ──────────────────────────────────────────────


class TestList:

    @pytest.mark.asyncio
    async def test_filters_and_order(self, store, threshold_spec, clock):
        cost = AlertThreshold(**threshold_spec)
        latency = AlertThreshold(**{
            **threshold_spec, "metric": "api_response_time", "severity": "critical",
        })
        scoped = AlertThreshold(**threshold_spec, context={"project_id": "p1"})

        a, _ = await _breach(store, cost)
        clock.advance(minutes=1)
        b, _ = await _breach(store, latency)
        clock.advance(minutes=1)
        c, _ = await _breach(store, scoped)
        await store.acknowledge(a.alert_id, "alice")

        assert [x.alert_id for x in store.list()] == [c.alert_id, b.alert_id, a.alert_id]
        assert store.list(status="acknowledged") == [a]
        assert store.list(severity="critical") == [b]
        assert store.list(metric="api_response_time") == [b]
        assert store.list(project_id="p1") == [c]
        assert len(store.list(limit=2)) == 2

    def test_invalid_filters(self, store):
        with pytest.raises(AlertValidationError):
            store.list(status="open")
        with pytest.raises(AlertValidationError):
            store.list(severity="fatal")

    @pytest.mark.asyncio
    async def test_add_restores_dedup_slot(self, store, threshold):
        alert, _ = await _breach(store, threshold)
        restored = AlertStore()
        restored.add(alert)
        assert restored.active_for(threshold) is alert

    def test_annotations_resolve_to_builtin_list(self):
        hints = typing.get_type_hints(AlertStore.all)
        assert hints["return"] == list[Alert]

    @pytest.mark.asyncio
    async def test_forget_threshold_drops_locks(self, store, threshold, threshold_spec):
        other = AlertThreshold(**{**threshold_spec, "metric": "daily_ai_cost"}, created_at=T0, updated_at=T0)
        alert, _ = await _breach(store, threshold)
        await _breach(store, other)

        assert store.forget_threshold(threshold.threshold_id) == 1
        assert store.forget_threshold(threshold.threshold_id) == 0
        assert len(store._locks) == 1
        assert store.get(alert.alert_id) is alert
