"""Tests for threshold, alert, rule and action records."""

from datetime import datetime, timezone

import pytest

from src.alerts.errors import AlertValidationError
from src.alerts.schemas import (
    Alert,
    AlertAction,
    AlertCondition,
    AlertRule,
    AlertThreshold,
    ThresholdContext,
    context_key,
)

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


def _threshold(**overrides) -> AlertThreshold:
    data = {
        "name": "High AI Cost per Document",
        "metric": "ai_cost_per_document",
        "operator": "gt",
        "value": 0.5,
        "severity": "warning",
    }
    data.update(overrides)
    return AlertThreshold(**data)


# ── ThresholdContext ─────────────────────────────────────


class TestThresholdContext:

    def test_absent_and_empty_share_a_key(self):
        assert context_key(None) == context_key(ThresholdContext())

    def test_key_is_order_independent(self):
        a = ThresholdContext.coerce({"project_id": "p1", "provider": "openai"})
        b = ThresholdContext.coerce({"provider": "openai", "project_id": "p1"})
        assert a.key() == b.key()

    def test_to_dict_drops_unset_dimensions(self):
        ctx = ThresholdContext(project_id="p1")
        assert ctx.to_dict() == {"project_id": "p1"}

    def test_unknown_dimension_rejected(self):
        with pytest.raises(AlertValidationError, match="Unknown context"):
            ThresholdContext.coerce({"region": "eu"})

    def test_non_string_dimension_rejected(self):
        with pytest.raises(AlertValidationError):
            ThresholdContext.coerce({"project_id": 42})

    def test_coerce_passes_through_none_and_instances(self):
        ctx = ThresholdContext(user_id="u1")
        assert ThresholdContext.coerce(None) is None
        assert ThresholdContext.coerce(ctx) is ctx


# ── AlertThreshold ───────────────────────────────────────


class TestAlertThreshold:

    def test_defaults(self):
        t = _threshold()
        assert t.enabled is True
        assert t.cooldown_minutes == 60
        assert t.context is None
        assert t.metadata == {}
        assert len(t.threshold_id) == 36

    @pytest.mark.parametrize("field,value", [
        ("operator", "between"),
        ("severity", "fatal"),
        ("value", "high"),
        ("value", True),
        ("cooldown_minutes", -1),
        ("name", "  "),
        ("metric", ""),
    ])
    def test_invalid_fields_rejected(self, field, value):
        with pytest.raises(AlertValidationError) as exc_info:
            _threshold(**{field: value})
        assert exc_info.value.field == field

    def test_empty_context_normalised_to_none(self):
        assert _threshold(context={}).context is None

    def test_context_mapping_coerced(self):
        t = _threshold(context={"project_id": "p1"})
        assert isinstance(t.context, ThresholdContext)
        assert t.context.project_id == "p1"

    def test_to_dict_from_dict_preserves_fields(self):
        t = _threshold(
            context={"project_id": "p1"},
            metadata={"category": "cost"},
            created_at=T0,
            updated_at=T0,
        )
        restored = AlertThreshold.from_dict(t.to_dict())
        assert restored == t

    def test_from_dict_missing_required_field(self):
        with pytest.raises(AlertValidationError, match="severity"):
            AlertThreshold.from_dict({
                "name": "x", "metric": "m", "operator": "gt", "value": 1,
            })

    def test_from_dict_unknown_field(self):
        with pytest.raises(AlertValidationError, match="Unknown field"):
            AlertThreshold.from_dict({
                "name": "x", "metric": "m", "operator": "gt", "value": 1,
                "severity": "info", "threshold": 3,
            })

    def test_from_dict_decodes_json_metadata(self):
        t = AlertThreshold.from_dict({
            "name": "x", "metric": "m", "operator": "gt", "value": 1,
            "severity": "info", "metadata": '{"category": "usage"}',
        })
        assert t.metadata == {"category": "usage"}


# ── Alert ────────────────────────────────────────────────


class TestAlert:

    def _alert(self, **overrides) -> Alert:
        data = {
            "threshold_id": "t-1",
            "metric": "ai_cost_per_document",
            "current_value": 0.62,
            "expected_value": 0.5,
            "severity": "warning",
            "title": "WARNING: High AI Cost per Document",
            "description": "Cost too high. Current value: 0.62, Expected: 0.5",
            "triggered_at": T0,
        }
        data.update(overrides)
        return Alert(**data)

    def test_defaults(self):
        alert = self._alert()
        assert alert.status == "active"
        assert alert.trigger_count == 1
        assert alert.last_triggered == T0
        assert alert.is_terminal is False

    def test_invalid_status(self):
        with pytest.raises(AlertValidationError):
            self._alert(status="closed")

    def test_dedup_key_uses_context(self):
        plain = self._alert()
        scoped = self._alert(context={"project_id": "p1"})
        assert plain.dedup_key == ("t-1", context_key(None))
        assert plain.dedup_key != scoped.dedup_key

    def test_to_dict_round_trip_with_timestamps(self):
        alert = self._alert(
            status="resolved",
            acknowledged_at=T0,
            acknowledged_by="ops",
            resolved_at=T0,
            resolved_by="ops",
            resolution_notes="scaled down",
        )
        data = alert.to_dict()
        assert data["resolved_at"] == T0.isoformat()
        assert Alert.from_dict(data) == alert


# ── Rules and actions ────────────────────────────────────


class TestAlertRule:

    def test_nested_mappings_coerced(self):
        rule = AlertRule(
            name="Critical to Slack",
            conditions=[{"metric": "severity", "operator": "eq", "value": "critical"}],
            actions=[{"type": "slack", "config": {"channel": "#ops"}}],
        )
        assert isinstance(rule.conditions[0], AlertCondition)
        assert isinstance(rule.actions[0], AlertAction)
        assert rule.priority == 1

    def test_requires_conditions_and_actions(self):
        with pytest.raises(AlertValidationError, match="condition"):
            AlertRule(name="r", conditions=[], actions=[{"type": "log"}])
        with pytest.raises(AlertValidationError, match="action"):
            AlertRule(
                name="r",
                conditions=[{"metric": "severity", "operator": "eq", "value": "info"}],
                actions=[],
            )

    def test_unknown_action_type(self):
        with pytest.raises(AlertValidationError):
            AlertAction(type="pagerduty")

    def test_negative_delay_rejected(self):
        with pytest.raises(AlertValidationError):
            AlertAction(type="log", delay_minutes=-5)

    def test_condition_requires_value_key(self):
        with pytest.raises(AlertValidationError, match="value"):
            AlertCondition.from_dict({"metric": "severity", "operator": "eq"})

    def test_condition_aggregation_validated(self):
        with pytest.raises(AlertValidationError):
            AlertCondition(metric="m", operator="gt", value=1, aggregation="p99")

    def test_from_dict_decodes_json_columns(self):
        rule = AlertRule.from_dict({
            "name": "r",
            "conditions": '[{"metric": "severity", "operator": "eq", "value": "info"}]',
            "actions": '[{"type": "log"}]',
            "metadata": "{}",
        })
        assert rule.conditions[0].value == "info"
        assert rule.actions[0].type == "log"

    def test_delay_seconds(self):
        assert AlertAction(type="email", delay_minutes=2).delay_seconds == 120
