"""Rule engine: maps alerts to the actions that should run for them.

Every enabled rule whose scope matches the alert's context and whose
conditions are all true fires; matches are ordered by ``(priority,
created_at)`` so that lower priority numbers run first.

Condition subjects resolve against the alert:

- the alert's own metric name -> ``current_value``
- an alert attribute name (``severity``, ``status``, ``trigger_count``, ...)
- ``metadata.<key>`` / ``context.<key>`` -> that entry

Any other subject makes the condition false.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from src.alerts.errors import AlertNotFoundError, AlertValidationError
from src.alerts.operators import evaluate_condition
from src.alerts.persistence import PersistenceWriter
from src.alerts.schemas import Alert, AlertCondition, AlertRule, utcnow

logger = logging.getLogger(__name__)

ALERT_ATTRIBUTES: frozenset[str] = frozenset({
    "severity",
    "status",
    "title",
    "description",
    "metric",
    "threshold_id",
    "current_value",
    "expected_value",
    "trigger_count",
    "deviation",
    "deviation_percentage",
})

_MISSING = object()


def resolve_subject(condition: AlertCondition, alert: Alert) -> Any:
    """Value a condition should be tested against, or ``_MISSING``."""
    subject = condition.metric
    if subject == alert.metric:
        return alert.current_value
    if subject in ALERT_ATTRIBUTES:
        return getattr(alert, subject)

    prefix, _, key = subject.partition(".")
    if key and prefix == "metadata":
        return alert.metadata.get(key, _MISSING)
    if key and prefix == "context":
        if alert.context is None:
            return _MISSING
        return alert.context.to_dict().get(key, _MISSING)
    return _MISSING


def condition_matches(condition: AlertCondition, alert: Alert) -> bool:
    subject = resolve_subject(condition, alert)
    if subject is _MISSING or subject is None:
        return False
    return evaluate_condition(condition.operator, subject, condition.value)


def scope_matches(rule: AlertRule, alert: Alert) -> bool:
    """A rule scope matches when every scoped dimension equals the alert's."""
    if not rule.context:
        return True
    alert_context = alert.context.to_dict() if alert.context else {}
    return all(alert_context.get(k) == v for k, v in rule.context.items() if v is not None)


class RuleEngine:
    """CRUD over alert rules plus matching."""

    def __init__(self, writer: PersistenceWriter | None = None) -> None:
        self._writer = writer
        self._rules: dict[str, AlertRule] = {}

    def create(self, spec: Mapping[str, Any]) -> AlertRule:
        """Validate and register a new rule.

        Raises:
            AlertValidationError: On missing, unknown, or invalid fields.
        """
        if not isinstance(spec, Mapping):
            raise AlertValidationError("rule must be a mapping")
        data = dict(spec)
        for name in ("rule_id", "created_at", "updated_at"):
            data.pop(name, None)

        rule = AlertRule.from_dict(data)
        self._rules[rule.rule_id] = rule
        self._mirror_save(rule)
        logger.info("Created rule %s (%s)", rule.rule_id, rule.name)
        return rule

    def add(self, rule: AlertRule, persist: bool = True) -> AlertRule:
        self._rules[rule.rule_id] = rule
        if persist:
            self._mirror_save(rule)
        return rule

    def update(self, rule_id: str, partial: Mapping[str, Any]) -> AlertRule:
        """Merge fields into a rule and re-validate the result.

        Raises:
            AlertNotFoundError: If no rule has this id.
            AlertValidationError: If the merged rule is invalid.
        """
        current = self._rules.get(rule_id)
        if current is None:
            raise AlertNotFoundError("rule", rule_id)

        changes = dict(partial)
        for name in ("rule_id", "created_at"):
            if name in changes and changes[name] != getattr(current, name):
                raise AlertValidationError(f"{name} cannot be changed", field=name)
            changes.pop(name, None)
        changes.pop("updated_at", None)

        data = current.to_dict()
        data.update(changes)
        data["updated_at"] = utcnow()
        updated = AlertRule.from_dict(data)

        self._rules[rule_id] = updated
        self._mirror_save(updated)
        logger.info("Updated rule %s: %s", rule_id, sorted(changes))
        return updated

    def delete(self, rule_id: str) -> bool:
        if self._rules.pop(rule_id, None) is None:
            return False
        if self._writer is not None:
            self._writer.delete_rule(rule_id)
        logger.info("Deleted rule %s", rule_id)
        return True

    def get(self, rule_id: str) -> AlertRule | None:
        return self._rules.get(rule_id)

    def list(self, enabled: bool | None = None) -> list[AlertRule]:
        """Rules in execution order, optionally filtered."""
        rules = sorted(self._rules.values(), key=lambda r: (r.priority, r.created_at))
        if enabled is None:
            return rules
        return [r for r in rules if r.enabled is enabled]

    def match(self, alert: Alert) -> list[AlertRule]:
        """All enabled rules that fire for an alert, in execution order."""
        return [
            rule for rule in self.list(enabled=True)
            if scope_matches(rule, alert)
            and all(condition_matches(c, alert) for c in rule.conditions)
        ]

    def __len__(self) -> int:
        return len(self._rules)

    def _mirror_save(self, rule: AlertRule) -> None:
        if self._writer is not None:
            self._writer.save_rule(rule)
