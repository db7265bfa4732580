"""Schema definitions for thresholds, alerts, rules, and actions.

Every record is a dataclass that validates itself in ``__post_init__`` and
round-trips through ``to_dict()`` / ``from_dict()`` for the API and the
persistence layer. Literal aliases give static typing; the matching
``VALID_*`` frozensets are used for runtime validation.
"""

import json
import uuid
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Literal

from src.alerts.errors import AlertValidationError

ThresholdOperator = Literal["gt", "lt", "gte", "lte", "eq", "neq"]

VALID_OPERATORS: frozenset[str] = frozenset({
    "gt",
    "lt",
    "gte",
    "lte",
    "eq",
    "neq",
})

ConditionOperator = Literal[
    "gt", "lt", "gte", "lte", "eq", "neq", "contains", "not_contains",
]

VALID_CONDITION_OPERATORS: frozenset[str] = VALID_OPERATORS | {
    "contains",
    "not_contains",
}

AlertSeverity = Literal["info", "warning", "critical", "emergency"]

VALID_SEVERITIES: frozenset[str] = frozenset({
    "info",
    "warning",
    "critical",
    "emergency",
})

AlertStatus = Literal["active", "acknowledged", "resolved", "suppressed"]

VALID_STATUSES: frozenset[str] = frozenset({
    "active",
    "acknowledged",
    "resolved",
    "suppressed",
})

ActionType = Literal["log", "dashboard", "webhook", "email", "slack", "teams"]

VALID_ACTION_TYPES: frozenset[str] = frozenset({
    "log",
    "dashboard",
    "webhook",
    "email",
    "slack",
    "teams",
})

Aggregation = Literal["sum", "avg", "count", "min", "max", "median"]

VALID_AGGREGATIONS: frozenset[str] = frozenset({
    "sum",
    "avg",
    "count",
    "min",
    "max",
    "median",
})

CONTEXT_FIELDS: tuple[str, ...] = (
    "project_id",
    "user_id",
    "provider",
    "model",
    "template_id",
    "document_type",
)


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    raise AlertValidationError(f"Invalid timestamp {value!r}")


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_keys(
    cls: type,
    data: Mapping[str, Any],
    required: tuple[str, ...],
) -> None:
    """Reject mappings with missing required or unknown keys."""
    for name in required:
        if data.get(name) is None:
            raise AlertValidationError(
                f"Missing required field {name!r} for {cls.__name__}",
                field=name,
            )
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise AlertValidationError(
            f"Unknown field(s) for {cls.__name__}: {unknown}",
            field=unknown[0],
        )


def _require_text(value: Any, name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise AlertValidationError(f"{name} must be a non-empty string", field=name)


def _require_choice(value: Any, valid: frozenset[str], name: str) -> None:
    if value not in valid:
        raise AlertValidationError(
            f"Invalid {name} {value!r}. Must be one of: {sorted(valid)}",
            field=name,
        )


@dataclass(frozen=True)
class ThresholdContext:
    """Optional scoping dimensions narrowing which metric instance applies.

    An absent context and an empty context are the same context; ``key()``
    gives the canonical serialisation used for cooldown and dedup keys.
    """

    project_id: str | None = None
    user_id: str | None = None
    provider: str | None = None
    model: str | None = None
    template_id: str | None = None
    document_type: str | None = None

    def to_dict(self) -> dict[str, str]:
        """Set dimensions only."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def key(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    def is_empty(self) -> bool:
        return not self.to_dict()

    @classmethod
    def coerce(cls, value: Any) -> "ThresholdContext | None":
        """Build a context from a mapping, passing through instances and None.

        Raises:
            AlertValidationError: On unknown dimensions or non-string values.
        """
        if value is None or isinstance(value, ThresholdContext):
            return value
        if not isinstance(value, Mapping):
            raise AlertValidationError(
                f"context must be a mapping, got {type(value).__name__}",
                field="context",
            )
        unknown = sorted(set(value) - set(CONTEXT_FIELDS))
        if unknown:
            raise AlertValidationError(
                f"Unknown context dimension(s): {unknown}. "
                f"Must be among: {list(CONTEXT_FIELDS)}",
                field="context",
            )
        for name, dim in value.items():
            if dim is not None and not isinstance(dim, str):
                raise AlertValidationError(
                    f"context.{name} must be a string", field="context",
                )
        return cls(**value)


def context_key(context: ThresholdContext | None) -> str:
    """Canonical key for a possibly-absent context."""
    return (context or ThresholdContext()).key()


@dataclass
class AlertThreshold:
    """A named comparison of one metric against a configured value.

    Attributes:
        name: Human-readable name, used in alert titles.
        metric: Metric key understood by the metric provider registry.
        operator: Comparison operator (gt, lt, gte, lte, eq, neq).
        value: Numeric comparison operand.
        severity: Severity inherited by alerts this threshold produces.
        description: Longer explanation, used in alert descriptions.
        enabled: Disabled thresholds are never evaluated.
        cooldown_minutes: Minimum minutes between two triggers of the
            same threshold + context pair.
        context: Optional scoping dimensions.
        metadata: Free-form data copied onto alerts.
        threshold_id: UUID4 identifier.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
    """

    name: str
    metric: str
    operator: str
    value: float
    severity: str
    description: str = ""
    enabled: bool = True
    cooldown_minutes: float = 60
    context: ThresholdContext | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    threshold_id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        _require_text(self.name, "name")
        _require_text(self.metric, "metric")
        _require_choice(self.operator, VALID_OPERATORS, "operator")
        _require_choice(self.severity, VALID_SEVERITIES, "severity")
        if not _is_number(self.value):
            raise AlertValidationError(
                f"value must be numeric, got {self.value!r}", field="value",
            )
        if not _is_number(self.cooldown_minutes) or self.cooldown_minutes < 0:
            raise AlertValidationError(
                "cooldown_minutes must be a number >= 0", field="cooldown_minutes",
            )
        if not isinstance(self.enabled, bool):
            raise AlertValidationError("enabled must be a boolean", field="enabled")
        if self.metadata is None:
            self.metadata = {}
        self.context = ThresholdContext.coerce(self.context)
        if self.context is not None and self.context.is_empty():
            self.context = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "threshold_id": self.threshold_id,
            "name": self.name,
            "description": self.description,
            "metric": self.metric,
            "operator": self.operator,
            "value": self.value,
            "severity": self.severity,
            "enabled": self.enabled,
            "cooldown_minutes": self.cooldown_minutes,
            "context": self.context.to_dict() if self.context else None,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AlertThreshold":
        """Create a threshold from a dictionary.

        Raises:
            AlertValidationError: On missing, unknown, or invalid fields.
        """
        _check_keys(cls, data, ("name", "metric", "operator", "value", "severity"))
        kwargs = dict(data)
        for name in ("created_at", "updated_at"):
            if name in kwargs:
                kwargs[name] = _parse_datetime(kwargs[name]) or utcnow()
        metadata = kwargs.get("metadata")
        if isinstance(metadata, str):
            kwargs["metadata"] = json.loads(metadata)
        return cls(**kwargs)


@dataclass
class Alert:
    """The stateful record created by a threshold breach.

    Attributes:
        threshold_id: Threshold that produced the alert.
        metric: Metric name.
        current_value: Most recent breaching value.
        expected_value: The threshold's configured value.
        severity: Inherited from the threshold.
        title: Short summary, ``"<SEVERITY>: <threshold name>"``.
        description: Detailed description including the values.
        deviation: ``|current_value - expected_value|``.
        deviation_percentage: Deviation relative to the threshold value
            (0 when the threshold value is 0).
        status: active, acknowledged, resolved, or suppressed.
        context: Copied threshold context.
        metadata: Copied threshold metadata.
        trigger_count: Number of breaches folded into this alert.
        last_triggered: Time of the most recent breach.
    """

    threshold_id: str
    metric: str
    current_value: float
    expected_value: float
    severity: str
    title: str
    description: str
    deviation: float = 0.0
    deviation_percentage: float = 0.0
    status: str = "active"
    context: ThresholdContext | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    alert_id: str = field(default_factory=_new_id)
    triggered_at: datetime = field(default_factory=utcnow)
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution_notes: str | None = None
    suppressed_at: datetime | None = None
    suppressed_by: str | None = None
    trigger_count: int = 1
    last_triggered: datetime | None = None

    def __post_init__(self) -> None:
        _require_choice(self.severity, VALID_SEVERITIES, "severity")
        _require_choice(self.status, VALID_STATUSES, "status")
        if self.metadata is None:
            self.metadata = {}
        self.context = ThresholdContext.coerce(self.context)
        if self.context is not None and self.context.is_empty():
            self.context = None
        if self.last_triggered is None:
            self.last_triggered = self.triggered_at

    @property
    def dedup_key(self) -> tuple[str, str]:
        """(threshold_id, context key) pair identifying repeat breaches."""
        return (self.threshold_id, context_key(self.context))

    @property
    def is_terminal(self) -> bool:
        return self.status == "resolved"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "alert_id": self.alert_id,
            "threshold_id": self.threshold_id,
            "metric": self.metric,
            "current_value": self.current_value,
            "expected_value": self.expected_value,
            "deviation": self.deviation,
            "deviation_percentage": self.deviation_percentage,
            "severity": self.severity,
            "status": self.status,
            "title": self.title,
            "description": self.description,
            "context": self.context.to_dict() if self.context else None,
            "metadata": self.metadata,
            "triggered_at": self.triggered_at.isoformat(),
            "acknowledged_at": _isoformat(self.acknowledged_at),
            "acknowledged_by": self.acknowledged_by,
            "resolved_at": _isoformat(self.resolved_at),
            "resolved_by": self.resolved_by,
            "resolution_notes": self.resolution_notes,
            "suppressed_at": _isoformat(self.suppressed_at),
            "suppressed_by": self.suppressed_by,
            "trigger_count": self.trigger_count,
            "last_triggered": _isoformat(self.last_triggered),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Alert":
        """Create an Alert from a dictionary.

        Args:
            data: Dictionary with alert fields.

        Returns:
            Alert instance.
        """
        _check_keys(
            cls,
            data,
            ("threshold_id", "metric", "current_value", "expected_value",
             "severity", "title", "description"),
        )
        kwargs = dict(data)
        for name in (
            "triggered_at", "acknowledged_at", "resolved_at",
            "suppressed_at", "last_triggered",
        ):
            if name in kwargs:
                kwargs[name] = _parse_datetime(kwargs[name])
        if kwargs.get("triggered_at") is None:
            kwargs["triggered_at"] = utcnow()
        metadata = kwargs.get("metadata")
        if isinstance(metadata, str):
            kwargs["metadata"] = json.loads(metadata)
        return cls(**kwargs)


@dataclass
class AlertCondition:
    """One predicate of a rule.

    ``time_window_minutes`` and ``aggregation`` are carried as hints for
    metric providers; conditions are evaluated against point-in-time values.
    """

    metric: str
    operator: str
    value: Any
    time_window_minutes: float | None = None
    aggregation: str | None = None

    def __post_init__(self) -> None:
        _require_text(self.metric, "metric")
        _require_choice(self.operator, VALID_CONDITION_OPERATORS, "operator")
        if self.time_window_minutes is not None and (
            not _is_number(self.time_window_minutes) or self.time_window_minutes < 0
        ):
            raise AlertValidationError(
                "time_window_minutes must be a number >= 0",
                field="time_window_minutes",
            )
        if self.aggregation is not None:
            _require_choice(self.aggregation, VALID_AGGREGATIONS, "aggregation")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AlertCondition":
        if "value" not in data:
            raise AlertValidationError(
                "Missing required field 'value' for AlertCondition", field="value",
            )
        _check_keys(cls, data, ("metric", "operator"))
        return cls(**data)


@dataclass
class AlertAction:
    """One unit of outbound notification work.

    Attributes:
        type: Channel type (log, dashboard, webhook, email, slack, teams).
        config: Channel-specific settings (recipients, webhook_url,
            message, template, channel, ...).
        delay_minutes: Wait before executing; 0 executes immediately.
    """

    type: str
    config: dict[str, Any] = field(default_factory=dict)
    delay_minutes: float = 0

    def __post_init__(self) -> None:
        _require_choice(self.type, VALID_ACTION_TYPES, "type")
        if self.config is None:
            self.config = {}
        if not isinstance(self.config, Mapping):
            raise AlertValidationError("config must be a mapping", field="config")
        if not _is_number(self.delay_minutes) or self.delay_minutes < 0:
            raise AlertValidationError(
                "delay_minutes must be a number >= 0", field="delay_minutes",
            )

    @property
    def delay_seconds(self) -> float:
        return float(self.delay_minutes) * 60

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "config": dict(self.config),
            "delay_minutes": self.delay_minutes,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AlertAction":
        _check_keys(cls, data, ("type",))
        return cls(**data)


def _coerce_item(item: Any, cls: type, name: str) -> Any:
    if isinstance(item, cls):
        return item
    if not isinstance(item, Mapping):
        raise AlertValidationError(
            f"{name} entries must be mappings, got {type(item).__name__}",
            field=name,
        )
    return cls.from_dict(item)


@dataclass
class AlertRule:
    """Maps alert conditions to an ordered set of notification actions.

    All enabled rules whose conditions match an alert fire; ``priority``
    orders execution (lower runs first).
    """

    name: str
    conditions: list[AlertCondition]
    actions: list[AlertAction]
    description: str = ""
    enabled: bool = True
    priority: int = 1
    context: dict[str, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    rule_id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        _require_text(self.name, "name")
        if not isinstance(self.enabled, bool):
            raise AlertValidationError("enabled must be a boolean", field="enabled")
        if not isinstance(self.priority, int) or isinstance(self.priority, bool):
            raise AlertValidationError("priority must be an integer", field="priority")
        if not self.conditions:
            raise AlertValidationError(
                "A rule needs at least one condition", field="conditions",
            )
        if not self.actions:
            raise AlertValidationError(
                "A rule needs at least one action", field="actions",
            )
        self.conditions = [
            _coerce_item(c, AlertCondition, "conditions") for c in self.conditions
        ]
        self.actions = [
            _coerce_item(a, AlertAction, "actions") for a in self.actions
        ]
        if self.context is not None and not isinstance(self.context, Mapping):
            raise AlertValidationError("context must be a mapping", field="context")
        if self.metadata is None:
            self.metadata = {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "rule_id": self.rule_id,
            "name": self.name,
            "description": self.description,
            "conditions": [c.to_dict() for c in self.conditions],
            "actions": [a.to_dict() for a in self.actions],
            "enabled": self.enabled,
            "priority": self.priority,
            "context": self.context,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AlertRule":
        """Create a rule from a dictionary.

        Raises:
            AlertValidationError: On missing, unknown, or invalid fields.
        """
        _check_keys(cls, data, ("name", "conditions", "actions"))
        kwargs = dict(data)
        for name in ("conditions", "actions", "context", "metadata"):
            if isinstance(kwargs.get(name), str):
                kwargs[name] = json.loads(kwargs[name])
        for name in ("created_at", "updated_at"):
            if name in kwargs:
                kwargs[name] = _parse_datetime(kwargs[name]) or utcnow()
        return cls(**kwargs)


@dataclass
class TopTriggeredAlert:
    alert_id: str
    trigger_count: int
    last_triggered: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "trigger_count": self.trigger_count,
            "last_triggered": self.last_triggered.isoformat(),
        }


@dataclass
class AlertMetrics:
    """Aggregates over the alert set, computed on demand."""

    total_alerts: int = 0
    active_alerts: int = 0
    acknowledged_alerts: int = 0
    resolved_alerts: int = 0
    suppressed_alerts: int = 0
    alerts_by_status: dict[str, int] = field(default_factory=dict)
    alerts_by_severity: dict[str, int] = field(default_factory=dict)
    alerts_by_metric: dict[str, int] = field(default_factory=dict)
    average_resolution_seconds: float = 0.0
    top_triggered_alerts: list[TopTriggeredAlert] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_alerts": self.total_alerts,
            "active_alerts": self.active_alerts,
            "acknowledged_alerts": self.acknowledged_alerts,
            "resolved_alerts": self.resolved_alerts,
            "suppressed_alerts": self.suppressed_alerts,
            "alerts_by_status": dict(self.alerts_by_status),
            "alerts_by_severity": dict(self.alerts_by_severity),
            "alerts_by_metric": dict(self.alerts_by_metric),
            "average_resolution_seconds": self.average_resolution_seconds,
            "top_triggered_alerts": [t.to_dict() for t in self.top_triggered_alerts],
        }
