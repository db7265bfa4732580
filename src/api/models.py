"""
Request and response models for the alert management API.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Response model for errors."""

    detail: str = Field(
        ...,
        description="Error message",
    )
    error_type: str = Field(
        default="error",
        description="Error type",
    )


# Health models


class ComponentHealth(BaseModel):
    """Health status of an infrastructure component."""

    status: str = Field(..., description="healthy, unhealthy, or disabled")
    latency_ms: float | None = Field(default=None, description="Check latency in milliseconds")
    details: dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy, degraded, or unhealthy",
    )
    engine_running: bool = Field(default=False)
    monitoring_running: bool = Field(default=False)
    thresholds: int = Field(default=0, description="Configured thresholds")
    rules: int = Field(default=0, description="Configured rules")
    active_alerts: int = Field(default=0, description="Alerts in the active state")
    persistence_pending: int = Field(default=0, description="Writes waiting to be persisted")
    components: dict[str, ComponentHealth] = Field(default_factory=dict)
    version: str = Field(default="0.1.0")


# Threshold models


class ThresholdCreateRequest(BaseModel):
    """Request model for creating a threshold."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Human-readable threshold name")
    metric: str = Field(..., min_length=1, description="Metric key, e.g. ai_cost_per_document")
    operator: str = Field(..., description="gt, lt, gte, lte, eq, or neq")
    value: float = Field(..., description="Comparison operand")
    severity: str = Field(..., description="info, warning, critical, or emergency")
    description: str = Field(default="")
    enabled: bool = Field(default=True)
    cooldown_minutes: float | None = Field(
        default=None,
        ge=0,
        description="Minutes between two triggers for the same context",
    )
    context: dict[str, str] | None = Field(
        default=None,
        description="Scoping dimensions: project_id, user_id, provider, model, template_id, document_type",
    )
    metadata: dict[str, Any] = Field(default_factory=dict)


class ThresholdUpdateRequest(BaseModel):
    """Request model for partially updating a threshold."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1)
    metric: str | None = Field(default=None, min_length=1)
    operator: str | None = None
    value: float | None = None
    severity: str | None = None
    description: str | None = None
    enabled: bool | None = None
    cooldown_minutes: float | None = Field(default=None, ge=0)
    context: dict[str, str] | None = None
    metadata: dict[str, Any] | None = None


class ThresholdItem(BaseModel):
    """Single threshold record."""

    threshold_id: str
    name: str
    description: str
    metric: str
    operator: str
    value: float
    severity: str
    enabled: bool
    cooldown_minutes: float
    context: dict[str, str] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(..., description="Creation timestamp (ISO format)")
    updated_at: str = Field(..., description="Last update timestamp (ISO format)")


class ThresholdsResponse(BaseModel):
    """Response model for listing thresholds."""

    thresholds: list[ThresholdItem]
    total: int
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


# Rule models


class ConditionModel(BaseModel):
    """A single rule condition."""

    model_config = ConfigDict(extra="forbid")

    metric: str = Field(..., min_length=1, description="Alert metric or attribute to test")
    operator: str = Field(..., description="gt, lt, gte, lte, eq, neq, contains, not_contains")
    value: Any = Field(..., description="Comparison operand")
    time_window_minutes: float | None = Field(default=None, ge=0)
    aggregation: str | None = Field(default=None, description="sum, avg, count, min, max, median")


class ActionModel(BaseModel):
    """A single rule action."""

    model_config = ConfigDict(extra="forbid")

    type: str = Field(..., description="log, dashboard, webhook, email, slack, or teams")
    config: dict[str, Any] = Field(default_factory=dict)
    delay_minutes: float = Field(default=0, ge=0)


class RuleCreateRequest(BaseModel):
    """Request model for creating a rule."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    conditions: list[ConditionModel] = Field(..., min_length=1)
    actions: list[ActionModel] = Field(..., min_length=1)
    description: str = Field(default="")
    enabled: bool = Field(default=True)
    priority: int = Field(default=1, description="Lower numbers run first")
    context: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RuleUpdateRequest(BaseModel):
    """Request model for partially updating a rule."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1)
    conditions: list[ConditionModel] | None = Field(default=None, min_length=1)
    actions: list[ActionModel] | None = Field(default=None, min_length=1)
    description: str | None = None
    enabled: bool | None = None
    priority: int | None = None
    context: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None


class RuleItem(BaseModel):
    """Single rule record."""

    rule_id: str
    name: str
    description: str
    conditions: list[ConditionModel]
    actions: list[ActionModel]
    enabled: bool
    priority: int
    context: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    updated_at: str


class RulesResponse(BaseModel):
    """Response model for listing rules."""

    rules: list[RuleItem]
    total: int
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


# Alert models


class AlertItem(BaseModel):
    """Single alert record."""

    alert_id: str = Field(..., description="Unique alert identifier")
    threshold_id: str = Field(..., description="Threshold that produced the alert")
    metric: str
    current_value: float
    expected_value: float
    deviation: float
    deviation_percentage: float
    severity: str = Field(..., description="Severity level: info, warning, critical, emergency")
    status: str = Field(..., description="active, acknowledged, resolved, or suppressed")
    title: str = Field(..., description="Short human-readable summary")
    description: str = Field(..., description="Detailed alert description")
    context: dict[str, str] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    triggered_at: str = Field(..., description="Trigger timestamp (ISO format)")
    acknowledged_at: str | None = None
    acknowledged_by: str | None = None
    resolved_at: str | None = None
    resolved_by: str | None = None
    resolution_notes: str | None = None
    suppressed_at: str | None = None
    suppressed_by: str | None = None
    trigger_count: int = 1
    last_triggered: str | None = None


class AlertsResponse(BaseModel):
    """Response model for listing alerts."""

    alerts: list[AlertItem] = Field(..., description="List of alerts")
    total: int = Field(..., description="Number of alerts returned")
    latency_ms: float = Field(..., description="Processing latency in milliseconds")


class AlertTransitionRequest(BaseModel):
    """Request body for acknowledging or resolving an alert."""

    actor_id: str = Field(..., min_length=1, description="User performing the operation")
    notes: str | None = Field(default=None, description="Resolution notes")


class AlertSuppressRequest(BaseModel):
    """Request body for suppressing an alert."""

    actor_id: str | None = Field(default=None)
    reason: str | None = Field(default=None)


class TopTriggeredItem(BaseModel):
    alert_id: str
    trigger_count: int
    last_triggered: str


class AlertMetricsResponse(BaseModel):
    """Aggregates over all alerts."""

    total_alerts: int
    active_alerts: int
    acknowledged_alerts: int
    resolved_alerts: int
    suppressed_alerts: int
    alerts_by_status: dict[str, int]
    alerts_by_severity: dict[str, int]
    alerts_by_metric: dict[str, int]
    average_resolution_seconds: float
    top_triggered_alerts: list[TopTriggeredItem]


# Monitoring models


class CheckResponse(BaseModel):
    """Result of an on-demand evaluation pass."""

    evaluated: int = Field(..., description="Enabled thresholds evaluated")
    breaches: int = Field(..., description="Thresholds that breached")
    created: int = Field(..., description="New alerts created")
    failures: int = Field(default=0)
    duration_seconds: float
    alert_ids: list[str] = Field(default_factory=list)
