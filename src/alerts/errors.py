"""Exception hierarchy for the alert engine.

Validation and lifecycle errors surface to callers (the API maps them to
422 / 404 / 409); metric fetch errors are caught by the evaluator and never
leave a monitoring tick.
"""


class AlertEngineError(Exception):
    """Base exception for alert engine errors."""


class AlertValidationError(AlertEngineError, ValueError):
    """Raised when threshold, rule, or action input is malformed."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class AlertNotFoundError(AlertEngineError, LookupError):
    """Raised when a threshold, rule, or alert does not exist."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} {identifier!r} not found")
        self.kind = kind
        self.identifier = identifier


class InvalidTransitionError(AlertEngineError):
    """Raised when a lifecycle operation is illegal for the alert's status."""

    def __init__(self, alert_id: str, current: str, target: str):
        super().__init__(
            f"Alert {alert_id!r} cannot move from {current!r} to {target!r}"
        )
        self.alert_id = alert_id
        self.current = current
        self.target = target


class MetricFetchError(AlertEngineError):
    """Raised when a metric provider fails or times out."""

    def __init__(self, metric: str, reason: str):
        super().__init__(f"Failed to fetch metric {metric!r}: {reason}")
        self.metric = metric
        self.reason = reason
