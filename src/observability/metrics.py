"""
Prometheus metrics for monitoring the alert engine.

Defines and exposes metrics for:
- Alert trigger rates (new and repeat) by severity and metric
- Lifecycle transitions (acknowledge, resolve, suppress)
- Action dispatch outcomes per channel type
- Metric fetch errors and evaluation latency
- Monitoring tick duration
- Persistence queue depth and write failures

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the alert engine.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.record_alert_triggered("warning", "ai_cost_per_document")
        metrics.tick_duration.observe(0.42)

    Tests pass a private ``CollectorRegistry`` so that several collectors
    can coexist in one process.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """Initialize Prometheus metrics."""
        self._registry = registry or REGISTRY

        # Alert counters
        self.alerts_triggered = Counter(
            "metric_alerts_triggered_total",
            "Total number of new alerts created",
            ["severity", "metric"],
            registry=self._registry,
        )

        self.alert_repeats = Counter(
            "metric_alerts_repeat_triggers_total",
            "Repeat breaches folded into an already-active alert",
            ["metric"],
            registry=self._registry,
        )

        self.alert_transitions = Counter(
            "metric_alerts_transitions_total",
            "Alert lifecycle transitions",
            ["status"],  # acknowledged, resolved, suppressed
            registry=self._registry,
        )

        # Action dispatch
        self.alert_actions = Counter(
            "metric_alerts_actions_total",
            "Executed alert actions",
            ["action_type", "outcome"],  # outcome: success, failure, scheduled
            registry=self._registry,
        )

        # Evaluation
        self.metric_fetch_errors = Counter(
            "metric_alerts_metric_fetch_errors_total",
            "Metric provider failures (errors and timeouts)",
            ["metric", "error_type"],
            registry=self._registry,
        )

        self.evaluation_latency = Histogram(
            "metric_alerts_evaluation_latency_seconds",
            "Time to fetch and evaluate one threshold",
            buckets=LATENCY_BUCKETS,
            registry=self._registry,
        )

        self.tick_duration = Histogram(
            "metric_alerts_tick_duration_seconds",
            "Duration of one monitoring pass over all thresholds",
            buckets=LATENCY_BUCKETS,
            registry=self._registry,
        )

        self.active_alerts = Gauge(
            "metric_alerts_active",
            "Alerts currently in the active state",
            ["severity"],
            registry=self._registry,
        )

        # Persistence
        self.persistence_queue_depth = Gauge(
            "metric_alerts_persistence_queue_depth",
            "Writes waiting in the persistence queue",
            registry=self._registry,
        )

        self.persistence_failures = Counter(
            "metric_alerts_persistence_failures_total",
            "Writes dropped after exhausting retries",
            ["operation"],
            registry=self._registry,
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=self._registry)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_alert_triggered(self, severity: str, metric: str) -> None:
        """Record creation of a new alert."""
        self.alerts_triggered.labels(severity=severity, metric=metric).inc()

    def record_alert_repeat(self, metric: str) -> None:
        """Record a repeat breach of an already-active alert."""
        self.alert_repeats.labels(metric=metric).inc()

    def record_transition(self, status: str) -> None:
        """Record an operator-driven lifecycle transition."""
        self.alert_transitions.labels(status=status).inc()

    def record_action(self, action_type: str, outcome: str) -> None:
        """
        Record an action dispatch outcome.

        Args:
            action_type: Channel type (log, webhook, ...)
            outcome: success, failure, or scheduled
        """
        self.alert_actions.labels(action_type=action_type, outcome=outcome).inc()

    def record_fetch_error(self, metric: str, error_type: str) -> None:
        """Record a failed or timed-out metric fetch."""
        self.metric_fetch_errors.labels(metric=metric, error_type=error_type).inc()

    def set_active_alerts(self, counts: dict[str, int]) -> None:
        """
        Set the active-alert gauge for each severity.

        Args:
            counts: Active alert count keyed by severity
        """
        for severity, count in counts.items():
            self.active_alerts.labels(severity=severity).set(count)

    def record_persistence_failure(self, operation: str) -> None:
        """Record a persistence write dropped after retries."""
        self.persistence_failures.labels(operation=operation).inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
