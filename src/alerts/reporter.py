"""Alert aggregates and their Prometheus export."""

import logging
from collections import Counter
from collections.abc import Iterable

from src.alerts.schemas import VALID_SEVERITIES, Alert, AlertMetrics, TopTriggeredAlert
from src.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


def compute_alert_metrics(alerts: Iterable[Alert], top_n: int = 5) -> AlertMetrics:
    """Aggregate counts, resolution latency, and most-triggered alerts.

    Average resolution time is measured from acknowledgement to
    resolution, over resolved alerts that carry both timestamps.

    Args:
        alerts: Alerts to aggregate.
        top_n: Size of the most-frequently-triggered list.
    """
    alerts = list(alerts)
    by_status = Counter(a.status for a in alerts)
    by_severity = Counter(a.severity for a in alerts)
    by_metric = Counter(a.metric for a in alerts)

    resolution_times = [
        (a.resolved_at - a.acknowledged_at).total_seconds()
        for a in alerts
        if a.status == "resolved" and a.resolved_at and a.acknowledged_at
    ]
    average_resolution = (
        sum(resolution_times) / len(resolution_times) if resolution_times else 0.0
    )

    ranked = sorted(
        alerts,
        key=lambda a: (a.trigger_count, a.last_triggered or a.triggered_at),
        reverse=True,
    )[:top_n]

    return AlertMetrics(
        total_alerts=len(alerts),
        active_alerts=by_status.get("active", 0),
        acknowledged_alerts=by_status.get("acknowledged", 0),
        resolved_alerts=by_status.get("resolved", 0),
        suppressed_alerts=by_status.get("suppressed", 0),
        alerts_by_status=dict(by_status),
        alerts_by_severity=dict(by_severity),
        alerts_by_metric=dict(by_metric),
        average_resolution_seconds=average_resolution,
        top_triggered_alerts=[
            TopTriggeredAlert(
                alert_id=a.alert_id,
                trigger_count=a.trigger_count,
                last_triggered=a.last_triggered or a.triggered_at,
            )
            for a in ranked
        ],
    )


class MetricsReporter:
    """Publishes alert aggregates to the Prometheus collector after each pass."""

    def __init__(self, metrics: MetricsCollector | None = None, top_n: int = 5) -> None:
        self._metrics = metrics
        self._top_n = top_n
        self._latest: AlertMetrics | None = None

    @property
    def latest(self) -> AlertMetrics | None:
        """Aggregates from the most recent report."""
        return self._latest

    def report(self, alerts: Iterable[Alert]) -> AlertMetrics:
        alerts = list(alerts)
        snapshot = compute_alert_metrics(alerts, top_n=self._top_n)
        self._latest = snapshot

        if self._metrics is not None:
            active = {severity: 0 for severity in VALID_SEVERITIES}
            for alert in alerts:
                if alert.status == "active":
                    active[alert.severity] += 1
            self._metrics.set_active_alerts(active)

        logger.debug(
            "Alert metrics: total=%d active=%d",
            snapshot.total_alerts, snapshot.active_alerts,
        )
        return snapshot
