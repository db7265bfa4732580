"""Alert lifecycle store.

Owns every ``Alert`` and enforces the state machine::

    active ──► acknowledged ──► resolved
      │                            ▲
      ├──► suppressed ─────────────┤
      └────────────────────────────┘

``resolved`` is terminal. At most one ``active`` alert exists per
(threshold, context) pair; a repeat breach increments its
``trigger_count`` instead of creating a new alert.

Mutations of one alert are serialised by an ``asyncio.Lock`` keyed on the
alert's dedup key, so a breach increment never interleaves with an
acknowledge or resolve of the same record. Unrelated thresholds never
contend.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from src.alerts.errors import (
    AlertNotFoundError,
    AlertValidationError,
    InvalidTransitionError,
)
from src.alerts.persistence import PersistenceWriter
from src.alerts.schemas import (
    VALID_SEVERITIES,
    VALID_STATUSES,
    Alert,
    AlertThreshold,
    context_key,
    utcnow,
)

logger = logging.getLogger(__name__)

DedupKey = tuple[str, str]


def format_title(threshold: AlertThreshold) -> str:
    return f"{threshold.severity.upper()}: {threshold.name}"


def format_description(threshold: AlertThreshold, value: float) -> str:
    base = (threshold.description or threshold.name).rstrip(".")
    return f"{base}. Current value: {value}, Expected: {threshold.value}"


def _require_actor(actor_id: str | None) -> None:
    if not isinstance(actor_id, str) or not actor_id.strip():
        raise AlertValidationError("actor_id is required", field="actor_id")


class AlertStore:
    """In-memory alert set with lifecycle transitions.

    Transition methods return ``(alert, changed)``; ``changed`` is False for
    the idempotent no-ops (acknowledging an acknowledged alert, resolving a
    resolved one), which leave timestamps and actors untouched.
    """

    def __init__(
        self,
        writer: PersistenceWriter | None = None,
        clock: Callable[[], datetime] = utcnow,
        list_limit_default: int = 100,
    ) -> None:
        self._writer = writer
        self._clock = clock
        self._list_limit_default = list_limit_default
        self._alerts: dict[str, Alert] = {}
        self._active: dict[DedupKey, str] = {}
        self._locks: dict[DedupKey, asyncio.Lock] = {}

    def _lock_for(self, key: DedupKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def record_breach(
        self,
        threshold: AlertThreshold,
        value: float,
        deviation: float,
        deviation_percentage: float,
        now: datetime | None = None,
    ) -> tuple[Alert, bool]:
        """Create an alert for a breach, or fold it into the active one.

        Returns:
            (alert, created) where ``created`` is False for a repeat trigger.
        """
        key = (threshold.threshold_id, context_key(threshold.context))
        async with self._lock_for(key):
            now = now or self._clock()
            existing = self._active_alert(key)

            if existing is not None:
                existing.trigger_count += 1
                existing.last_triggered = now
                existing.current_value = value
                existing.deviation = deviation
                existing.deviation_percentage = deviation_percentage
                existing.description = format_description(threshold, value)
                self._mirror("update_alert", existing)
                logger.debug(
                    "Repeat trigger %d for alert %s",
                    existing.trigger_count, existing.alert_id,
                )
                return existing, False

            alert = Alert(
                threshold_id=threshold.threshold_id,
                metric=threshold.metric,
                current_value=value,
                expected_value=threshold.value,
                severity=threshold.severity,
                title=format_title(threshold),
                description=format_description(threshold, value),
                deviation=deviation,
                deviation_percentage=deviation_percentage,
                context=threshold.context,
                metadata=dict(threshold.metadata),
                triggered_at=now,
            )
            self._alerts[alert.alert_id] = alert
            self._active[key] = alert.alert_id
            self._mirror("save_alert", alert)
            logger.info("Alert created: %s (%s)", alert.alert_id, alert.title)
            return alert, True

    async def acknowledge(self, alert_id: str, actor_id: str) -> tuple[Alert, bool]:
        """Move an active alert to acknowledged.

        Raises:
            AlertValidationError: If ``actor_id`` is missing.
            AlertNotFoundError: If the alert does not exist.
            InvalidTransitionError: If the alert is resolved or suppressed.
        """
        _require_actor(actor_id)
        alert = self._require(alert_id)
        async with self._lock_for(alert.dedup_key):
            if alert.status == "acknowledged":
                return alert, False
            if alert.status != "active":
                raise InvalidTransitionError(alert_id, alert.status, "acknowledged")

            alert.status = "acknowledged"
            alert.acknowledged_at = max(self._clock(), alert.triggered_at)
            alert.acknowledged_by = actor_id
            self._release(alert)
            self._mirror("update_alert", alert)

        logger.info("Alert %s acknowledged by %s", alert_id, actor_id)
        return alert, True

    async def resolve(
        self,
        alert_id: str,
        actor_id: str,
        notes: str | None = None,
    ) -> tuple[Alert, bool]:
        """Resolve an alert from any non-terminal state.

        Raises:
            AlertValidationError: If ``actor_id`` is missing.
            AlertNotFoundError: If the alert does not exist.
        """
        _require_actor(actor_id)
        alert = self._require(alert_id)
        async with self._lock_for(alert.dedup_key):
            if alert.status == "resolved":
                return alert, False

            floor = alert.acknowledged_at or alert.triggered_at
            alert.status = "resolved"
            alert.resolved_at = max(self._clock(), floor)
            alert.resolved_by = actor_id
            alert.resolution_notes = notes
            self._release(alert)
            self._mirror("update_alert", alert)

        logger.info("Alert %s resolved by %s", alert_id, actor_id)
        return alert, True

    async def suppress(
        self,
        alert_id: str,
        actor_id: str | None = None,
        reason: str | None = None,
    ) -> tuple[Alert, bool]:
        """Silence an active alert without resolving it.

        Raises:
            AlertNotFoundError: If the alert does not exist.
            InvalidTransitionError: If the alert is not active.
        """
        alert = self._require(alert_id)
        async with self._lock_for(alert.dedup_key):
            if alert.status != "active":
                raise InvalidTransitionError(alert_id, alert.status, "suppressed")

            alert.status = "suppressed"
            alert.suppressed_at = max(self._clock(), alert.triggered_at)
            alert.suppressed_by = actor_id
            if reason:
                alert.metadata["suppression_reason"] = reason
            self._release(alert)
            self._mirror("update_alert", alert)

        logger.info("Alert %s suppressed by %s", alert_id, actor_id or "system")
        return alert, True

    def get(self, alert_id: str) -> Alert | None:
        return self._alerts.get(alert_id)

    def list(
        self,
        status: str | None = None,
        severity: str | None = None,
        metric: str | None = None,
        project_id: str | None = None,
        limit: int | None = None,
    ) -> list[Alert]:
        """Filter alerts, newest first.

        Raises:
            AlertValidationError: On an unknown status or severity filter.
        """
        if status is not None and status not in VALID_STATUSES:
            raise AlertValidationError(f"Invalid status filter {status!r}", field="status")
        if severity is not None and severity not in VALID_SEVERITIES:
            raise AlertValidationError(
                f"Invalid severity filter {severity!r}", field="severity",
            )

        alerts = [
            a for a in self._alerts.values()
            if (status is None or a.status == status)
            and (severity is None or a.severity == severity)
            and (metric is None or a.metric == metric)
            and (project_id is None or (a.context is not None and a.context.project_id == project_id))
        ]
        alerts.sort(key=lambda a: a.triggered_at, reverse=True)
        return alerts[: limit or self._list_limit_default]

    def all(self) -> list[Alert]:
        return list(self._alerts.values())

    def add(self, alert: Alert) -> Alert:
        """Register a stored alert (hydration); no persistence write."""
        self._alerts[alert.alert_id] = alert
        if alert.status == "active":
            current = self._active_alert(alert.dedup_key)
            if current is None or current.triggered_at < alert.triggered_at:
                self._active[alert.dedup_key] = alert.alert_id
        return alert

    def active_for(self, threshold: AlertThreshold) -> Alert | None:
        """The active alert of a threshold's own context, if any."""
        return self._active_alert((threshold.threshold_id, context_key(threshold.context)))

    def forget_threshold(self, threshold_id: str) -> int:
        """Drop the dedup locks of a deleted threshold.

        Locks currently held are kept. Alerts stay listed.

        Returns:
            Number of locks removed.
        """
        keys = [
            key for key, lock in self._locks.items()
            if key[0] == threshold_id and not lock.locked()
        ]
        for key in keys:
            del self._locks[key]
        if keys:
            logger.debug("Cleared %d alert locks for threshold %s", len(keys), threshold_id)
        return len(keys)

    def __len__(self) -> int:
        return len(self._alerts)

    def _active_alert(self, key: DedupKey) -> Alert | None:
        alert_id = self._active.get(key)
        if alert_id is None:
            return None
        alert = self._alerts.get(alert_id)
        if alert is None or alert.status != "active":
            return None
        return alert

    def _release(self, alert: Alert) -> None:
        """Free the dedup slot once an alert leaves the active state."""
        if self._active.get(alert.dedup_key) == alert.alert_id:
            del self._active[alert.dedup_key]

    def _require(self, alert_id: str) -> Alert:
        alert = self._alerts.get(alert_id)
        if alert is None:
            raise AlertNotFoundError("alert", alert_id)
        return alert

    def _mirror(self, operation: str, alert: Alert) -> None:
        if self._writer is not None:
            self._writer.submit(operation, alert)
