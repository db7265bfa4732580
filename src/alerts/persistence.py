"""Persistence contract and the asynchronous write-behind writer.

In-memory structures are the source of truth for evaluation; storage is a
best-effort mirror. Registries and the lifecycle store never await a write:
they ``submit()`` to the ``PersistenceWriter``, whose background task drains
the queue with exponential-backoff retries and drops (and logs) a write once
its attempts are exhausted. Persistence outages degrade durability, never
the live evaluation path.

Pattern: ABC for storage backends (like NotificationChannel) plus a
single-consumer queue worker.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from src.alerts.config import AlertConfig
from src.alerts.schemas import Alert, AlertRule, AlertThreshold
from src.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)

WRITE_OPERATIONS: frozenset[str] = frozenset({
    "save_threshold",
    "delete_threshold",
    "save_alert",
    "update_alert",
    "save_rule",
    "delete_rule",
})


class AlertStorage(ABC):
    """Durable storage backend for thresholds, rules, and alerts."""

    @abstractmethod
    async def save_threshold(self, threshold: AlertThreshold) -> None:
        """Insert or replace a threshold."""

    @abstractmethod
    async def delete_threshold(self, threshold_id: str) -> None:
        """Delete a threshold (no-op if absent)."""

    @abstractmethod
    async def save_alert(self, alert: Alert) -> None:
        """Insert a new alert."""

    @abstractmethod
    async def update_alert(self, alert: Alert) -> None:
        """Persist the current state of an existing alert."""

    @abstractmethod
    async def save_rule(self, rule: AlertRule) -> None:
        """Insert or replace a rule."""

    @abstractmethod
    async def delete_rule(self, rule_id: str) -> None:
        """Delete a rule (no-op if absent)."""

    @abstractmethod
    async def list_thresholds(self) -> list[AlertThreshold]:
        """Load all stored thresholds."""

    @abstractmethod
    async def list_alerts(self) -> list[Alert]:
        """Load all stored alerts."""

    @abstractmethod
    async def list_rules(self) -> list[AlertRule]:
        """Load all stored rules."""


class InMemoryAlertStorage(AlertStorage):
    """Process-local storage used when no database is configured.

    Stores serialised snapshots so that later in-memory mutation of a
    record does not leak into storage until it is written again.
    """

    def __init__(self) -> None:
        self.thresholds: dict[str, dict[str, Any]] = {}
        self.alerts: dict[str, dict[str, Any]] = {}
        self.rules: dict[str, dict[str, Any]] = {}

    async def save_threshold(self, threshold: AlertThreshold) -> None:
        self.thresholds[threshold.threshold_id] = threshold.to_dict()

    async def delete_threshold(self, threshold_id: str) -> None:
        self.thresholds.pop(threshold_id, None)

    async def save_alert(self, alert: Alert) -> None:
        self.alerts[alert.alert_id] = alert.to_dict()

    async def update_alert(self, alert: Alert) -> None:
        self.alerts[alert.alert_id] = alert.to_dict()

    async def save_rule(self, rule: AlertRule) -> None:
        self.rules[rule.rule_id] = rule.to_dict()

    async def delete_rule(self, rule_id: str) -> None:
        self.rules.pop(rule_id, None)

    async def list_thresholds(self) -> list[AlertThreshold]:
        return [AlertThreshold.from_dict(d) for d in self.thresholds.values()]

    async def list_alerts(self) -> list[Alert]:
        return [Alert.from_dict(d) for d in self.alerts.values()]

    async def list_rules(self) -> list[AlertRule]:
        return [AlertRule.from_dict(d) for d in self.rules.values()]


@dataclass
class WriteJob:
    """A queued storage call."""

    operation: str
    payload: Any

    @property
    def label(self) -> str:
        for attr in ("alert_id", "threshold_id", "rule_id"):
            if hasattr(self.payload, attr):
                return getattr(self.payload, attr)
        return str(self.payload)


class PersistenceWriter:
    """Write-behind mirror of engine state into an ``AlertStorage``.

    Lifecycle:
        1. ``submit(...)`` / ``save_alert(...)`` etc.: enqueue, never blocks
        2. ``start()``: spawn the background drain task
        3. ``flush()``: wait until every queued write has been attempted
        4. ``stop()``: drain (optional) and cancel the task
    """

    def __init__(
        self,
        storage: AlertStorage,
        config: AlertConfig | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._storage = storage
        self._config = config or AlertConfig()
        self._metrics = metrics
        self._queue: asyncio.Queue[WriteJob] = asyncio.Queue(
            maxsize=self._config.persistence_queue_size,
        )
        self._task: asyncio.Task | None = None
        self._dropped = 0

    @property
    def storage(self) -> AlertStorage:
        return self._storage

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        """Writes waiting in the queue."""
        return self._queue.qsize()

    @property
    def dropped(self) -> int:
        """Writes lost to a full queue or exhausted retries."""
        return self._dropped

    def submit(self, operation: str, payload: Any) -> bool:
        """Enqueue a storage call without waiting for it.

        Args:
            operation: One of ``WRITE_OPERATIONS``.
            payload: Record (or identifier for deletes).

        Returns:
            True if queued, False if the queue is full.
        """
        if operation not in WRITE_OPERATIONS:
            raise ValueError(f"Unknown persistence operation {operation!r}")

        job = WriteJob(operation=operation, payload=payload)
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.error(
                "Persistence queue full, dropping %s for %s", operation, job.label,
            )
            if self._metrics is not None:
                self._metrics.record_persistence_failure(operation)
            return False

        self._update_depth()
        return True

    def save_threshold(self, threshold: AlertThreshold) -> bool:
        return self.submit("save_threshold", threshold)

    def delete_threshold(self, threshold_id: str) -> bool:
        return self.submit("delete_threshold", threshold_id)

    def save_alert(self, alert: Alert) -> bool:
        return self.submit("save_alert", alert)

    def update_alert(self, alert: Alert) -> bool:
        return self.submit("update_alert", alert)

    def save_rule(self, rule: AlertRule) -> bool:
        return self.submit("save_rule", rule)

    def delete_rule(self, rule_id: str) -> bool:
        return self.submit("delete_rule", rule_id)

    async def start(self) -> None:
        """Start the background drain task (idempotent)."""
        if self.running:
            return
        self._task = asyncio.create_task(
            self._drain(), name="alert-persistence-writer",
        )
        logger.info("Persistence writer started (%d queued)", self.pending)

    async def flush(self) -> None:
        """Wait until every queued write has been attempted."""
        await self._queue.join()

    async def stop(self, drain: bool = True, timeout: float | None = 10.0) -> None:
        """Stop the writer.

        Args:
            drain: Attempt queued writes before stopping.
            timeout: Upper bound in seconds for draining.
        """
        if self._task is None:
            return

        if drain and self.running:
            try:
                await asyncio.wait_for(self.flush(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Persistence writer stopped with %d writes pending", self.pending,
                )

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Persistence writer stopped")

    async def _drain(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._write(job)
            finally:
                self._queue.task_done()
                self._update_depth()

    async def _write(self, job: WriteJob) -> bool:
        """Attempt one write with exponential backoff.

        Returns:
            True if the storage call eventually succeeded.
        """
        max_attempts = self._config.persistence_max_attempts
        method = getattr(self._storage, job.operation)

        for attempt in range(max_attempts):
            try:
                await method(job.payload)
                if attempt > 0:
                    logger.info(
                        "Persisted %s for %s on attempt %d",
                        job.operation, job.label, attempt + 1,
                    )
                return True
            except Exception as e:
                logger.warning(
                    "Persistence %s failed for %s (attempt %d/%d): %s",
                    job.operation, job.label, attempt + 1, max_attempts, e,
                )

            if attempt < max_attempts - 1:
                await asyncio.sleep(self._backoff(attempt))

        self._dropped += 1
        logger.error(
            "Dropping %s for %s after %d attempts",
            job.operation, job.label, max_attempts,
        )
        if self._metrics is not None:
            self._metrics.record_persistence_failure(job.operation)
        return False

    def _backoff(self, attempt: int) -> float:
        delay = self._config.persistence_retry_base_seconds * (2 ** attempt)
        return min(delay, self._config.persistence_retry_max_seconds)

    def _update_depth(self) -> None:
        if self._metrics is not None:
            self._metrics.persistence_queue_depth.set(self._queue.qsize())
