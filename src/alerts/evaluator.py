"""Single-threshold evaluation.

Fetch the metric for a threshold, compare it with the threshold operator,
and hand breaches to the lifecycle store. Absence of data is never a
breach, and a failing or slow metric provider only skips its threshold for
the current pass.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime

from src.alerts.config import AlertConfig
from src.alerts.cooldown import CooldownController
from src.alerts.lifecycle import AlertStore
from src.alerts.operators import compare, deviation
from src.alerts.providers import MetricProviderRegistry
from src.alerts.schemas import Alert, AlertThreshold
from src.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


@dataclass
class BreachOutcome:
    """Result of a threshold evaluation that breached."""

    alert: Alert
    created: bool
    threshold: AlertThreshold
    value: float


class Evaluator:
    """Evaluates one threshold at a time against its metric provider."""

    def __init__(
        self,
        providers: MetricProviderRegistry,
        cooldowns: CooldownController,
        store: AlertStore,
        config: AlertConfig | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._providers = providers
        self._cooldowns = cooldowns
        self._store = store
        self._config = config or AlertConfig()
        self._metrics = metrics

    async def evaluate(
        self,
        threshold: AlertThreshold,
        now: datetime | None = None,
    ) -> BreachOutcome | None:
        """Evaluate a threshold.

        Args:
            threshold: Threshold to evaluate.
            now: Evaluation time; defaults to the cooldown clock.

        Returns:
            A ``BreachOutcome`` when the threshold breached, otherwise None
            (disabled, cooling down, no data, fetch failure, or no breach).
        """
        if not threshold.enabled:
            return None

        now = now or self._cooldowns.now()
        if self._cooldowns.should_suppress(threshold, now=now):
            logger.debug("Threshold %s in cooldown, skipping", threshold.threshold_id)
            return None

        value = await self._fetch(threshold)
        if value is None:
            return None

        if not compare(threshold.operator, value, threshold.value):
            return None

        dev, pct = deviation(value, threshold.value)
        self._cooldowns.record_trigger(threshold.threshold_id, threshold.context, now)
        alert, created = await self._store.record_breach(
            threshold, value, dev, pct, now=now,
        )

        if self._metrics is not None:
            if created:
                self._metrics.record_alert_triggered(alert.severity, alert.metric)
            else:
                self._metrics.record_alert_repeat(alert.metric)

        return BreachOutcome(alert=alert, created=created, threshold=threshold, value=value)

    async def _fetch(self, threshold: AlertThreshold) -> float | None:
        timeout = self._config.metric_fetch_timeout_seconds
        start = time.perf_counter()
        try:
            return await asyncio.wait_for(
                self._providers.fetch(threshold.metric, threshold.context),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Metric %s timed out after %.1fs for threshold %s",
                threshold.metric, timeout, threshold.threshold_id,
            )
            self._record_fetch_error(threshold.metric, "timeout")
            return None
        except Exception as e:
            logger.warning(
                "Metric %s failed for threshold %s: %s",
                threshold.metric, threshold.threshold_id, e,
            )
            self._record_fetch_error(threshold.metric, type(e).__name__)
            return None
        finally:
            if self._metrics is not None:
                self._metrics.evaluation_latency.observe(time.perf_counter() - start)

    def _record_fetch_error(self, metric: str, error_type: str) -> None:
        if self._metrics is not None:
            self._metrics.record_fetch_error(metric, error_type)
