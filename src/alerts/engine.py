"""Alert engine: composition root and management API.

Wires the threshold registry, cooldowns, evaluator, lifecycle store, rule
engine, dispatcher, event bus, persistence writer and monitoring loop
together. Nothing here is a singleton: construct an engine, start it, pass
it where it is needed, and stop it.

    engine = AlertEngine(providers=providers, storage=AlertRepository(db))
    async with engine:
        engine.create_threshold({...})
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.alerts.channels import ActionChannel, ChannelConfig, build_channels
from src.alerts.config import AlertConfig
from src.alerts.cooldown import CooldownController
from src.alerts.defaults import default_thresholds
from src.alerts.dispatcher import ActionDispatcher, ActionResult
from src.alerts.errors import AlertNotFoundError
from src.alerts.evaluator import BreachOutcome, Evaluator
from src.alerts.events import TRANSITION_EVENTS, EventBus, EventListener
from src.alerts.lifecycle import AlertStore
from src.alerts.monitor import MonitoringLoop
from src.alerts.persistence import AlertStorage, InMemoryAlertStorage, PersistenceWriter
from src.alerts.providers import MetricProviderRegistry
from src.alerts.registry import ThresholdRegistry
from src.alerts.reporter import MetricsReporter, compute_alert_metrics
from src.alerts.rules import RuleEngine
from src.alerts.schemas import Alert, AlertMetrics, AlertRule, AlertThreshold, utcnow
from src.observability.metrics import MetricsCollector
from src.observability.tracing import get_tracer, traced

logger = logging.getLogger(__name__)


@dataclass
class CheckSummary:
    """Result of one evaluation pass over all enabled thresholds."""

    evaluated: int = 0
    breaches: int = 0
    created: int = 0
    failures: int = 0
    duration_seconds: float = 0.0
    alert_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "evaluated": self.evaluated,
            "breaches": self.breaches,
            "created": self.created,
            "failures": self.failures,
            "duration_seconds": self.duration_seconds,
            "alert_ids": list(self.alert_ids),
        }


class AlertEngine:
    """Threshold alerting engine.

    Args:
        providers: Metric provider registry (one is created when omitted).
        storage: Durable storage mirror; in-memory when omitted.
        config: Engine settings.
        channel_config: Defaults for external action channels.
        channels: Explicit channel map by action type, replacing the
            default set built from ``channel_config``.
        metrics: Prometheus collector; metrics are not recorded when None.
        clock: Current-time source shared by cooldowns and lifecycle.
    """

    def __init__(
        self,
        providers: MetricProviderRegistry | None = None,
        storage: AlertStorage | None = None,
        config: AlertConfig | None = None,
        channel_config: ChannelConfig | None = None,
        channels: Mapping[str, ActionChannel] | None = None,
        metrics: MetricsCollector | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config or AlertConfig()
        self.providers = providers if providers is not None else MetricProviderRegistry()
        self.events = EventBus(listener_timeout=self.config.listener_timeout_seconds)
        self.storage = storage if storage is not None else InMemoryAlertStorage()
        self._metrics = metrics

        self.writer = PersistenceWriter(self.storage, self.config, metrics)
        self.cooldowns = CooldownController(clock)
        self.thresholds = ThresholdRegistry(
            self.writer, default_cooldown_minutes=self.config.default_cooldown_minutes,
        )
        self.alerts = AlertStore(
            self.writer, clock=clock, list_limit_default=self.config.list_limit_default,
        )
        self.rules = RuleEngine(self.writer)
        self.evaluator = Evaluator(
            self.providers, self.cooldowns, self.alerts, self.config, metrics,
        )
        if channels is None:
            channels = build_channels(channel_config or ChannelConfig(), self.events)
        self.dispatcher = ActionDispatcher(dict(channels), self.config, metrics)
        self.reporter = MetricsReporter(metrics, top_n=self.config.top_triggered_limit)
        self.monitor = MonitoringLoop(self.run_checks, self.config.check_interval_seconds)

        self._tracer = get_tracer(__name__)
        self._started = False

    @property
    def is_running(self) -> bool:
        return self._started

    # Lifecycle

    async def start(self, hydrate: bool = True) -> None:
        """Start persistence, load stored state, seed defaults, start monitoring."""
        if self._started:
            return

        await self.writer.start()
        if hydrate:
            await self.hydrate()
        if self.config.seed_default_thresholds and len(self.thresholds) == 0:
            self.seed_defaults()
        if self.config.monitoring_enabled:
            await self.monitor.start()

        self._started = True
        logger.info(
            "Alert engine started: %d thresholds, %d rules, %d alerts",
            len(self.thresholds), len(self.rules), len(self.alerts),
        )

    async def stop(self) -> None:
        """Stop monitoring, cancel delayed actions, and drain persistence."""
        if not self._started:
            return

        await self.monitor.stop()
        await self.dispatcher.aclose()
        await self.writer.stop()
        self._started = False
        logger.info("Alert engine stopped")

    async def __aenter__(self) -> "AlertEngine":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def hydrate(self) -> dict[str, int]:
        """Load thresholds, rules and alerts from storage.

        A storage failure is logged and leaves the engine empty; it never
        prevents startup.

        Returns:
            Number of records loaded per kind.
        """
        counts = {"thresholds": 0, "rules": 0, "alerts": 0}
        try:
            thresholds = await self.storage.list_thresholds()
            rules = await self.storage.list_rules()
            alerts = await self.storage.list_alerts()
        except Exception as e:
            logger.error("Failed to load alert state from storage: %s", e)
            return counts

        for threshold in thresholds:
            self.thresholds.add(threshold, persist=False)
        for rule in rules:
            self.rules.add(rule, persist=False)
        for alert in alerts:
            self.alerts.add(alert)

        counts.update(thresholds=len(thresholds), rules=len(rules), alerts=len(alerts))
        logger.info("Hydrated alert state: %s", counts)
        return counts

    def seed_defaults(self) -> list[AlertThreshold]:
        """Install the default threshold catalogue."""
        seeded = [self.thresholds.add(t) for t in default_thresholds()]
        logger.info("Seeded %d default thresholds", len(seeded))
        return seeded

    # Evaluation

    async def run_checks(self) -> CheckSummary:
        """Evaluate every enabled threshold once, concurrently."""
        thresholds = self.thresholds.list(enabled=True)
        summary = CheckSummary(evaluated=len(thresholds))
        start = time.perf_counter()

        with traced(
            self._tracer, "alerts.tick", {"alerts.thresholds": len(thresholds)},
        ) as span:
            results = await asyncio.gather(
                *(self.evaluate_threshold(t) for t in thresholds),
                return_exceptions=True,
            )

            for threshold, result in zip(thresholds, results):
                if isinstance(result, BaseException):
                    summary.failures += 1
                    logger.error(
                        "Evaluation of threshold %s failed: %s",
                        threshold.threshold_id, result,
                    )
                elif result is not None:
                    summary.breaches += 1
                    summary.created += int(result.created)
                    summary.alert_ids.append(result.alert.alert_id)

            span.set_attribute("alerts.breaches", summary.breaches)

        self.reporter.report(self.alerts.all())
        summary.duration_seconds = time.perf_counter() - start
        if self._metrics is not None:
            self._metrics.tick_duration.observe(summary.duration_seconds)

        if summary.breaches:
            logger.info(
                "Checked %d thresholds: %d breaches (%d new alerts)",
                summary.evaluated, summary.breaches, summary.created,
            )
        return summary

    async def evaluate_threshold(self, threshold: AlertThreshold) -> BreachOutcome | None:
        """Evaluate one threshold and run the rules of any resulting alert."""
        outcome = await self.evaluator.evaluate(threshold)
        if outcome is None:
            return None

        await self.events.emit(
            "alert_triggered", outcome.alert, data={"repeat": not outcome.created},
        )
        await self.run_rules(outcome.alert)
        return outcome

    async def run_rules(self, alert: Alert) -> list[ActionResult]:
        """Dispatch the actions of every rule matching an alert."""
        rules = self.rules.match(alert)
        if not rules:
            return []
        return await self.dispatcher.dispatch(alert, rules)

    # Thresholds

    def create_threshold(self, spec: Mapping[str, Any]) -> AlertThreshold:
        return self.thresholds.create(spec)

    def update_threshold(self, threshold_id: str, partial: Mapping[str, Any]) -> AlertThreshold:
        return self.thresholds.update(threshold_id, partial)

    def delete_threshold(self, threshold_id: str) -> bool:
        deleted = self.thresholds.delete(threshold_id)
        if deleted:
            self.cooldowns.forget_threshold(threshold_id)
            self.alerts.forget_threshold(threshold_id)
        return deleted

    def get_threshold(self, threshold_id: str) -> AlertThreshold:
        """Raises ``AlertNotFoundError`` for unknown ids."""
        threshold = self.thresholds.get(threshold_id)
        if threshold is None:
            raise AlertNotFoundError("threshold", threshold_id)
        return threshold

    def list_thresholds(self, enabled: bool | None = None) -> list[AlertThreshold]:
        return self.thresholds.list(enabled=enabled)

    def enable_threshold(self, threshold_id: str) -> AlertThreshold:
        return self.thresholds.enable(threshold_id)

    def disable_threshold(self, threshold_id: str) -> AlertThreshold:
        return self.thresholds.disable(threshold_id)

    # Rules

    def create_rule(self, spec: Mapping[str, Any]) -> AlertRule:
        return self.rules.create(spec)

    def update_rule(self, rule_id: str, partial: Mapping[str, Any]) -> AlertRule:
        return self.rules.update(rule_id, partial)

    def delete_rule(self, rule_id: str) -> bool:
        return self.rules.delete(rule_id)

    def get_rule(self, rule_id: str) -> AlertRule:
        """Raises ``AlertNotFoundError`` for unknown ids."""
        rule = self.rules.get(rule_id)
        if rule is None:
            raise AlertNotFoundError("rule", rule_id)
        return rule

    def list_rules(self, enabled: bool | None = None) -> list[AlertRule]:
        return self.rules.list(enabled=enabled)

    # Alerts

    def list_alerts(
        self,
        status: str | None = None,
        severity: str | None = None,
        metric: str | None = None,
        project_id: str | None = None,
        limit: int | None = None,
    ) -> list[Alert]:
        return self.alerts.list(
            status=status, severity=severity, metric=metric,
            project_id=project_id, limit=limit,
        )

    def get_alert(self, alert_id: str) -> Alert:
        """Raises ``AlertNotFoundError`` for unknown ids."""
        alert = self.alerts.get(alert_id)
        if alert is None:
            raise AlertNotFoundError("alert", alert_id)
        return alert

    async def acknowledge_alert(self, alert_id: str, actor_id: str) -> Alert:
        alert, changed = await self.alerts.acknowledge(alert_id, actor_id)
        await self._announce(alert, changed)
        return alert

    async def resolve_alert(
        self,
        alert_id: str,
        actor_id: str,
        notes: str | None = None,
    ) -> Alert:
        alert, changed = await self.alerts.resolve(alert_id, actor_id, notes)
        await self._announce(alert, changed)
        return alert

    async def suppress_alert(
        self,
        alert_id: str,
        actor_id: str | None = None,
        reason: str | None = None,
    ) -> Alert:
        alert, changed = await self.alerts.suppress(alert_id, actor_id, reason)
        await self._announce(alert, changed)
        return alert

    def get_metrics(self) -> AlertMetrics:
        return compute_alert_metrics(self.alerts.all(), top_n=self.config.top_triggered_limit)

    def subscribe(
        self,
        listener: EventListener,
        event_types: Iterable[str] | None = None,
    ) -> Callable[[], None]:
        """Subscribe to lifecycle events; returns the unsubscribe handle."""
        return self.events.subscribe(listener, event_types)

    async def _announce(self, alert: Alert, changed: bool) -> None:
        if not changed:
            return
        if self._metrics is not None:
            self._metrics.record_transition(alert.status)
        await self.events.emit(TRANSITION_EVENTS[alert.status], alert)
