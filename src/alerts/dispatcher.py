"""Action dispatcher executing matched rules' actions for an alert.

Actions run in rule priority order, then in the order the rule lists them.
Every execution is time-boxed and isolated: one failing action is logged
and never stops its siblings, nor changes the alert's lifecycle state.
Actions with a delay are scheduled as background tasks.

Pattern: Orchestrator, delegates to stateless channels.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from src.alerts.channels import ActionChannel
from src.alerts.config import AlertConfig
from src.alerts.schemas import Alert, AlertAction, AlertRule
from src.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """Outcome of one action for one alert.

    ``success`` is None for actions scheduled with a delay.
    """

    rule_id: str
    action_type: str
    success: bool | None
    scheduled: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "action_type": self.action_type,
            "success": self.success,
            "scheduled": self.scheduled,
            "error": self.error,
        }


class ActionDispatcher:
    """Runs rule actions against their channels."""

    def __init__(
        self,
        channels: dict[str, ActionChannel],
        config: AlertConfig | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._channels = dict(channels)
        self._config = config or AlertConfig()
        self._metrics = metrics
        self._pending: set[asyncio.Task] = set()

    @property
    def channels(self) -> dict[str, ActionChannel]:
        """Registered channels keyed by action type (for inspection/testing)."""
        return self._channels

    @property
    def pending(self) -> int:
        """Delayed actions not yet executed."""
        return len(self._pending)

    def register_channel(self, channel: ActionChannel, action_type: str | None = None) -> None:
        self._channels[action_type or channel.name] = channel

    async def dispatch(self, alert: Alert, rules: list[AlertRule]) -> list[ActionResult]:
        """Execute every action of the given rules for an alert.

        Args:
            alert: Alert that triggered the rules.
            rules: Matched rules, already in execution order.

        Returns:
            One result per action, in execution order.
        """
        results: list[ActionResult] = []

        for rule in rules:
            for action in rule.actions:
                if action.delay_minutes > 0:
                    self._schedule(rule, action, alert)
                    results.append(
                        ActionResult(rule.rule_id, action.type, success=None, scheduled=True)
                    )
                    continue
                results.append(await self._run(rule, action, alert))

        self._record_delivery(alert, results)
        return results

    async def aclose(self) -> None:
        """Cancel delayed actions that have not run yet."""
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d pending delayed actions", len(tasks))
        self._pending.clear()

    def _schedule(self, rule: AlertRule, action: AlertAction, alert: Alert) -> None:
        async def delayed() -> None:
            await asyncio.sleep(action.delay_seconds)
            await self._run(rule, action, alert)

        task = asyncio.create_task(
            delayed(), name=f"alert-action-{action.type}-{alert.alert_id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self._record_metric(action.type, "scheduled")
        logger.debug(
            "Scheduled %s action for alert %s in %.0fs",
            action.type, alert.alert_id, action.delay_seconds,
        )

    async def _run(self, rule: AlertRule, action: AlertAction, alert: Alert) -> ActionResult:
        """Execute one action with retries, never raising."""
        channel = self._channels.get(action.type)
        if channel is None:
            logger.warning(
                "No channel registered for action type %s (rule %s)",
                action.type, rule.rule_id,
            )
            self._record_metric(action.type, "failure")
            return ActionResult(rule.rule_id, action.type, False, error="no channel registered")

        max_attempts = self._config.action_max_attempts
        error: str | None = None

        for attempt in range(max_attempts):
            try:
                success = await asyncio.wait_for(
                    channel.execute(action, alert),
                    timeout=self._config.action_timeout_seconds,
                )
                if success:
                    if attempt > 0:
                        logger.info(
                            "Action %s for alert %s succeeded on attempt %d",
                            action.type, alert.alert_id, attempt + 1,
                        )
                    self._record_metric(action.type, "success")
                    return ActionResult(rule.rule_id, action.type, True)
                error = "channel reported failure"
            except asyncio.TimeoutError:
                error = f"timed out after {self._config.action_timeout_seconds}s"
                logger.warning(
                    "Action %s for alert %s %s (attempt %d)",
                    action.type, alert.alert_id, error, attempt + 1,
                )
            except Exception as e:
                error = f"{type(e).__name__}: {e}"
                logger.warning(
                    "Action %s for alert %s raised (attempt %d): %s",
                    action.type, alert.alert_id, attempt + 1, e,
                )

            if attempt < max_attempts - 1:
                await asyncio.sleep(self._config.action_retry_delay_seconds)

        self._record_metric(action.type, "failure")
        return ActionResult(rule.rule_id, action.type, False, error=error)

    def _record_metric(self, action_type: str, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.record_action(action_type, outcome)

    def _record_delivery(self, alert: Alert, results: list[ActionResult]) -> None:
        """Log dispatch results."""
        successes = [r.action_type for r in results if r.success]
        failures = [r.action_type for r in results if r.success is False]

        if failures and not successes:
            logger.error(
                "Alert %s (%s) failed ALL actions: %s",
                alert.alert_id, alert.severity, failures,
            )
        elif failures:
            logger.warning(
                "Alert %s partial dispatch: ok=%s failed=%s",
                alert.alert_id, successes, failures,
            )
        elif successes:
            logger.debug("Alert %s dispatched: %s", alert.alert_id, successes)
