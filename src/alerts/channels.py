"""Action channel implementations for alert notifications.

Provides an ABC for action channels plus one concrete channel per action
type: ``log`` and ``dashboard`` are local, ``webhook``, ``slack``,
``teams`` and ``email`` perform external I/O. A CircuitBreaker decorator
wraps any external channel to prevent cascading failures when downstream
services are unhealthy.

Pattern: Decorator (CircuitBreaker wraps any ActionChannel).
"""

import asyncio
import enum
import logging
import smtplib
import ssl
import string
import time
from abc import ABC, abstractmethod
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from typing import Any

import httpx
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.alerts.events import EventBus
from src.alerts.schemas import Alert, AlertAction

logger = logging.getLogger(__name__)

SEVERITY_LOG_LEVELS: dict[str, int] = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "critical": logging.ERROR,
    "emergency": logging.CRITICAL,
}


class ChannelConfig(BaseSettings):
    """Defaults for external channels, used when an action omits them."""

    model_config = SettingsConfigDict(
        env_prefix="CHANNELS_",
        case_sensitive=False,
        extra="ignore",
    )

    webhook_url: str | None = Field(default=None, description="Default webhook URL")
    slack_webhook_url: str | None = Field(default=None, description="Slack incoming webhook")
    slack_channel: str | None = Field(default=None, description="Slack channel override")
    teams_webhook_url: str | None = Field(default=None, description="Teams incoming webhook")
    http_timeout_seconds: float = Field(default=10.0, gt=0)

    smtp_host: str = Field(default="localhost")
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_username: str | None = Field(default=None)
    smtp_password: str | None = Field(default=None)
    smtp_use_tls: bool = Field(default=True)
    smtp_from: str = Field(default="alerts@localhost")
    smtp_from_name: str = Field(default="Metric Alerts")
    email_recipients: str | None = Field(
        default=None,
        description="Comma-separated default recipients",
    )

    circuit_failure_threshold: int = Field(default=5, ge=1)
    circuit_recovery_seconds: float = Field(default=60.0, ge=0)

    @property
    def default_recipients(self) -> list[str]:
        if not self.email_recipients:
            return []
        return [r.strip() for r in self.email_recipients.split(",") if r.strip()]


def render_message(action: AlertAction, alert: Alert) -> str:
    """Action message with ``$field`` placeholders filled from the alert.

    Falls back to the alert title and description when the action carries
    neither ``message`` nor ``template``.
    """
    template = action.config.get("message") or action.config.get("template")
    if not template:
        return f"{alert.title} - {alert.description}"
    return string.Template(str(template)).safe_substitute(alert.to_dict())


class ActionChannel(ABC):
    """Abstract base for action channels."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Action type served by this channel (e.g. 'webhook', 'slack')."""

    @abstractmethod
    async def execute(self, action: AlertAction, alert: Alert) -> bool:
        """Run an action for an alert.

        Args:
            action: Action carrying channel-specific config.
            alert: Alert that triggered the action.

        Returns:
            True if the action succeeded, False otherwise.
        """


class LogChannel(ActionChannel):
    """Writes the alert to the application log at a severity-mapped level."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logging.getLogger("src.alerts.notifications")

    @property
    def name(self) -> str:
        return "log"

    async def execute(self, action: AlertAction, alert: Alert) -> bool:
        level = SEVERITY_LOG_LEVELS.get(alert.severity, logging.WARNING)
        self._log.log(
            level,
            "[ALERT %s] %s (value=%s expected=%s)",
            alert.alert_id, render_message(action, alert),
            alert.current_value, alert.expected_value,
        )
        return True


class DashboardChannel(ActionChannel):
    """Publishes a ``dashboard_alert`` event for dashboard subscribers."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus

    @property
    def name(self) -> str:
        return "dashboard"

    async def execute(self, action: AlertAction, alert: Alert) -> bool:
        await self._bus.emit(
            "dashboard_alert",
            alert,
            data={"message": render_message(action, alert)},
        )
        return True


class _HttpChannel(ActionChannel):
    """POSTs a JSON payload to an incoming-webhook style endpoint.

    Creates a new ``httpx.AsyncClient`` per call (short-lived, no pooling)
    matching the project's HTTP pattern.
    """

    def __init__(self, default_url: str | None = None, timeout: float = 10.0) -> None:
        self._default_url = default_url
        self._timeout = timeout

    def _resolve_url(self, action: AlertAction) -> str | None:
        return action.config.get("webhook_url") or self._default_url

    @abstractmethod
    def _build_payload(self, action: AlertAction, alert: Alert) -> dict[str, Any]:
        """Channel-specific JSON body."""

    def _headers(self, action: AlertAction) -> dict[str, str]:
        return {}

    async def execute(self, action: AlertAction, alert: Alert) -> bool:
        url = self._resolve_url(action)
        if not url:
            logger.warning(
                "No %s URL configured for alert %s", self.name, alert.alert_id,
            )
            return False

        payload = self._build_payload(action, alert)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=payload, headers=self._headers(action))
                if resp.is_success:
                    return True
                logger.warning(
                    "%s endpoint returned %d for alert %s",
                    self.name, resp.status_code, alert.alert_id,
                )
                return False
        except httpx.TimeoutException:
            logger.warning("%s endpoint timed out for alert %s", self.name, alert.alert_id)
            return False
        except httpx.HTTPError as e:
            logger.warning(
                "%s endpoint failed for alert %s: %s", self.name, alert.alert_id, e,
            )
            return False


class WebhookChannel(_HttpChannel):
    """Delivers alerts as JSON POST to an arbitrary HTTP endpoint."""

    @property
    def name(self) -> str:
        return "webhook"

    def _headers(self, action: AlertAction) -> dict[str, str]:
        return dict(action.config.get("headers") or {})

    def _build_payload(self, action: AlertAction, alert: Alert) -> dict[str, Any]:
        return {
            "event": "alert_triggered",
            "message": render_message(action, alert),
            "alert": alert.to_dict(),
        }


class SlackChannel(_HttpChannel):
    """Delivers alerts to a Slack channel via incoming webhook.

    Formats alerts using Slack Block Kit for rich display.
    """

    def __init__(
        self,
        default_url: str | None = None,
        channel: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(default_url, timeout)
        self._channel = channel

    @property
    def name(self) -> str:
        return "slack"

    def _build_payload(self, action: AlertAction, alert: Alert) -> dict[str, Any]:
        severity_emoji = {
            "emergency": ":rotating_light:",
            "critical": ":red_circle:",
            "warning": ":large_orange_circle:",
            "info": ":large_blue_circle:",
        }
        emoji = severity_emoji.get(alert.severity, ":white_circle:")

        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": f"{emoji} {alert.title}"},
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": render_message(action, alert)},
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": (
                            f"*Metric:* {alert.metric} | "
                            f"*Value:* {alert.current_value} | "
                            f"*Expected:* {alert.expected_value} | "
                            f"*Deviation:* {alert.deviation_percentage:.1f}%"
                        ),
                    },
                ],
            },
        ]

        payload: dict[str, Any] = {"blocks": blocks}
        channel = action.config.get("channel") or self._channel
        if channel:
            payload["channel"] = channel
        return payload


class TeamsChannel(_HttpChannel):
    """Delivers alerts to Microsoft Teams as a MessageCard."""

    THEME_COLORS = {
        "info": "0078D4",
        "warning": "FFB900",
        "critical": "D13438",
        "emergency": "8661C5",
    }

    @property
    def name(self) -> str:
        return "teams"

    def _build_payload(self, action: AlertAction, alert: Alert) -> dict[str, Any]:
        facts = [
            {"name": "Severity", "value": alert.severity.upper()},
            {"name": "Metric", "value": alert.metric},
            {"name": "Current value", "value": str(alert.current_value)},
            {"name": "Expected", "value": str(alert.expected_value)},
            {"name": "Triggered", "value": alert.triggered_at.strftime("%Y-%m-%d %H:%M:%S UTC")},
        ]
        if alert.trigger_count > 1:
            facts.append({"name": "Triggers", "value": str(alert.trigger_count)})

        return {
            "@type": "MessageCard",
            "@context": "https://schema.org/extensions",
            "summary": alert.title,
            "themeColor": self.THEME_COLORS.get(alert.severity, "808080"),
            "title": alert.title,
            "sections": [
                {
                    "activityTitle": render_message(action, alert),
                    "facts": facts,
                },
            ],
        }


class EmailChannel(ActionChannel):
    """Sends a plain-text email over SMTP.

    ``smtplib`` is blocking, so delivery runs in a worker thread.
    """

    def __init__(self, config: ChannelConfig) -> None:
        self._config = config

    @property
    def name(self) -> str:
        return "email"

    def _recipients(self, action: AlertAction) -> list[str]:
        recipients = action.config.get("recipients")
        if isinstance(recipients, str):
            recipients = [r.strip() for r in recipients.split(",")]
        if recipients:
            return [r for r in recipients if r]
        return self._config.default_recipients

    def build_message(self, action: AlertAction, alert: Alert, recipients: list[str]) -> MIMEText:
        body = "\n".join([
            render_message(action, alert),
            "",
            f"Metric:    {alert.metric}",
            f"Value:     {alert.current_value}",
            f"Expected:  {alert.expected_value}",
            f"Deviation: {alert.deviation_percentage:.1f}%",
            f"Status:    {alert.status}",
            f"Alert ID:  {alert.alert_id}",
        ])
        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = action.config.get("subject") or f"[{alert.severity.upper()}] {alert.title}"
        msg["From"] = formataddr((self._config.smtp_from_name, self._config.smtp_from))
        msg["To"] = ", ".join(recipients)
        msg["Date"] = formatdate(localtime=True)
        return msg

    def _send_sync(self, msg: MIMEText, recipients: list[str]) -> None:
        cfg = self._config
        with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port, timeout=cfg.http_timeout_seconds) as server:
            if cfg.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
            if cfg.smtp_username and cfg.smtp_password:
                server.login(cfg.smtp_username, cfg.smtp_password)
            server.sendmail(cfg.smtp_from, recipients, msg.as_string())

    async def execute(self, action: AlertAction, alert: Alert) -> bool:
        recipients = self._recipients(action)
        if not recipients:
            logger.warning("No email recipients for alert %s", alert.alert_id)
            return False

        msg = self.build_message(action, alert, recipients)
        try:
            await asyncio.to_thread(self._send_sync, msg, recipients)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("Email failed for alert %s: %s", alert.alert_id, e)
            return False

        logger.info("Email sent for alert %s to %d recipient(s)", alert.alert_id, len(recipients))
        return True


class CircuitState(enum.Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker(ActionChannel):
    """Wraps an ActionChannel with circuit breaker protection.

    State machine: CLOSED → OPEN → HALF_OPEN → CLOSED.

    - CLOSED: All requests pass through. Consecutive failures tracked.
    - OPEN: Requests rejected immediately. After recovery_timeout, moves
      to HALF_OPEN.
    - HALF_OPEN: Single probe request allowed. Success → CLOSED, failure → OPEN.

    An exception from the wrapped channel counts as a failure and is
    re-raised.
    """

    def __init__(
        self,
        channel: ActionChannel,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
    ) -> None:
        self._channel = channel
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_time: float = 0.0

    @property
    def name(self) -> str:
        return self._channel.name

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def wrapped(self) -> ActionChannel:
        return self._channel

    async def execute(self, action: AlertAction, alert: Alert) -> bool:
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._last_failure_time >= self._recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info(
                    "Circuit breaker %s: OPEN → HALF_OPEN (recovery probe)", self.name,
                )
            else:
                logger.debug(
                    "Circuit breaker %s: OPEN, rejecting alert %s",
                    self.name, alert.alert_id,
                )
                return False

        try:
            success = await self._channel.execute(action, alert)
        except Exception:
            self._record_failure()
            raise

        if success:
            if self._state == CircuitState.HALF_OPEN:
                logger.info(
                    "Circuit breaker %s: HALF_OPEN → CLOSED (probe succeeded)", self.name,
                )
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
        else:
            self._record_failure()

        return success

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        self._last_failure_time = time.monotonic()

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning("Circuit breaker %s: HALF_OPEN → OPEN (probe failed)", self.name)
        elif self._consecutive_failures >= self._failure_threshold:
            if self._state != CircuitState.OPEN:
                logger.warning(
                    "Circuit breaker %s: CLOSED → OPEN after %d failures",
                    self.name, self._consecutive_failures,
                )
            self._state = CircuitState.OPEN


def build_channels(
    config: ChannelConfig,
    bus: EventBus,
) -> dict[str, ActionChannel]:
    """One channel per action type; external ones behind a circuit breaker."""
    external: list[ActionChannel] = [
        WebhookChannel(config.webhook_url, timeout=config.http_timeout_seconds),
        SlackChannel(
            config.slack_webhook_url,
            channel=config.slack_channel,
            timeout=config.http_timeout_seconds,
        ),
        TeamsChannel(config.teams_webhook_url, timeout=config.http_timeout_seconds),
        EmailChannel(config),
    ]
    channels: dict[str, ActionChannel] = {
        "log": LogChannel(),
        "dashboard": DashboardChannel(bus),
    }
    for channel in external:
        channels[channel.name] = CircuitBreaker(
            channel,
            failure_threshold=config.circuit_failure_threshold,
            recovery_timeout=config.circuit_recovery_seconds,
        )
    return channels
