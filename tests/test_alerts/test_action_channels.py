"""Tests for action channels and the circuit breaker."""

import logging
import smtplib
from email import message_from_string
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.alerts.channels import (
    ChannelConfig,
    CircuitBreaker,
    CircuitState,
    DashboardChannel,
    EmailChannel,
    LogChannel,
    SlackChannel,
    TeamsChannel,
    WebhookChannel,
    build_channels,
    render_message,
)
from src.alerts.events import EventBus
from src.alerts.schemas import Alert, AlertAction

from tests.conftest import T0, RecordingChannel


# ── Fixtures ────────────────────────────────────────────


@pytest.fixture
def sample_alert():
    return Alert(
        alert_id="test-alert-001",
        threshold_id="t-cost",
        metric="ai_cost_per_document",
        current_value=0.62,
        expected_value=0.5,
        severity="critical",
        title="CRITICAL: High AI Cost per Document",
        description="Cost per document above budget",
        deviation=0.12,
        deviation_percentage=24.0,
        triggered_at=T0,
    )


def _mock_response(status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code=status_code, request=httpx.Request("POST", "http://test"))


def _patched_client(mock_client_cls, response=None, side_effect=None):
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = response
    mock_client_cls.return_value.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client_cls.return_value.__aexit__ = AsyncMock(return_value=False)
    return mock_client


# ── Message rendering ───────────────────────────────────


class TestRenderMessage:

    def test_default_message(self, sample_alert):
        action = AlertAction(type="log")
        assert render_message(action, sample_alert) == (
            "CRITICAL: High AI Cost per Document - Cost per document above budget"
        )

    def test_template_placeholders(self, sample_alert):
        action = AlertAction(type="slack", config={"message": "$metric is at $current_value"})
        assert render_message(action, sample_alert) == "ai_cost_per_document is at 0.62"

    def test_unknown_placeholder_left_alone(self, sample_alert):
        action = AlertAction(type="slack", config={"template": "cost $unknown"})
        assert render_message(action, sample_alert) == "cost $unknown"


# ── Local channels ──────────────────────────────────────


class TestLocalChannels:

    @pytest.mark.asyncio
    async def test_log_channel_uses_severity_level(self, sample_alert, caplog):
        channel = LogChannel()
        with caplog.at_level(logging.INFO, logger="src.alerts.notifications"):
            assert await channel.execute(AlertAction(type="log"), sample_alert) is True

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert "test-alert-001" in record.getMessage()

    @pytest.mark.asyncio
    async def test_dashboard_emits_event(self, sample_alert):
        bus = EventBus()
        received = []
        bus.subscribe(received.append, event_types=["dashboard_alert"])

        channel = DashboardChannel(bus)
        ok = await channel.execute(
            AlertAction(type="dashboard", config={"message": "look"}), sample_alert,
        )

        assert ok is True
        assert received[0].alert is sample_alert
        assert received[0].data == {"message": "look"}


# ── HTTP channels ───────────────────────────────────────


class TestWebhookChannel:

    @pytest.mark.asyncio
    async def test_successful_send(self, sample_alert):
        channel = WebhookChannel("https://example.com/webhook")

        with patch("src.alerts.channels.httpx.AsyncClient") as mock_client_cls:
            mock_client = _patched_client(mock_client_cls, _mock_response(200))
            result = await channel.execute(AlertAction(type="webhook"), sample_alert)

        assert result is True
        call = mock_client.post.call_args
        assert call.args[0] == "https://example.com/webhook"
        payload = call.kwargs["json"]
        assert payload["event"] == "alert_triggered"
        assert payload["alert"]["alert_id"] == "test-alert-001"

    @pytest.mark.asyncio
    async def test_action_url_and_headers_override(self, sample_alert):
        channel = WebhookChannel("https://default.example.com")
        action = AlertAction(type="webhook", config={
            "webhook_url": "https://override.example.com",
            "headers": {"Authorization": "Bearer x"},
        })

        with patch("src.alerts.channels.httpx.AsyncClient") as mock_client_cls:
            mock_client = _patched_client(mock_client_cls, _mock_response(204))
            assert await channel.execute(action, sample_alert) is True

        call = mock_client.post.call_args
        assert call.args[0] == "https://override.example.com"
        assert call.kwargs["headers"] == {"Authorization": "Bearer x"}

    @pytest.mark.asyncio
    async def test_missing_url(self, sample_alert):
        assert await WebhookChannel().execute(AlertAction(type="webhook"), sample_alert) is False

    @pytest.mark.asyncio
    async def test_server_error(self, sample_alert):
        channel = WebhookChannel("https://example.com/webhook")
        with patch("src.alerts.channels.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, _mock_response(500))
            assert await channel.execute(AlertAction(type="webhook"), sample_alert) is False

    @pytest.mark.asyncio
    async def test_timeout(self, sample_alert):
        channel = WebhookChannel("https://example.com/webhook")
        with patch("src.alerts.channels.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, side_effect=httpx.ReadTimeout("slow"))
            assert await channel.execute(AlertAction(type="webhook"), sample_alert) is False

    @pytest.mark.asyncio
    async def test_connection_error(self, sample_alert):
        channel = WebhookChannel("https://example.com/webhook")
        with patch("src.alerts.channels.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, side_effect=httpx.ConnectError("refused"))
            assert await channel.execute(AlertAction(type="webhook"), sample_alert) is False


class TestSlackChannel:

    @pytest.mark.asyncio
    async def test_block_kit_payload(self, sample_alert):
        channel = SlackChannel("https://hooks.slack.com/services/T/B/X", channel="#ops")

        with patch("src.alerts.channels.httpx.AsyncClient") as mock_client_cls:
            mock_client = _patched_client(mock_client_cls, _mock_response(200))
            assert await channel.execute(AlertAction(type="slack"), sample_alert) is True

        payload = mock_client.post.call_args.kwargs["json"]
        assert payload["channel"] == "#ops"
        assert payload["blocks"][0]["type"] == "header"
        assert ":red_circle:" in payload["blocks"][0]["text"]["text"]
        assert "24.0%" in payload["blocks"][2]["elements"][0]["text"]

    def test_action_channel_override(self, sample_alert):
        channel = SlackChannel("https://hooks.slack.com/x", channel="#ops")
        payload = channel._build_payload(
            AlertAction(type="slack", config={"channel": "#cost"}), sample_alert,
        )
        assert payload["channel"] == "#cost"


class TestTeamsChannel:

    def test_message_card(self, sample_alert):
        sample_alert.trigger_count = 3
        payload = TeamsChannel("https://teams.example.com")._build_payload(
            AlertAction(type="teams"), sample_alert,
        )

        assert payload["@type"] == "MessageCard"
        assert payload["themeColor"] == "D13438"
        facts = {f["name"]: f["value"] for f in payload["sections"][0]["facts"]}
        assert facts["Severity"] == "CRITICAL"
        assert facts["Triggers"] == "3"


# ── Email ───────────────────────────────────────────────


class TestEmailChannel:

    @pytest.mark.asyncio
    async def test_sends_over_smtp(self, sample_alert):
        config = ChannelConfig(smtp_host="smtp.example.com", smtp_use_tls=False)
        channel = EmailChannel(config)
        action = AlertAction(type="email", config={"recipients": ["ops@example.com"]})

        with patch("src.alerts.channels.smtplib.SMTP") as mock_smtp:
            assert await channel.execute(action, sample_alert) is True

        mock_smtp.assert_called_once_with("smtp.example.com", 587, timeout=10.0)
        server = mock_smtp.return_value.__enter__.return_value
        from_addr, recipients, raw = server.sendmail.call_args.args
        assert from_addr == "alerts@localhost"
        assert recipients == ["ops@example.com"]
        sent = message_from_string(raw)
        assert sent["To"] == "ops@example.com"
        assert "test-alert-001" in sent.get_payload(decode=True).decode("utf-8")
        server.starttls.assert_not_called()

    @pytest.mark.asyncio
    async def test_default_recipients(self, sample_alert):
        config = ChannelConfig(email_recipients="a@example.com, b@example.com")
        channel = EmailChannel(config)

        with patch("src.alerts.channels.smtplib.SMTP") as mock_smtp:
            assert await channel.execute(AlertAction(type="email"), sample_alert) is True

        server = mock_smtp.return_value.__enter__.return_value
        assert server.sendmail.call_args.args[1] == ["a@example.com", "b@example.com"]
        server.starttls.assert_called_once()

    @pytest.mark.asyncio
    async def test_no_recipients(self, sample_alert):
        channel = EmailChannel(ChannelConfig())
        assert await channel.execute(AlertAction(type="email"), sample_alert) is False

    @pytest.mark.asyncio
    async def test_smtp_failure(self, sample_alert):
        channel = EmailChannel(ChannelConfig(smtp_use_tls=False))
        action = AlertAction(type="email", config={"recipients": "ops@example.com"})

        with patch("src.alerts.channels.smtplib.SMTP") as mock_smtp:
            server = mock_smtp.return_value.__enter__.return_value
            server.sendmail.side_effect = smtplib.SMTPRecipientsRefused({})
            assert await channel.execute(action, sample_alert) is False

    def test_subject(self, sample_alert):
        channel = EmailChannel(ChannelConfig())
        msg = channel.build_message(AlertAction(type="email"), sample_alert, ["x@example.com"])
        assert msg["Subject"] == "[CRITICAL] CRITICAL: High AI Cost per Document"
        assert msg["To"] == "x@example.com"


# ── CircuitBreaker ──────────────────────────────────────


class TestCircuitBreaker:

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, sample_alert):
        inner = RecordingChannel("webhook", outcome=False)
        breaker = CircuitBreaker(inner, failure_threshold=3, recovery_timeout=60)
        action = AlertAction(type="webhook")

        for _ in range(3):
            assert await breaker.execute(action, sample_alert) is False
        assert breaker.state == CircuitState.OPEN

        assert await breaker.execute(action, sample_alert) is False
        assert len(inner.calls) == 3

    @pytest.mark.asyncio
    async def test_half_open_probe_closes(self, sample_alert):
        inner = RecordingChannel("webhook", outcome=False)
        breaker = CircuitBreaker(inner, failure_threshold=1, recovery_timeout=0)
        action = AlertAction(type="webhook")

        await breaker.execute(action, sample_alert)
        assert breaker.state == CircuitState.OPEN

        inner.outcome = True
        assert await breaker.execute(action, sample_alert) is True
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_probe_failure_reopens(self, sample_alert):
        inner = RecordingChannel("webhook", outcome=False)
        breaker = CircuitBreaker(inner, failure_threshold=1, recovery_timeout=0)
        action = AlertAction(type="webhook")

        await breaker.execute(action, sample_alert)
        await breaker.execute(action, sample_alert)
        assert breaker.state == CircuitState.OPEN
        assert len(inner.calls) == 2

    @pytest.mark.asyncio
    async def test_exception_counts_and_propagates(self, sample_alert):
        inner = RecordingChannel("webhook", error=RuntimeError("boom"))
        breaker = CircuitBreaker(inner, failure_threshold=1)

        with pytest.raises(RuntimeError):
            await breaker.execute(AlertAction(type="webhook"), sample_alert)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_success_resets_count(self, sample_alert):
        inner = RecordingChannel("webhook", outcome=False)
        breaker = CircuitBreaker(inner, failure_threshold=2)
        action = AlertAction(type="webhook")

        await breaker.execute(action, sample_alert)
        inner.outcome = True
        await breaker.execute(action, sample_alert)
        inner.outcome = False
        await breaker.execute(action, sample_alert)

        assert breaker.state == CircuitState.CLOSED


def test_build_channels_wraps_external():
    channels = build_channels(ChannelConfig(), EventBus())

    assert set(channels) == {"log", "dashboard", "webhook", "slack", "teams", "email"}
    assert isinstance(channels["log"], LogChannel)
    assert isinstance(channels["webhook"], CircuitBreaker)
    assert isinstance(channels["email"].wrapped, EmailChannel)
