"""Threshold alerting engine.

Components:
- AlertThreshold / Alert / AlertRule / AlertCondition / AlertAction: Records
- MetricProviderRegistry: Registered metric lookup functions
- ThresholdRegistry / RuleEngine / AlertStore: In-memory state owners
- CooldownController: Per threshold+context re-trigger suppression
- Evaluator / BreachOutcome: Single-threshold evaluation
- ActionChannel / ActionDispatcher / CircuitBreaker: Notification delivery
- EventBus / AlertEvent: Lifecycle event subscriptions
- AlertStorage / PersistenceWriter / AlertRepository: Persistence mirror
- MonitoringLoop: Periodic driver
- AlertEngine: Composition root and management API
"""

from src.alerts.channels import (
    ActionChannel,
    ChannelConfig,
    CircuitBreaker,
    DashboardChannel,
    EmailChannel,
    LogChannel,
    SlackChannel,
    TeamsChannel,
    WebhookChannel,
)
from src.alerts.config import AlertConfig
from src.alerts.cooldown import CooldownController
from src.alerts.dispatcher import ActionDispatcher, ActionResult
from src.alerts.engine import AlertEngine, CheckSummary
from src.alerts.errors import (
    AlertEngineError,
    AlertNotFoundError,
    AlertValidationError,
    InvalidTransitionError,
    MetricFetchError,
)
from src.alerts.evaluator import BreachOutcome, Evaluator
from src.alerts.events import AlertEvent, EventBus
from src.alerts.lifecycle import AlertStore
from src.alerts.monitor import MonitoringLoop
from src.alerts.persistence import AlertStorage, InMemoryAlertStorage, PersistenceWriter
from src.alerts.providers import MetricProviderRegistry
from src.alerts.registry import ThresholdRegistry
from src.alerts.repository import AlertRepository
from src.alerts.rules import RuleEngine
from src.alerts.schemas import (
    VALID_ACTION_TYPES,
    VALID_OPERATORS,
    VALID_SEVERITIES,
    VALID_STATUSES,
    Alert,
    AlertAction,
    AlertCondition,
    AlertMetrics,
    AlertRule,
    AlertSeverity,
    AlertStatus,
    AlertThreshold,
    ThresholdContext,
)

__all__ = [
    "ActionChannel",
    "ActionDispatcher",
    "ActionResult",
    "Alert",
    "AlertAction",
    "AlertCondition",
    "AlertConfig",
    "AlertEngine",
    "AlertEngineError",
    "AlertEvent",
    "AlertMetrics",
    "AlertNotFoundError",
    "AlertRepository",
    "AlertRule",
    "AlertSeverity",
    "AlertStatus",
    "AlertStorage",
    "AlertStore",
    "AlertThreshold",
    "AlertValidationError",
    "BreachOutcome",
    "ChannelConfig",
    "CheckSummary",
    "CircuitBreaker",
    "CooldownController",
    "DashboardChannel",
    "EmailChannel",
    "Evaluator",
    "EventBus",
    "InMemoryAlertStorage",
    "InvalidTransitionError",
    "LogChannel",
    "MetricFetchError",
    "MetricProviderRegistry",
    "MonitoringLoop",
    "PersistenceWriter",
    "RuleEngine",
    "SlackChannel",
    "TeamsChannel",
    "ThresholdContext",
    "ThresholdRegistry",
    "VALID_ACTION_TYPES",
    "VALID_OPERATORS",
    "VALID_SEVERITIES",
    "VALID_STATUSES",
    "WebhookChannel",
]
