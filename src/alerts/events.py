"""Lifecycle event bus.

Listeners subscribe explicitly and receive an ``AlertEvent`` for every
alert creation and lifecycle transition, plus ``dashboard_alert`` events
produced by the dashboard action channel. A failing or timed-out listener
is logged and never affects other listeners or the emitter.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Union

from src.alerts.schemas import Alert, utcnow

logger = logging.getLogger(__name__)

EventType = Literal[
    "alert_triggered",
    "alert_acknowledged",
    "alert_resolved",
    "alert_suppressed",
    "dashboard_alert",
]

VALID_EVENT_TYPES: frozenset[str] = frozenset({
    "alert_triggered",
    "alert_acknowledged",
    "alert_resolved",
    "alert_suppressed",
    "dashboard_alert",
})

# Status reached -> event announcing it
TRANSITION_EVENTS: dict[str, str] = {
    "acknowledged": "alert_acknowledged",
    "resolved": "alert_resolved",
    "suppressed": "alert_suppressed",
}


@dataclass(frozen=True)
class AlertEvent:
    """Something that happened to an alert."""

    type: str
    alert: Alert
    emitted_at: datetime = field(default_factory=utcnow)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "alert": self.alert.to_dict(),
            "emitted_at": self.emitted_at.isoformat(),
            "data": dict(self.data),
        }


EventListener = Callable[[AlertEvent], Union[None, Awaitable[None]]]


@dataclass(eq=False)
class _Subscription:
    listener: EventListener
    event_types: frozenset[str] | None

    def wants(self, event_type: str) -> bool:
        return self.event_types is None or event_type in self.event_types


class EventBus:
    """Fan-out of alert events to subscribed listeners.

    Args:
        listener_timeout: Seconds an async listener may take before it is
            cancelled and logged; unbounded when None.
    """

    def __init__(self, listener_timeout: float | None = None) -> None:
        self._subscriptions: list[_Subscription] = []
        self._listener_timeout = listener_timeout

    def subscribe(
        self,
        listener: EventListener,
        event_types: Iterable[str] | None = None,
    ) -> Callable[[], None]:
        """Register a listener.

        Args:
            listener: Sync or async callable receiving ``AlertEvent``.
            event_types: Restrict delivery to these types; all when None.

        Returns:
            A callable that removes the subscription.
        """
        types = None
        if event_types is not None:
            types = frozenset(event_types)
            unknown = sorted(types - VALID_EVENT_TYPES)
            if unknown:
                raise ValueError(f"Unknown event type(s): {unknown}")

        subscription = _Subscription(listener=listener, event_types=types)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    async def emit(
        self,
        event_type: str,
        alert: Alert,
        data: dict[str, Any] | None = None,
    ) -> AlertEvent:
        """Deliver an event to every interested listener, in subscription order."""
        event = AlertEvent(type=event_type, alert=alert, data=data or {})

        for subscription in list(self._subscriptions):
            if not subscription.wants(event_type):
                continue
            try:
                result = subscription.listener(event)
                if inspect.isawaitable(result):
                    await asyncio.wait_for(result, self._listener_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Event listener %r timed out after %ss for %s on alert %s",
                    subscription.listener, self._listener_timeout,
                    event_type, alert.alert_id,
                )
            except Exception:
                logger.exception(
                    "Event listener %r failed for %s on alert %s",
                    subscription.listener, event_type, alert.alert_id,
                )

        return event

    def __len__(self) -> int:
        return len(self._subscriptions)
