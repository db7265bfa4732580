"""Per (threshold, context) cooldown tracking.

A threshold that has triggered for a given context is not allowed to
trigger again for the same context until ``cooldown_minutes`` have elapsed.
State is process-local and resets on restart.
"""

import hashlib
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from src.alerts.schemas import AlertThreshold, ThresholdContext, context_key, utcnow

logger = logging.getLogger(__name__)


class CooldownController:
    """Remembers the last trigger time of each threshold + context pair.

    Args:
        clock: Returns the current UTC time. Injectable for tests.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._last_triggers: dict[str, datetime] = {}
        self._keys_by_threshold: dict[str, set[str]] = {}

    @staticmethod
    def key_for(threshold_id: str, context: ThresholdContext | None = None) -> str:
        """Stable key for a threshold and its (possibly absent) context."""
        raw = f"{threshold_id}:{context_key(context)}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def now(self) -> datetime:
        return self._clock()

    def should_suppress(
        self,
        threshold: AlertThreshold,
        context: ThresholdContext | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Whether the threshold is still cooling down for this context.

        Args:
            threshold: Threshold about to be evaluated.
            context: Context to check; defaults to the threshold's own.
            now: Evaluation time; defaults to the controller clock.
        """
        if context is None:
            context = threshold.context
        last = self._last_triggers.get(self.key_for(threshold.threshold_id, context))
        if last is None:
            return False

        now = now or self._clock()
        return now - last < timedelta(minutes=threshold.cooldown_minutes)

    def record_trigger(
        self,
        threshold_id: str,
        context: ThresholdContext | None = None,
        now: datetime | None = None,
    ) -> str:
        """Record that a threshold triggered.

        Returns:
            The cooldown key that was updated.
        """
        key = self.key_for(threshold_id, context)
        self._last_triggers[key] = now or self._clock()
        self._keys_by_threshold.setdefault(threshold_id, set()).add(key)
        return key

    def last_trigger(
        self,
        threshold_id: str,
        context: ThresholdContext | None = None,
    ) -> datetime | None:
        return self._last_triggers.get(self.key_for(threshold_id, context))

    def clear(self, key: str | None = None) -> None:
        """Forget one cooldown key, or every key when none is given."""
        if key is None:
            self._last_triggers.clear()
            self._keys_by_threshold.clear()
            return
        self._last_triggers.pop(key, None)
        for keys in self._keys_by_threshold.values():
            keys.discard(key)

    def forget_threshold(self, threshold_id: str) -> int:
        """Drop every cooldown entry of a threshold.

        Returns:
            Number of entries removed.
        """
        keys = self._keys_by_threshold.pop(threshold_id, set())
        for key in keys:
            self._last_triggers.pop(key, None)
        if keys:
            logger.debug(
                "Cleared %d cooldown entries for threshold %s", len(keys), threshold_id,
            )
        return len(keys)

    def __len__(self) -> int:
        return len(self._last_triggers)
