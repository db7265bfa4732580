"""In-memory threshold registry with a write-behind persistence mirror."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from src.alerts.errors import AlertNotFoundError, AlertValidationError
from src.alerts.persistence import PersistenceWriter
from src.alerts.schemas import AlertThreshold, utcnow

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS: tuple[str, ...] = ("threshold_id", "created_at")


class ThresholdRegistry:
    """Owns the set of configured thresholds.

    Validation happens synchronously before anything is stored or mirrored;
    persistence failures never roll back the in-memory registry.
    """

    def __init__(
        self,
        writer: PersistenceWriter | None = None,
        default_cooldown_minutes: float = 60,
    ) -> None:
        self._writer = writer
        self._default_cooldown = default_cooldown_minutes
        self._thresholds: dict[str, AlertThreshold] = {}

    def create(self, spec: Mapping[str, Any]) -> AlertThreshold:
        """Validate and register a new threshold.

        Args:
            spec: Threshold fields; ``name``, ``metric``, ``operator``,
                ``value`` and ``severity`` are required.

        Raises:
            AlertValidationError: On missing, unknown, or invalid fields.
        """
        if not isinstance(spec, Mapping):
            raise AlertValidationError("threshold must be a mapping")
        data = dict(spec)
        for name in ("threshold_id", "created_at", "updated_at"):
            data.pop(name, None)
        data.setdefault("cooldown_minutes", self._default_cooldown)

        threshold = AlertThreshold.from_dict(data)
        self._thresholds[threshold.threshold_id] = threshold
        self._mirror_save(threshold)
        logger.info(
            "Created threshold %s (%s %s %s)",
            threshold.threshold_id, threshold.metric, threshold.operator, threshold.value,
        )
        return threshold

    def add(self, threshold: AlertThreshold, persist: bool = True) -> AlertThreshold:
        """Register an already-built threshold (defaults, hydration)."""
        self._thresholds[threshold.threshold_id] = threshold
        if persist:
            self._mirror_save(threshold)
        return threshold

    def update(self, threshold_id: str, partial: Mapping[str, Any]) -> AlertThreshold:
        """Merge fields into a threshold and re-validate the result.

        Raises:
            AlertNotFoundError: If no threshold has this id.
            AlertValidationError: If the merged threshold is invalid or the
                update touches an immutable field.
        """
        current = self._require(threshold_id)
        changes = dict(partial)
        for name in IMMUTABLE_FIELDS:
            if name in changes and changes[name] != getattr(current, name):
                raise AlertValidationError(f"{name} cannot be changed", field=name)
            changes.pop(name, None)
        changes.pop("updated_at", None)

        data = current.to_dict()
        data.update(changes)
        data["updated_at"] = utcnow()
        updated = AlertThreshold.from_dict(data)

        self._thresholds[threshold_id] = updated
        self._mirror_save(updated)
        logger.info("Updated threshold %s: %s", threshold_id, sorted(changes))
        return updated

    def delete(self, threshold_id: str) -> bool:
        removed = self._thresholds.pop(threshold_id, None)
        if removed is None:
            return False
        if self._writer is not None:
            self._writer.delete_threshold(threshold_id)
        logger.info("Deleted threshold %s", threshold_id)
        return True

    def get(self, threshold_id: str) -> AlertThreshold | None:
        return self._thresholds.get(threshold_id)

    def list(self, enabled: bool | None = None) -> list[AlertThreshold]:
        """Thresholds ordered by creation time, optionally filtered."""
        thresholds = sorted(self._thresholds.values(), key=lambda t: t.created_at)
        if enabled is None:
            return thresholds
        return [t for t in thresholds if t.enabled is enabled]

    def enable(self, threshold_id: str) -> AlertThreshold:
        return self.update(threshold_id, {"enabled": True})

    def disable(self, threshold_id: str) -> AlertThreshold:
        return self.update(threshold_id, {"enabled": False})

    def __len__(self) -> int:
        return len(self._thresholds)

    def __contains__(self, threshold_id: object) -> bool:
        return threshold_id in self._thresholds

    def _require(self, threshold_id: str) -> AlertThreshold:
        threshold = self._thresholds.get(threshold_id)
        if threshold is None:
            raise AlertNotFoundError("threshold", threshold_id)
        return threshold

    def _mirror_save(self, threshold: AlertThreshold) -> None:
        if self._writer is not None:
            self._writer.save_threshold(threshold)
