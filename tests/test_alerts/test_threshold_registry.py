"""Tests for ThresholdRegistry CRUD."""

from unittest.mock import MagicMock

import pytest

from src.alerts.errors import AlertNotFoundError, AlertValidationError
from src.alerts.persistence import PersistenceWriter
from src.alerts.registry import ThresholdRegistry


@pytest.fixture
def writer():
    return MagicMock(spec=PersistenceWriter)


@pytest.fixture
def registry(writer):
    return ThresholdRegistry(writer, default_cooldown_minutes=45)


class TestCreate:

    def test_create_assigns_id_and_default_cooldown(self, registry, writer, threshold_spec):
        threshold_spec.pop("cooldown_minutes")
        threshold = registry.create(threshold_spec)

        assert threshold.cooldown_minutes == 45
        assert registry.get(threshold.threshold_id) is threshold
        writer.save_threshold.assert_called_once_with(threshold)

    def test_create_ignores_client_ids(self, registry, threshold_spec):
        threshold = registry.create({**threshold_spec, "threshold_id": "mine"})
        assert threshold.threshold_id != "mine"

    def test_create_invalid(self, registry, writer, threshold_spec):
        with pytest.raises(AlertValidationError):
            registry.create({**threshold_spec, "operator": "approx"})
        assert len(registry) == 0
        writer.save_threshold.assert_not_called()

    def test_create_requires_mapping(self, registry):
        with pytest.raises(AlertValidationError):
            registry.create(["not", "a", "mapping"])


class TestUpdate:

    def test_partial_update(self, registry, writer, threshold_spec):
        original = registry.create(threshold_spec)
        updated = registry.update(original.threshold_id, {"value": 0.75, "severity": "critical"})

        assert updated.value == 0.75
        assert updated.severity == "critical"
        assert updated.name == original.name
        assert updated.created_at == original.created_at
        assert updated.updated_at >= original.updated_at
        assert registry.get(original.threshold_id) is updated
        assert writer.save_threshold.call_count == 2

    def test_update_unknown(self, registry):
        with pytest.raises(AlertNotFoundError):
            registry.update("missing", {"value": 1})

    def test_update_invalid_leaves_original(self, registry, threshold_spec):
        original = registry.create(threshold_spec)
        with pytest.raises(AlertValidationError):
            registry.update(original.threshold_id, {"severity": "fatal"})
        assert registry.get(original.threshold_id) is original

    def test_id_is_immutable(self, registry, threshold_spec):
        original = registry.create(threshold_spec)
        with pytest.raises(AlertValidationError, match="threshold_id"):
            registry.update(original.threshold_id, {"threshold_id": "other"})

    def test_same_id_in_update_is_allowed(self, registry, threshold_spec):
        original = registry.create(threshold_spec)
        updated = registry.update(
            original.threshold_id, {"threshold_id": original.threshold_id, "value": 2},
        )
        assert updated.value == 2


class TestQueries:

    def test_delete(self, registry, writer, threshold_spec):
        threshold = registry.create(threshold_spec)
        assert registry.delete(threshold.threshold_id) is True
        assert registry.delete(threshold.threshold_id) is False
        assert threshold.threshold_id not in registry
        writer.delete_threshold.assert_called_once_with(threshold.threshold_id)

    def test_list_filters_enabled(self, registry, threshold_spec):
        a = registry.create(threshold_spec)
        b = registry.create({**threshold_spec, "name": "Second", "enabled": False})

        assert [t.threshold_id for t in registry.list()] == [a.threshold_id, b.threshold_id]
        assert registry.list(enabled=True) == [a]
        assert registry.list(enabled=False) == [b]

    def test_enable_disable(self, registry, threshold_spec):
        threshold = registry.create(threshold_spec)
        assert registry.disable(threshold.threshold_id).enabled is False
        assert registry.enable(threshold.threshold_id).enabled is True

    def test_add_without_persist(self, registry, writer, threshold):
        registry.add(threshold, persist=False)
        assert threshold.threshold_id in registry
        writer.save_threshold.assert_not_called()
