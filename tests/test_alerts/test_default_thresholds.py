"""Tests for the default threshold catalogue."""

from src.alerts.defaults import DEFAULT_THRESHOLDS, default_thresholds


def test_category_sizes():
    assert {k: len(v) for k, v in DEFAULT_THRESHOLDS.items()} == {
        "cost": 4,
        "performance": 4,
        "usage": 3,
        "compliance": 3,
    }


def test_all_defaults_are_valid_and_tagged():
    thresholds = default_thresholds()

    assert len(thresholds) == 14
    assert len({t.threshold_id for t in thresholds}) == 14
    assert all(t.enabled for t in thresholds)
    assert {t.metadata["category"] for t in thresholds} == set(DEFAULT_THRESHOLDS)


def test_fresh_records_each_call():
    first = default_thresholds()
    second = default_thresholds()
    assert first[0].threshold_id != second[0].threshold_id
    first[0].metadata["category"] = "changed"
    assert DEFAULT_THRESHOLDS["cost"][0].get("metadata") is None


def test_cost_per_document_pair():
    by_name = {t.name: t for t in default_thresholds()}
    warning = by_name["High AI Cost per Document"]
    critical = by_name["Critical AI Cost per Document"]

    assert (warning.operator, warning.value, warning.severity) == ("gt", 0.5, "warning")
    assert (critical.value, critical.severity, critical.cooldown_minutes) == (1.0, "critical", 15)
