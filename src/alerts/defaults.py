"""Default threshold catalogue.

Installed when the engine starts with an empty registry and
``ALERTS_SEED_DEFAULT_THRESHOLDS`` is true. Grouped by category; the
category is copied into each threshold's metadata.
"""

from typing import Any

from src.alerts.schemas import AlertThreshold

COST_THRESHOLDS: list[dict[str, Any]] = [
    {
        "name": "High AI Cost per Document",
        "description": "Alert when AI cost per document exceeds $0.50",
        "metric": "ai_cost_per_document",
        "operator": "gt",
        "value": 0.50,
        "severity": "warning",
        "cooldown_minutes": 30,
    },
    {
        "name": "Critical AI Cost per Document",
        "description": "Alert when AI cost per document exceeds $1.00",
        "metric": "ai_cost_per_document",
        "operator": "gt",
        "value": 1.00,
        "severity": "critical",
        "cooldown_minutes": 15,
    },
    {
        "name": "Daily AI Cost Limit",
        "description": "Alert when daily AI costs exceed $100",
        "metric": "daily_ai_cost",
        "operator": "gt",
        "value": 100,
        "severity": "warning",
        "cooldown_minutes": 60,
    },
    {
        "name": "Monthly AI Cost Limit",
        "description": "Alert when monthly AI costs exceed $1000",
        "metric": "monthly_ai_cost",
        "operator": "gt",
        "value": 1000,
        "severity": "critical",
        "cooldown_minutes": 1440,
    },
]

PERFORMANCE_THRESHOLDS: list[dict[str, Any]] = [
    {
        "name": "Slow Document Generation",
        "description": "Alert when document generation takes longer than 60 seconds",
        "metric": "document_generation_time",
        "operator": "gt",
        "value": 60,
        "severity": "warning",
        "cooldown_minutes": 30,
    },
    {
        "name": "Very Slow Document Generation",
        "description": "Alert when document generation takes longer than 120 seconds",
        "metric": "document_generation_time",
        "operator": "gt",
        "value": 120,
        "severity": "critical",
        "cooldown_minutes": 15,
    },
    {
        "name": "Low Success Rate",
        "description": "Alert when document generation success rate falls below 90%",
        "metric": "document_generation_success_rate",
        "operator": "lt",
        "value": 0.90,
        "severity": "warning",
        "cooldown_minutes": 60,
    },
    {
        "name": "Critical Success Rate",
        "description": "Alert when document generation success rate falls below 80%",
        "metric": "document_generation_success_rate",
        "operator": "lt",
        "value": 0.80,
        "severity": "critical",
        "cooldown_minutes": 30,
    },
]

USAGE_THRESHOLDS: list[dict[str, Any]] = [
    {
        "name": "High Token Usage",
        "description": "Alert when token usage per document exceeds 10,000 tokens",
        "metric": "tokens_per_document",
        "operator": "gt",
        "value": 10000,
        "severity": "warning",
        "cooldown_minutes": 60,
    },
    {
        "name": "API Rate Limit Warning",
        "description": "Alert when API rate limit usage exceeds 80%",
        "metric": "api_rate_limit_usage",
        "operator": "gt",
        "value": 0.80,
        "severity": "warning",
        "cooldown_minutes": 30,
    },
    {
        "name": "API Rate Limit Critical",
        "description": "Alert when API rate limit usage exceeds 95%",
        "metric": "api_rate_limit_usage",
        "operator": "gt",
        "value": 0.95,
        "severity": "critical",
        "cooldown_minutes": 15,
    },
]

COMPLIANCE_THRESHOLDS: list[dict[str, Any]] = [
    {
        "name": "Low BABOK Compliance",
        "description": "Alert when BABOK compliance falls below 85%",
        "metric": "babok_compliance",
        "operator": "lt",
        "value": 0.85,
        "severity": "warning",
        "cooldown_minutes": 120,
    },
    {
        "name": "Critical BABOK Compliance",
        "description": "Alert when BABOK compliance falls below 75%",
        "metric": "babok_compliance",
        "operator": "lt",
        "value": 0.75,
        "severity": "critical",
        "cooldown_minutes": 60,
    },
    {
        "name": "Low PMBOK Compliance",
        "description": "Alert when PMBOK compliance falls below 85%",
        "metric": "pmbok_compliance",
        "operator": "lt",
        "value": 0.85,
        "severity": "warning",
        "cooldown_minutes": 120,
    },
]

DEFAULT_THRESHOLDS: dict[str, list[dict[str, Any]]] = {
    "cost": COST_THRESHOLDS,
    "performance": PERFORMANCE_THRESHOLDS,
    "usage": USAGE_THRESHOLDS,
    "compliance": COMPLIANCE_THRESHOLDS,
}


def default_thresholds() -> list[AlertThreshold]:
    """Build fresh threshold records for the whole catalogue."""
    thresholds = []
    for category, specs in DEFAULT_THRESHOLDS.items():
        for spec in specs:
            thresholds.append(
                AlertThreshold.from_dict({**spec, "metadata": {"category": category}})
            )
    return thresholds
