"""Comparison operators shared by thresholds and rule conditions.

Equality is strict: no epsilon is applied to floating-point values, callers
needing tolerance pre-round the metric.
"""

import logging
import operator
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

OPERATOR_MAP: dict[str, Callable[[Any, Any], bool]] = {
    "gt": operator.gt,
    "lt": operator.lt,
    "gte": operator.ge,
    "lte": operator.le,
    "eq": operator.eq,
    "neq": operator.ne,
}

OPERATOR_SYMBOLS: dict[str, str] = {
    "gt": ">",
    "lt": "<",
    "gte": ">=",
    "lte": "<=",
    "eq": "==",
    "neq": "!=",
    "contains": "contains",
    "not_contains": "not contains",
}


def compare(op: str, value: Any, target: Any) -> bool:
    """Apply a threshold operator.

    Args:
        op: Operator name (gt, lt, gte, lte, eq, neq).
        value: Observed value (left-hand side).
        target: Configured operand (right-hand side).

    Returns:
        The comparison result; False for unknown operators.
    """
    func = OPERATOR_MAP.get(op)
    if func is None:
        return False
    return bool(func(value, target))


def evaluate_condition(op: str, subject: Any, target: Any) -> bool:
    """Apply a rule condition operator.

    Adds ``contains`` / ``not_contains`` (string containment) on top of the
    threshold operators. Ordering comparisons between incomparable types
    (e.g. a string and a number) evaluate to False instead of raising.
    """
    if op == "contains":
        return str(target) in str(subject)
    if op == "not_contains":
        return str(target) not in str(subject)
    try:
        return compare(op, subject, target)
    except TypeError:
        logger.debug(
            "Condition %s not comparable: %r vs %r", op, subject, target,
        )
        return False


def deviation(value: float, threshold: float) -> tuple[float, float]:
    """Absolute and percentage deviation of a value from its threshold.

    The percentage divides by the signed threshold value, so a negative
    threshold yields a negative percentage. It is clamped to 0 when the
    threshold value is 0.

    Returns:
        (deviation, deviation_percentage)
    """
    dev = abs(value - threshold)
    if threshold == 0:
        return dev, 0.0
    return dev, dev / threshold * 100
