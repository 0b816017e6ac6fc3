from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from .logger import logger
from .models import Condition
from .templating import MISSING, lookup, resolve

_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def _strict_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None or value is MISSING:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _contains(container: Any, item: Any) -> bool | None:
    if isinstance(container, str):
        return isinstance(item, str) and item in container
    if isinstance(container, _SEQUENCE_TYPES):
        return any(_strict_equal(member, item) for member in container)
    return None


def _member_of(item: Any, candidates: Any) -> bool | None:
    if not isinstance(candidates, _SEQUENCE_TYPES):
        return None
    return any(_strict_equal(item, candidate) for candidate in candidates)


def _compare(operator: str, actual: Any, expected: Any) -> bool:
    if operator == "equals":
        return _strict_equal(actual, expected)
    if operator == "not_equals":
        return not _strict_equal(actual, expected)
    if operator in ("greater_than", "less_than"):
        left, right = _to_number(actual), _to_number(expected)
        if left is None or right is None:
            return False
        return left > right if operator == "greater_than" else left < right
    if operator == "contains":
        return _contains(actual, expected) is True
    if operator == "not_contains":
        return _contains(actual, expected) is False
    if operator == "exists":
        return actual is not MISSING
    if operator == "not_exists":
        return actual is MISSING
    if operator == "in":
        return _member_of(actual, expected) is True
    if operator == "not_in":
        return _member_of(actual, expected) is False

    logger.warning(f"Unknown condition operator: {operator}")
    return False


def evaluate_condition(condition: Condition | Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    if isinstance(condition, Condition):
        field, operator, value = condition.field, condition.operator, condition.value
    else:
        field = condition.get("field", "")
        operator = condition.get("operator", "")
        value = condition.get("value")

    actual = lookup(context, field)
    expected = resolve(value, context)
    return _compare(operator, actual, expected)


def evaluate(
    conditions: Iterable[Condition | Mapping[str, Any]],
    context: Mapping[str, Any],
) -> bool:
    """AND all conditions together; an empty list always matches."""
    for condition in conditions:
        if not evaluate_condition(condition, context):
            return False
    return True
