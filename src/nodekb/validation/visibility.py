"""
nodekb — visibility evaluator

File: src/nodekb/validation/visibility.py

Purpose
- Decide whether a property's ``displayOptions`` make it active for a given
  (possibly partial) configuration.

Functional requirements
- ``hide`` is evaluated first and wins over ``show``.
- Every ``show`` key must be satisfied; any accepted entry satisfies a key.
- A missing configuration value never satisfies a condition.

Non-functional requirements
- Pure functions; no caching and no mutation of the inputs.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Final

from nodekb.domain.models import (
    Comparator,
    Condition,
    JSONValue,
    NodeProperty,
    ValueKind,
    canonical_json,
    value_kind,
)

_MISSING: Final = object()

_NUMERIC_OPERATORS: Final[frozenset[str]] = frozenset({"gte", "lte", "gt", "lt"})


def is_visible(prop: NodeProperty, config: Mapping[str, JSONValue]) -> bool:
    options = prop.display_options
    if options is None:
        return True
    for key, conditions in options.hide.items():
        if _key_satisfied(conditions, _lookup(config, key)):
            return False
    return all(
        _key_satisfied(conditions, _lookup(config, key)) for key, conditions in options.show.items()
    )


def visible_properties(
    properties: Iterable[NodeProperty], config: Mapping[str, JSONValue]
) -> tuple[NodeProperty, ...]:
    return tuple(prop for prop in properties if is_visible(prop, config))


def visibility_reason(prop: NodeProperty, config: Mapping[str, JSONValue]) -> str | None:
    """Explain why ``prop`` is hidden, or return None when it is visible."""

    options = prop.display_options
    if options is None:
        return None
    for key, conditions in options.hide.items():
        value = _lookup(config, key)
        if _key_satisfied(conditions, value):
            return f"hidden when {key.lstrip('/')} is {_describe(conditions)}"
    for key, conditions in options.show.items():
        value = _lookup(config, key)
        if _key_satisfied(conditions, value):
            continue
        name = key.lstrip("/")
        if value is _MISSING:
            return f"only shown when {name} is {_describe(conditions)} ({name} is not set)"
        return (
            f"only shown when {name} is {_describe(conditions)} "
            f"(currently {canonical_json(value)})"
        )
    return None


def condition_matches(condition: Condition, value: object) -> bool:
    """Match one accepted entry against a configuration value.

    ``value`` may be the module-private missing sentinel, in which case nothing matches.
    """

    if value is _MISSING:
        return False
    if isinstance(condition, Comparator) and condition.operator == "exists":
        return value is not None
    if isinstance(value, (list, tuple)) and not isinstance(condition, (list, tuple)):
        return any(_match_scalar(condition, item) for item in value)
    return _match_scalar(condition, value)


def json_equal(left: object, right: object) -> bool:
    """JSON equality where ``1 == 1.0`` but booleans never equal numbers."""

    try:
        left_kind = value_kind(left)
        right_kind = value_kind(right)
    except TypeError:
        return False
    if left_kind is not right_kind:
        return False
    if left_kind is ValueKind.ARRAY and isinstance(left, Sequence) and isinstance(right, Sequence):
        return len(left) == len(right) and all(
            json_equal(a, b) for a, b in zip(left, right, strict=True)
        )
    if left_kind is ValueKind.OBJECT and isinstance(left, Mapping) and isinstance(right, Mapping):
        return left.keys() == right.keys() and all(json_equal(left[k], right[k]) for k in left)
    return left == right


def _lookup(config: Mapping[str, JSONValue], key: str) -> object:
    name = key.lstrip("/")
    if name not in config:
        return _MISSING
    return config[name]


def _key_satisfied(conditions: Sequence[Condition], value: object) -> bool:
    return any(condition_matches(condition, value) for condition in conditions)


def _match_scalar(condition: Condition, value: object) -> bool:
    if isinstance(condition, Comparator):
        return _compare(condition, value)
    return json_equal(condition, value)


def _compare(comparator: Comparator, value: object) -> bool:
    operator = comparator.operator
    operand = comparator.operand
    if operator == "eq":
        return json_equal(value, operand)
    if operator == "not":
        return not json_equal(value, operand)
    if operator in _NUMERIC_OPERATORS:
        left = _as_number(value)
        right = _as_number(operand)
        if left is None or right is None:
            return False
        if operator == "gte":
            return left >= right
        if operator == "lte":
            return left <= right
        if operator == "gt":
            return left > right
        return left < right
    if operator == "between":
        number = _as_number(value)
        if number is None or not isinstance(operand, Mapping):
            return False
        lower = _as_number(operand.get("from"))
        upper = _as_number(operand.get("to"))
        if lower is None or upper is None:
            return False
        return lower <= number <= upper
    if not isinstance(value, str) or not isinstance(operand, str):
        return False
    if operator == "startsWith":
        return value.startswith(operand)
    if operator == "endsWith":
        return value.endswith(operand)
    if operator == "includes":
        return operand in value
    if operator == "regex":
        try:
            return re.search(operand, value) is not None
        except re.error:
            return False
    # Unknown comparator: cannot prove the condition holds.
    return False


def _as_number(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _describe(conditions: Sequence[Condition]) -> str:
    parts: list[str] = []
    for condition in conditions:
        if isinstance(condition, Comparator):
            parts.append(f"{condition.operator} {canonical_json(condition.operand)}")
        else:
            parts.append(canonical_json(condition))
    if len(parts) == 1:
        return parts[0]
    return "one of [" + ", ".join(parts) + "]"


__all__ = [
    "condition_matches",
    "is_visible",
    "json_equal",
    "visibility_reason",
    "visible_properties",
]
