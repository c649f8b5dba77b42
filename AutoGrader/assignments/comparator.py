# assignments/comparator.py
"""Value comparison used to decide whether a test case passed.

Values are the JSON-shaped results that come back from the sandbox: None, bool,
int/float, str, list and str-keyed dict. Nothing in here raises; a mismatch of
any sort is just ``False``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

TYPE_TAGS = frozenset({"number", "string", "array", "object", "boolean", "null"})


def kind_of(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def values_equal(actual: Any, expected: Any, tolerance: Optional[float] = None) -> bool:
    if actual is expected:
        return True
    if actual is None or expected is None:
        return False

    kind = kind_of(actual)
    if kind != kind_of(expected):
        return False

    if kind == "number":
        if tolerance:
            try:
                return abs(actual - expected) <= tolerance
            except (TypeError, OverflowError):
                return False
        return actual == expected

    if kind == "array":
        if len(actual) != len(expected):
            return False
        return all(values_equal(a, e, tolerance) for a, e in zip(actual, expected))

    if kind == "object":
        if set(actual) != set(expected):
            return False
        return all(values_equal(actual[k], expected[k], tolerance) for k in actual)

    try:
        return bool(actual == expected)
    except Exception:
        return False


def matches_shape(value: Any, shape: Dict[str, Any]) -> bool:
    if not isinstance(value, dict):
        return False
    for key, spec in shape.items():
        if key not in value:
            return False
        if isinstance(spec, str) and spec in TYPE_TAGS:
            if kind_of(value[key]) != spec:
                return False
        elif not values_equal(value[key], spec):
            return False
    return True
