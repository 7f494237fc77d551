"""Value comparison shared by predicate evaluation, aggregates and sorting."""

from __future__ import annotations

import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from metamodel.config import NullOrdering

_NUMBER_TYPES = (int, float, Decimal)
_TIME_TYPES = (datetime.date, datetime.time)


def _is_number(value: Any) -> bool:
    return isinstance(value, _NUMBER_TYPES) and not isinstance(value, bool)


def _parse_number(text: str) -> int | Decimal | None:
    text = text.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def _parse_time_like(text: str, like: Any) -> Any:
    text = text.strip()
    try:
        if isinstance(like, datetime.datetime):
            return datetime.datetime.fromisoformat(text)
        if isinstance(like, datetime.date):
            return datetime.datetime.fromisoformat(text).date()
        return datetime.time.fromisoformat(text)
    except ValueError:
        return None


def _to_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if _is_number(value) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1"):
            return True
        if lowered in ("false", "0"):
            return False
    return None


def coerce_pair(left: Any, right: Any) -> tuple[Any, Any]:
    """Bring two non-null values into a form where they can be ordered.

    Numbers compare numerically (numeric strings included), booleans against
    booleans, dates and times against each other or against ISO strings.
    Anything else falls back to string comparison.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        lb, rb = _to_bool(left), _to_bool(right)
        if lb is not None and rb is not None:
            return lb, rb
        return str(left), str(right)

    if _is_number(left) and _is_number(right):
        if isinstance(left, float) and isinstance(right, Decimal):
            return left, float(right)
        if isinstance(left, Decimal) and isinstance(right, float):
            return float(left), right
        return left, right
    if _is_number(left) and isinstance(right, str):
        parsed = _parse_number(right)
        if parsed is not None:
            return coerce_pair(left, parsed)
        return str(left), right
    if isinstance(left, str) and _is_number(right):
        parsed = _parse_number(left)
        if parsed is not None:
            return coerce_pair(parsed, right)
        return left, str(right)

    if isinstance(left, _TIME_TYPES) and isinstance(right, _TIME_TYPES):
        left_dt = isinstance(left, datetime.datetime)
        right_dt = isinstance(right, datetime.datetime)
        if left_dt and not right_dt and isinstance(right, datetime.date):
            return left, datetime.datetime.combine(right, datetime.time())
        if right_dt and not left_dt and isinstance(left, datetime.date):
            return datetime.datetime.combine(left, datetime.time()), right
        return left, right
    if isinstance(left, _TIME_TYPES) and isinstance(right, str):
        parsed = _parse_time_like(right, left)
        return (left, parsed) if parsed is not None else (str(left), right)
    if isinstance(left, str) and isinstance(right, _TIME_TYPES):
        parsed = _parse_time_like(left, right)
        return (parsed, right) if parsed is not None else (left, str(right))

    if type(left) is type(right):
        return left, right
    return str(left), str(right)


def compare(left: Any, right: Any) -> int:
    """Compare two non-null values, returning -1, 0 or 1."""
    a, b = coerce_pair(left, right)
    try:
        return (a > b) - (a < b)
    except TypeError:
        sa, sb = str(a), str(b)
        return (sa > sb) - (sa < sb)


def compare_for_sort(
    left: Any, right: Any, null_ordering: NullOrdering, descending: bool
) -> int:
    """Compare two possibly-null values for an ORDER BY key.

    The result is meant for a sort that is reversed when ``descending`` is
    set, so NULL placement is expressed relative to the ascending order.
    """
    if left is None or right is None:
        if left is None and right is None:
            return 0
        if null_ordering is NullOrdering.HIGH:
            null_result = 1
        elif null_ordering is NullOrdering.LOW:
            null_result = -1
        elif null_ordering is NullOrdering.FIRST:
            null_result = 1 if descending else -1
        else:
            null_result = -1 if descending else 1
        return null_result if left is None else -null_result
    return compare(left, right)


def hashable(value: Any) -> Any:
    """Return a hashable stand-in for a value (lists and dicts become tuples)."""
    if isinstance(value, list):
        return tuple(hashable(v) for v in value)
    if isinstance(value, dict):
        return tuple(sorted((k, hashable(v)) for k, v in value.items()))
    if isinstance(value, set):
        return frozenset(hashable(v) for v in value)
    if isinstance(value, bytearray):
        return bytes(value)
    return value
