"""Semantics of aggregate and scalar functions."""

from __future__ import annotations

import datetime
import re
from decimal import Decimal
from typing import Any, Iterable

from metamodel.comparison import compare
from metamodel.errors import QueryConstructionError
from metamodel.query.items import FunctionType
from metamodel.types import ColumnType, convert_value

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_DECIMAL_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")


def _numeric(value: Any) -> int | float | Decimal:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float, Decimal)):
        return value
    return to_number(value)


def to_number(value: Any) -> int | float | Decimal:
    """Convert a value to int when it is integral text, to Decimal otherwise."""
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    if _INTEGER_RE.match(text):
        return int(text)
    return convert_value(text, ColumnType.DECIMAL)


def aggregate(function: FunctionType, values: Iterable[Any]) -> Any:
    """Fold the values of one group with an aggregate function.

    NULLs are skipped by every aggregate except FIRST and LAST. COUNT over no
    values is 0; the other aggregates over no values are NULL.
    """
    if function is FunctionType.FIRST:
        for value in values:
            return value
        return None
    if function is FunctionType.LAST:
        last = None
        for value in values:
            last = value
        return last

    present = [v for v in values if v is not None]
    if function is FunctionType.COUNT:
        return len(present)
    if not present:
        return None
    if function is FunctionType.SUM:
        return _sum(present)
    if function is FunctionType.AVG:
        return _sum(present) / len(present)
    if function is FunctionType.MIN:
        result = present[0]
        for value in present[1:]:
            if compare(value, result) < 0:
                result = value
        return result
    if function is FunctionType.MAX:
        result = present[0]
        for value in present[1:]:
            if compare(value, result) > 0:
                result = value
        return result
    raise QueryConstructionError(f"{function.function_name} is not an aggregate function")


def _sum(values: list[Any]) -> Any:
    numbers = [_numeric(v) for v in values]
    if any(isinstance(n, float) for n in numbers):
        return sum(float(n) for n in numbers)
    total: Any = 0
    for n in numbers:
        total = total + n
    return total


def apply_scalar(function: FunctionType, value: Any, parameters: tuple[Any, ...] = ()) -> Any:
    """Apply a scalar function to a single value. NULL in gives NULL out."""
    if value is None:
        return None
    if function is FunctionType.UPPER:
        return str(value).upper()
    if function is FunctionType.LOWER:
        return str(value).lower()
    if function is FunctionType.TRIM:
        return str(value).strip()
    if function is FunctionType.LENGTH:
        return len(value) if isinstance(value, (str, bytes)) else len(to_string(value))
    if function is FunctionType.TO_STRING:
        return to_string(value)
    if function is FunctionType.TO_NUMBER:
        return to_number(value)
    if function is FunctionType.CONCAT:
        if any(p is None for p in parameters):
            return None
        return to_string(value) + "".join(to_string(p) for p in parameters)
    raise QueryConstructionError(f"{function.function_name} is not a scalar function")


def to_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime.datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def literal_value(expression: str) -> Any:
    """Evaluate a literal expression such as ``42``, ``'text'``, ``TRUE`` or ``NULL``."""
    text = expression.strip()
    upper = text.upper()
    if upper == "NULL":
        return None
    if upper == "TRUE":
        return True
    if upper == "FALSE":
        return False
    if len(text) >= 2 and text[0] == "'" and text[-1] == "'":
        return text[1:-1].replace("''", "'")
    if _INTEGER_RE.match(text):
        return int(text)
    if _DECIMAL_RE.match(text):
        return Decimal(text)
    raise QueryConstructionError(f"Cannot evaluate expression: {expression}")


def is_literal_expression(expression: str) -> bool:
    try:
        literal_value(expression)
    except QueryConstructionError:
        return False
    return True
