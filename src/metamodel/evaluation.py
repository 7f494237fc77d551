"""Three-valued evaluation of filters and select items against rows.

Truth values are ``True``, ``False`` and ``None`` (UNKNOWN). A comparison
involving NULL is UNKNOWN; WHERE and HAVING keep a row only when the filter
evaluates to ``True``.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Callable, Iterable

from metamodel.comparison import compare
from metamodel.data import Row
from metamodel.errors import QueryConstructionError
from metamodel.query.functions import apply_scalar, literal_value
from metamodel.query.items import FilterItem, LogicalOperator, OperatorType, SelectItem

Resolver = Callable[[SelectItem], Any]


def and3(values: Iterable[bool | None]) -> bool | None:
    result: bool | None = True
    for value in values:
        if value is False:
            return False
        if value is None:
            result = None
    return result


def or3(values: Iterable[bool | None]) -> bool | None:
    result: bool | None = False
    for value in values:
        if value is True:
            return True
        if value is None:
            result = None
    return result


def not3(value: bool | None) -> bool | None:
    if value is None:
        return None
    return not value


def is_true(value: bool | None) -> bool:
    return value is True


def equals(left: Any, right: Any) -> bool | None:
    if left is None or right is None:
        return None
    return compare(left, right) == 0


@lru_cache(maxsize=256)
def _like_pattern(pattern: str) -> re.Pattern[str]:
    parts = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
        i += 1
    return re.compile("".join(parts), re.DOTALL)


def like(value: Any, pattern: Any) -> bool | None:
    """SQL LIKE: ``%`` matches any run, ``_`` one character, ``\\`` escapes."""
    if value is None or pattern is None:
        return None
    return _like_pattern(str(pattern)).fullmatch(str(value)) is not None


def in_list(value: Any, candidates: Iterable[Any]) -> bool | None:
    """SQL IN: FALSE for an empty list, UNKNOWN when only a NULL could match."""
    candidates = list(candidates)
    if not candidates:
        return False
    if value is None:
        return None
    saw_null = False
    for candidate in candidates:
        if candidate is None:
            saw_null = True
        elif compare(value, candidate) == 0:
            return True
    return None if saw_null else False


_COMPARISONS: dict[OperatorType, Callable[[int], bool]] = {
    OperatorType.EQUALS_TO: lambda c: c == 0,
    OperatorType.DIFFERENT_FROM: lambda c: c != 0,
    OperatorType.LESS_THAN: lambda c: c < 0,
    OperatorType.LESS_THAN_OR_EQUAL: lambda c: c <= 0,
    OperatorType.GREATER_THAN: lambda c: c > 0,
    OperatorType.GREATER_THAN_OR_EQUAL: lambda c: c >= 0,
}


def evaluate_filter(item: FilterItem, resolve: Resolver) -> bool | None:
    """Evaluate a filter, resolving select items through ``resolve``."""
    if item.is_compound:
        results = (evaluate_filter(child, resolve) for child in item.children)
        if item.logical_operator is LogicalOperator.AND:
            return and3(results)
        return or3(results)

    assert item.select_item is not None and item.operator is not None
    value = resolve(item.select_item)
    operator = item.operator
    if operator is OperatorType.IS_NULL:
        return value is None
    if operator is OperatorType.IS_NOT_NULL:
        return value is not None

    operand = item.operand
    if isinstance(operand, SelectItem):
        operand = resolve(operand)
    if operator is OperatorType.IN:
        return in_list(value, operand)
    if operator is OperatorType.NOT_IN:
        return not3(in_list(value, operand))
    if operator is OperatorType.LIKE:
        return like(value, operand)
    if operator is OperatorType.NOT_LIKE:
        return not3(like(value, operand))
    if value is None or operand is None:
        return None
    return _COMPARISONS[operator](compare(value, operand))


def evaluate_select_item(item: SelectItem, row: Row) -> Any:
    """Compute the value of a select item for a row.

    The value is looked up in the row's header first; scalar functions and
    literal expressions not present in the header are computed.
    """
    index = row.header.index_of(item)
    if index is not None:
        return row.values[index]
    if item.function is not None and not item.function.is_aggregate:
        value = evaluate_select_item(item.without_function(), row)
        return apply_scalar(item.function, value, item.function_parameters)
    if item.is_literal and item.expression is not None:
        return literal_value(item.expression)
    raise QueryConstructionError(f"Cannot evaluate '{item}' against row with header {row.header}")


def row_predicate(filters: Iterable[FilterItem]) -> Callable[[Row], bool]:
    """Build a predicate that is True when every filter is TRUE for a row."""
    filters = list(filters)

    def predicate(row: Row) -> bool:
        def resolve(item: SelectItem) -> Any:
            return evaluate_select_item(item, row)

        return is_true(and3(evaluate_filter(f, resolve) for f in filters))

    return predicate
