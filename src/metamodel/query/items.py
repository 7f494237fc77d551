"""Building blocks of the query AST: select, from, filter, group and order items."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator

from metamodel.errors import QueryConstructionError, ValueConversionError
from metamodel.schema import Column, Table
from metamodel.types import convert_value

if TYPE_CHECKING:
    from metamodel.query.query import Query


class FunctionType(Enum):
    """Functions usable in select items. The flag marks aggregates."""

    COUNT = ("COUNT", True)
    SUM = ("SUM", True)
    AVG = ("AVG", True)
    MIN = ("MIN", True)
    MAX = ("MAX", True)
    FIRST = ("FIRST", True)
    LAST = ("LAST", True)
    UPPER = ("UPPER", False)
    LOWER = ("LOWER", False)
    TRIM = ("TRIM", False)
    LENGTH = ("LENGTH", False)
    TO_STRING = ("TO_STRING", False)
    TO_NUMBER = ("TO_NUMBER", False)
    CONCAT = ("CONCAT", False)

    def __init__(self, function_name: str, aggregate: bool) -> None:
        self.function_name = function_name
        self.is_aggregate = aggregate

    @classmethod
    def from_name(cls, name: str) -> FunctionType | None:
        upper = name.upper()
        for member in cls:
            if member.function_name == upper:
                return member
        return None


class OperatorType(Enum):
    EQUALS_TO = "="
    DIFFERENT_FROM = "<>"
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"

    @property
    def sql(self) -> str:
        return self.value

    @property
    def is_unary(self) -> bool:
        return self in (OperatorType.IS_NULL, OperatorType.IS_NOT_NULL)

    @property
    def is_list(self) -> bool:
        return self in (OperatorType.IN, OperatorType.NOT_IN)

    @property
    def is_like(self) -> bool:
        return self in (OperatorType.LIKE, OperatorType.NOT_LIKE)

    def negate(self) -> OperatorType:
        return _NEGATIONS[self]


_NEGATIONS = {
    OperatorType.EQUALS_TO: OperatorType.DIFFERENT_FROM,
    OperatorType.DIFFERENT_FROM: OperatorType.EQUALS_TO,
    OperatorType.LESS_THAN: OperatorType.GREATER_THAN_OR_EQUAL,
    OperatorType.GREATER_THAN_OR_EQUAL: OperatorType.LESS_THAN,
    OperatorType.GREATER_THAN: OperatorType.LESS_THAN_OR_EQUAL,
    OperatorType.LESS_THAN_OR_EQUAL: OperatorType.GREATER_THAN,
    OperatorType.LIKE: OperatorType.NOT_LIKE,
    OperatorType.NOT_LIKE: OperatorType.LIKE,
    OperatorType.IN: OperatorType.NOT_IN,
    OperatorType.NOT_IN: OperatorType.IN,
    OperatorType.IS_NULL: OperatorType.IS_NOT_NULL,
    OperatorType.IS_NOT_NULL: OperatorType.IS_NULL,
}


class LogicalOperator(Enum):
    AND = "AND"
    OR = "OR"


class JoinType(Enum):
    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    FULL = "FULL"


class Direction(Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class FromItem:
    """A source of rows: a table, a subquery or a join of two from items."""

    table: Table | None = None
    alias: str | None = None
    sub_query: Query | None = field(default=None, hash=False)
    join_type: JoinType | None = None
    left: FromItem | None = None
    right: FromItem | None = None
    on: FilterItem | None = field(default=None, hash=False)

    def __post_init__(self) -> None:
        kinds = sum(x is not None for x in (self.table, self.sub_query, self.join_type))
        if kinds != 1:
            raise QueryConstructionError("A from item is exactly one of: table, subquery or join")
        if self.join_type is not None and (self.left is None or self.right is None):
            raise QueryConstructionError("A join needs both a left and a right side")
        if self.sub_query is not None and not self.alias:
            object.__setattr__(self, "alias", "subquery")

    @classmethod
    def join(
        cls,
        join_type: JoinType,
        left: FromItem,
        right: FromItem,
        on: FilterItem | None = None,
    ) -> FromItem:
        return cls(join_type=join_type, left=left, right=right, on=on)

    @property
    def is_join(self) -> bool:
        return self.join_type is not None

    @property
    def label(self) -> str:
        """Name by which the item's columns may be qualified."""
        if self.alias:
            return self.alias
        if self.table is not None:
            return self.table.name
        return ""

    def leaves(self) -> Iterator[FromItem]:
        """Yield the table and subquery items of this item, left to right."""
        if self.is_join:
            assert self.left is not None and self.right is not None
            yield from self.left.leaves()
            yield from self.right.leaves()
        else:
            yield self

    def __str__(self) -> str:
        if self.is_join:
            return f"{self.left} {self.join_type.value} JOIN {self.right}"  # type: ignore[union-attr]
        if self.table is not None:
            name = self.table.qualified_label
            return f"{name} {self.alias}" if self.alias else name
        return f"({self.sub_query}) {self.alias}"


@dataclass(frozen=True)
class SelectItem:
    """A projected value: a column, a function call, a literal expression,
    or a reference to a select item of a subquery.
    """

    column: Column | None = None
    function: FunctionType | None = None
    function_parameters: tuple[Any, ...] = ()
    expression: str | None = None
    alias: str | None = None
    from_item: FromItem | None = None
    sub_query_select_item: SelectItem | None = None

    def __post_init__(self) -> None:
        if self.column is None and self.expression is None and self.sub_query_select_item is None:
            if self.function is not FunctionType.COUNT:
                raise QueryConstructionError("A select item needs a column, an expression or a subquery item")

    @classmethod
    def count_all(cls) -> SelectItem:
        return cls(function=FunctionType.COUNT, expression="*")

    @property
    def is_aggregate(self) -> bool:
        return self.function is not None and self.function.is_aggregate

    @property
    def is_count_all(self) -> bool:
        return self.function is FunctionType.COUNT and self.column is None and self.expression == "*"

    @property
    def is_literal(self) -> bool:
        return (
            self.expression is not None
            and self.column is None
            and self.function is None
            and self.sub_query_select_item is None
        )

    @property
    def label(self) -> str:
        if self.alias:
            return self.alias
        return self.to_expression()

    def with_alias(self, alias: str | None) -> SelectItem:
        return dataclasses.replace(self, alias=alias)

    def without_function(self) -> SelectItem:
        """Return the argument of a function item as a select item of its own."""
        return dataclasses.replace(self, function=None, function_parameters=(), alias=None)

    def matches(self, other: SelectItem) -> bool:
        """Equality ignoring the alias."""
        return dataclasses.replace(self, alias=None) == dataclasses.replace(other, alias=None)

    def to_expression(self) -> str:
        """Render the item without its alias, e.g. ``SUM(developer.id)``."""
        if self.sub_query_select_item is not None:
            inner = self.sub_query_select_item.label
            base = f"{self.from_item.label}.{inner}" if self.from_item else inner
        elif self.column is not None:
            prefix = self.from_item.label if self.from_item is not None else self.column.table_name
            base = f"{prefix}.{self.column.name}" if prefix else self.column.name
        else:
            base = self.expression or "*"
        if self.function is None:
            return base
        args = [base] + [repr(p) if isinstance(p, str) else str(p) for p in self.function_parameters]
        return f"{self.function.function_name}({', '.join(args)})"

    def __str__(self) -> str:
        text = self.to_expression()
        return f"{text} AS {self.alias}" if self.alias else text


@dataclass(frozen=True)
class FilterItem:
    """A WHERE/HAVING/ON condition.

    Atomic items compare a select item with an operand (a value, a tuple of
    values or another select item); compound items combine children with
    AND or OR.
    """

    select_item: SelectItem | None = None
    operator: OperatorType | None = None
    operand: Any = None
    logical_operator: LogicalOperator | None = None
    children: tuple[FilterItem, ...] = ()

    def __post_init__(self) -> None:
        if self.logical_operator is not None:
            if not self.children:
                raise QueryConstructionError("A compound filter needs at least one child")
            object.__setattr__(self, "children", tuple(self.children))
            return
        if self.select_item is None or self.operator is None:
            raise QueryConstructionError("An atomic filter needs a select item and an operator")

        operator, operand = self.operator, self.operand
        if operand is None and operator is OperatorType.EQUALS_TO:
            operator = OperatorType.IS_NULL
        elif operand is None and operator is OperatorType.DIFFERENT_FROM:
            operator = OperatorType.IS_NOT_NULL

        if operator.is_unary:
            operand = None
        elif operator.is_list:
            if isinstance(operand, (str, bytes)) or not hasattr(operand, "__iter__"):
                operand = (operand,)
            operand = tuple(self._checked_operand(v) for v in operand)
        elif isinstance(operand, (SelectItem, Column)):
            if isinstance(operand, Column):
                operand = SelectItem(column=operand)
        elif operator.is_like:
            if not isinstance(operand, str):
                raise QueryConstructionError(f"LIKE needs a string pattern, got {operand!r}")
        elif operand is None:
            raise QueryConstructionError(f"Operator {operator.sql} cannot compare with NULL")
        else:
            operand = self._checked_operand(operand)

        object.__setattr__(self, "operator", operator)
        object.__setattr__(self, "operand", operand)

    def _checked_operand(self, value: Any) -> Any:
        """Reject literals that cannot be converted to the filtered column's type."""
        item = self.select_item
        if value is None or item is None or item.function is not None or item.column is None:
            return value
        column_type = item.column.type
        if column_type is None or not (column_type.is_number or column_type.is_boolean or column_type.is_time_based):
            return value
        try:
            convert_value(value, column_type)
        except ValueConversionError as e:
            raise QueryConstructionError(
                f"Cannot compare column '{item.column.name}' of type {column_type.name} with {value!r}"
            ) from e
        return value

    @classmethod
    def compound(cls, logical_operator: LogicalOperator, *children: FilterItem) -> FilterItem:
        return cls(logical_operator=logical_operator, children=tuple(children))

    @property
    def is_compound(self) -> bool:
        return self.logical_operator is not None

    def select_items(self) -> Iterator[SelectItem]:
        """Yield every select item referenced by this filter."""
        if self.is_compound:
            for child in self.children:
                yield from child.select_items()
            return
        assert self.select_item is not None
        yield self.select_item
        if isinstance(self.operand, SelectItem):
            yield self.operand

    def is_prepared_parameter_candidate(self) -> bool:
        """Whether the operand is bound as statement parameter(s) instead of inlined."""
        if self.is_compound or self.operator is None:
            return False
        if self.operator.is_unary or self.operand is None:
            return False
        return not isinstance(self.operand, SelectItem)

    def parameter_values(self) -> list[Any]:
        """Values bound for this filter and its children, in traversal order."""
        if self.is_compound:
            values: list[Any] = []
            for child in self.children:
                values.extend(child.parameter_values())
            return values
        if not self.is_prepared_parameter_candidate():
            return []
        if self.operator is not None and self.operator.is_list:
            return list(self.operand)
        return [self.operand]

    def negate(self) -> FilterItem:
        """Logical negation, pushed down to the atomic filters."""
        if self.is_compound:
            flipped = LogicalOperator.OR if self.logical_operator is LogicalOperator.AND else LogicalOperator.AND
            return FilterItem.compound(flipped, *(c.negate() for c in self.children))
        assert self.operator is not None
        return FilterItem(self.select_item, self.operator.negate(), self.operand)

    def __str__(self) -> str:
        if self.is_compound:
            joined = f" {self.logical_operator.value} ".join(str(c) for c in self.children)  # type: ignore[union-attr]
            return f"({joined})" if len(self.children) > 1 else joined
        assert self.select_item is not None and self.operator is not None
        left = self.select_item.to_expression()
        if self.operator.is_unary:
            return f"{left} {self.operator.sql}"
        if isinstance(self.operand, SelectItem):
            right = self.operand.to_expression()
        elif self.operator.is_list:
            right = "(" + ", ".join(repr(v) for v in self.operand) + ")"
        else:
            right = repr(self.operand)
        return f"{left} {self.operator.sql} {right}"


@dataclass(frozen=True)
class GroupByItem:
    select_item: SelectItem

    def __str__(self) -> str:
        return self.select_item.to_expression()


@dataclass(frozen=True)
class OrderByItem:
    select_item: SelectItem
    direction: Direction = Direction.ASC

    @property
    def descending(self) -> bool:
        return self.direction is Direction.DESC

    def __str__(self) -> str:
        return f"{self.select_item.to_expression()} {self.direction.value}"
