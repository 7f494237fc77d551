"""Fluent query building bound to a DataContext."""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any, Callable, Generic, TypeVar

from metamodel.errors import QueryConstructionError, SchemaMismatchError
from metamodel.query.items import (
    Direction,
    FilterItem,
    FromItem,
    FunctionType,
    JoinType,
    LogicalOperator,
    OperatorType,
    OrderByItem,
    SelectItem,
)
from metamodel.query.query import Query, SelectLike
from metamodel.schema import Column, Table

if TYPE_CHECKING:
    from metamodel.context import DataContext
    from metamodel.data import DataSet

T = TypeVar("T")


class FilterBuilder(Generic[T]):
    """Completes a condition on a select item and hands it to a callback.

    Every operator method returns whatever the callback returns, which is the
    builder the condition was started from.
    """

    def __init__(self, select_item: SelectItem, on_filter: Callable[[FilterItem], T]) -> None:
        self._select_item = select_item
        self._on_filter = on_filter

    def _apply(self, operator: OperatorType, operand: Any = None) -> T:
        if isinstance(operand, Column):
            operand = SelectItem(column=operand)
        return self._on_filter(FilterItem(self._select_item, operator, operand))

    def eq(self, operand: Any) -> T:
        return self._apply(OperatorType.EQUALS_TO, operand)

    def ne(self, operand: Any) -> T:
        return self._apply(OperatorType.DIFFERENT_FROM, operand)

    def lt(self, operand: Any) -> T:
        return self._apply(OperatorType.LESS_THAN, operand)

    def le(self, operand: Any) -> T:
        return self._apply(OperatorType.LESS_THAN_OR_EQUAL, operand)

    def gt(self, operand: Any) -> T:
        return self._apply(OperatorType.GREATER_THAN, operand)

    def ge(self, operand: Any) -> T:
        return self._apply(OperatorType.GREATER_THAN_OR_EQUAL, operand)

    def like(self, pattern: str) -> T:
        return self._apply(OperatorType.LIKE, pattern)

    def not_like(self, pattern: str) -> T:
        return self._apply(OperatorType.NOT_LIKE, pattern)

    def in_(self, *values: Any) -> T:
        if len(values) == 1 and isinstance(values[0], (list, tuple, set, frozenset)):
            values = tuple(values[0])
        return self._apply(OperatorType.IN, values)

    def not_in(self, *values: Any) -> T:
        if len(values) == 1 and isinstance(values[0], (list, tuple, set, frozenset)):
            values = tuple(values[0])
        return self._apply(OperatorType.NOT_IN, values)

    def is_null(self) -> T:
        return self._apply(OperatorType.IS_NULL)

    def is_not_null(self) -> T:
        return self._apply(OperatorType.IS_NOT_NULL)


class JoinBuilder:
    """Pending join waiting for its ON condition."""

    def __init__(self, builder: QueryBuilder, join_type: JoinType, right: FromItem) -> None:
        self._builder = builder
        self._join_type = join_type
        self._right = right

    def on(self, left: SelectLike, right: SelectLike) -> QueryBuilder:
        """Join on equality of a column of the left side and one of the right side."""
        query = self._builder._query
        if not query.from_items:
            raise QueryConstructionError("A join needs a from item on its left side")
        left_item = query.from_items[-1]
        scope = Query(from_items=[left_item, self._right])
        condition = FilterItem(scope.to_select_item(left), OperatorType.EQUALS_TO, scope.to_select_item(right))
        query.from_items[-1] = FromItem.join(self._join_type, left_item, self._right, condition)
        return self._builder

    def on_filter(self, condition: FilterItem) -> QueryBuilder:
        query = self._builder._query
        if not query.from_items:
            raise QueryConstructionError("A join needs a from item on its left side")
        query.from_items[-1] = FromItem.join(self._join_type, query.from_items[-1], self._right, condition)
        return self._builder


class QueryBuilder:
    """Fluent construction of a Query whose table names resolve through a DataContext.

    Example:
        >>> ds = (dc.query().from_("developer").select("name")
        ...       .where("male").eq(True).order_by("name").desc().execute())
    """

    def __init__(self, data_context: DataContext, query: Query | None = None) -> None:
        self._data_context = data_context
        self._query = query if query is not None else Query()
        # Where the most recent condition went, for or_()
        self._last_filters: list[FilterItem] | None = None

    # --- from ---

    def _table(self, table: Table | str) -> Table:
        if isinstance(table, Table):
            return table
        try:
            return self._data_context.get_table_or_raise(table)
        except SchemaMismatchError as e:
            raise QueryConstructionError(str(e)) from e

    def from_(self, table: Table | str | Query | FromItem, alias: str | None = None) -> QueryBuilder:
        if isinstance(table, FromItem):
            self._query.from_(table)
        elif isinstance(table, Query):
            self._query.from_(FromItem(sub_query=table, alias=alias))
        else:
            self._query.from_table(self._table(table), alias)
        return self

    def _join(self, join_type: JoinType, table: Table | str, alias: str | None) -> JoinBuilder:
        return JoinBuilder(self, join_type, FromItem(table=self._table(table), alias=alias))

    def inner_join(self, table: Table | str, alias: str | None = None) -> JoinBuilder:
        return self._join(JoinType.INNER, table, alias)

    def left_join(self, table: Table | str, alias: str | None = None) -> JoinBuilder:
        return self._join(JoinType.LEFT, table, alias)

    def right_join(self, table: Table | str, alias: str | None = None) -> JoinBuilder:
        return self._join(JoinType.RIGHT, table, alias)

    def full_join(self, table: Table | str, alias: str | None = None) -> JoinBuilder:
        return self._join(JoinType.FULL, table, alias)

    # --- select ---

    def select(self, *items: SelectLike) -> QueryBuilder:
        self._query.select(*items)
        return self

    def select_count(self) -> QueryBuilder:
        self._query.select_count()
        return self

    def select_all(self) -> QueryBuilder:
        self._query.select_all()
        return self

    def select_function(self, function: FunctionType, target: SelectLike, *parameters: Any, alias: str | None = None) -> QueryBuilder:
        self._query.select_function(function, target, *parameters, alias=alias)
        return self

    def distinct(self) -> QueryBuilder:
        self._query.select_distinct()
        return self

    # --- where / having ---

    def _function_item(self, item: SelectLike | FunctionType, target: SelectLike | None) -> SelectItem:
        if isinstance(item, FunctionType):
            if target is None or target == "*":
                if item is not FunctionType.COUNT:
                    raise QueryConstructionError(f"{item.function_name} needs a column")
                return SelectItem.count_all()
            base = self._query.to_select_item(target)
            return dataclasses.replace(base, function=item, function_parameters=(), alias=None)
        return self._query.to_select_item(item)

    def _add_to(self, filters: list[FilterItem]) -> Callable[[FilterItem], QueryBuilder]:
        def add(condition: FilterItem) -> QueryBuilder:
            filters.append(condition)
            self._last_filters = filters
            return self

        return add

    def where(self, item: SelectLike | FilterItem) -> Any:
        """Start a WHERE condition, or add a complete FilterItem."""
        if isinstance(item, FilterItem):
            return self._add_to(self._query.where_items)(item)
        return FilterBuilder(self._query.to_select_item(item), self._add_to(self._query.where_items))

    def and_(self, item: SelectLike | FilterItem) -> Any:
        target = self._last_filters if self._last_filters is not None else self._query.where_items
        if isinstance(item, FilterItem):
            return self._add_to(target)(item)
        return FilterBuilder(self._query.to_select_item(item), self._add_to(target))

    def or_(self, item: SelectLike | FilterItem) -> Any:
        """Continue with a condition OR-ed with the most recent one."""
        target = self._last_filters
        if not target:
            raise QueryConstructionError("or_() needs a preceding condition")

        def merge(condition: FilterItem) -> QueryBuilder:
            previous = target.pop()
            if previous.is_compound and previous.logical_operator is LogicalOperator.OR:
                merged = FilterItem.compound(LogicalOperator.OR, *previous.children, condition)
            else:
                merged = FilterItem.compound(LogicalOperator.OR, previous, condition)
            target.append(merged)
            return self

        if isinstance(item, FilterItem):
            return merge(item)
        return FilterBuilder(self._query.to_select_item(item), merge)

    def having(self, item: SelectLike | FunctionType | FilterItem, target: SelectLike | None = None) -> Any:
        """Start a HAVING condition, e.g. ``having(FunctionType.COUNT, "*").gt(1)``."""
        if isinstance(item, FilterItem):
            return self._add_to(self._query.having_items)(item)
        return FilterBuilder(self._function_item(item, target), self._add_to(self._query.having_items))

    # --- group / order / paging ---

    def group_by(self, *items: SelectLike) -> QueryBuilder:
        self._query.group_by(*items)
        return self

    def order_by(self, item: SelectLike | FunctionType, target: SelectLike | None = None) -> QueryBuilder:
        if isinstance(item, FunctionType):
            self._query.order_by(OrderByItem(self._function_item(item, target)))
        else:
            self._query.order_by(item)
        return self

    def _set_direction(self, direction: Direction) -> QueryBuilder:
        if not self._query.order_by_items:
            raise QueryConstructionError("No order by item to set the direction of")
        last = self._query.order_by_items[-1]
        self._query.order_by_items[-1] = OrderByItem(last.select_item, direction)
        return self

    def asc(self) -> QueryBuilder:
        return self._set_direction(Direction.ASC)

    def desc(self) -> QueryBuilder:
        return self._set_direction(Direction.DESC)

    def limit(self, max_rows: int) -> QueryBuilder:
        self._query.set_max_rows(max_rows)
        return self

    def offset(self, rows_to_skip: int) -> QueryBuilder:
        if rows_to_skip < 0:
            raise QueryConstructionError(f"offset cannot be negative: {rows_to_skip}")
        self._query.set_first_row(rows_to_skip + 1)
        return self

    def first_row(self, first_row: int) -> QueryBuilder:
        self._query.set_first_row(first_row)
        return self

    # --- results ---

    def to_query(self) -> Query:
        return self._query.clone()

    def to_sql(self) -> str:
        return self._query.to_sql()

    def execute(self) -> DataSet:
        if not self._query.select_items or not self._query.from_items:
            raise QueryConstructionError("A query needs both select items and from items before it can execute")
        return self._data_context.execute_query(self._query.clone())

    def __str__(self) -> str:
        return self.to_sql()

