"""The Query value and resolution of textual select expressions."""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Sequence

from metamodel.errors import QueryConstructionError
from metamodel.query.functions import is_literal_expression, literal_value
from metamodel.query.items import (
    Direction,
    FilterItem,
    FromItem,
    FunctionType,
    GroupByItem,
    JoinType,
    OperatorType,
    OrderByItem,
    SelectItem,
)
from metamodel.schema import Column, Table

_ALIAS_RE = re.compile(r"^(.*?)\s+AS\s+(\S+)$", re.IGNORECASE | re.DOTALL)
_FUNCTION_RE = re.compile(r"^(\w+)\s*\((.*)\)$", re.DOTALL)
_DIRECTION_RE = re.compile(r"^(.*?)\s+(ASC|DESC)$", re.IGNORECASE | re.DOTALL)

SelectLike = SelectItem | Column | str


def split_identifier(text: str) -> list[str]:
    """Split ``schema."table".col`` into its parts, removing identifier quotes."""
    parts: list[str] = []
    current = []
    quote: str | None = None
    for ch in text.strip():
        if quote:
            if ch == quote:
                quote = None
            else:
                current.append(ch)
        elif ch in "\"`[":
            quote = "]" if ch == "[" else ch
        elif ch == ".":
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return [p.strip() for p in parts]


def _split_arguments(text: str) -> list[str]:
    args, current, depth, in_string = [], [], 0, False
    for ch in text:
        if ch == "'":
            in_string = not in_string
        elif not in_string and ch == "(":
            depth += 1
        elif not in_string and ch == ")":
            depth -= 1
        elif not in_string and depth == 0 and ch == ",":
            args.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    if current or args:
        args.append("".join(current).strip())
    return args


def _names_equal(a: str | None, b: str | None) -> bool:
    return a is not None and b is not None and (a == b or a.casefold() == b.casefold())


def _qualifier_matches(item: FromItem, qualifier: Sequence[str]) -> bool:
    if len(qualifier) == 1:
        name = qualifier[0]
        if item.alias:
            return _names_equal(item.alias, name)
        return item.table is not None and _names_equal(item.table.name, name)
    if len(qualifier) == 2 and item.table is not None and not item.alias:
        return _names_equal(item.table.schema_name, qualifier[0]) and _names_equal(item.table.name, qualifier[1])
    return False


def sub_query_label(item: SelectItem, index: int) -> str:
    """Name under which a subquery's select item is visible to the outer query."""
    if item.alias:
        return item.alias
    if item.function is None and item.column is not None:
        return item.column.name
    return f"col{index + 1}"


def _find_in_from_item(item: FromItem, name: str) -> SelectItem | None:
    if item.table is not None:
        column = item.table.get_column_by_name(name)
        if column is not None:
            return SelectItem(column=column, from_item=item)
        return None
    assert item.sub_query is not None
    for index, inner in enumerate(item.sub_query.select_items):
        if _names_equal(sub_query_label(inner, index), name) or inner.to_expression() == name:
            return SelectItem(sub_query_select_item=inner, from_item=item)
    return None


def iter_leaves(from_items: Iterable[FromItem]) -> Iterator[FromItem]:
    for item in from_items:
        yield from item.leaves()


def resolve_column(from_items: Sequence[FromItem], parts: Sequence[str]) -> SelectItem | None:
    """Resolve an identifier split into parts against a list of from items.

    ``["col"]`` is looked up in every table and subquery, ``["t", "col"]``
    only in the item with that alias or table name, ``["s", "t", "col"]``
    in the table ``t`` of schema ``s``.
    """
    name, qualifier = parts[-1], list(parts[:-1])
    for item in iter_leaves(from_items):
        if qualifier and not _qualifier_matches(item, qualifier):
            continue
        found = _find_in_from_item(item, name)
        if found is not None:
            return found
    return None


@dataclass
class Query:
    """An abstract SELECT query.

    Queries are values: ``clone()`` makes an independent copy and equality is
    structural. The mutators return the query itself so calls can be chained.
    """

    select_items: list[SelectItem] = field(default_factory=list)
    distinct: bool = False
    from_items: list[FromItem] = field(default_factory=list)
    where_items: list[FilterItem] = field(default_factory=list)
    group_by_items: list[GroupByItem] = field(default_factory=list)
    having_items: list[FilterItem] = field(default_factory=list)
    order_by_items: list[OrderByItem] = field(default_factory=list)
    max_rows: int | None = None
    first_row: int | None = None

    # --- from ---

    def from_(self, *items: FromItem | Table | Query) -> Query:
        for item in items:
            if isinstance(item, FromItem):
                self.from_items.append(item)
            elif isinstance(item, Table):
                self.from_items.append(FromItem(table=item))
            elif isinstance(item, Query):
                self.from_items.append(FromItem(sub_query=item))
            else:
                raise QueryConstructionError(
                    f"Cannot use {item!r} as a from item; resolve table names through a DataContext"
                )
        return self

    def from_table(self, table: Table, alias: str | None = None) -> Query:
        self.from_items.append(FromItem(table=table, alias=alias))
        return self

    def join(
        self,
        join_type: JoinType,
        left: FromItem | Table,
        right: FromItem | Table,
        on: FilterItem | None = None,
    ) -> Query:
        """Join two from items. A left side already in the query is replaced by the join."""
        left_item = left if isinstance(left, FromItem) else FromItem(table=left)
        right_item = right if isinstance(right, FromItem) else FromItem(table=right)
        joined = FromItem.join(join_type, left_item, right_item, on)
        if left_item in self.from_items:
            self.from_items[self.from_items.index(left_item)] = joined
        else:
            self.from_items.append(joined)
        return self

    # --- select ---

    def select(self, *items: SelectLike) -> Query:
        for item in items:
            if isinstance(item, str) and item.strip() == "*":
                self.select_all()
            else:
                self.select_items.append(self.to_select_item(item))
        return self

    def select_function(self, function: FunctionType, target: SelectLike, *parameters: Any, alias: str | None = None) -> Query:
        base = self.to_select_item(target)
        self.select_items.append(
            dataclasses.replace(base, function=function, function_parameters=tuple(parameters), alias=alias)
        )
        return self

    def select_count(self) -> Query:
        self.select_items.append(SelectItem.count_all())
        return self

    def select_all(self, from_item: FromItem | None = None) -> Query:
        sources = [from_item] if from_item is not None else list(iter_leaves(self.from_items))
        if not sources:
            raise QueryConstructionError("Cannot select all columns of a query without from items")
        for source in sources:
            for leaf in source.leaves():
                if leaf.table is not None:
                    self.select_items.extend(SelectItem(column=c, from_item=leaf) for c in leaf.table.columns)
                else:
                    assert leaf.sub_query is not None
                    self.select_items.extend(
                        SelectItem(sub_query_select_item=inner, from_item=leaf)
                        for inner in leaf.sub_query.select_items
                    )
        return self

    def select_distinct(self) -> Query:
        self.distinct = True
        return self

    # --- where / having ---

    def where(self, *args: Any) -> Query:
        self.where_items.extend(self._to_filters(args))
        return self

    def having(self, *args: Any) -> Query:
        self.having_items.extend(self._to_filters(args))
        return self

    def _to_filters(self, args: tuple[Any, ...]) -> list[FilterItem]:
        if args and all(isinstance(a, FilterItem) for a in args):
            return list(args)
        if len(args) in (2, 3) and isinstance(args[1], OperatorType):
            operand = args[2] if len(args) == 3 else None
            if isinstance(operand, (Column, SelectItem)):
                operand = self.to_select_item(operand)
            return [FilterItem(self.to_select_item(args[0]), args[1], operand)]
        raise QueryConstructionError(f"Expected filter items or (item, operator, operand), got {args!r}")

    # --- group by / order by ---

    def group_by(self, *items: SelectLike) -> Query:
        for item in items:
            self.group_by_items.append(GroupByItem(self.to_select_item(item)))
        return self

    def order_by(self, item: SelectLike | OrderByItem, direction: Direction = Direction.ASC) -> Query:
        if isinstance(item, OrderByItem):
            self.order_by_items.append(item)
            return self
        if isinstance(item, str):
            match = _DIRECTION_RE.match(item.strip())
            if match:
                item, direction = match.group(1), Direction(match.group(2).upper())
        self.order_by_items.append(OrderByItem(self._order_target(item), direction))
        return self

    def _order_target(self, item: SelectLike) -> SelectItem:
        if isinstance(item, str):
            for selected in self.select_items:
                if selected.alias and _names_equal(selected.alias, item.strip()):
                    return selected
        return self.to_select_item(item)

    # --- paging ---

    def set_max_rows(self, max_rows: int | None) -> Query:
        if max_rows is not None and max_rows < 0:
            raise QueryConstructionError(f"max_rows cannot be negative: {max_rows}")
        self.max_rows = max_rows
        return self

    def set_first_row(self, first_row: int | None) -> Query:
        if first_row is not None and first_row < 1:
            raise QueryConstructionError(f"first_row is 1-based, got {first_row}")
        self.first_row = first_row
        return self

    # --- resolution ---

    def to_select_item(self, item: SelectLike) -> SelectItem:
        """Turn a column or textual expression into a select item of this query."""
        if isinstance(item, SelectItem):
            return item
        if isinstance(item, Column):
            return SelectItem(column=item, from_item=self._from_item_of(item))
        if isinstance(item, str):
            return self._parse_select_expression(item)
        raise QueryConstructionError(f"Cannot use {item!r} as a select item")

    def _from_item_of(self, column: Column) -> FromItem | None:
        for leaf in iter_leaves(self.from_items):
            if (
                leaf.table is not None
                and leaf.table.name == column.table_name
                and leaf.table.schema_name == column.schema_name
            ):
                return leaf
        return None

    def _parse_select_expression(self, expression: str) -> SelectItem:
        text = expression.strip()
        alias = None
        match = _ALIAS_RE.match(text)
        if match:
            text, alias = match.group(1).strip(), split_identifier(match.group(2))[0]

        match = _FUNCTION_RE.match(text)
        function = FunctionType.from_name(match.group(1)) if match else None
        if match and function is not None:
            args = _split_arguments(match.group(2))
            if not args:
                raise QueryConstructionError(f"Function without arguments: {expression}")
            if args[0] == "*":
                if function is not FunctionType.COUNT:
                    raise QueryConstructionError(f"Only COUNT accepts '*': {expression}")
                return dataclasses.replace(SelectItem.count_all(), alias=alias)
            base = self._parse_select_expression(args[0])
            parameters = tuple(literal_value(a) for a in args[1:])
            return dataclasses.replace(base, function=function, function_parameters=parameters, alias=alias)

        if is_literal_expression(text):
            return SelectItem(expression=text, alias=alias)

        resolved = resolve_column(self.from_items, split_identifier(text))
        if resolved is None:
            raise QueryConstructionError(f"Could not resolve '{text}' in the from items of the query")
        return dataclasses.replace(resolved, alias=alias) if alias else resolved

    # --- validation ---

    @property
    def is_grouped(self) -> bool:
        if self.group_by_items:
            return True
        if any(item.is_aggregate for item in self.select_items):
            return True
        return any(item.is_aggregate for f in self.having_items for item in f.select_items())

    def validate(self) -> None:
        """Check that the query can be executed.

        Raises:
            QueryConstructionError: If select or from is empty, a column is not
                part of the from items, or a grouped query selects a value that
                is neither grouped nor aggregated.
        """
        if not self.select_items:
            raise QueryConstructionError("Query has no select items")
        if not self.from_items:
            raise QueryConstructionError("Query has no from items")

        tables = {(leaf.table.schema_name, leaf.table.name) for leaf in iter_leaves(self.from_items) if leaf.table}
        for item in self.select_items:
            if item.column is not None and (item.column.schema_name, item.column.table_name) not in tables:
                raise QueryConstructionError(f"Column '{item.column.qualified_label}' is not part of the from items")

        if not self.is_grouped:
            return
        grouped = [g.select_item for g in self.group_by_items]
        for item in self.select_items:
            if item.is_aggregate or item.is_literal or item.is_count_all:
                continue
            base = item.without_function() if item.function else item
            if not any(same_source(base, g) for g in grouped):
                raise QueryConstructionError(f"'{item}' must be aggregated or appear in GROUP BY")

    # --- values ---

    def clone(self) -> Query:
        return dataclasses.replace(
            self,
            select_items=list(self.select_items),
            from_items=list(self.from_items),
            where_items=list(self.where_items),
            group_by_items=list(self.group_by_items),
            having_items=list(self.having_items),
            order_by_items=list(self.order_by_items),
        )

    def to_sql(self) -> str:
        """Render the query as ANSI SQL with inlined values."""
        from metamodel.dialects import get_rewriter

        return get_rewriter(None).rewrite_query(self, inline=True).sql

    def __str__(self) -> str:
        return self.to_sql()


def same_source(a: SelectItem, b: SelectItem) -> bool:
    """Whether two select items denote the same value, ignoring aliases.

    The from item is only compared when both items carry one.
    """
    if a.matches(b):
        return True
    if a.from_item is not None and b.from_item is not None:
        return False
    return dataclasses.replace(a, alias=None, from_item=None) == dataclasses.replace(b, alias=None, from_item=None)
