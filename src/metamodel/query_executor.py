"""In-memory execution of queries over rows materialized from adapters."""

from __future__ import annotations

import itertools
import logging
from functools import cmp_to_key
from typing import Any, Callable, Iterable, Iterator, Sequence

from metamodel.comparison import compare_for_sort, hashable
from metamodel.config import ExecutorConfig
from metamodel.data import DataSet, DataSetHeader, IteratorDataSet, Row, close_all
from metamodel.evaluation import evaluate_filter, evaluate_select_item, is_true
from metamodel.errors import SchemaMismatchError
from metamodel.query.functions import aggregate
from metamodel.query.items import FilterItem, FromItem, JoinType, SelectItem
from metamodel.query.query import Query, same_source
from metamodel.schema import Column, Table

logger = logging.getLogger(__name__)

MaterializeFn = Callable[[Table, Sequence[Column], "int | None"], DataSet]


class QueryExecutor:
    """Executes a Query by pulling rows through a pipeline of generators.

    The stages run in this order: source materialization and joins, WHERE,
    grouping and aggregation, HAVING, projection, DISTINCT, ORDER BY and
    finally OFFSET/LIMIT. Grouping and sorting materialize their input; the
    other stages stream.

    Args:
        materialize: Callback returning a DataSet with the requested columns
            of a table, in the requested order. ``max_rows`` is a hint.
        config: Executor settings such as NULL ordering.
    """

    def __init__(self, materialize: MaterializeFn, config: ExecutorConfig | None = None) -> None:
        self._materialize = materialize
        self.config = config or ExecutorConfig()

    def execute(self, query: Query) -> DataSet:
        query.validate()
        logger.debug("Executing query in memory: %s", query)
        opened: list[DataSet] = []
        try:
            header, rows = self._source(query, opened)
            output = DataSetHeader(query.select_items)
            values = self._pipeline(query, header, rows, output)
        except Exception:
            try:
                close_all(opened)
            except Exception:
                logger.warning("Failed to close source data sets after an error", exc_info=True)
            raise
        return IteratorDataSet(output, values, resources=opened)

    # --- sources ---

    def _source(self, query: Query, opened: list[DataSet]) -> tuple[DataSetHeader, Iterable[Row]]:
        push_down = self._pushdown_max_rows(query)
        sources = [self._from_item_rows(item, query, opened, push_down) for item in query.from_items]
        header, rows = sources[0]
        for right_header, right_rows in sources[1:]:
            header, rows = self._join(JoinType.INNER, header, rows, right_header, right_rows, None)
        return header, rows

    def _pushdown_max_rows(self, query: Query) -> int | None:
        if not self.config.pushdown_max_rows or query.max_rows is None:
            return None
        if len(query.from_items) != 1 or query.from_items[0].table is None:
            return None
        if query.where_items or query.group_by_items or query.having_items or query.order_by_items:
            return None
        if query.distinct or query.is_grouped:
            return None
        max_rows = query.max_rows + (query.first_row or 1) - 1
        logger.debug("Pushing max rows %d down to the materialization of %s", max_rows, query.from_items[0])
        return max_rows

    def _from_item_rows(
        self, item: FromItem, query: Query, opened: list[DataSet], max_rows: int | None = None
    ) -> tuple[DataSetHeader, Iterable[Row]]:
        if item.is_join:
            assert item.left is not None and item.right is not None and item.join_type is not None
            left = self._from_item_rows(item.left, query, opened)
            right = self._from_item_rows(item.right, query, opened)
            return self._join(item.join_type, *left, *right, item.on)

        if item.sub_query is not None:
            dataset = self.execute(item.sub_query)
            opened.append(dataset)
            header = DataSetHeader(
                SelectItem(sub_query_select_item=inner, from_item=item) for inner in dataset.select_items
            )
            return header, (Row(header, row.values) for row in dataset)

        assert item.table is not None
        columns = self._referenced_columns(item, query)
        dataset = self._materialize(item.table, columns, max_rows)
        opened.append(dataset)
        header = DataSetHeader(SelectItem(column=c, from_item=item) for c in columns)
        indexes = [dataset.header.index_of(c) for c in columns]
        missing = [c.name for c, i in zip(columns, indexes) if i is None]
        if missing:
            raise SchemaMismatchError(f"Materialized data of {item.table.name} lacks columns {missing}")
        return header, (Row(header, [row.values[i] for i in indexes]) for row in dataset)  # type: ignore[index]

    def _referenced_columns(self, item: FromItem, query: Query) -> list[Column]:
        """Columns of the item's table used anywhere in the query, in table order."""
        assert item.table is not None
        table_key = (item.table.schema_name, item.table.name)
        used: set[str] = set()
        for select_item in _all_select_items(query):
            column = select_item.column
            if column is None or (column.schema_name, column.table_name) != table_key:
                continue
            if select_item.from_item is None or select_item.from_item == item:
                used.add(column.name)
        return [c for c in item.table.columns if c.name in used]

    # --- joins ---

    def _join(
        self,
        join_type: JoinType,
        left_header: DataSetHeader,
        left_rows: Iterable[Row],
        right_header: DataSetHeader,
        right_rows: Iterable[Row],
        on: FilterItem | None,
    ) -> tuple[DataSetHeader, Iterator[Row]]:
        header = DataSetHeader(left_header.select_items + right_header.select_items)
        left_width, right_width = len(left_header), len(right_header)

        def matches(values: tuple[Any, ...]) -> Row | None:
            row = Row(header, values)
            if on is None or is_true(evaluate_filter(on, lambda i: evaluate_select_item(i, row))):
                return row
            return None

        def nested_loop() -> Iterator[Row]:
            if join_type is JoinType.RIGHT:
                outer, inner = right_rows, list(left_rows)
            else:
                outer, inner = left_rows, list(right_rows)
            inner_matched = [False] * len(inner)
            for outer_row in outer:
                matched = False
                for index, inner_row in enumerate(inner):
                    if join_type is JoinType.RIGHT:
                        values = inner_row.values + outer_row.values
                    else:
                        values = outer_row.values + inner_row.values
                    row = matches(values)
                    if row is not None:
                        matched = True
                        inner_matched[index] = True
                        yield row
                if not matched:
                    if join_type in (JoinType.LEFT, JoinType.FULL):
                        yield Row(header, outer_row.values + (None,) * right_width)
                    elif join_type is JoinType.RIGHT:
                        yield Row(header, (None,) * left_width + outer_row.values)
            if join_type is JoinType.FULL:
                for index, inner_row in enumerate(inner):
                    if not inner_matched[index]:
                        yield Row(header, (None,) * left_width + inner_row.values)

        return header, nested_loop()

    # --- pipeline ---

    def _pipeline(
        self, query: Query, header: DataSetHeader, rows: Iterable[Row], output: DataSetHeader
    ) -> Iterator[tuple[Any, ...]]:
        if query.where_items:
            rows = self._filter(rows, query.where_items)

        if query.is_grouped:
            rows = self._group(query, rows)
            if query.having_items:
                rows = self._filter(rows, query.having_items)

        order_plan = self._order_plan(query, output)
        projected = self._project(query, rows, order_plan)
        if query.distinct:
            projected = self._distinct(projected)
        if query.order_by_items:
            projected = self._sort(query, projected)

        values: Iterator[tuple[Any, ...]] = (v for v, _ in projected)
        start = (query.first_row or 1) - 1
        stop = start + query.max_rows if query.max_rows is not None else None
        if start or stop is not None:
            values = itertools.islice(values, start, stop)
        return values

    def _filter(self, rows: Iterable[Row], filters: list[FilterItem]) -> Iterator[Row]:
        for row in rows:

            def resolve(item: SelectItem, row: Row = row) -> Any:
                return evaluate_select_item(item, row)

            if all(is_true(evaluate_filter(f, resolve)) for f in filters):
                yield row

    def _group(self, query: Query, rows: Iterable[Row]) -> Iterator[Row]:
        key_items = [g.select_item for g in query.group_by_items]
        aggregates = _unique(item for item in _all_select_items(query) if item.is_aggregate)
        grouped_header = DataSetHeader(key_items + aggregates)

        groups: dict[tuple[Any, ...], tuple[list[Any], list[Row]]] = {}
        for row in rows:
            key_values = [evaluate_select_item(item, row) for item in key_items]
            key = tuple(hashable(v) for v in key_values)
            if key not in groups:
                groups[key] = (key_values, [])
            groups[key][1].append(row)
        if not groups and not key_items:
            groups[()] = ([], [])

        logger.debug("Grouped rows into %d groups", len(groups))
        for key_values, members in groups.values():
            aggregated = [self._aggregate(item, members) for item in aggregates]
            yield Row(grouped_header, key_values + aggregated)

    @staticmethod
    def _aggregate(item: SelectItem, rows: list[Row]) -> Any:
        assert item.function is not None
        if item.is_count_all:
            return len(rows)
        argument = item.without_function()
        return aggregate(item.function, (evaluate_select_item(argument, row) for row in rows))

    def _order_plan(self, query: Query, output: DataSetHeader) -> list[tuple[int | None, SelectItem]]:
        """For each order item, the output position it can be read from, if any."""
        plan = []
        for order_item in query.order_by_items:
            index = output.index_of(order_item.select_item)
            if index is None:
                for i, selected in enumerate(output.select_items):
                    if same_source(selected, order_item.select_item):
                        index = i
                        break
            plan.append((index, order_item.select_item))
        return plan

    def _project(
        self, query: Query, rows: Iterable[Row], order_plan: list[tuple[int | None, SelectItem]]
    ) -> Iterator[tuple[tuple[Any, ...], tuple[Any, ...]]]:
        for row in rows:
            values = tuple(evaluate_select_item(item, row) for item in query.select_items)
            keys = tuple(
                values[index] if index is not None else evaluate_select_item(item, row)
                for index, item in order_plan
            )
            yield values, keys

    @staticmethod
    def _distinct(
        projected: Iterable[tuple[tuple[Any, ...], tuple[Any, ...]]],
    ) -> Iterator[tuple[tuple[Any, ...], tuple[Any, ...]]]:
        seen: set[Any] = set()
        for values, keys in projected:
            marker = hashable(list(values))
            if marker not in seen:
                seen.add(marker)
                yield values, keys

    def _sort(
        self, query: Query, projected: Iterable[tuple[tuple[Any, ...], tuple[Any, ...]]]
    ) -> Iterator[tuple[tuple[Any, ...], tuple[Any, ...]]]:
        entries = list(projected)
        null_ordering = self.config.null_ordering
        # Stable multi-key sort: least significant key first
        for position in reversed(range(len(query.order_by_items))):
            descending = query.order_by_items[position].descending

            def cmp(a: Any, b: Any, position: int = position, descending: bool = descending) -> int:
                return compare_for_sort(a[1][position], b[1][position], null_ordering, descending)

            entries.sort(key=cmp_to_key(cmp), reverse=descending)
        return iter(entries)


def _all_select_items(query: Query) -> Iterator[SelectItem]:
    """Every select item referenced by the query, including arguments of functions."""

    def expand(item: SelectItem) -> Iterator[SelectItem]:
        yield item
        if item.function is not None and not item.is_count_all:
            yield item.without_function()

    def from_item_filters(item: FromItem) -> Iterator[FilterItem]:
        if item.is_join:
            assert item.left is not None and item.right is not None
            yield from from_item_filters(item.left)
            yield from from_item_filters(item.right)
            if item.on is not None:
                yield item.on

    filters = list(query.where_items) + list(query.having_items)
    for from_item in query.from_items:
        filters.extend(from_item_filters(from_item))

    for item in query.select_items:
        yield from expand(item)
    for f in filters:
        for item in f.select_items():
            yield from expand(item)
    for g in query.group_by_items:
        yield from expand(g.select_item)
    for o in query.order_by_items:
        yield from expand(o.select_item)


def _unique(items: Iterable[SelectItem]) -> list[SelectItem]:
    result: list[SelectItem] = []
    for item in items:
        if not any(item.matches(existing) for existing in result):
            result.append(item)
    return result
