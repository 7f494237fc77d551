"""Update builders and the UpdateCallback an update script runs against.

A script receives an ``UpdateCallback`` and builds statements through it::

    def script(callback):
        callback.insert_into("developer").value("id", 3).value("name", "Carl").execute()
        callback.delete_from("product").where("version").lt(2).execute()

    dc.execute_update(script)

The callback is a context manager: leaving the ``with`` block normally commits
the script, leaving it with an exception rolls everything back.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from types import TracebackType
from typing import Any, Iterable

from metamodel.data import Row
from metamodel.dialects import QueryRewriter
from metamodel.errors import SchemaMismatchError, UnsupportedOperationError
from metamodel.query.builder import FilterBuilder
from metamodel.query.items import FilterItem, OperatorType, SelectItem
from metamodel.schema import Column, Schema, Table
from metamodel.types import ColumnType

logger = logging.getLogger(__name__)


class _TableBuilder:
    def __init__(self, callback: UpdateCallback, table: Table) -> None:
        self.callback = callback
        self.table = table


class _ValueBuilder(_TableBuilder):
    """Per-column values plus explicit-null flags for INSERT and UPDATE."""

    def __init__(self, callback: UpdateCallback, table: Table) -> None:
        super().__init__(callback, table)
        self._columns = table.columns
        self._values: list[Any] = [None] * len(self._columns)
        self._explicit_nulls = [False] * len(self._columns)

    def _index_of(self, column: Column | str | int) -> int:
        if isinstance(column, int):
            if not 0 <= column < len(self._columns):
                raise SchemaMismatchError(f"Table '{self.table.name}' has no column at index {column}")
            return column
        name = column.name if isinstance(column, Column) else column
        return self.table.get_column_or_raise(name).number

    def value(self, column: Column | str | int, value: Any) -> Any:
        """Set a column's value. Setting None marks the column as explicitly NULL."""
        index = self._index_of(column)
        self._values[index] = value
        self._explicit_nulls[index] = value is None
        return self

    def like(self, row: Row) -> Any:
        """Copy values from a row whose columns share names with this table."""
        for item, value in zip(row.select_items, row.values):
            name = item.column.name if item.column is not None else item.label
            if self.table.get_column_by_name(name) is not None:
                self.value(name, value)
        return self

    @property
    def columns(self) -> list[Column]:
        return list(self._columns)

    @property
    def values(self) -> list[Any]:
        return list(self._values)

    @property
    def explicit_nulls(self) -> list[bool]:
        return list(self._explicit_nulls)

    def is_set(self, column: Column | str | int) -> bool:
        index = self._index_of(column)
        return self._values[index] is not None or self._explicit_nulls[index]

    def set_values(self) -> dict[str, Any]:
        """The columns that were set, by name."""
        return {
            column.name: value
            for column, value, explicit_null in zip(self._columns, self._values, self._explicit_nulls)
            if value is not None or explicit_null
        }


class _WhereMixin:
    table: Table

    def _init_where(self) -> None:
        self._where_items: list[FilterItem] = []

    def _add_where(self, item: FilterItem) -> Any:
        self._where_items.append(item)
        return self

    def where(self, item: Column | str | FilterItem, operator: OperatorType | None = None, operand: Any = None) -> Any:
        """Add a condition: a FilterItem, ``(column, operator, operand)``, or a column
        followed by an operator method, e.g. ``where("id").eq(2)``.
        """
        if isinstance(item, FilterItem):
            return self._add_where(item)
        column = item if isinstance(item, Column) else self.table.get_column_or_raise(item)
        select_item = SelectItem(column=column)
        if operator is not None:
            return self._add_where(FilterItem(select_item, operator, operand))
        return FilterBuilder(select_item, self._add_where)

    @property
    def where_items(self) -> list[FilterItem]:
        return list(self._where_items)


class RowInsertionBuilder(_ValueBuilder):
    def execute(self) -> None:
        self.callback._execute_insert(self)

    def to_sql(self) -> str:
        return self.callback.rewriter.rewrite_insert(
            self.table, self.columns, self.values, self.explicit_nulls, inline=True
        ).sql


class RowUpdationBuilder(_ValueBuilder, _WhereMixin):
    def __init__(self, callback: UpdateCallback, table: Table) -> None:
        super().__init__(callback, table)
        self._init_where()

    def execute(self) -> None:
        self.callback._execute_update(self)

    def to_sql(self) -> str:
        return self.callback.rewriter.rewrite_update(
            self.table, self.columns, self.values, self.explicit_nulls, self.where_items, inline=True
        ).sql


class RowDeletionBuilder(_TableBuilder, _WhereMixin):
    def __init__(self, callback: UpdateCallback, table: Table) -> None:
        super().__init__(callback, table)
        self._init_where()

    def execute(self) -> None:
        self.callback._execute_delete(self)

    def to_sql(self) -> str:
        return self.callback.rewriter.rewrite_delete(self.table, self.where_items, inline=True).sql


class TableCreationBuilder:
    """Builds a CREATE TABLE: ``with_column("id").of_type(ColumnType.INTEGER).as_primary_key()``."""

    def __init__(self, callback: UpdateCallback, schema: Schema, name: str) -> None:
        if schema.get_table_by_name(name) is not None:
            raise SchemaMismatchError(f"Table '{name}' already exists in schema '{schema.name}'")
        self.callback = callback
        self.schema = schema
        self.table = Table(name, schema_name=schema.name)

    def with_column(self, name: str) -> ColumnCreationBuilder:
        column = self.table.add_column(Column(name=name, nullable=True))
        return ColumnCreationBuilder(self, column)

    def like(self, table: Table) -> TableCreationBuilder:
        """Copy the column definitions of another table."""
        for column in table.columns:
            self.table.add_column(
                column.copy(number=0, table_name=None, schema_name=None)
            )
        return self

    def to_table(self) -> Table:
        return self.table.copy()

    def execute(self) -> Table:
        return self.callback._execute_create_table(self)

    def to_sql(self) -> str:
        return self.callback.rewriter.rewrite_create_table(self.table)


class ColumnCreationBuilder:
    def __init__(self, table_builder: TableCreationBuilder, column: Column) -> None:
        self._table_builder = table_builder
        self.column = column

    def of_type(self, column_type: ColumnType) -> ColumnCreationBuilder:
        self.column.type = column_type
        return self

    def of_size(self, size: int) -> ColumnCreationBuilder:
        self.column.size = size
        return self

    def of_native_type(self, native_type: str) -> ColumnCreationBuilder:
        self.column.native_type = native_type
        if self.column.type is None:
            self.column.type = ColumnType.from_native(native_type)
        return self

    def nullable(self, nullable: bool) -> ColumnCreationBuilder:
        self.column.nullable = nullable
        return self

    def as_primary_key(self) -> ColumnCreationBuilder:
        self.column.primary_key = True
        self.column.nullable = False
        return self

    def with_column(self, name: str) -> ColumnCreationBuilder:
        return self._table_builder.with_column(name)

    def like(self, table: Table) -> TableCreationBuilder:
        return self._table_builder.like(table)

    def to_table(self) -> Table:
        return self._table_builder.to_table()

    def execute(self) -> Table:
        return self._table_builder.execute()

    def to_sql(self) -> str:
        return self._table_builder.to_sql()


class TableDropBuilder(_TableBuilder):
    def execute(self) -> None:
        self.callback._execute_drop_table(self)

    def to_sql(self) -> str:
        return self.callback.rewriter.rewrite_drop_table(self.table)


class UpdateCallback(ABC):
    """Entry point for the statements of one update script.

    Table names are resolved against a working copy of the schemas, so tables
    created earlier in the script can be used by later statements.

    Args:
        schemas: Working schemas of the script.
        default_schema_name: Schema used for unqualified table names.
        rewriter: Rewriter rendering ``to_sql()`` of the builders.
    """

    def __init__(
        self,
        schemas: Iterable[Schema],
        default_schema_name: str | None,
        rewriter: QueryRewriter | None = None,
    ) -> None:
        self._schemas = {schema.name: schema for schema in schemas}
        self.default_schema_name = default_schema_name
        self.rewriter = rewriter or QueryRewriter()

    @property
    def schemas(self) -> list[Schema]:
        return list(self._schemas.values())

    def get_schema(self, schema: Schema | str | None = None) -> Schema:
        if isinstance(schema, Schema):
            schema = schema.name
        name = schema or self.default_schema_name
        if name in self._schemas:
            return self._schemas[name]
        for candidate in self._schemas.values():
            if name is not None and candidate.name.casefold() == name.casefold():
                return candidate
        raise SchemaMismatchError(f"Schema '{name}' not found")

    def get_table(self, table: Table | str) -> Table:
        """Resolve a table (or ``schema.table`` label) in the working schemas."""
        if isinstance(table, Table):
            return self.get_schema(table.schema_name).get_table_or_raise(table.name)
        if table.count(".") == 1:
            schema_name, table_name = table.split(".")
            if schema_name in self._schemas:
                return self._schemas[schema_name].get_table_or_raise(table_name)
        return self.get_schema().get_table_or_raise(table)

    def insert_into(self, table: Table | str) -> RowInsertionBuilder:
        self._check_writable()
        return RowInsertionBuilder(self, self.get_table(table))

    def update(self, table: Table | str) -> RowUpdationBuilder:
        self._check_writable()
        return RowUpdationBuilder(self, self.get_table(table))

    def delete_from(self, table: Table | str) -> RowDeletionBuilder:
        self._check_writable()
        return RowDeletionBuilder(self, self.get_table(table))

    def create_table(self, schema: Schema | str | None, name: str) -> TableCreationBuilder:
        self._check_writable()
        if not self.is_create_table_supported():
            raise UnsupportedOperationError("This data context cannot create tables")
        return TableCreationBuilder(self, self.get_schema(schema), name)

    def drop_table(self, table: Table | str) -> TableDropBuilder:
        self._check_writable()
        if not self.is_drop_table_supported():
            raise UnsupportedOperationError("This data context cannot drop tables")
        return TableDropBuilder(self, self.get_table(table))

    def is_create_table_supported(self) -> bool:
        return True

    def is_drop_table_supported(self) -> bool:
        return True

    def _check_writable(self) -> None:
        """Hook for callbacks that can become read-only."""

    def _add_table(self, table: Table) -> Table:
        return self.get_schema(table.schema_name).add_table(table)

    def _remove_table(self, table: Table) -> None:
        self.get_schema(table.schema_name).remove_table(table.name)

    @abstractmethod
    def _execute_insert(self, builder: RowInsertionBuilder) -> None: ...

    @abstractmethod
    def _execute_update(self, builder: RowUpdationBuilder) -> None: ...

    @abstractmethod
    def _execute_delete(self, builder: RowDeletionBuilder) -> None: ...

    @abstractmethod
    def _execute_create_table(self, builder: TableCreationBuilder) -> Table: ...

    @abstractmethod
    def _execute_drop_table(self, builder: TableDropBuilder) -> None: ...

    @abstractmethod
    def commit(self) -> None:
        """Make the script's changes visible."""

    @abstractmethod
    def rollback(self) -> None:
        """Discard the script's changes."""

    def close(self) -> None:
        """Release resources held by the script."""

    def __enter__(self) -> UpdateCallback:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            try:
                self.commit()
            except BaseException:
                self._rollback_after_error()
                self._close_after_error()
                raise
            self.close()
        else:
            self._rollback_after_error()
            self._close_after_error()

    def _rollback_after_error(self) -> None:
        try:
            self.rollback()
        except Exception:
            logger.warning("Rollback of update script failed", exc_info=True)

    def _close_after_error(self) -> None:
        try:
            self.close()
        except Exception:
            logger.warning("Closing update script after failure failed", exc_info=True)

