"""DataContext: the entry point tying an adapter to querying and updating."""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol, Sequence, runtime_checkable

from metamodel.config import ExecutorConfig
from metamodel.data import DataSet
from metamodel.errors import SchemaMismatchError, UnsupportedOperationError
from metamodel.query.builder import QueryBuilder
from metamodel.query.query import Query
from metamodel.query_executor import QueryExecutor
from metamodel.schema import Column, Schema, Table
from metamodel.update import UpdateCallback

logger = logging.getLogger(__name__)


@runtime_checkable
class Adapter(Protocol):
    """What every back-end provides: schema discovery and table materialization."""

    def get_schema_names(self) -> list[str]: ...

    def get_schema_by_name(self, name: str) -> Schema | None: ...

    def get_default_schema_name(self) -> str: ...

    def materialize_table(self, table: Table, columns: Sequence[Column], max_rows: int | None) -> DataSet: ...


@runtime_checkable
class QueryPushdown(Protocol):
    """Back-ends that execute whole queries themselves."""

    def execute_query(self, query: Query) -> DataSet: ...


@runtime_checkable
class Writable(Protocol):
    """Back-ends that accept update scripts."""

    def create_update_callback(self) -> UpdateCallback: ...

    def is_read_only(self) -> bool: ...


@runtime_checkable
class Refreshable(Protocol):
    def refresh_schemas(self) -> None: ...


class UpdateScript(Protocol):
    def run(self, callback: UpdateCallback) -> None: ...


class DataContext:
    """Uniform access to the schemas and data of one back-end.

    Queries are pushed down when the adapter implements ``execute_query``;
    otherwise they run in the in-memory executor over the rows returned by
    ``materialize_table``.

    Args:
        adapter: The back-end.
        config: Settings of the in-memory executor.
    """

    def __init__(self, adapter: Adapter, config: ExecutorConfig | None = None) -> None:
        self.adapter = adapter
        self.config = config or ExecutorConfig()
        self._executor = QueryExecutor(adapter.materialize_table, self.config)
        self._parser: Any = None

    # --- schema discovery ---

    def get_schema_names(self) -> list[str]:
        return list(self.adapter.get_schema_names())

    def get_default_schema(self) -> Schema:
        return self.get_schema_or_raise(self.adapter.get_default_schema_name())

    def get_schema_by_name(self, name: str | None) -> Schema | None:
        if name is None:
            return self.get_default_schema()
        schema = self.adapter.get_schema_by_name(name)
        if schema is not None:
            return schema
        for candidate in self.get_schema_names():
            if candidate.casefold() == name.casefold():
                return self.adapter.get_schema_by_name(candidate)
        return None

    def get_schema_or_raise(self, name: str) -> Schema:
        schema = self.get_schema_by_name(name)
        if schema is None:
            raise SchemaMismatchError(f"Schema '{name}' not found")
        return schema

    def get_table_by_qualified_label(self, label: str) -> Table | None:
        """Find a table by ``table`` (default schema first) or ``schema.table``."""
        default = self.get_default_schema()
        table = default.get_table_by_name(label)
        if table is not None:
            return table
        if "." in label:
            schema_name, table_name = label.rsplit(".", 1)
            schema = self.get_schema_by_name(schema_name)
            if schema is not None:
                return schema.get_table_by_name(table_name)
            return None
        for schema_name in self.get_schema_names():
            schema = self.get_schema_by_name(schema_name)
            if schema is not None and schema is not default:
                table = schema.get_table_by_name(label)
                if table is not None:
                    return table
        return None

    def get_table_or_raise(self, label: str) -> Table:
        table = self.get_table_by_qualified_label(label)
        if table is None:
            raise SchemaMismatchError(f"Table '{label}' not found")
        return table

    def get_column_by_qualified_label(self, label: str) -> Column | None:
        """Find a column by ``table.column`` or ``schema.table.column``."""
        if "." not in label:
            return None
        table_label, column_name = label.rsplit(".", 1)
        table = self.get_table_by_qualified_label(table_label)
        if table is None:
            return None
        return table.get_column_by_name(column_name)

    def refresh_schemas(self) -> None:
        if isinstance(self.adapter, Refreshable):
            self.adapter.refresh_schemas()

    # --- querying ---

    def query(self) -> QueryBuilder:
        return QueryBuilder(self)

    def parse_query(self, sql: str, parameters: Sequence[Any] = ()) -> Query:
        """Parse SQL text into a Query resolved against this context's schemas."""
        if self._parser is None:
            from metamodel.parsing import SqlParser

            self._parser = SqlParser()
        return self._parser.parse(sql, self, parameters)

    def execute_query(self, query: Query | str, *parameters: Any) -> DataSet:
        if isinstance(query, str):
            query = self.parse_query(query, parameters)
        query.validate()
        if isinstance(self.adapter, QueryPushdown):
            return self.adapter.execute_query(query)
        return self._executor.execute(query)

    # --- updating ---

    def is_read_only(self) -> bool:
        return not isinstance(self.adapter, Writable) or self.adapter.is_read_only()

    def execute_update(self, script: Callable[[UpdateCallback], Any] | UpdateScript) -> None:
        """Run an update script as one unit: all of its changes apply, or none."""
        if self.is_read_only():
            raise UnsupportedOperationError(f"{type(self.adapter).__name__} is read-only")
        run = script.run if hasattr(script, "run") else script
        with self.adapter.create_update_callback() as callback:  # type: ignore[union-attr]
            run(callback)

    # --- lifecycle ---

    def close(self) -> None:
        close = getattr(self.adapter, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> DataContext:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
