"""Adapter for SQL databases reached through a SQLAlchemy engine."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.engine.reflection import Inspector

from metamodel.config import SqlConfig
from metamodel.data import DataSet, FirstRowDataSet, MaxRowsDataSet
from metamodel.dialects import QueryRewriter, get_rewriter
from metamodel.query.items import SelectItem
from metamodel.query.query import Query
from metamodel.schema import Column, Schema, Table
from metamodel.sql.dataset import SqlDataSet, driver_errors, wrap_driver_errors
from metamodel.sql.metadata import reflect_schema
from metamodel.sql.update_callback import SqlUpdateCallback

logger = logging.getLogger(__name__)


class SqlAdapter:
    """Pushes whole queries down to a SQL database.

    Queries are rendered by the dialect's rewriter and executed on a DB-API
    connection checked out of the engine's pool; the connection returns to the
    pool when the DataSet is closed. Paging the dialect cannot express is
    applied client-side.

    Args:
        engine: A SQLAlchemy engine or a database URL.
        config: SQL settings such as inline values and fetch size.
    """

    def __init__(self, engine: Engine | str, config: SqlConfig | None = None) -> None:
        self._owns_engine = isinstance(engine, str)
        self.engine: Engine = create_engine(engine) if isinstance(engine, str) else engine
        self.config = config or SqlConfig()
        self.driver_errors = driver_errors(self.engine.dialect)
        self._inspector: Inspector | None = None
        self._schema_names: list[str] | None = None
        self._schemas: dict[str, Schema] = {}
        self._default_schema_name: str | None = None
        self.rewriter: QueryRewriter = get_rewriter(
            self.config.dialect or self.engine.dialect.name,
            paramstyle=self.engine.dialect.paramstyle,
            default_schema_name=self.get_default_schema_name(),
        )

    @property
    def inspector(self) -> Inspector:
        if self._inspector is None:
            with wrap_driver_errors(self.driver_errors, "Failed to inspect database"):
                self._inspector = inspect(self.engine)
        return self._inspector

    # --- schemas ---

    def get_schema_names(self) -> list[str]:
        if self._schema_names is None:
            with wrap_driver_errors(self.driver_errors, "Failed to list schemas"):
                self._schema_names = list(self.inspector.get_schema_names())
            logger.debug("Discovered schemas %s", self._schema_names)
        return list(self._schema_names)

    def get_default_schema_name(self) -> str:
        if self._default_schema_name is None:
            name = self.config.default_schema or self.inspector.default_schema_name
            if name is None:
                names = self.get_schema_names()
                name = names[0] if names else ""
            self._default_schema_name = name
        return self._default_schema_name

    def get_schema_by_name(self, name: str) -> Schema | None:
        if name in self._schemas:
            return self._schemas[name]
        if name not in self.get_schema_names():
            return None
        with wrap_driver_errors(self.driver_errors, f"Failed to reflect schema {name}"):
            schema = reflect_schema(self.inspector, name)
        self._schemas[name] = schema
        return schema

    def refresh_schemas(self) -> None:
        """Forget reflected schemas; they are reflected again on next use.

        Schema objects handed out earlier are updated in place.
        """
        logger.debug("Refreshing schemas")
        previous = self._schemas
        self._inspector = None
        self._schema_names = None
        self._schemas = {}
        for name, schema in previous.items():
            fresh = self.get_schema_by_name(name)
            if fresh is not None:
                schema.replace_tables(fresh)
                self._schemas[name] = schema

    def adopt_schemas(self, schemas: Iterable[Schema]) -> None:
        """Take over schemas an update script changed, without reflecting again."""
        for working in schemas:
            existing = self._schemas.get(working.name)
            if existing is None:
                self._schemas[working.name] = working
            else:
                existing.replace_tables(working)

    # --- queries ---

    def materialize_table(self, table: Table, columns: Sequence[Column], max_rows: int | None) -> DataSet:
        query = Query().from_table(table).select(*columns)
        if not columns:
            # COUNT(*) and the like reference no column; rows still have to be counted
            query.select(SelectItem(expression="1"))
        if max_rows is not None:
            query.set_max_rows(max_rows)
        return self.execute_query(query)

    def execute_query(self, query: Query) -> DataSet:
        rewriter = self.rewriter
        first_row = query.first_row or 1
        max_rows = query.max_rows
        client_first_row = first_row > 1 and not rewriter.is_first_row_supported()
        client_max_rows = max_rows is not None and not rewriter.is_max_rows_supported()
        if client_first_row or client_max_rows:
            query = query.clone()
            if client_first_row:
                query.set_first_row(None)
                if max_rows is not None and not client_max_rows:
                    query.set_max_rows(max_rows + first_row - 1)
            if client_max_rows:
                query.set_max_rows(None)

        statement = rewriter.rewrite_query(query, inline=self.config.inline_values)
        logger.debug("Executing query: %s", statement.sql)
        logger.debug("Parameters: %s", statement.params)
        dataset: DataSet = self._execute(query, statement.sql, statement.params)
        if client_first_row:
            logger.debug("Skipping to row %d client-side", first_row)
            dataset = FirstRowDataSet(dataset, first_row)
        if client_max_rows:
            assert max_rows is not None
            dataset = MaxRowsDataSet(dataset, max_rows)
        return dataset

    def _execute(self, query: Query, sql: str, params: list[Any]) -> SqlDataSet:
        with wrap_driver_errors(self.driver_errors, "Failed to connect"):
            connection = self.engine.raw_connection()
        cursor = None
        try:
            with wrap_driver_errors(self.driver_errors, "Failed to execute query", sql):
                cursor = connection.cursor()
                if self.config.inline_values:
                    cursor.execute(sql)
                else:
                    cursor.execute(sql, params)
        except BaseException:
            if cursor is not None:
                try:
                    cursor.close()
                except Exception:
                    logger.warning("Failed to close cursor after an error", exc_info=True)
            connection.close()
            raise
        return SqlDataSet(query.select_items, cursor, connection, sql, self.config.fetch_size, self.driver_errors)

    # --- updates ---

    def is_read_only(self) -> bool:
        return False

    def create_update_callback(self) -> SqlUpdateCallback:
        return SqlUpdateCallback(self)

    def close(self) -> None:
        if self._owns_engine:
            self.engine.dispose()
