"""Update scripts against SQL back-ends: one connection and a statement cache per script."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Sequence

from metamodel.data import close_all
from metamodel.dialects import SqlStatement
from metamodel.errors import SchemaMismatchError
from metamodel.schema import Schema, Table
from metamodel.sql.dataset import wrap_driver_errors
from metamodel.update import (
    RowDeletionBuilder,
    RowInsertionBuilder,
    RowUpdationBuilder,
    TableCreationBuilder,
    TableDropBuilder,
    UpdateCallback,
)

if TYPE_CHECKING:
    from metamodel.sql.adapter import SqlAdapter

logger = logging.getLogger(__name__)


class PreparedStatement:
    """A cursor dedicated to one SQL text, with a pending batch of parameter lists."""

    def __init__(self, cursor: Any, sql: str, errors: tuple[type[BaseException], ...] = ()) -> None:
        self.cursor = cursor
        self.sql = sql
        self._errors = errors
        self._batch: list[list[Any]] = []

    @property
    def batch_size(self) -> int:
        return len(self._batch)

    def add_batch(self, params: Sequence[Any]) -> None:
        self._batch.append(list(params))

    def clear_batch(self) -> None:
        self._batch.clear()

    def execute(self, params: Sequence[Any]) -> None:
        with wrap_driver_errors(self._errors, "Failed to execute statement", self.sql):
            self.cursor.execute(self.sql, list(params))

    def execute_batch(self) -> int:
        """Run the pending batch; returns the number of parameter lists executed."""
        batch, self._batch = self._batch, []
        if not batch:
            return 0
        if len(batch) == 1:
            self.execute(batch[0])
        else:
            with wrap_driver_errors(self._errors, "Failed to execute batch", self.sql):
                self.cursor.executemany(self.sql, batch)
        return len(batch)

    def close(self) -> None:
        self._batch.clear()
        with wrap_driver_errors(self._errors, "Failed to close statement", self.sql):
            self.cursor.close()


class SqlUpdateCallback(UpdateCallback):
    """Runs the statements of one update script on a single connection.

    With bound parameters, statements are cached by SQL text and consecutive
    executions of the same statement are batched; a batch is flushed before a
    different statement runs, so statements reach the database in the order
    the script issued them. With inline values every statement runs on its own
    cursor, which is closed right away.
    """

    def __init__(self, adapter: SqlAdapter) -> None:
        self._adapter = adapter
        self._config = adapter.config
        self._errors = adapter.driver_errors
        default = adapter.get_default_schema_name()
        schema = adapter.get_schema_by_name(default)
        super().__init__([schema.copy()] if schema is not None else [], default, adapter.rewriter)
        self._connection = adapter.engine.raw_connection()
        self._statements: dict[str, PreparedStatement] = {}
        self._pending: PreparedStatement | None = None
        self._ddl_executed = False

    def get_schema(self, schema: Schema | str | None = None) -> Schema:
        try:
            return super().get_schema(schema)
        except SchemaMismatchError:
            name = schema.name if isinstance(schema, Schema) else schema
            loaded = self._adapter.get_schema_by_name(name) if name else None
            if loaded is None:
                raise
            working = loaded.copy()
            self._schemas[working.name] = working
            return working

    # --- statements ---

    def _prepare(self, sql: str) -> PreparedStatement:
        statement = self._statements.get(sql)
        if statement is None:
            logger.debug("Preparing statement: %s", sql)
            with wrap_driver_errors(self._errors, "Failed to open cursor", sql):
                statement = PreparedStatement(self._connection.cursor(), sql, self._errors)
            self._statements[sql] = statement
        else:
            logger.debug("Reusing prepared statement: %s", sql)
        return statement

    def _flush(self) -> None:
        if self._pending is None:
            return
        pending, self._pending = self._pending, None
        count = pending.execute_batch()
        logger.debug("Flushed batch of %d executions: %s", count, pending.sql)

    def _execute_immediately(self, sql: str) -> None:
        self._flush()
        logger.debug("Executing: %s", sql)
        with wrap_driver_errors(self._errors, "Failed to execute statement", sql):
            cursor = self._connection.cursor()
            try:
                cursor.execute(sql)
            finally:
                cursor.close()

    def _execute(self, statement: SqlStatement) -> None:
        if self._config.inline_values:
            self._execute_immediately(statement.sql)
            return
        prepared = self._prepare(statement.sql)
        logger.debug("Parameters: %s", statement.params)
        if self._config.batch_updates:
            if self._pending is not None and self._pending is not prepared:
                self._flush()
            prepared.add_batch(statement.params)
            self._pending = prepared
        else:
            self._flush()
            prepared.execute(statement.params)

    def _execute_insert(self, builder: RowInsertionBuilder) -> None:
        self._execute(
            self.rewriter.rewrite_insert(
                builder.table, builder.columns, builder.values, builder.explicit_nulls, self._config.inline_values
            )
        )

    def _execute_update(self, builder: RowUpdationBuilder) -> None:
        self._execute(
            self.rewriter.rewrite_update(
                builder.table,
                builder.columns,
                builder.values,
                builder.explicit_nulls,
                builder.where_items,
                self._config.inline_values,
            )
        )

    def _execute_delete(self, builder: RowDeletionBuilder) -> None:
        self._execute(self.rewriter.rewrite_delete(builder.table, builder.where_items, self._config.inline_values))

    def _execute_create_table(self, builder: TableCreationBuilder) -> Table:
        self._execute_immediately(self.rewriter.rewrite_create_table(builder.table))
        self._ddl_executed = True
        return self._add_table(builder.to_table())

    def _execute_drop_table(self, builder: TableDropBuilder) -> None:
        self._execute_immediately(self.rewriter.rewrite_drop_table(builder.table))
        self._ddl_executed = True
        self._remove_table(builder.table)

    # --- transaction ---

    def commit(self) -> None:
        self._flush()
        with wrap_driver_errors(self._errors, "Failed to commit"):
            self._connection.commit()
        if self._ddl_executed:
            if self._config.refresh_after_ddl:
                self._adapter.refresh_schemas()
            else:
                self._adapter.adopt_schemas(self.schemas)

    def rollback(self) -> None:
        for statement in self._statements.values():
            statement.clear_batch()
        self._pending = None
        with wrap_driver_errors(self._errors, "Failed to roll back"):
            self._connection.rollback()

    def close(self) -> None:
        statements = list(self._statements.values())
        self._statements.clear()
        close_all([*statements, self._connection])
