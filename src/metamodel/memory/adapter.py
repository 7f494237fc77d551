"""Adapter exposing in-memory collections (arrays, mappings, objects) as tables."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator, Sequence

from metamodel.data import DataSet, DataSetHeader, IteratorDataSet, Row
from metamodel.evaluation import row_predicate
from metamodel.memory.providers import ArrayTableDataProvider, Predicate, TableDataProvider
from metamodel.query.items import FilterItem, SelectItem
from metamodel.schema import Column, Schema, SimpleTableDef, Table
from metamodel.update import (
    RowDeletionBuilder,
    RowInsertionBuilder,
    RowUpdationBuilder,
    TableCreationBuilder,
    TableDropBuilder,
    UpdateCallback,
)

logger = logging.getLogger(__name__)

BeforeCommit = Callable[[Schema, dict[str, TableDataProvider[Any]]], None]


class PojoAdapter:
    """One schema whose tables are backed by table data providers.

    Queries run in the in-memory executor. Update scripts stage their changes
    on copies of the providers and of the schema, which replace the live ones
    when the script commits.

    Args:
        schema_name: Name of the single schema.
        providers: One provider per table.
    """

    def __init__(self, schema_name: str = "Schema", *providers: TableDataProvider[Any]) -> None:
        self.schema = Schema(schema_name)
        self._providers: dict[str, TableDataProvider[Any]] = {}
        for provider in providers:
            self.add_provider(provider)

    def add_provider(self, provider: TableDataProvider[Any], table: Table | None = None) -> Table:
        """Expose a provider as a table.

        Args:
            provider: Records of the table.
            table: Full table definition; defaults to the provider's
                name/type-only definition.
        """
        table = self.schema.add_table(table or provider.table_def.to_table())
        self._providers[table.name] = provider
        return table

    @property
    def providers(self) -> dict[str, TableDataProvider[Any]]:
        return dict(self._providers)

    def get_schema_names(self) -> list[str]:
        return [self.schema.name]

    def get_schema_by_name(self, name: str) -> Schema | None:
        return self.schema if name == self.schema.name else None

    def get_default_schema_name(self) -> str:
        return self.schema.name

    def _provider_of(self, table: Table) -> tuple[Table, TableDataProvider[Any]]:
        live = self.schema.get_table_or_raise(table.name)
        return live, self._providers[live.name]

    def materialize_table(self, table: Table, columns: Sequence[Column], max_rows: int | None) -> DataSet:
        live, provider = self._provider_of(table)
        indexes = [live.get_column_or_raise(c.name).number for c in columns]
        header = DataSetHeader(SelectItem(column=c) for c in columns)

        def records() -> Iterator[tuple[Any, ...]]:
            for count, values in enumerate(provider):
                if max_rows is not None and count >= max_rows:
                    return
                yield tuple(values[i] for i in indexes)

        return IteratorDataSet(header, records())

    def is_read_only(self) -> bool:
        return False

    def create_update_callback(self) -> PojoUpdateCallback:
        return PojoUpdateCallback(self)

    def _swap(self, snapshot: Schema, providers: dict[str, TableDataProvider[Any]]) -> None:
        self.schema.replace_tables(snapshot)
        self._providers = providers
        logger.debug("Committed update script; schema %s now has tables %s", self.schema.name, self.schema.table_names)


class PojoUpdateCallback(UpdateCallback):
    """Stages changes on copies of an adapter's schema and providers.

    A provider is copied the first time the script writes to its table.
    ``commit()`` runs ``before_commit`` with the staged state (a failure there
    leaves the adapter untouched) and then swaps the staged state in.
    """

    def __init__(self, adapter: PojoAdapter, before_commit: BeforeCommit | None = None) -> None:
        self._adapter = adapter
        self._snapshot = adapter.schema.copy()
        super().__init__([self._snapshot], self._snapshot.name)
        self._providers = adapter.providers
        self._copied: set[str] = set()
        self._before_commit = before_commit

    def _writable_provider(self, table: Table) -> TableDataProvider[Any]:
        if table.name not in self._copied:
            self._providers[table.name] = self._providers[table.name].copy()
            self._copied.add(table.name)
        return self._providers[table.name]

    @staticmethod
    def _predicate(table: Table, where_items: list[FilterItem]) -> Predicate:
        header = DataSetHeader(SelectItem(column=c) for c in table.columns)
        test = row_predicate(where_items)

        def predicate(values: tuple[Any, ...]) -> bool:
            return test(Row(header, values))

        return predicate

    def _execute_insert(self, builder: RowInsertionBuilder) -> None:
        provider = self._writable_provider(builder.table)
        provider.insert({c.name: v for c, v in zip(builder.columns, builder.values)})

    def _execute_update(self, builder: RowUpdationBuilder) -> None:
        provider = self._writable_provider(builder.table)
        count = provider.update(self._predicate(builder.table, builder.where_items), builder.set_values())
        logger.debug("Updated %d rows of %s", count, builder.table.name)

    def _execute_delete(self, builder: RowDeletionBuilder) -> None:
        provider = self._writable_provider(builder.table)
        count = provider.delete(self._predicate(builder.table, builder.where_items))
        logger.debug("Deleted %d rows of %s", count, builder.table.name)

    def _execute_create_table(self, builder: TableCreationBuilder) -> Table:
        table = self._add_table(builder.to_table())
        self._providers[table.name] = ArrayTableDataProvider(SimpleTableDef.from_table(table))
        self._copied.add(table.name)
        return table

    def _execute_drop_table(self, builder: TableDropBuilder) -> None:
        self._remove_table(builder.table)
        self._providers.pop(builder.table.name, None)
        self._copied.discard(builder.table.name)

    def commit(self) -> None:
        if self._before_commit is not None:
            self._before_commit(self._snapshot, self._providers)
        self._adapter._swap(self._snapshot, self._providers)

    def rollback(self) -> None:
        logger.debug("Discarding staged changes to schema %s", self._snapshot.name)
        self._providers = self._adapter.providers
        self._copied.clear()
