"""Schema, table and column model."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from metamodel.errors import SchemaMismatchError
from metamodel.types import ColumnType, TableType


@dataclass(eq=False, repr=False)
class Column:
    """A column of a table.

    The owning table is referenced by its stable key (``schema_name``,
    ``table_name``) rather than by object, so a schema can be copied without
    rewiring parent pointers.
    """

    name: str
    number: int = 0
    type: ColumnType | None = None
    native_type: str | None = None
    size: int | None = None
    nullable: bool | None = None
    primary_key: bool = False
    indexed: bool = False
    remarks: str | None = None
    table_name: str | None = None
    schema_name: str | None = None

    @property
    def key(self) -> tuple[str | None, str | None, str]:
        return (self.schema_name, self.table_name, self.name)

    @property
    def qualified_label(self) -> str:
        parts = [p for p in (self.schema_name, self.table_name, self.name) if p]
        return ".".join(parts)

    def copy(self, **changes: object) -> Column:
        return dataclasses.replace(self, **changes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Column):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        type_name = self.type.name if self.type else None
        return (
            f"Column[name={self.name},number={self.number},type={type_name},"
            f"nullable={self.nullable},native_type={self.native_type},size={self.size}]"
        )


def _find_by_name(items: Sequence[Any], name: str, case_sensitive: bool) -> Any:
    for item in items:
        if item.name == name:
            return item
    if not case_sensitive:
        folded = name.casefold()
        for item in items:
            if item.name.casefold() == folded:
                return item
    return None


class Table:
    """A named table owning an ordered list of columns."""

    def __init__(
        self,
        name: str,
        columns: Iterable[Column] = (),
        schema_name: str | None = None,
        type: TableType = TableType.TABLE,
        remarks: str | None = None,
        case_sensitive: bool = False,
    ) -> None:
        self.name = name
        self.schema_name = schema_name
        self.type = type
        self.remarks = remarks
        self.case_sensitive = case_sensitive
        self._columns: list[Column] = []
        for column in columns:
            self.add_column(column)

    @property
    def columns(self) -> list[Column]:
        return list(self._columns)

    @property
    def column_count(self) -> int:
        return len(self._columns)

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self._columns]

    @property
    def primary_keys(self) -> list[Column]:
        return [c for c in self._columns if c.primary_key]

    @property
    def qualified_label(self) -> str:
        if self.schema_name:
            return f"{self.schema_name}.{self.name}"
        return self.name

    def add_column(
        self,
        column: Column | str,
        type: ColumnType | None = None,
        **attributes: object,
    ) -> Column:
        """Append a column, assigning its number and owner.

        Args:
            column: A Column, or the name of a new column.
            type: Column type when a name is given.
            attributes: Further Column fields when a name is given.

        Returns:
            The column as stored in the table.
        """
        if isinstance(column, str):
            column = Column(name=column, type=type, **attributes)  # type: ignore[arg-type]
        if _find_by_name(self._columns, column.name, True) is not None:
            raise SchemaMismatchError(f"Column '{column.name}' already exists in table '{self.name}'")
        column.number = len(self._columns)
        column.table_name = self.name
        column.schema_name = self.schema_name
        self._columns.append(column)
        return column

    def get_column(self, index: int) -> Column:
        return self._columns[index]

    def get_column_by_name(self, name: str) -> Column | None:
        """Get a column by name: exact match first, then case-insensitive."""
        return _find_by_name(self._columns, name, self.case_sensitive)

    def get_column_or_raise(self, name: str) -> Column:
        column = self.get_column_by_name(name)
        if column is None:
            raise SchemaMismatchError(f"Column '{name}' not found in table '{self.qualified_label}'")
        return column

    def attach(self, schema_name: str | None, case_sensitive: bool = False) -> None:
        """Assign the owning schema to the table and its columns."""
        self.schema_name = schema_name
        self.case_sensitive = case_sensitive
        for column in self._columns:
            column.schema_name = schema_name
            column.table_name = self.name

    def copy(self) -> Table:
        return Table(
            self.name,
            [c.copy() for c in self._columns],
            schema_name=self.schema_name,
            type=self.type,
            remarks=self.remarks,
            case_sensitive=self.case_sensitive,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Table):
            return NotImplemented
        return (self.schema_name, self.name) == (other.schema_name, other.name)

    def __hash__(self) -> int:
        return hash((self.schema_name, self.name))

    def __repr__(self) -> str:
        return f"Table[name={self.name},type={self.type.name},remarks={self.remarks}]"


class Schema:
    """A named, ordered collection of tables."""

    def __init__(self, name: str, tables: Iterable[Table] = (), case_sensitive: bool = False) -> None:
        self.name = name
        self.case_sensitive = case_sensitive
        self._tables: list[Table] = []
        for table in tables:
            self.add_table(table)

    @property
    def tables(self) -> list[Table]:
        return list(self._tables)

    @property
    def table_count(self) -> int:
        return len(self._tables)

    @property
    def table_names(self) -> list[str]:
        return [t.name for t in self._tables]

    def get_table(self, index: int) -> Table:
        return self._tables[index]

    def get_table_by_name(self, name: str) -> Table | None:
        """Get a table by name, or None if the schema has no such table."""
        return _find_by_name(self._tables, name, self.case_sensitive)

    def get_table_or_raise(self, name: str) -> Table:
        table = self.get_table_by_name(name)
        if table is None:
            raise SchemaMismatchError(f"Table '{name}' not found in schema '{self.name}'")
        return table

    def add_table(self, table: Table) -> Table:
        if _find_by_name(self._tables, table.name, True) is not None:
            raise SchemaMismatchError(f"Table '{table.name}' already exists in schema '{self.name}'")
        table.attach(self.name, self.case_sensitive)
        self._tables.append(table)
        return table

    def remove_table(self, table: Table | str) -> Table:
        name = table if isinstance(table, str) else table.name
        existing = _find_by_name(self._tables, name, True)
        if existing is None:
            raise SchemaMismatchError(f"Table '{name}' not found in schema '{self.name}'")
        self._tables.remove(existing)
        return existing

    def copy(self) -> Schema:
        """Return a snapshot with copies of every table and column."""
        return Schema(self.name, [t.copy() for t in self._tables], self.case_sensitive)

    def replace_tables(self, snapshot: Schema) -> None:
        """Swap in the tables of a committed snapshot, keeping this object's identity."""
        self._tables = list(snapshot._tables)

    def __repr__(self) -> str:
        return f"Schema[name={self.name}]"


@dataclass
class SimpleTableDef:
    """Lightweight definition of a table: a name plus column names and types."""

    name: str
    column_names: list[str]
    column_types: list[ColumnType | None] = field(default_factory=list)

    def to_table(self, schema_name: str | None = None) -> Table:
        table = Table(self.name, schema_name=schema_name)
        for i, column_name in enumerate(self.column_names):
            column_type = self.column_types[i] if i < len(self.column_types) else None
            table.add_column(column_name, type=column_type, nullable=True)
        return table

    @classmethod
    def from_table(cls, table: Table) -> SimpleTableDef:
        return cls(table.name, table.column_names, [c.type for c in table.columns])
