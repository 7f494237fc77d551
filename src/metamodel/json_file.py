"""Adapter for tables stored in a JSON document held by a Resource.

The document has this shape::

    {
      "tables": [
        {
          "name": "developer",
          "columns": [
            {"name": "id", "type": "INTEGER", "primary_key": true, "nullable": false},
            {"name": "name", "type": "VARCHAR", "size": 255}
          ],
          "rows": [[1, "Anthon"], [2, "Barbara"]]
        }
      ]
    }

A column may also be given as a bare name, and a row as an object keyed by
column name. Dates and times are ISO strings, binary values base64 text.
"""

from __future__ import annotations

import base64
import datetime
import json
import logging
from decimal import Decimal
from typing import IO, Any, Sequence

from metamodel.data import DataSet
from metamodel.errors import SchemaMismatchError, UnsupportedOperationError
from metamodel.memory import ArrayTableDataProvider, PojoAdapter, PojoUpdateCallback, TableDataProvider
from metamodel.resource import Resource
from metamodel.schema import Column, Schema, SimpleTableDef, Table
from metamodel.types import ColumnType, convert_value

logger = logging.getLogger(__name__)


def _column_from_json(data: Any) -> Column:
    if isinstance(data, str):
        return Column(name=data, nullable=True)
    type_name = data.get("type")
    native_type = data.get("native_type")
    if type_name:
        try:
            column_type = ColumnType[type_name.upper()]
        except KeyError:
            column_type = ColumnType.from_native(type_name)
    else:
        column_type = ColumnType.from_native(native_type) if native_type else None
    return Column(
        name=data["name"],
        type=column_type,
        native_type=native_type,
        size=data.get("size"),
        nullable=data.get("nullable", True),
        primary_key=data.get("primary_key", False),
        remarks=data.get("remarks"),
    )


def _value_from_json(value: Any, column: Column) -> Any:
    if value is None or column.type is None:
        return value
    if column.type.is_binary and isinstance(value, str):
        return base64.b64decode(value)
    return convert_value(value, column.type)


def _value_to_json(value: Any) -> Any:
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _column_to_json(column: Column) -> dict[str, Any]:
    data: dict[str, Any] = {"name": column.name}
    if column.type is not None:
        data["type"] = column.type.name
    if column.native_type:
        data["native_type"] = column.native_type
    if column.size is not None:
        data["size"] = column.size
    if column.primary_key:
        data["primary_key"] = True
    if column.nullable is not None:
        data["nullable"] = column.nullable
    if column.remarks:
        data["remarks"] = column.remarks
    return data


def read_document(stream: IO[bytes], schema_name: str) -> PojoAdapter:
    """Parse a JSON document into an in-memory adapter holding its tables."""
    document = json.load(stream)
    if not isinstance(document, dict) or not isinstance(document.get("tables", []), list):
        raise ValueError("Expected an object with a 'tables' list")
    adapter = PojoAdapter(schema_name)
    for table_data in document.get("tables", []):
        table = Table(table_data["name"], [_column_from_json(c) for c in table_data.get("columns", [])])
        rows = []
        for row in table_data.get("rows", []):
            if isinstance(row, dict):
                row = [row.get(c.name) for c in table.columns]
            if len(row) != table.column_count:
                raise ValueError(f"Row {row!r} of table '{table.name}' does not have {table.column_count} values")
            rows.append(tuple(_value_from_json(v, c) for v, c in zip(row, table.columns)))
        adapter.add_provider(ArrayTableDataProvider(SimpleTableDef.from_table(table), rows), table)
    return adapter


def write_document(schema: Schema, providers: dict[str, TableDataProvider[Any]]) -> bytes:
    tables = []
    for table in schema.tables:
        provider = providers[table.name]
        tables.append(
            {
                "name": table.name,
                "columns": [_column_to_json(c) for c in table.columns],
                "rows": [list(values) for values in provider],
            }
        )
    return json.dumps({"tables": tables}, indent=2, default=_value_to_json).encode("utf-8")


class JsonFileAdapter:
    """Tables of a JSON document; the schema is named after the resource.

    The document is read on first use and kept in memory. Update scripts stage
    their changes in memory and write the whole document back to the resource
    when they commit; if the write fails, neither the resource nor the
    in-memory tables change.

    Args:
        resource: Where the document is read from and written to. A resource
            that does not exist yet reads as a document without tables.
    """

    def __init__(self, resource: Resource) -> None:
        self.resource = resource
        self._delegate: PojoAdapter | None = None

    @property
    def schema_name(self) -> str:
        return self.resource.name

    def _load(self) -> PojoAdapter:
        if self._delegate is None:
            if not self.resource.is_exists():
                logger.debug("%r does not exist yet, starting without tables", self.resource)
                self._delegate = PojoAdapter(self.schema_name)
            else:
                logger.debug("Reading tables from %r", self.resource)
                self._delegate = self.resource.read(lambda stream: read_document(stream, self.schema_name))
        return self._delegate

    def get_schema_names(self) -> list[str]:
        return [self.schema_name]

    def get_schema_by_name(self, name: str) -> Schema | None:
        return self._load().get_schema_by_name(name)

    def get_default_schema_name(self) -> str:
        return self.schema_name

    def materialize_table(self, table: Table, columns: Sequence[Column], max_rows: int | None) -> DataSet:
        return self._load().materialize_table(table, columns, max_rows)

    def refresh_schemas(self) -> None:
        """Read the document again on next use, discarding the tables in memory."""
        self._delegate = None

    def is_read_only(self) -> bool:
        return self.resource.is_read_only()

    def create_update_callback(self) -> PojoUpdateCallback:
        if self.is_read_only():
            raise UnsupportedOperationError(f"{self.resource!r} is read-only")
        return PojoUpdateCallback(self._load(), before_commit=self._persist)

    def _persist(self, schema: Schema, providers: dict[str, TableDataProvider[Any]]) -> None:
        if schema.name != self.schema_name:
            raise SchemaMismatchError(f"Cannot write schema '{schema.name}' to {self.resource!r}")
        contents = write_document(schema, providers)
        logger.debug("Writing %d bytes to %r", len(contents), self.resource)
        self.resource.write(lambda stream: stream.write(contents))
