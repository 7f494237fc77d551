"""Schema discovery for SQL back-ends through SQLAlchemy's inspector."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.engine.reflection import Inspector
from sqlalchemy.exc import CompileError

from metamodel.schema import Column, Schema, Table
from metamodel.types import ColumnType, TableType

logger = logging.getLogger(__name__)


def native_type_name(inspector: Inspector, sql_type: Any) -> str:
    """The engine's own name of a reflected type, e.g. ``VARCHAR(40)``."""
    try:
        return sql_type.compile(dialect=inspector.dialect)
    except CompileError:
        return type(sql_type).__name__.upper()


def _column_size(sql_type: Any) -> int | None:
    size = getattr(sql_type, "length", None) or getattr(sql_type, "precision", None)
    return size if isinstance(size, int) else None


def reflect_table(inspector: Inspector, schema_name: str | None, name: str, table_type: TableType) -> Table:
    table = Table(name, type=table_type)
    primary_keys = set(inspector.get_pk_constraint(name, schema=schema_name).get("constrained_columns") or ())
    indexed: set[str] = set()
    if table_type is TableType.TABLE:
        for index in inspector.get_indexes(name, schema=schema_name):
            indexed.update(c for c in index.get("column_names") or () if c)

    for info in inspector.get_columns(name, schema=schema_name):
        native = native_type_name(inspector, info["type"])
        table.add_column(
            Column(
                name=info["name"],
                type=ColumnType.from_native(native),
                native_type=native,
                size=_column_size(info["type"]),
                nullable=info.get("nullable"),
                primary_key=info["name"] in primary_keys,
                indexed=info["name"] in indexed or info["name"] in primary_keys,
                remarks=info.get("comment"),
            )
        )
    return table


def reflect_schema(inspector: Inspector, schema_name: str | None) -> Schema:
    """Build a Schema with the tables and views the inspector sees in a schema."""
    logger.debug("Reflecting schema %s", schema_name)
    schema = Schema(schema_name or "")
    for name in inspector.get_table_names(schema=schema_name):
        schema.add_table(reflect_table(inspector, schema_name, name, TableType.TABLE))
    for name in inspector.get_view_names(schema=schema_name):
        schema.add_table(reflect_table(inspector, schema_name, name, TableType.VIEW))
    logger.debug("Schema %s has tables %s", schema.name, schema.table_names)
    return schema
