"""Error kinds raised by the metamodel package."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from metamodel.resource import Resource
    from metamodel.types import ColumnType


class MetaModelException(Exception):
    """Root of every error raised by metamodel."""


class QueryConstructionError(MetaModelException):
    """A query could not be built: unresolved identifier, invalid grouping, bad comparison."""


class QueryParserError(QueryConstructionError):
    """SQL text could not be parsed into a query."""


class SchemaMismatchError(MetaModelException):
    """A table or column does not exist, or DDL conflicts with the schema."""


class BackendIOError(MetaModelException):
    """A back-end failed while reading or writing.

    Carries the SQL statement or resource path that was being processed.
    """

    def __init__(self, message: str, sql: str | None = None, path: str | None = None) -> None:
        if sql is not None:
            message = f"{message} (sql: {sql})"
        super().__init__(message)
        self.sql = sql
        self.path = path


class ResourceException(BackendIOError):
    """A resource could not be read or written."""

    def __init__(self, resource: Resource, message: str | None = None) -> None:
        text = f"{resource}: {message}" if message else str(resource)
        super().__init__(text, path=resource.path)
        self.resource = resource


class ValueConversionError(MetaModelException):
    """A native value cannot be coerced to the declared column type."""

    def __init__(self, value: Any, column_type: ColumnType, message: str | None = None) -> None:
        text = message or f"Cannot convert {value!r} to {column_type.name}"
        super().__init__(text)
        self.value = value
        self.column_type = column_type


class UnsupportedOperationError(MetaModelException):
    """The adapter or dialect cannot perform the requested operation."""


class DataSetStateError(MetaModelException):
    """A DataSet was used out of order, e.g. get_row() before next()."""
