"""Column and table type definitions for the metamodel."""

from __future__ import annotations

import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from metamodel.errors import ValueConversionError


class SuperType(Enum):
    """Broad category that a column type belongs to."""

    NUMBER = "number"
    LITERAL = "literal"
    BOOLEAN = "boolean"
    BINARY = "binary"
    TIME = "time"
    OTHER = "other"


class ColumnType(Enum):
    """Closed set of semantic column types.

    Each member carries its SQL name, its super type and the Python class that
    values of the type are preferably represented by.
    """

    BOOLEAN = ("BOOLEAN", SuperType.BOOLEAN, bool)
    BIT = ("BIT", SuperType.BOOLEAN, bool)
    TINYINT = ("TINYINT", SuperType.NUMBER, int)
    SMALLINT = ("SMALLINT", SuperType.NUMBER, int)
    INTEGER = ("INTEGER", SuperType.NUMBER, int)
    BIGINT = ("BIGINT", SuperType.NUMBER, int)
    DECIMAL = ("DECIMAL", SuperType.NUMBER, Decimal)
    NUMERIC = ("NUMERIC", SuperType.NUMBER, Decimal)
    FLOAT = ("FLOAT", SuperType.NUMBER, float)
    REAL = ("REAL", SuperType.NUMBER, float)
    DOUBLE = ("DOUBLE", SuperType.NUMBER, float)
    CHAR = ("CHAR", SuperType.LITERAL, str)
    VARCHAR = ("VARCHAR", SuperType.LITERAL, str)
    LONGVARCHAR = ("LONGVARCHAR", SuperType.LITERAL, str)
    CLOB = ("CLOB", SuperType.LITERAL, str)
    NCHAR = ("NCHAR", SuperType.LITERAL, str)
    NVARCHAR = ("NVARCHAR", SuperType.LITERAL, str)
    BINARY = ("BINARY", SuperType.BINARY, bytes)
    VARBINARY = ("VARBINARY", SuperType.BINARY, bytes)
    LONGVARBINARY = ("LONGVARBINARY", SuperType.BINARY, bytes)
    BLOB = ("BLOB", SuperType.BINARY, bytes)
    DATE = ("DATE", SuperType.TIME, datetime.date)
    TIME = ("TIME", SuperType.TIME, datetime.time)
    TIMESTAMP = ("TIMESTAMP", SuperType.TIME, datetime.datetime)
    OTHER = ("OTHER", SuperType.OTHER, object)
    NULL = ("NULL", SuperType.OTHER, type(None))

    def __init__(self, sql_name: str, super_type: SuperType, python_type: type) -> None:
        self.sql_name = sql_name
        self.super_type = super_type
        self.python_type = python_type

    @property
    def is_number(self) -> bool:
        return self.super_type is SuperType.NUMBER

    @property
    def is_literal(self) -> bool:
        return self.super_type is SuperType.LITERAL

    @property
    def is_boolean(self) -> bool:
        return self.super_type is SuperType.BOOLEAN

    @property
    def is_binary(self) -> bool:
        return self.super_type is SuperType.BINARY

    @property
    def is_time_based(self) -> bool:
        return self.super_type is SuperType.TIME

    @classmethod
    def from_native(cls, native_type: str | None) -> ColumnType:
        """Map a native type name such as ``VARCHAR(100)`` or ``LONG`` to a column type.

        Unknown names fall back on SQLite-style affinity rules (anything
        containing ``INT`` is an integer, ``CHAR``/``TEXT`` a string, ...).
        """
        if not native_type:
            return cls.OTHER
        normalized = native_type.strip().upper().split("(")[0].strip()
        if normalized in _NATIVE_TYPES:
            return _NATIVE_TYPES[normalized]
        first_word = normalized.split(" ")[0]
        if first_word in _NATIVE_TYPES:
            return _NATIVE_TYPES[first_word]
        if "INT" in normalized:
            return cls.INTEGER
        if "CHAR" in normalized or "TEXT" in normalized or "CLOB" in normalized:
            return cls.VARCHAR
        if "BLOB" in normalized or "BINARY" in normalized:
            return cls.BLOB
        if "REAL" in normalized or "FLOA" in normalized or "DOUB" in normalized:
            return cls.DOUBLE
        if "TIMESTAMP" in normalized or "DATETIME" in normalized:
            return cls.TIMESTAMP
        if "DATE" in normalized:
            return cls.DATE
        if "TIME" in normalized:
            return cls.TIME
        if "BOOL" in normalized:
            return cls.BOOLEAN
        return cls.OTHER

    @classmethod
    def infer(cls, value: Any) -> ColumnType:
        """Infer a column type from a Python value."""
        if value is None:
            return cls.NULL
        return cls.from_python_type(type(value), value)

    @classmethod
    def from_python_type(cls, python_type: type, sample: Any = None) -> ColumnType:
        """Infer a column type from a Python class.

        ``bool`` is checked before ``int`` and ``datetime`` before ``date``
        because of their subclass relationships.
        """
        if not isinstance(python_type, type):
            return cls.OTHER
        if issubclass(python_type, bool):
            return cls.BOOLEAN
        if issubclass(python_type, int):
            if sample is not None and abs(sample) > _MAX_INT32:
                return cls.BIGINT
            return cls.INTEGER
        if issubclass(python_type, float):
            return cls.DOUBLE
        if issubclass(python_type, Decimal):
            return cls.DECIMAL
        if issubclass(python_type, str):
            return cls.VARCHAR
        if issubclass(python_type, (bytes, bytearray, memoryview)):
            return cls.BLOB
        if issubclass(python_type, datetime.datetime):
            return cls.TIMESTAMP
        if issubclass(python_type, datetime.date):
            return cls.DATE
        if issubclass(python_type, datetime.time):
            return cls.TIME
        if python_type is type(None):
            return cls.NULL
        return cls.OTHER


_MAX_INT32 = 2**31 - 1

# Native type names (upper case, without size arguments) of common engines
_NATIVE_TYPES: dict[str, ColumnType] = {
    "BOOL": ColumnType.BOOLEAN,
    "BOOLEAN": ColumnType.BOOLEAN,
    "YESNO": ColumnType.BOOLEAN,
    "BIT": ColumnType.BIT,
    "TINYINT": ColumnType.TINYINT,
    "BYTE": ColumnType.TINYINT,
    "SMALLINT": ColumnType.SMALLINT,
    "INT2": ColumnType.SMALLINT,
    "SHORT": ColumnType.SMALLINT,
    "INT": ColumnType.INTEGER,
    "INTEGER": ColumnType.INTEGER,
    "INT4": ColumnType.INTEGER,
    "MEDIUMINT": ColumnType.INTEGER,
    "LONG": ColumnType.INTEGER,
    "SERIAL": ColumnType.INTEGER,
    "BIGINT": ColumnType.BIGINT,
    "INT8": ColumnType.BIGINT,
    "BIGSERIAL": ColumnType.BIGINT,
    "DECIMAL": ColumnType.DECIMAL,
    "MONEY": ColumnType.DECIMAL,
    "CURRENCY": ColumnType.DECIMAL,
    "NUMERIC": ColumnType.NUMERIC,
    "NUMBER": ColumnType.NUMERIC,
    "FLOAT": ColumnType.FLOAT,
    "REAL": ColumnType.REAL,
    "FLOAT4": ColumnType.REAL,
    "DOUBLE": ColumnType.DOUBLE,
    "DOUBLE PRECISION": ColumnType.DOUBLE,
    "FLOAT8": ColumnType.DOUBLE,
    "CHAR": ColumnType.CHAR,
    "CHARACTER": ColumnType.CHAR,
    "VARCHAR": ColumnType.VARCHAR,
    "VARCHAR2": ColumnType.VARCHAR,
    "CHARACTER VARYING": ColumnType.VARCHAR,
    "TEXT": ColumnType.VARCHAR,
    "STRING": ColumnType.VARCHAR,
    "LONGVARCHAR": ColumnType.LONGVARCHAR,
    "MEDIUMTEXT": ColumnType.LONGVARCHAR,
    "LONGTEXT": ColumnType.LONGVARCHAR,
    "MEMO": ColumnType.LONGVARCHAR,
    "CLOB": ColumnType.CLOB,
    "NCLOB": ColumnType.CLOB,
    "NCHAR": ColumnType.NCHAR,
    "NVARCHAR": ColumnType.NVARCHAR,
    "NVARCHAR2": ColumnType.NVARCHAR,
    "BINARY": ColumnType.BINARY,
    "VARBINARY": ColumnType.VARBINARY,
    "BYTEA": ColumnType.VARBINARY,
    "LONGVARBINARY": ColumnType.LONGVARBINARY,
    "IMAGE": ColumnType.LONGVARBINARY,
    "OLE": ColumnType.LONGVARBINARY,
    "BLOB": ColumnType.BLOB,
    "LONGBLOB": ColumnType.BLOB,
    "DATE": ColumnType.DATE,
    "TIME": ColumnType.TIME,
    "TIMESTAMP": ColumnType.TIMESTAMP,
    "TIMESTAMPTZ": ColumnType.TIMESTAMP,
    "TIMESTAMP WITH TIME ZONE": ColumnType.TIMESTAMP,
    "TIMESTAMP WITHOUT TIME ZONE": ColumnType.TIMESTAMP,
    "DATETIME": ColumnType.TIMESTAMP,
    "DATETIME2": ColumnType.TIMESTAMP,
    "SHORT_DATE_TIME": ColumnType.TIMESTAMP,
    "NULL": ColumnType.NULL,
}


class TableType(Enum):
    """Kind of table-like object in a schema."""

    TABLE = "TABLE"
    VIEW = "VIEW"
    SYSTEM_TABLE = "SYSTEM_TABLE"
    ALIAS = "ALIAS"
    OTHER = "OTHER"


_TRUE_STRINGS = frozenset({"true", "t", "yes", "y", "1", "on"})
_FALSE_STRINGS = frozenset({"false", "f", "no", "n", "0", "off"})


def convert_value(value: Any, column_type: ColumnType | None) -> Any:
    """Coerce a native value to the preferred Python class of a column type.

    None passes through unchanged. Raises ValueConversionError when the value
    cannot be represented as the requested type.
    """
    if value is None or column_type is None:
        return value
    if column_type.is_boolean:
        return _to_boolean(value, column_type)
    if column_type.is_number:
        return _to_number(value, column_type)
    if column_type.is_literal:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value).decode("utf-8")
        return value if isinstance(value, str) else str(value)
    if column_type.is_binary:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        if isinstance(value, str):
            return value.encode("utf-8")
        raise ValueConversionError(value, column_type)
    if column_type.is_time_based:
        return _to_time_based(value, column_type)
    return value


def _to_boolean(value: Any, column_type: ColumnType) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueConversionError(value, column_type)


def _to_number(value: Any, column_type: ColumnType) -> Any:
    target = column_type.python_type
    if isinstance(value, target) and not isinstance(value, bool):
        return value
    try:
        if target is int:
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, float):
                if not value.is_integer():
                    raise ValueConversionError(value, column_type)
                return int(value)
            if isinstance(value, Decimal):
                if value != value.to_integral_value():
                    raise ValueConversionError(value, column_type)
                return int(value)
            if isinstance(value, str):
                text = value.strip()
                try:
                    return int(text)
                except ValueError:
                    return _to_number(Decimal(text), column_type)
            return int(value)
        if target is Decimal:
            if isinstance(value, float):
                return Decimal(repr(value))
            if isinstance(value, str):
                return Decimal(value.strip())
            return Decimal(value)
        return float(value)
    except (ValueError, TypeError, OverflowError, InvalidOperation) as e:
        raise ValueConversionError(value, column_type) from e


def _parse_iso_datetime(text: str) -> datetime.datetime:
    text = text.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.datetime.fromisoformat(text)


def _to_time_based(value: Any, column_type: ColumnType) -> Any:
    try:
        if column_type is ColumnType.TIMESTAMP:
            if isinstance(value, datetime.datetime):
                return value
            if isinstance(value, datetime.date):
                return datetime.datetime.combine(value, datetime.time())
            if isinstance(value, str):
                return _parse_iso_datetime(value)
        elif column_type is ColumnType.DATE:
            if isinstance(value, datetime.datetime):
                return value.date()
            if isinstance(value, datetime.date):
                return value
            if isinstance(value, str):
                return _parse_iso_datetime(value).date()
        elif column_type is ColumnType.TIME:
            if isinstance(value, datetime.time):
                return value
            if isinstance(value, datetime.datetime):
                return value.time()
            if isinstance(value, str):
                return datetime.time.fromisoformat(value.strip())
    except ValueError as e:
        raise ValueConversionError(value, column_type) from e
    raise ValueConversionError(value, column_type)
