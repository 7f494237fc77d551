"""PostgreSQL dialect."""

from __future__ import annotations

from metamodel.dialects.base import LimitStyle, QueryRewriter
from metamodel.types import ColumnType


class PostgresqlQueryRewriter(QueryRewriter):
    """PostgreSQL folds unquoted identifiers to lower case and escapes LIKE with backslash."""

    name = "postgresql"
    identifier_case = "lower"
    limit_style = LimitStyle.LIMIT_OFFSET
    like_escape_default = True
    varchar_requires_size = False
    string_cast_type = "TEXT"
    number_cast_type = "NUMERIC"
    type_names = {
        ColumnType.TINYINT: "SMALLINT",
        ColumnType.BIT: "BOOLEAN",
        ColumnType.DOUBLE: "DOUBLE PRECISION",
        ColumnType.FLOAT: "DOUBLE PRECISION",
        ColumnType.LONGVARCHAR: "TEXT",
        ColumnType.CLOB: "TEXT",
        ColumnType.BINARY: "BYTEA",
        ColumnType.VARBINARY: "BYTEA",
        ColumnType.LONGVARBINARY: "BYTEA",
        ColumnType.BLOB: "BYTEA",
    }
