"""Microsoft SQL Server dialect."""

from __future__ import annotations

import datetime

from metamodel.dialects.base import LimitStyle, QueryRewriter
from metamodel.types import ColumnType


class SqlServerQueryRewriter(QueryRewriter):
    """SQL Server: bracket quoting and SELECT TOP. Offsets are applied client-side."""

    name = "mssql"
    quote_start = "["
    quote_end = "]"
    limit_style = LimitStyle.TOP
    supports_boolean_literals = False
    concat_operator = "+"
    length_function = "LEN"
    string_cast_type = "NVARCHAR(MAX)"
    type_names = {
        ColumnType.BOOLEAN: "BIT",
        ColumnType.TIMESTAMP: "DATETIME2",
        ColumnType.DOUBLE: "FLOAT",
        ColumnType.LONGVARCHAR: "NVARCHAR(MAX)",
        ColumnType.CLOB: "NVARCHAR(MAX)",
        ColumnType.LONGVARBINARY: "VARBINARY(MAX)",
        ColumnType.BLOB: "VARBINARY(MAX)",
    }

    def rewrite_timestamp(self, value: datetime.datetime) -> str:
        return f"CAST({self.rewrite_string(value.isoformat(sep=' '))} AS DATETIME2)"

    def rewrite_date(self, value: datetime.date) -> str:
        return f"CAST({self.rewrite_string(value.isoformat())} AS DATE)"

    def rewrite_time(self, value: datetime.time) -> str:
        return f"CAST({self.rewrite_string(value.isoformat())} AS TIME)"

    def rewrite_like_pattern(self, pattern: str) -> str:
        # '[' opens a character class in T-SQL patterns
        return pattern.replace("[", "\\[")
