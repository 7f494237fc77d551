"""MySQL and MariaDB dialect."""

from __future__ import annotations

import datetime

from metamodel.dialects.base import ANSI_RESERVED_WORDS, LimitStyle, QueryRewriter
from metamodel.types import ColumnType

# Largest row count MySQL accepts; LIMIT is mandatory when an offset is given
_MAX_ROWS = 18446744073709551615


class MysqlQueryRewriter(QueryRewriter):
    """MySQL: backtick quoting, backslash escapes in strings, no FULL JOIN."""

    name = "mysql"
    quote_start = "`"
    quote_end = "`"
    reserved_words = ANSI_RESERVED_WORDS | {"DATABASE", "KEYS", "RANGE", "READ", "SCHEMA", "SHOW", "STATUS"}
    limit_style = LimitStyle.LIMIT_OFFSET
    supports_full_join = False
    like_escape_default = True
    concat_operator = None
    string_cast_type = "CHAR"
    number_cast_type = "DECIMAL(38,10)"
    type_names = {
        ColumnType.TIMESTAMP: "DATETIME",
        ColumnType.DOUBLE: "DOUBLE",
        ColumnType.LONGVARCHAR: "LONGTEXT",
        ColumnType.CLOB: "LONGTEXT",
        ColumnType.LONGVARBINARY: "LONGBLOB",
        ColumnType.BLOB: "LONGBLOB",
    }

    def rewrite_offset_only(self, offset: int) -> str:
        return f" LIMIT {_MAX_ROWS} OFFSET {offset}"

    def rewrite_string(self, value: str) -> str:
        return "'" + value.replace("\\", "\\\\").replace("'", "''") + "'"

    def rewrite_timestamp(self, value: datetime.datetime) -> str:
        return self.rewrite_string(value.isoformat(sep=" "))

    def rewrite_date(self, value: datetime.date) -> str:
        return self.rewrite_string(value.isoformat())

    def rewrite_time(self, value: datetime.time) -> str:
        return self.rewrite_string(value.isoformat())
