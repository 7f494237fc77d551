"""SQLite dialect."""

from __future__ import annotations

import datetime
from decimal import Decimal
from typing import Any

from metamodel.dialects.base import LimitStyle, QueryRewriter
from metamodel.types import ColumnType


class SqliteQueryRewriter(QueryRewriter):
    """SQLite: LIMIT/OFFSET paging, no RIGHT or FULL JOIN, ISO text for dates."""

    name = "sqlite"
    limit_style = LimitStyle.LIMIT_OFFSET
    supports_full_join = False
    supports_right_join = False
    supports_boolean_literals = False
    varchar_requires_size = False
    string_cast_type = "TEXT"
    number_cast_type = "NUMERIC"
    type_names = {
        ColumnType.LONGVARCHAR: "TEXT",
        ColumnType.CLOB: "TEXT",
        ColumnType.LONGVARBINARY: "BLOB",
    }

    def rewrite_offset_only(self, offset: int) -> str:
        return f" LIMIT -1 OFFSET {offset}"

    def rewrite_timestamp(self, value: datetime.datetime) -> str:
        return self.rewrite_string(value.isoformat(sep=" "))

    def rewrite_date(self, value: datetime.date) -> str:
        return self.rewrite_string(value.isoformat())

    def rewrite_time(self, value: datetime.time) -> str:
        return self.rewrite_string(value.isoformat())

    def to_driver_value(self, value: Any) -> Any:
        # sqlite3 has no adapters for these types
        if isinstance(value, datetime.datetime):
            return value.isoformat(sep=" ")
        if isinstance(value, (datetime.date, datetime.time)):
            return value.isoformat()
        if isinstance(value, Decimal):
            return str(value)
        return value
