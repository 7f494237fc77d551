"""Oracle dialect."""

from __future__ import annotations

import datetime

from metamodel.dialects.base import ANSI_RESERVED_WORDS, LimitStyle, QueryRewriter
from metamodel.types import ColumnType


class OracleQueryRewriter(QueryRewriter):
    """Oracle: upper-case identifiers, ROWNUM paging, numeric booleans."""

    name = "oracle"
    identifier_case = "upper"
    reserved_words = ANSI_RESERVED_WORDS | {"LEVEL", "NUMBER", "ROWID", "ROWNUM", "SIZE", "UID"}
    limit_style = LimitStyle.ROWNUM
    supports_boolean_literals = False
    string_cast_type = "VARCHAR2(4000)"
    number_cast_type = "NUMBER"
    type_names = {
        ColumnType.BOOLEAN: "NUMBER(1)",
        ColumnType.BIT: "NUMBER(1)",
        ColumnType.TINYINT: "NUMBER(3)",
        ColumnType.SMALLINT: "NUMBER(5)",
        ColumnType.INTEGER: "NUMBER(10)",
        ColumnType.BIGINT: "NUMBER(19)",
        ColumnType.DOUBLE: "BINARY_DOUBLE",
        ColumnType.FLOAT: "BINARY_DOUBLE",
        ColumnType.VARCHAR: "VARCHAR2",
        ColumnType.NVARCHAR: "NVARCHAR2",
        ColumnType.LONGVARCHAR: "CLOB",
        ColumnType.LONGVARBINARY: "BLOB",
        ColumnType.VARBINARY: "RAW(2000)",
        ColumnType.TIME: "DATE",
    }

    def rewrite_time(self, value: datetime.time) -> str:
        return f"TO_DATE('{value.strftime('%H:%M:%S')}', 'HH24:MI:SS')"
