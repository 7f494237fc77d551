"""Rendering of queries and update statements as SQL text.

``QueryRewriter`` renders ANSI SQL. Dialects subclass it and adjust class
attributes (quoting, limit style, type names, ...) or override individual
``rewrite_*`` methods.
"""

from __future__ import annotations

import datetime
import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Sequence

from metamodel.errors import UnsupportedOperationError
from metamodel.query.items import (
    FilterItem,
    FromItem,
    FunctionType,
    JoinType,
    LogicalOperator,
    OperatorType,
    SelectItem,
)
from metamodel.query.query import Query, iter_leaves, sub_query_label
from metamodel.schema import Column, Table
from metamodel.types import ColumnType, convert_value


class LimitStyle(Enum):
    """How a dialect expresses max rows and offsets."""

    NONE = "none"
    LIMIT_OFFSET = "limit_offset"  # LIMIT n OFFSET m
    TOP = "top"  # SELECT TOP n, no offset
    FETCH_FIRST = "fetch_first"  # OFFSET m ROWS FETCH FIRST n ROWS ONLY
    ROWNUM = "rownum"  # nested selects filtering on ROWNUM


@dataclass
class SqlStatement:
    """Rendered SQL plus the parameters to bind, in placeholder order."""

    sql: str
    params: list[Any] = field(default_factory=list)

    def __str__(self) -> str:
        return self.sql


ANSI_RESERVED_WORDS = frozenset(
    """
    ALL AND ANY AS ASC BETWEEN BY CASE CAST CHECK COLUMN CONSTRAINT CREATE CROSS
    CURRENT DATE DEFAULT DELETE DESC DISTINCT DROP ELSE END ESCAPE EXCEPT EXISTS
    FALSE FETCH FIRST FOR FOREIGN FROM FULL GRANT GROUP HAVING IN INDEX INNER
    INSERT INTERSECT INTO IS JOIN KEY LEFT LIKE LIMIT NEXT NOT NULL OFFSET ON ONLY
    OR ORDER OUTER PRIMARY REFERENCES RIGHT ROW ROWS SELECT SET TABLE THEN TIME
    TIMESTAMP TO TOP TRUE UNION UNIQUE UPDATE USER USING VALUES VIEW WHEN WHERE
    WITH
    """.split()
)

_WORD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_SIZED_TYPES = frozenset(
    {
        ColumnType.CHAR,
        ColumnType.VARCHAR,
        ColumnType.NCHAR,
        ColumnType.NVARCHAR,
        ColumnType.BINARY,
        ColumnType.VARBINARY,
        ColumnType.DECIMAL,
        ColumnType.NUMERIC,
    }
)

_JOIN_KEYWORDS = {
    JoinType.INNER: "INNER JOIN",
    JoinType.LEFT: "LEFT JOIN",
    JoinType.RIGHT: "RIGHT JOIN",
    JoinType.FULL: "FULL JOIN",
}


class _RenderContext:
    """State of one rendering: collected parameters and the query being rendered."""

    def __init__(self, rewriter: QueryRewriter, inline: bool) -> None:
        self.rewriter = rewriter
        self.inline = inline
        self.params: list[Any] = []
        self.qualify = False
        self.depth = 0
        self.escape_percent = not inline and rewriter.paramstyle in ("format", "pyformat")

    def bind(self, value: Any, column: Column | None = None) -> str:
        if self.inline:
            return self.rewriter.rewrite_value(value, column)
        self.params.append(self.rewriter.convert_parameter(value, column))
        return self.rewriter.placeholder(len(self.params))

    def literal(self, value: Any) -> str:
        return self.text(self.rewriter.rewrite_value(value))

    def text(self, sql: str) -> str:
        return sql.replace("%", "%%") if self.escape_percent else sql


class QueryRewriter:
    """ANSI SQL rewriter; the default for engines without a registered dialect.

    Args:
        paramstyle: DB-API paramstyle of the driver, deciding the placeholder
            syntax (``?``, ``%s`` or ``:n``).
        default_schema_name: Schema whose tables are rendered unqualified.
    """

    name = "ansi"
    quote_start = '"'
    quote_end = '"'
    # "upper"/"lower" when unquoted identifiers are folded by the engine
    identifier_case: str | None = None
    reserved_words = ANSI_RESERVED_WORDS
    limit_style = LimitStyle.FETCH_FIRST
    supports_full_join = True
    supports_right_join = True
    supports_boolean_literals = True
    # The engine treats backslash as the LIKE escape character without ESCAPE
    like_escape_default = False
    concat_operator: str | None = "||"
    length_function = "LENGTH"
    string_cast_type = "VARCHAR(255)"
    number_cast_type = "DECIMAL(38,10)"
    varchar_requires_size = True
    default_varchar_size = 255
    type_names: dict[ColumnType, str] = {}

    def __init__(self, paramstyle: str = "qmark", default_schema_name: str | None = None) -> None:
        self.paramstyle = paramstyle
        self.default_schema_name = default_schema_name

    # --- identifiers ---

    def needs_quoting(self, identifier: str) -> bool:
        if not _WORD_RE.match(identifier):
            return True
        if identifier.upper() in self.reserved_words:
            return True
        if self.identifier_case == "upper":
            return identifier != identifier.upper()
        if self.identifier_case == "lower":
            return identifier != identifier.lower()
        return False

    def quote_if_necessary(self, identifier: str) -> str:
        if not self.needs_quoting(identifier):
            return identifier
        escaped = identifier.replace(self.quote_end, self.quote_end * 2)
        return f"{self.quote_start}{escaped}{self.quote_end}"

    def rewrite_table_name(self, table: Table) -> str:
        name = self.quote_if_necessary(table.name)
        schema = table.schema_name
        if schema and schema != self.default_schema_name:
            return f"{self.quote_if_necessary(schema)}.{name}"
        return name

    # --- parameters and literals ---

    def placeholder(self, position: int) -> str:
        """Placeholder for the parameter at a 1-based position."""
        if self.paramstyle in ("format", "pyformat"):
            return "%s"
        if self.paramstyle in ("numeric", "named"):
            return f":{position}"
        return "?"

    def convert_parameter(self, value: Any, column: Column | None = None) -> Any:
        """Convert a value to what the driver expects for a bound parameter."""
        if value is not None and column is not None and column.type is not None:
            value = convert_value(value, column.type)
        return self.to_driver_value(value)

    def to_driver_value(self, value: Any) -> Any:
        return value

    def rewrite_value(self, value: Any, column: Column | None = None) -> str:
        """Render a value as an inline SQL literal."""
        if value is not None and column is not None and column.type is not None:
            value = convert_value(value, column.type)
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return self.rewrite_boolean(value)
        if isinstance(value, (int, Decimal)):
            return str(value)
        if isinstance(value, float):
            return repr(value)
        if isinstance(value, datetime.datetime):
            return self.rewrite_timestamp(value)
        if isinstance(value, datetime.date):
            return self.rewrite_date(value)
        if isinstance(value, datetime.time):
            return self.rewrite_time(value)
        if isinstance(value, (bytes, bytearray)):
            return f"X'{bytes(value).hex()}'"
        return self.rewrite_string(str(value))

    def rewrite_string(self, value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    def rewrite_boolean(self, value: bool) -> str:
        if self.supports_boolean_literals:
            return "TRUE" if value else "FALSE"
        return "1" if value else "0"

    def rewrite_timestamp(self, value: datetime.datetime) -> str:
        return f"TIMESTAMP '{value.isoformat(sep=' ')}'"

    def rewrite_date(self, value: datetime.date) -> str:
        return f"DATE '{value.isoformat()}'"

    def rewrite_time(self, value: datetime.time) -> str:
        return f"TIME '{value.isoformat()}'"

    # --- capabilities ---

    def is_max_rows_supported(self) -> bool:
        return self.limit_style is not LimitStyle.NONE

    def is_first_row_supported(self) -> bool:
        return self.limit_style not in (LimitStyle.NONE, LimitStyle.TOP)

    # --- queries ---

    def rewrite_query(self, query: Query, inline: bool = False) -> SqlStatement:
        """Render a query, binding filter operands as parameters unless ``inline``."""
        ctx = _RenderContext(self, inline)
        if not self.supports_full_join and _has_full_join(query.from_items):
            sql = self._rewrite_full_join_query(query, ctx)
        else:
            sql = self._rewrite_query(query, ctx)
        return SqlStatement(sql, ctx.params)

    def _rewrite_query(self, query: Query, ctx: _RenderContext) -> str:
        saved = ctx.qualify
        ctx.qualify = len(list(iter_leaves(query.from_items))) > 1
        ctx.depth += 1
        try:
            sql = self.rewrite_select_clause(query, ctx)
            sql += self.rewrite_from_clause(query, ctx)
            sql += self.rewrite_where_clause(query.where_items, ctx)
            sql += self.rewrite_group_by_clause(query, ctx)
            sql += self.rewrite_having_clause(query.having_items, ctx)
            sql += self.rewrite_order_by_clause(query, ctx)
            return self.rewrite_paging(sql, query)
        finally:
            ctx.depth -= 1
            ctx.qualify = saved

    def _rewrite_full_join_query(self, query: Query, ctx: _RenderContext) -> str:
        if (
            query.is_grouped
            or query.order_by_items
            or query.max_rows is not None
            or (query.first_row or 1) > 1
        ):
            raise UnsupportedOperationError(
                f"{self.name} has no FULL JOIN; the emulation cannot be combined with grouping, ordering or paging"
            )
        left = query.clone()
        left.from_items = [_replace_full_joins(item, swap=False) for item in query.from_items]
        right = query.clone()
        right.from_items = [_replace_full_joins(item, swap=True) for item in query.from_items]
        return f"{self._rewrite_query(left, ctx)} UNION {self._rewrite_query(right, ctx)}"

    def rewrite_select_clause(self, query: Query, ctx: _RenderContext) -> str:
        sql = "SELECT "
        if query.distinct:
            sql += "DISTINCT "
        if self.limit_style is LimitStyle.TOP and query.max_rows is not None:
            sql += f"TOP {query.max_rows} "
        nested = ctx.depth > 1
        items = []
        for index, item in enumerate(query.select_items):
            text = self.rewrite_select_item(item, ctx)
            alias = item.alias
            if alias is None and nested and item.column is None and item.sub_query_select_item is None:
                alias = sub_query_label(item, index)
            if alias:
                text += f" AS {self.quote_if_necessary(alias)}"
            items.append(text)
        return sql + ", ".join(items)

    def rewrite_select_item(self, item: SelectItem, ctx: _RenderContext) -> str:
        """Render a select item without its alias."""
        if item.is_count_all:
            return "COUNT(*)"
        if item.is_literal:
            assert item.expression is not None
            return ctx.text(item.expression)
        if item.sub_query_select_item is not None or item.column is not None:
            base = self.rewrite_column_reference(item, ctx)
        else:
            base = ctx.text(item.expression or "")
        if item.function is None:
            return base
        return self.rewrite_function(item.function, base, item.function_parameters, ctx)

    def rewrite_column_reference(self, item: SelectItem, ctx: _RenderContext) -> str:
        if item.sub_query_select_item is not None:
            from_item = item.from_item
            assert from_item is not None and from_item.sub_query is not None
            inner = item.sub_query_select_item
            index = from_item.sub_query.select_items.index(inner)
            name = self.quote_if_necessary(sub_query_label(inner, index))
            return f"{self.quote_if_necessary(from_item.label)}.{name}"

        assert item.column is not None
        name = self.quote_if_necessary(item.column.name)
        if item.from_item is not None and item.from_item.alias:
            prefix: str | None = item.from_item.alias
        elif ctx.qualify:
            prefix = item.column.table_name
        else:
            prefix = None
        return f"{self.quote_if_necessary(prefix)}.{name}" if prefix else name

    def rewrite_function(
        self, function: FunctionType, argument: str, parameters: Sequence[Any], ctx: _RenderContext
    ) -> str:
        if function in (FunctionType.FIRST, FunctionType.LAST):
            raise UnsupportedOperationError(f"{function.function_name} cannot be rendered as SQL")
        if function is FunctionType.TO_STRING:
            return f"CAST({argument} AS {self.string_cast_type})"
        if function is FunctionType.TO_NUMBER:
            return f"CAST({argument} AS {self.number_cast_type})"
        if function is FunctionType.LENGTH:
            return f"{self.length_function}({argument})"
        if function is FunctionType.CONCAT:
            parts = [argument] + [ctx.literal(p) for p in parameters]
            if self.concat_operator:
                return f" {self.concat_operator} ".join(parts)
            return f"CONCAT({', '.join(parts)})"
        return f"{function.function_name}({argument})"

    def rewrite_from_clause(self, query: Query, ctx: _RenderContext) -> str:
        return " FROM " + ", ".join(self.rewrite_from_item(item, ctx) for item in query.from_items)

    def rewrite_from_item(self, item: FromItem, ctx: _RenderContext | None = None) -> str:
        ctx = ctx or _RenderContext(self, inline=True)
        if item.is_join:
            assert item.left is not None and item.right is not None and item.join_type is not None
            left, right, join_type = item.left, item.right, item.join_type
            if join_type is JoinType.RIGHT and not self.supports_right_join:
                left, right, join_type = right, left, JoinType.LEFT
            left_sql = self.rewrite_from_item(left, ctx)
            right_sql = self.rewrite_from_item(right, ctx)
            if item.on is None:
                if join_type is JoinType.INNER:
                    return f"{left_sql} CROSS JOIN {right_sql}"
                return f"{left_sql} {_JOIN_KEYWORDS[join_type]} {right_sql} ON 1=1"
            on_sql = self.rewrite_filter_item(item.on, ctx)
            return f"{left_sql} {_JOIN_KEYWORDS[join_type]} {right_sql} ON {on_sql}"
        if item.sub_query is not None:
            inner = self._rewrite_query(item.sub_query, ctx)
            return f"({inner}) {self.quote_if_necessary(item.label)}"
        assert item.table is not None
        name = self.rewrite_table_name(item.table)
        return f"{name} {self.quote_if_necessary(item.alias)}" if item.alias else name

    def rewrite_where_clause(self, items: Sequence[FilterItem], ctx: _RenderContext) -> str:
        if not items:
            return ""
        return " WHERE " + " AND ".join(self.rewrite_filter_item(item, ctx) for item in items)

    def rewrite_having_clause(self, items: Sequence[FilterItem], ctx: _RenderContext) -> str:
        if not items:
            return ""
        return " HAVING " + " AND ".join(self.rewrite_filter_item(item, ctx) for item in items)

    def rewrite_group_by_clause(self, query: Query, ctx: _RenderContext) -> str:
        if not query.group_by_items:
            return ""
        return " GROUP BY " + ", ".join(self.rewrite_select_item(g.select_item, ctx) for g in query.group_by_items)

    def rewrite_order_by_clause(self, query: Query, ctx: _RenderContext) -> str:
        if not query.order_by_items:
            return ""
        parts = []
        for item in query.order_by_items:
            text = self.rewrite_select_item(item.select_item, ctx)
            parts.append(f"{text} DESC" if item.descending else text)
        return " ORDER BY " + ", ".join(parts)

    def rewrite_filter_item(self, item: FilterItem, ctx: _RenderContext | None = None) -> str:
        ctx = ctx or _RenderContext(self, inline=True)
        if item.is_compound:
            joiner = " AND " if item.logical_operator is LogicalOperator.AND else " OR "
            parts = [self.rewrite_filter_item(child, ctx) for child in item.children]
            return f"({joiner.join(parts)})" if len(parts) > 1 else parts[0]

        assert item.select_item is not None and item.operator is not None
        operator = item.operator
        left = self.rewrite_select_item(item.select_item, ctx)
        if operator.is_unary:
            return f"{left} {operator.sql}"
        operand = item.operand
        if isinstance(operand, SelectItem):
            return f"{left} {operator.sql} {self.rewrite_select_item(operand, ctx)}"

        column = item.select_item.column if item.select_item.function is None else None
        if operator.is_list:
            if not operand:
                return "1=0" if operator is OperatorType.IN else "1=1"
            values = ", ".join(ctx.bind(v, column) for v in operand)
            return f"{left} {operator.sql} ({values})"
        if operator.is_like:
            operand = self.rewrite_like_pattern(operand)
            sql = f"{left} {operator.sql} {ctx.bind(operand)}"
            if "\\" in operand and not self.like_escape_default:
                sql += " ESCAPE " + ctx.text(self.rewrite_string("\\"))
            return sql
        return f"{left} {operator.sql} {ctx.bind(operand, column)}"

    def rewrite_like_pattern(self, pattern: str) -> str:
        """Adapt a pattern whose only escape character is backslash to this engine."""
        return pattern

    def rewrite_paging(self, sql: str, query: Query) -> str:
        max_rows = query.max_rows
        offset = (query.first_row or 1) - 1
        if max_rows is None and offset == 0:
            return sql
        style = self.limit_style
        if style is LimitStyle.NONE or (style is LimitStyle.TOP and offset):
            raise UnsupportedOperationError(f"{self.name} cannot render this paging; apply it client-side")
        if style is LimitStyle.TOP:
            return sql
        if style is LimitStyle.LIMIT_OFFSET:
            if max_rows is None:
                return sql + self.rewrite_offset_only(offset)
            sql += f" LIMIT {max_rows}"
            return sql + f" OFFSET {offset}" if offset else sql
        if style is LimitStyle.FETCH_FIRST:
            if offset:
                sql += f" OFFSET {offset} ROWS"
            if max_rows is not None:
                sql += f" FETCH FIRST {max_rows} ROWS ONLY"
            return sql
        return self.rewrite_rownum(sql, max_rows, offset)

    def rewrite_offset_only(self, offset: int) -> str:
        return f" OFFSET {offset}"

    def rewrite_rownum(self, sql: str, max_rows: int | None, offset: int) -> str:
        if offset == 0:
            return f"SELECT * FROM ({sql}) WHERE ROWNUM <= {max_rows}"
        upper = f" WHERE ROWNUM <= {offset + max_rows}" if max_rows is not None else ""
        return (
            "SELECT * FROM (SELECT metamodel_subquery.*, ROWNUM metamodel_row_number "
            f"FROM ({sql}) metamodel_subquery{upper}) WHERE metamodel_row_number > {offset}"
        )

    # --- DML ---

    def rewrite_insert(
        self,
        table: Table,
        columns: Sequence[Column],
        values: Sequence[Any],
        explicit_nulls: Sequence[bool],
        inline: bool = False,
    ) -> SqlStatement:
        """Render an INSERT of the columns that were set.

        A column is included when its value is not None or it was explicitly
        set to NULL; other columns are left to their defaults.
        """
        ctx = _RenderContext(self, inline)
        names, placeholders = [], []
        for column, value, explicit_null in zip(columns, values, explicit_nulls):
            if value is not None or explicit_null:
                names.append(self.quote_if_necessary(column.name))
                placeholders.append(ctx.bind(value, column))
        sql = f"INSERT INTO {self.rewrite_table_name(table)} ({','.join(names)}) VALUES ({','.join(placeholders)})"
        return SqlStatement(sql, ctx.params)

    def rewrite_update(
        self,
        table: Table,
        columns: Sequence[Column],
        values: Sequence[Any],
        explicit_nulls: Sequence[bool],
        where_items: Sequence[FilterItem],
        inline: bool = False,
    ) -> SqlStatement:
        ctx = _RenderContext(self, inline)
        assignments = [
            f"{self.quote_if_necessary(column.name)}={ctx.bind(value, column)}"
            for column, value, explicit_null in zip(columns, values, explicit_nulls)
            if value is not None or explicit_null
        ]
        sql = f"UPDATE {self.rewrite_table_name(table)} SET {','.join(assignments)}"
        sql += self.rewrite_where_clause(where_items, ctx)
        return SqlStatement(sql, ctx.params)

    def rewrite_delete(self, table: Table, where_items: Sequence[FilterItem], inline: bool = False) -> SqlStatement:
        ctx = _RenderContext(self, inline)
        sql = f"DELETE FROM {self.rewrite_table_name(table)}"
        sql += self.rewrite_where_clause(where_items, ctx)
        return SqlStatement(sql, ctx.params)

    # --- DDL ---

    def rewrite_column_type(self, column: Column) -> str:
        if column.native_type:
            return column.native_type
        column_type = column.type or ColumnType.VARCHAR
        name = self.type_names.get(column_type, column_type.sql_name)
        if "(" in name:
            return name
        if column.size and column_type in _SIZED_TYPES:
            return f"{name}({column.size})"
        if self.varchar_requires_size and column_type in (ColumnType.VARCHAR, ColumnType.NVARCHAR):
            return f"{name}({self.default_varchar_size})"
        return name

    def rewrite_create_table(self, table: Table) -> str:
        definitions = []
        for column in table.columns:
            text = f"{self.quote_if_necessary(column.name)} {self.rewrite_column_type(column)}"
            if column.nullable is False:
                text += " NOT NULL"
            definitions.append(text)
        keys = [self.quote_if_necessary(c.name) for c in table.primary_keys]
        if keys:
            definitions.append(f"PRIMARY KEY({','.join(keys)})")
        return f"CREATE TABLE {self.rewrite_table_name(table)} ({', '.join(definitions)})"

    def rewrite_drop_table(self, table: Table) -> str:
        return f"DROP TABLE {self.rewrite_table_name(table)}"


def _has_full_join(items: Sequence[FromItem]) -> bool:
    for item in items:
        if item.is_join:
            assert item.left is not None and item.right is not None
            if item.join_type is JoinType.FULL or _has_full_join([item.left, item.right]):
                return True
    return False


def _replace_full_joins(item: FromItem, swap: bool) -> FromItem:
    if not item.is_join:
        return item
    assert item.left is not None and item.right is not None
    left = _replace_full_joins(item.left, swap)
    right = _replace_full_joins(item.right, swap)
    if item.join_type is JoinType.FULL:
        if swap:
            return FromItem.join(JoinType.LEFT, right, left, item.on)
        return FromItem.join(JoinType.LEFT, left, right, item.on)
    return FromItem.join(item.join_type, left, right, item.on)  # type: ignore[arg-type]
