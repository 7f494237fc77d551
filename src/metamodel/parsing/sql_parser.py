"""Parser turning SQL SELECT text into a Query resolved against a DataContext.

Parsing happens in two steps: the ply grammar builds a small syntax tree of
the dataclasses below, then ``QueryResolver`` looks up tables and columns and
produces the Query.

A function applies to one column; its other arguments must be literals or
parameters. The same holds for ``||``, so ``name || '!'`` parses while
``'!' || name`` does not.
"""

from __future__ import annotations

import dataclasses
import datetime
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Sequence

import ply.yacc as yacc

from metamodel.errors import QueryConstructionError, QueryParserError
from metamodel.parsing.sql_lexer import SqlLexer
from metamodel.query.items import (
    Direction,
    FilterItem,
    FromItem,
    FunctionType,
    JoinType,
    LogicalOperator,
    OperatorType,
    OrderByItem,
    SelectItem,
)
from metamodel.query.query import Query, iter_leaves, resolve_column

if TYPE_CHECKING:
    from metamodel.context import DataContext

logger = logging.getLogger(__name__)


# --- syntax tree ---


@dataclass
class ColumnRef:
    """A possibly qualified name such as ``d.name``."""

    parts: list[str]


@dataclass
class StarRef:
    """``*`` or ``t.*`` in a select list."""

    qualifier: list[str] | None = None


@dataclass
class Literal:
    value: Any


@dataclass
class Parameter:
    """A ``?`` placeholder; index is 0-based in order of appearance."""

    index: int


@dataclass
class FunctionCall:
    name: str
    args: list[Any]


@dataclass
class Cast:
    expression: Any
    type_name: str


@dataclass
class Concat:
    parts: list[Any]


@dataclass
class SelectExpression:
    expression: Any
    alias: str | None = None


@dataclass
class TableRef:
    parts: list[str]
    alias: str | None = None


@dataclass
class SubQueryRef:
    statement: SelectStatement
    alias: str | None = None


@dataclass
class JoinRef:
    join_type: JoinType | None  # None for CROSS JOIN
    left: Any
    right: Any
    on: Any = None


@dataclass
class Comparison:
    left: Any
    operator: OperatorType
    right: Any


@dataclass
class NullCheck:
    expression: Any
    negated: bool = False


@dataclass
class LikeCheck:
    expression: Any
    pattern: Any
    negated: bool = False
    escape: str | None = None


@dataclass
class InCheck:
    expression: Any
    values: list[Any]
    negated: bool = False


@dataclass
class BooleanCondition:
    operator: LogicalOperator
    left: Any
    right: Any


@dataclass
class NotCondition:
    condition: Any


@dataclass
class OrderExpression:
    expression: Any
    direction: Direction = Direction.ASC


@dataclass
class SelectStatement:
    select_items: list[Any]
    from_items: list[Any]
    distinct: bool = False
    where: Any = None
    group_by: list[Any] = field(default_factory=list)
    having: Any = None
    order_by: list[OrderExpression] = field(default_factory=list)
    max_rows: int | None = None
    offset: int | None = None


# --- grammar ---


class SqlParser:
    """Parser for SQL SELECT statements."""

    tokens = SqlLexer.tokens

    # Operator precedence
    precedence = (
        ("left", "OR"),
        ("left", "AND"),
        ("right", "NOT"),
        ("left", "CONCAT"),
    )

    def __init__(self) -> None:
        self.lexer = SqlLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore
        self._parameter_count = 0

    def p_statement(self, p: yacc.YaccProduction) -> None:
        """statement : select_statement SEMICOLON
                     | select_statement"""
        p[0] = p[1]

    def p_select_statement(self, p: yacc.YaccProduction) -> None:
        """select_statement : SELECT set_quantifier top_clause select_list FROM from_list where_clause group_clause having_clause order_clause paging_clause"""
        max_rows, offset = p[11]
        if p[3] is not None:
            max_rows = p[3]
        p[0] = SelectStatement(
            select_items=p[4],
            from_items=p[6],
            distinct=p[2],
            where=p[7],
            group_by=p[8],
            having=p[9],
            order_by=p[10],
            max_rows=max_rows,
            offset=offset,
        )

    def p_set_quantifier(self, p: yacc.YaccProduction) -> None:
        """set_quantifier : DISTINCT
                          | empty"""
        p[0] = p[1] is not None

    def p_top_clause(self, p: yacc.YaccProduction) -> None:
        """top_clause : TOP INTEGER
                      | empty"""
        p[0] = p[2] if len(p) == 3 else None

    # --- select list ---

    def p_select_list_single(self, p: yacc.YaccProduction) -> None:
        """select_list : select_item"""
        p[0] = [p[1]]

    def p_select_list_multiple(self, p: yacc.YaccProduction) -> None:
        """select_list : select_list COMMA select_item"""
        p[0] = p[1] + [p[3]]

    def p_select_item_star(self, p: yacc.YaccProduction) -> None:
        """select_item : STAR"""
        p[0] = StarRef()

    def p_select_item_qualified_star(self, p: yacc.YaccProduction) -> None:
        """select_item : name_path DOT STAR"""
        p[0] = StarRef(qualifier=p[1])

    def p_select_item_expression(self, p: yacc.YaccProduction) -> None:
        """select_item : expression
                       | expression AS IDENTIFIER
                       | expression IDENTIFIER"""
        alias = p[len(p) - 1] if len(p) > 2 else None
        p[0] = SelectExpression(p[1], alias)

    def p_name_path_single(self, p: yacc.YaccProduction) -> None:
        """name_path : IDENTIFIER"""
        p[0] = [p[1]]

    def p_name_path_multiple(self, p: yacc.YaccProduction) -> None:
        """name_path : name_path DOT IDENTIFIER"""
        p[0] = p[1] + [p[3]]

    # --- expressions ---

    def p_expression_primary(self, p: yacc.YaccProduction) -> None:
        """expression : primary"""
        p[0] = p[1]

    def p_expression_concat(self, p: yacc.YaccProduction) -> None:
        """expression : expression CONCAT primary"""
        if isinstance(p[1], Concat):
            p[0] = Concat(p[1].parts + [p[3]])
        else:
            p[0] = Concat([p[1], p[3]])

    def p_primary_column(self, p: yacc.YaccProduction) -> None:
        """primary : name_path"""
        p[0] = ColumnRef(p[1])

    def p_primary_function(self, p: yacc.YaccProduction) -> None:
        """primary : function_name LPAREN argument_list RPAREN"""
        p[0] = FunctionCall(p[1], p[3])

    def p_primary_function_star(self, p: yacc.YaccProduction) -> None:
        """primary : function_name LPAREN STAR RPAREN"""
        p[0] = FunctionCall(p[1], [StarRef()])

    def p_primary_cast(self, p: yacc.YaccProduction) -> None:
        """primary : CAST LPAREN expression AS type_name RPAREN"""
        p[0] = Cast(p[3], p[5])

    def p_primary_literal(self, p: yacc.YaccProduction) -> None:
        """primary : literal"""
        p[0] = p[1]

    def p_primary_placeholder(self, p: yacc.YaccProduction) -> None:
        """primary : PLACEHOLDER"""
        p[0] = Parameter(self._parameter_count)
        self._parameter_count += 1

    def p_function_name(self, p: yacc.YaccProduction) -> None:
        """function_name : IDENTIFIER
                         | FIRST"""
        p[0] = p[1]

    def p_argument_list_single(self, p: yacc.YaccProduction) -> None:
        """argument_list : expression"""
        p[0] = [p[1]]

    def p_argument_list_multiple(self, p: yacc.YaccProduction) -> None:
        """argument_list : argument_list COMMA expression"""
        p[0] = p[1] + [p[3]]

    def p_type_name(self, p: yacc.YaccProduction) -> None:
        """type_name : IDENTIFIER
                     | IDENTIFIER LPAREN INTEGER RPAREN
                     | IDENTIFIER LPAREN INTEGER COMMA INTEGER RPAREN"""
        p[0] = p[1].upper()

    def p_literal_number(self, p: yacc.YaccProduction) -> None:
        """literal : INTEGER
                   | FLOAT"""
        p[0] = Literal(p[1])

    def p_literal_negative(self, p: yacc.YaccProduction) -> None:
        """literal : MINUS INTEGER
                   | MINUS FLOAT"""
        p[0] = Literal(-p[2])

    def p_literal_string(self, p: yacc.YaccProduction) -> None:
        """literal : STRING"""
        p[0] = Literal(p[1])

    def p_literal_boolean(self, p: yacc.YaccProduction) -> None:
        """literal : TRUE
                   | FALSE"""
        p[0] = Literal(p[1].upper() == "TRUE")

    def p_literal_null(self, p: yacc.YaccProduction) -> None:
        """literal : NULL"""
        p[0] = Literal(None)

    def p_literal_temporal(self, p: yacc.YaccProduction) -> None:
        """literal : DATE STRING
                   | TIME STRING
                   | TIMESTAMP STRING"""
        kind, text = p[1].upper(), p[2]
        try:
            if kind == "DATE":
                value: Any = datetime.date.fromisoformat(text)
            elif kind == "TIME":
                value = datetime.time.fromisoformat(text)
            else:
                value = datetime.datetime.fromisoformat(text)
        except ValueError as e:
            raise QueryParserError(f"Invalid {kind} literal '{text}' (position {p.lexpos(2)})") from e
        p[0] = Literal(value)

    # --- from ---

    def p_from_list_single(self, p: yacc.YaccProduction) -> None:
        """from_list : from_item"""
        p[0] = [p[1]]

    def p_from_list_multiple(self, p: yacc.YaccProduction) -> None:
        """from_list : from_list COMMA from_item"""
        p[0] = p[1] + [p[3]]

    def p_from_item(self, p: yacc.YaccProduction) -> None:
        """from_item : table_ref
                     | joined_table"""
        p[0] = p[1]

    def p_table_ref(self, p: yacc.YaccProduction) -> None:
        """table_ref : name_path alias_clause"""
        p[0] = TableRef(p[1], p[2])

    def p_table_ref_subquery(self, p: yacc.YaccProduction) -> None:
        """table_ref : LPAREN select_statement RPAREN alias_clause"""
        p[0] = SubQueryRef(p[2], p[4])

    def p_alias_clause(self, p: yacc.YaccProduction) -> None:
        """alias_clause : AS IDENTIFIER
                        | IDENTIFIER
                        | empty"""
        p[0] = p[len(p) - 1]

    def p_joined_table(self, p: yacc.YaccProduction) -> None:
        """joined_table : from_item join_type JOIN table_ref ON condition"""
        p[0] = JoinRef(p[2], p[1], p[4], p[6])

    def p_joined_table_cross(self, p: yacc.YaccProduction) -> None:
        """joined_table : from_item CROSS JOIN table_ref"""
        p[0] = JoinRef(None, p[1], p[4])

    def p_join_type(self, p: yacc.YaccProduction) -> None:
        """join_type : INNER
                     | LEFT
                     | LEFT OUTER
                     | RIGHT
                     | RIGHT OUTER
                     | FULL
                     | FULL OUTER
                     | empty"""
        p[0] = JoinType(p[1].upper()) if p[1] is not None else JoinType.INNER

    # --- conditions ---

    def p_where_clause(self, p: yacc.YaccProduction) -> None:
        """where_clause : WHERE condition
                        | empty"""
        p[0] = p[2] if len(p) == 3 else None

    def p_condition_binary(self, p: yacc.YaccProduction) -> None:
        """condition : condition AND condition
                     | condition OR condition"""
        p[0] = BooleanCondition(LogicalOperator(p[2].upper()), p[1], p[3])

    def p_condition_not(self, p: yacc.YaccProduction) -> None:
        """condition : NOT condition"""
        p[0] = NotCondition(p[2])

    def p_condition_group(self, p: yacc.YaccProduction) -> None:
        """condition : LPAREN condition RPAREN"""
        p[0] = p[2]

    def p_condition_predicate(self, p: yacc.YaccProduction) -> None:
        """condition : predicate"""
        p[0] = p[1]

    def p_predicate_comparison(self, p: yacc.YaccProduction) -> None:
        """predicate : expression comparison_operator expression"""
        p[0] = Comparison(p[1], p[2], p[3])

    def p_comparison_operator(self, p: yacc.YaccProduction) -> None:
        """comparison_operator : EQ
                               | NEQ
                               | LT
                               | LTE
                               | GT
                               | GTE"""
        p[0] = OperatorType.DIFFERENT_FROM if p[1] in ("<>", "!=") else OperatorType(p[1])

    def p_predicate_null(self, p: yacc.YaccProduction) -> None:
        """predicate : expression IS NULL
                     | expression IS NOT NULL"""
        p[0] = NullCheck(p[1], negated=len(p) == 5)

    def p_predicate_like(self, p: yacc.YaccProduction) -> None:
        """predicate : expression LIKE expression escape_clause
                     | expression NOT LIKE expression escape_clause"""
        negated = len(p) == 6
        p[0] = LikeCheck(p[1], p[len(p) - 2], negated, p[len(p) - 1])

    def p_escape_clause(self, p: yacc.YaccProduction) -> None:
        """escape_clause : ESCAPE STRING
                         | empty"""
        p[0] = p[2] if len(p) == 3 else None

    def p_predicate_in(self, p: yacc.YaccProduction) -> None:
        """predicate : expression IN LPAREN argument_list RPAREN
                     | expression NOT IN LPAREN argument_list RPAREN"""
        negated = len(p) == 7
        p[0] = InCheck(p[1], p[len(p) - 2], negated)

    # --- group, order, paging ---

    def p_group_clause(self, p: yacc.YaccProduction) -> None:
        """group_clause : GROUP BY argument_list
                        | empty"""
        p[0] = p[3] if len(p) == 4 else []

    def p_having_clause(self, p: yacc.YaccProduction) -> None:
        """having_clause : HAVING condition
                         | empty"""
        p[0] = p[2] if len(p) == 3 else None

    def p_order_clause(self, p: yacc.YaccProduction) -> None:
        """order_clause : ORDER BY order_list
                        | empty"""
        p[0] = p[3] if len(p) == 4 else []

    def p_order_list_single(self, p: yacc.YaccProduction) -> None:
        """order_list : order_item"""
        p[0] = [p[1]]

    def p_order_list_multiple(self, p: yacc.YaccProduction) -> None:
        """order_list : order_list COMMA order_item"""
        p[0] = p[1] + [p[3]]

    def p_order_item(self, p: yacc.YaccProduction) -> None:
        """order_item : expression
                      | expression ASC
                      | expression DESC"""
        direction = Direction(p[2].upper()) if len(p) == 3 else Direction.ASC
        p[0] = OrderExpression(p[1], direction)

    def p_paging_clause_limit(self, p: yacc.YaccProduction) -> None:
        """paging_clause : LIMIT INTEGER
                         | LIMIT INTEGER OFFSET INTEGER"""
        p[0] = (p[2], p[4] if len(p) == 5 else None)

    def p_paging_clause_offset(self, p: yacc.YaccProduction) -> None:
        """paging_clause : OFFSET INTEGER rows_keyword
                         | OFFSET INTEGER rows_keyword fetch_clause"""
        p[0] = (p[4] if len(p) == 5 else None, p[2])

    def p_paging_clause_fetch(self, p: yacc.YaccProduction) -> None:
        """paging_clause : fetch_clause"""
        p[0] = (p[1], None)

    def p_paging_clause_empty(self, p: yacc.YaccProduction) -> None:
        """paging_clause : empty"""
        p[0] = (None, None)

    def p_fetch_clause(self, p: yacc.YaccProduction) -> None:
        """fetch_clause : FETCH FIRST INTEGER ROWS ONLY
                        | FETCH FIRST INTEGER ROW ONLY
                        | FETCH NEXT INTEGER ROWS ONLY
                        | FETCH NEXT INTEGER ROW ONLY"""
        p[0] = p[3]

    def p_rows_keyword(self, p: yacc.YaccProduction) -> None:
        """rows_keyword : ROWS
                        | ROW
                        | empty"""
        p[0] = p[1]

    def p_empty(self, p: yacc.YaccProduction) -> None:
        """empty :"""
        p[0] = None

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise QueryParserError(f"Syntax error at '{p.value}' (position {p.lexpos})")
        else:
            raise QueryParserError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, start="statement", **kwargs)

    def parse_statement(self, data: str) -> SelectStatement:
        """Parse SQL text into its syntax tree without resolving any names."""
        if self.parser is None:
            self.build(debug=False, write_tables=False)
        self._parameter_count = 0
        return self.parser.parse(data, lexer=self.lexer.lexer)

    def parse(self, data: str, data_context: DataContext, parameters: Sequence[Any] = ()) -> Query:
        """Parse SQL text into a Query whose names resolve through a DataContext.

        Args:
            data: A SELECT statement.
            data_context: Where table names are looked up.
            parameters: Values bound to ``?`` placeholders, in order.

        Raises:
            QueryParserError: If the text is not valid SQL.
            QueryConstructionError: If a table or column cannot be resolved.
        """
        logger.debug("Parsing query: %s", data)
        statement = self.parse_statement(data)
        if self._parameter_count != len(parameters):
            raise QueryConstructionError(
                f"Query has {self._parameter_count} placeholders but {len(parameters)} parameters were given"
            )
        return QueryResolver(data_context, parameters).resolve(statement)


# --- resolution ---

_STRING_CAST_TYPES = frozenset({"VARCHAR", "CHAR", "NVARCHAR", "NCHAR", "TEXT", "STRING", "CLOB", "VARCHAR2"})
_NUMBER_CAST_TYPES = frozenset(
    {"DECIMAL", "NUMERIC", "NUMBER", "INTEGER", "INT", "BIGINT", "SMALLINT", "FLOAT", "DOUBLE", "REAL"}
)

_FLIPPED = {
    OperatorType.LESS_THAN: OperatorType.GREATER_THAN,
    OperatorType.GREATER_THAN: OperatorType.LESS_THAN,
    OperatorType.LESS_THAN_OR_EQUAL: OperatorType.GREATER_THAN_OR_EQUAL,
    OperatorType.GREATER_THAN_OR_EQUAL: OperatorType.LESS_THAN_OR_EQUAL,
}


def _literal_text(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    raise QueryConstructionError(f"{value!r} can only be used as a comparison operand, not as a select item")


def _backslash_pattern(pattern: str, escape: str | None) -> str:
    """Rewrite a LIKE pattern with a custom escape character to backslash escapes."""
    if escape is None or escape == "\\":
        return pattern
    if len(escape) != 1:
        raise QueryConstructionError(f"ESCAPE needs a single character, got '{escape}'")
    result = []
    chars = iter(pattern)
    for ch in chars:
        if ch == escape:
            escaped = next(chars, "")
            result.append("\\" + escaped if escaped in ("%", "_", "\\") else escaped)
        elif ch == "\\":
            result.append("\\\\")
        else:
            result.append(ch)
    return "".join(result)


class QueryResolver:
    """Turns a syntax tree into a Query, resolving names through a DataContext."""

    def __init__(self, data_context: DataContext, parameters: Sequence[Any] = ()) -> None:
        self.data_context = data_context
        self.parameters = list(parameters)

    def resolve(self, statement: SelectStatement) -> Query:
        query = Query()
        for source in statement.from_items:
            query.from_(self._from_item(source))

        for item in statement.select_items:
            if isinstance(item, StarRef):
                self._select_all(query, item)
            else:
                selected = self._select_item(item.expression, query.from_items)
                query.select_items.append(selected.with_alias(item.alias) if item.alias else selected)

        if statement.distinct:
            query.select_distinct()
        if statement.where is not None:
            query.where_items.append(self._filter(statement.where, query.from_items))
        for expression in statement.group_by:
            query.group_by(self._select_item(expression, query.from_items))
        if statement.having is not None:
            query.having_items.append(self._filter(statement.having, query.from_items))
        for order in statement.order_by:
            query.order_by(OrderByItem(self._order_target(order.expression, query), order.direction))
        if statement.max_rows is not None:
            query.set_max_rows(statement.max_rows)
        if statement.offset:
            query.set_first_row(statement.offset + 1)
        return query

    # --- from ---

    def _from_item(self, source: Any) -> FromItem:
        if isinstance(source, TableRef):
            label = ".".join(source.parts)
            table = self.data_context.get_table_by_qualified_label(label)
            if table is None:
                raise QueryConstructionError(f"No such table: {label}")
            return FromItem(table=table, alias=source.alias)
        if isinstance(source, SubQueryRef):
            return FromItem(sub_query=self.resolve(source.statement), alias=source.alias)
        assert isinstance(source, JoinRef)
        left = self._from_item(source.left)
        right = self._from_item(source.right)
        if source.join_type is None:
            # CROSS JOIN: an inner join without condition
            return FromItem.join(JoinType.INNER, left, right, None)
        return FromItem.join(source.join_type, left, right, self._filter(source.on, [left, right]))

    def _select_all(self, query: Query, star: StarRef) -> None:
        if star.qualifier is None:
            query.select_all()
            return
        name = star.qualifier[-1]
        for leaf in iter_leaves(query.from_items):
            if leaf.label == name or leaf.label.casefold() == name.casefold():
                query.select_all(leaf)
                return
        raise QueryConstructionError(f"No from item named '{'.'.join(star.qualifier)}'")

    # --- values and select items ---

    def _is_value(self, node: Any) -> bool:
        return isinstance(node, (Literal, Parameter))

    def _value(self, node: Any) -> Any:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Parameter):
            return self.parameters[node.index]
        raise QueryConstructionError(f"Expected a literal value, got {node}")

    def _select_item(self, node: Any, from_items: Sequence[FromItem]) -> SelectItem:
        if isinstance(node, ColumnRef):
            resolved = resolve_column(from_items, node.parts)
            if resolved is None:
                raise QueryConstructionError(f"Could not resolve column '{'.'.join(node.parts)}'")
            return resolved
        if self._is_value(node):
            return SelectItem(expression=_literal_text(self._value(node)))
        if isinstance(node, FunctionCall):
            function = FunctionType.from_name(node.name)
            if function is None:
                raise QueryConstructionError(f"Unknown function: {node.name}")
            if isinstance(node.args[0], StarRef):
                if function is not FunctionType.COUNT or len(node.args) != 1:
                    raise QueryConstructionError(f"Only COUNT accepts '*', not {node.name}")
                return SelectItem.count_all()
            return self._apply_function(function, node.args[0], node.args[1:], from_items)
        if isinstance(node, Cast):
            if node.type_name in _STRING_CAST_TYPES:
                return self._apply_function(FunctionType.TO_STRING, node.expression, [], from_items)
            if node.type_name in _NUMBER_CAST_TYPES:
                return self._apply_function(FunctionType.TO_NUMBER, node.expression, [], from_items)
            raise QueryConstructionError(f"Unsupported CAST target type: {node.type_name}")
        if isinstance(node, Concat):
            if not isinstance(node.parts[0], ColumnRef) or not all(self._is_value(p) for p in node.parts[1:]):
                raise QueryConstructionError("Concatenation must start with a column followed by literals")
            return self._apply_function(FunctionType.CONCAT, node.parts[0], node.parts[1:], from_items)
        raise QueryConstructionError(f"Unsupported expression: {node}")

    def _apply_function(
        self, function: FunctionType, argument: Any, parameters: Sequence[Any], from_items: Sequence[FromItem]
    ) -> SelectItem:
        base = self._select_item(argument, from_items)
        if base.function is not None:
            raise QueryConstructionError(f"Nested function calls are not supported: {function.function_name}({base})")
        values = tuple(self._value(p) for p in parameters)
        return dataclasses.replace(base, function=function, function_parameters=values)

    def _order_target(self, node: Any, query: Query) -> SelectItem:
        if isinstance(node, ColumnRef) and len(node.parts) == 1:
            for selected in query.select_items:
                if selected.alias and selected.alias.casefold() == node.parts[0].casefold():
                    return selected
        if isinstance(node, Literal) and isinstance(node.value, int) and not isinstance(node.value, bool):
            # ORDER BY 2: the second select item
            if not 1 <= node.value <= len(query.select_items):
                raise QueryConstructionError(f"ORDER BY position {node.value} is out of range")
            return query.select_items[node.value - 1]
        return self._select_item(node, query.from_items)

    # --- conditions ---

    def _filter(self, node: Any, from_items: Sequence[FromItem]) -> FilterItem:
        if isinstance(node, BooleanCondition):
            children = []
            for side in (node.left, node.right):
                child = self._filter(side, from_items)
                if child.is_compound and child.logical_operator is node.operator:
                    children.extend(child.children)
                else:
                    children.append(child)
            return FilterItem.compound(node.operator, *children)
        if isinstance(node, NotCondition):
            return self._filter(node.condition, from_items).negate()
        if isinstance(node, Comparison):
            left, operator, right = node.left, node.operator, node.right
            if self._is_value(left):
                if self._is_value(right):
                    raise QueryConstructionError("A comparison needs at least one column or function")
                left, right = right, left
                operator = _FLIPPED.get(operator, operator)
            item = self._select_item(left, from_items)
            operand = self._value(right) if self._is_value(right) else self._select_item(right, from_items)
            return FilterItem(item, operator, operand)
        if isinstance(node, NullCheck):
            operator = OperatorType.IS_NOT_NULL if node.negated else OperatorType.IS_NULL
            return FilterItem(self._select_item(node.expression, from_items), operator)
        if isinstance(node, LikeCheck):
            pattern = self._value(node.pattern)
            if not isinstance(pattern, str):
                raise QueryConstructionError(f"LIKE needs a string pattern, got {pattern!r}")
            operator = OperatorType.NOT_LIKE if node.negated else OperatorType.LIKE
            return FilterItem(
                self._select_item(node.expression, from_items), operator, _backslash_pattern(pattern, node.escape)
            )
        if isinstance(node, InCheck):
            operator = OperatorType.NOT_IN if node.negated else OperatorType.IN
            values = tuple(self._value(v) for v in node.values)
            return FilterItem(self._select_item(node.expression, from_items), operator, values)
        raise QueryConstructionError(f"Unsupported condition: {node}")
