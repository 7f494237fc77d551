"""Parsing of SQL text into queries."""

from metamodel.parsing.sql_lexer import SqlLexer
from metamodel.parsing.sql_parser import QueryResolver, SelectStatement, SqlParser

__all__ = [
    "QueryResolver",
    "SelectStatement",
    "SqlLexer",
    "SqlParser",
]
