"""Lexer for the SQL SELECT dialect understood by DataContext.parse_query()."""

import ply.lex as lex

from metamodel.errors import QueryParserError


class SqlLexer:
    """Lexer for tokenizing SQL queries."""

    # Reserved keywords, matched case-insensitively
    reserved = {
        "select": "SELECT",
        "distinct": "DISTINCT",
        "top": "TOP",
        "from": "FROM",
        "where": "WHERE",
        "group": "GROUP",
        "by": "BY",
        "having": "HAVING",
        "order": "ORDER",
        "asc": "ASC",
        "desc": "DESC",
        "limit": "LIMIT",
        "offset": "OFFSET",
        "fetch": "FETCH",
        "first": "FIRST",
        "next": "NEXT",
        "rows": "ROWS",
        "row": "ROW",
        "only": "ONLY",
        "and": "AND",
        "or": "OR",
        "not": "NOT",
        "is": "IS",
        "null": "NULL",
        "in": "IN",
        "like": "LIKE",
        "escape": "ESCAPE",
        "as": "AS",
        "join": "JOIN",
        "inner": "INNER",
        "left": "LEFT",
        "right": "RIGHT",
        "full": "FULL",
        "outer": "OUTER",
        "cross": "CROSS",
        "on": "ON",
        "true": "TRUE",
        "false": "FALSE",
        "date": "DATE",
        "time": "TIME",
        "timestamp": "TIMESTAMP",
        "cast": "CAST",
    }

    tokens = [
        "IDENTIFIER",
        "INTEGER",
        "FLOAT",
        "STRING",
        "STAR",
        "COMMA",
        "DOT",
        "LPAREN",
        "RPAREN",
        "EQ",
        "NEQ",
        "LT",
        "LTE",
        "GT",
        "GTE",
        "PLACEHOLDER",
        "CONCAT",
        "MINUS",
        "SEMICOLON",
    ] + list(reserved.values())

    # PLY sorts string-defined tokens longest regex first, so <= wins over <
    t_STAR = r"\*"
    t_COMMA = r","
    t_DOT = r"\."
    t_LPAREN = r"\("
    t_RPAREN = r"\)"
    t_EQ = r"="
    t_NEQ = r"<>|!="
    t_LTE = r"<="
    t_LT = r"<"
    t_GTE = r">="
    t_GT = r">"
    t_PLACEHOLDER = r"\?"
    t_CONCAT = r"\|\|"
    t_MINUS = r"-"
    t_SEMICOLON = r";"

    t_ignore = " \t\r"

    def __init__(self) -> None:
        self.lexer: lex.Lexer = None  # type: ignore

    def t_COMMENT(self, t: lex.LexToken) -> None:
        r"--[^\n]*"
        pass

    def t_FLOAT(self, t: lex.LexToken) -> lex.LexToken:
        r"\d+\.\d+([eE][-+]?\d+)?"
        t.value = float(t.value)
        return t

    def t_INTEGER(self, t: lex.LexToken) -> lex.LexToken:
        r"\d+"
        t.value = int(t.value)
        return t

    def t_STRING(self, t: lex.LexToken) -> lex.LexToken:
        r"'([^']|'')*'"
        t.value = t.value[1:-1].replace("''", "'")
        return t

    def t_QUOTED_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r'"([^"]|"")+"'
        # Quoted names are never keywords
        t.value = t.value[1:-1].replace('""', '"')
        t.type = "IDENTIFIER"
        return t

    def t_BACKTICK_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"`[^`]+`"
        t.value = t.value[1:-1]
        t.type = "IDENTIFIER"
        return t

    def t_BRACKET_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"\[[^\]]+\]"
        t.value = t.value[1:-1]
        t.type = "IDENTIFIER"
        return t

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[a-zA-Z_][a-zA-Z0-9_$]*"
        t.type = self.reserved.get(t.value.lower(), "IDENTIFIER")
        return t

    def t_NEWLINE(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)

    def t_error(self, t: lex.LexToken) -> None:
        raise QueryParserError(f"Illegal character '{t.value[0]}' at position {t.lexpos}")

    # --- Lexer methods ---

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        """Set the input string to tokenize."""
        self.lexer.input(data)

    def token(self) -> lex.LexToken | None:
        """Return the next token."""
        return self.lexer.token()

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        self.input(data)
        tokens = []
        while True:
            tok = self.token()
            if tok is None:
                break
            tokens.append(tok)
        return tokens


# Module-level set of reserved keywords (lowercase) for use by other modules
RESERVED_KEYWORDS: frozenset[str] = frozenset(SqlLexer.reserved.keys())
