"""SQL dialects and the registry mapping engine names to query rewriters."""

from __future__ import annotations

import logging
from typing import Any

from metamodel.dialects.base import ANSI_RESERVED_WORDS, LimitStyle, QueryRewriter, SqlStatement
from metamodel.dialects.mssql import SqlServerQueryRewriter
from metamodel.dialects.mysql import MysqlQueryRewriter
from metamodel.dialects.oracle import OracleQueryRewriter
from metamodel.dialects.postgresql import PostgresqlQueryRewriter
from metamodel.dialects.sqlite import SqliteQueryRewriter

logger = logging.getLogger(__name__)

_DIALECTS: dict[str, type[QueryRewriter]] = {}


def register_dialect(name: str, rewriter_class: type[QueryRewriter]) -> None:
    """Register a rewriter class under an engine name (case-insensitive)."""
    _DIALECTS[name.lower()] = rewriter_class


def get_rewriter(name: str | None, **kwargs: Any) -> QueryRewriter:
    """Create the rewriter registered for an engine name, or the ANSI default."""
    rewriter_class = _DIALECTS.get(name.lower(), QueryRewriter) if name else QueryRewriter
    if name and rewriter_class is QueryRewriter:
        logger.debug("No dialect registered for %s, using ANSI SQL", name)
    return rewriter_class(**kwargs)


def dialect_names() -> list[str]:
    return sorted(_DIALECTS)


register_dialect("ansi", QueryRewriter)
register_dialect("sqlite", SqliteQueryRewriter)
register_dialect("postgresql", PostgresqlQueryRewriter)
register_dialect("postgres", PostgresqlQueryRewriter)
register_dialect("mysql", MysqlQueryRewriter)
register_dialect("mariadb", MysqlQueryRewriter)
register_dialect("mssql", SqlServerQueryRewriter)
register_dialect("oracle", OracleQueryRewriter)

__all__ = [
    "ANSI_RESERVED_WORDS",
    "LimitStyle",
    "MysqlQueryRewriter",
    "OracleQueryRewriter",
    "PostgresqlQueryRewriter",
    "QueryRewriter",
    "SqlServerQueryRewriter",
    "SqlStatement",
    "SqliteQueryRewriter",
    "dialect_names",
    "get_rewriter",
    "register_dialect",
]
