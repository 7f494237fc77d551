"""Query model: AST items, the Query value and the fluent builder."""

from metamodel.query.builder import FilterBuilder, JoinBuilder, QueryBuilder
from metamodel.query.items import (
    Direction,
    FilterItem,
    FromItem,
    FunctionType,
    GroupByItem,
    JoinType,
    LogicalOperator,
    OperatorType,
    OrderByItem,
    SelectItem,
)
from metamodel.query.query import Query

__all__ = [
    "Direction",
    "FilterBuilder",
    "FilterItem",
    "FromItem",
    "FunctionType",
    "GroupByItem",
    "JoinBuilder",
    "JoinType",
    "LogicalOperator",
    "OperatorType",
    "OrderByItem",
    "Query",
    "QueryBuilder",
    "SelectItem",
]
