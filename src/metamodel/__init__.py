"""MetaModel - A uniform relational data-access layer over heterogeneous back-ends."""

import logging

from metamodel.config import ExecutorConfig, NullOrdering, SqlConfig
from metamodel.context import DataContext
from metamodel.data import DataSet, DataSetHeader, InMemoryDataSet, Row
from metamodel.errors import (
    BackendIOError,
    DataSetStateError,
    MetaModelException,
    QueryConstructionError,
    QueryParserError,
    ResourceException,
    SchemaMismatchError,
    UnsupportedOperationError,
    ValueConversionError,
)
from metamodel.json_file import JsonFileAdapter
from metamodel.memory import (
    ArrayTableDataProvider,
    MapTableDataProvider,
    ObjectTableDataProvider,
    PojoAdapter,
)
from metamodel.query import (
    Direction,
    FilterItem,
    FromItem,
    FunctionType,
    JoinType,
    LogicalOperator,
    OperatorType,
    OrderByItem,
    Query,
    SelectItem,
)
from metamodel.query_executor import QueryExecutor
from metamodel.resource import FileResource, InMemoryResource, Resource, UrlResource
from metamodel.schema import Column, Schema, SimpleTableDef, Table
from metamodel.types import ColumnType, SuperType, TableType

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Main API
    "DataContext",
    "Query",
    "QueryExecutor",
    # Schema model
    "Schema",
    "Table",
    "Column",
    "SimpleTableDef",
    "ColumnType",
    "SuperType",
    "TableType",
    # Query items
    "SelectItem",
    "FromItem",
    "FilterItem",
    "OrderByItem",
    "FunctionType",
    "OperatorType",
    "LogicalOperator",
    "JoinType",
    "Direction",
    # Results
    "DataSet",
    "DataSetHeader",
    "InMemoryDataSet",
    "Row",
    # Adapters
    "PojoAdapter",
    "ArrayTableDataProvider",
    "MapTableDataProvider",
    "ObjectTableDataProvider",
    "JsonFileAdapter",
    # Resources
    "Resource",
    "InMemoryResource",
    "FileResource",
    "UrlResource",
    # Configuration
    "ExecutorConfig",
    "NullOrdering",
    "SqlConfig",
    # Errors
    "MetaModelException",
    "QueryConstructionError",
    "QueryParserError",
    "SchemaMismatchError",
    "BackendIOError",
    "ResourceException",
    "ValueConversionError",
    "UnsupportedOperationError",
    "DataSetStateError",
]

__version__ = "0.1.0"
