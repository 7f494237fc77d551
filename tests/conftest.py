"""Shared fixtures: a developer/product data set served by each kind of adapter."""

import json
from datetime import datetime

import pytest

from metamodel import (
    ArrayTableDataProvider,
    ColumnType,
    DataContext,
    InMemoryResource,
    JsonFileAdapter,
    PojoAdapter,
    SimpleTableDef,
)

DEVELOPER_COLUMNS = ["id", "name", "email", "male", "developer_since"]
DEVELOPER_TYPES = [
    ColumnType.INTEGER,
    ColumnType.VARCHAR,
    ColumnType.VARCHAR,
    ColumnType.BOOLEAN,
    ColumnType.TIMESTAMP,
]
DEVELOPERS = [
    (1, "Anthon", "anthon@example.com", True, datetime(2008, 6, 1, 9, 30)),
    (2, "Barbara", "barbara@example.com", False, datetime(2011, 3, 15, 14, 0)),
    (3, "Carl", None, True, datetime(2016, 11, 2, 8, 0)),
    (4, "Doris", "doris@example.com", False, None),
]

PRODUCT_COLUMNS = ["name", "version", "founder_developer"]
PRODUCT_TYPES = [ColumnType.VARCHAR, ColumnType.INTEGER, ColumnType.INTEGER]
PRODUCTS = [
    ("Anthons Algorithms", 11, 1),
    ("Barbaras Basic Bundle", 2, 2),
]


def developers_document() -> bytes:
    """The developer and product tables as a JSON document."""
    document = {
        "tables": [
            {
                "name": "developer",
                "columns": [
                    {"name": "id", "type": "INTEGER", "primary_key": True, "nullable": False},
                    {"name": "name", "type": "VARCHAR", "size": 100},
                    {"name": "email", "type": "VARCHAR"},
                    {"name": "male", "type": "BOOLEAN"},
                    {"name": "developer_since", "type": "TIMESTAMP"},
                ],
                "rows": [
                    [i, name, email, male, since.isoformat() if since else None]
                    for i, name, email, male, since in DEVELOPERS
                ],
            },
            {
                "name": "product",
                "columns": PRODUCT_COLUMNS,
                "rows": [list(row) for row in PRODUCTS],
            },
        ]
    }
    return json.dumps(document).encode("utf-8")


@pytest.fixture
def developers_resource():
    """An in-memory developers.json document."""
    return InMemoryResource("developers.json", developers_document())


@pytest.fixture
def json_context(developers_resource):
    """A data context over developers.json."""
    return DataContext(JsonFileAdapter(developers_resource))


@pytest.fixture
def memory_context():
    """A data context over the developer and product tables held in lists."""
    adapter = PojoAdapter(
        "Schema",
        ArrayTableDataProvider(SimpleTableDef("developer", DEVELOPER_COLUMNS, DEVELOPER_TYPES), DEVELOPERS),
        ArrayTableDataProvider(SimpleTableDef("product", PRODUCT_COLUMNS, PRODUCT_TYPES), PRODUCTS),
    )
    return DataContext(adapter)
