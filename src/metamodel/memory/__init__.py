"""In-memory adapter over arrays, mappings and objects."""

from metamodel.memory.adapter import PojoAdapter, PojoUpdateCallback
from metamodel.memory.providers import (
    ArrayTableDataProvider,
    MapTableDataProvider,
    ObjectTableDataProvider,
    TableDataProvider,
)

__all__ = [
    "ArrayTableDataProvider",
    "MapTableDataProvider",
    "ObjectTableDataProvider",
    "PojoAdapter",
    "PojoUpdateCallback",
    "TableDataProvider",
]
