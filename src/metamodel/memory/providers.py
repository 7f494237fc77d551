"""Table data providers: the collections an in-memory adapter exposes as tables.

A provider yields every record as a tuple of values in the column order of its
table definition. Mutations never modify a collection a caller handed in:
``copy()`` gives an independent provider that update scripts stage their
changes on.
"""

from __future__ import annotations

import copy
import dataclasses
import typing
from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, Iterable, Iterator, Mapping, Sequence, TypeVar

from metamodel.schema import SimpleTableDef
from metamodel.types import ColumnType

T = TypeVar("T")

Predicate = Callable[[tuple[Any, ...]], bool]


class TableDataProvider(ABC, Generic[T]):
    """A table's definition plus the records backing it."""

    def __init__(self, table_def: SimpleTableDef, records: Iterable[T] = ()) -> None:
        self.table_def = table_def
        self._records: list[T] = list(records)

    @property
    def name(self) -> str:
        return self.table_def.name

    @property
    def column_names(self) -> list[str]:
        return self.table_def.column_names

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[tuple[Any, ...]]:
        for record in self._records:
            yield self._values_of(record)

    @abstractmethod
    def _values_of(self, record: T) -> tuple[Any, ...]:
        """Values of a record in column order."""

    @abstractmethod
    def _create(self, values: Mapping[str, Any]) -> T:
        """Build a record from values keyed by column name."""

    @abstractmethod
    def _updated(self, record: T, changes: Mapping[str, Any]) -> T:
        """Return a new record with some values changed; the original is left as is."""

    def insert(self, values: Mapping[str, Any]) -> None:
        self._records.append(self._create(values))

    def delete(self, predicate: Predicate) -> int:
        kept = [r for r in self._records if not predicate(self._values_of(r))]
        deleted = len(self._records) - len(kept)
        self._records = kept
        return deleted

    def update(self, predicate: Predicate, changes: Mapping[str, Any]) -> int:
        updated = 0
        records = []
        for record in self._records:
            if predicate(self._values_of(record)):
                record = self._updated(record, changes)
                updated += 1
            records.append(record)
        self._records = records
        return updated

    def copy(self) -> TableDataProvider[T]:
        """An independent provider over the same records.

        Records themselves are shared; mutations replace records instead of
        modifying them, so sharing is safe.
        """
        clone = copy.copy(self)
        clone._records = list(self._records)
        return clone


class ArrayTableDataProvider(TableDataProvider[Sequence[Any]]):
    """Records are sequences of values in column order."""

    def _values_of(self, record: Sequence[Any]) -> tuple[Any, ...]:
        values = tuple(record)
        width = len(self.column_names)
        if len(values) < width:
            values += (None,) * (width - len(values))
        return values[:width]

    def _create(self, values: Mapping[str, Any]) -> Sequence[Any]:
        return tuple(values.get(name) for name in self.column_names)

    def _updated(self, record: Sequence[Any], changes: Mapping[str, Any]) -> Sequence[Any]:
        values = list(self._values_of(record))
        for i, name in enumerate(self.column_names):
            if name in changes:
                values[i] = changes[name]
        return tuple(values)


class MapTableDataProvider(TableDataProvider[Mapping[str, Any]]):
    """Records are mappings from column name to value; missing keys read as NULL."""

    def _values_of(self, record: Mapping[str, Any]) -> tuple[Any, ...]:
        return tuple(record.get(name) for name in self.column_names)

    def _create(self, values: Mapping[str, Any]) -> Mapping[str, Any]:
        return {name: values.get(name) for name in self.column_names}

    def _updated(self, record: Mapping[str, Any], changes: Mapping[str, Any]) -> Mapping[str, Any]:
        return {**record, **changes}


def _attribute_types(cls: type) -> dict[str, Any]:
    """Attribute names and annotations of a class, dataclass fields first."""
    hints = typing.get_type_hints(cls)
    if dataclasses.is_dataclass(cls):
        return {f.name: hints.get(f.name, f.type) for f in dataclasses.fields(cls)}
    return {name: hint for name, hint in hints.items() if not name.startswith("_")}


def _column_type_of(hint: Any) -> ColumnType | None:
    # Optional[X] and X | None both carry X as their only non-None argument
    arguments = [a for a in typing.get_args(hint) if a is not type(None)]
    if len(arguments) == 1:
        hint = arguments[0]
    if isinstance(hint, type):
        return ColumnType.from_python_type(hint)
    return None


class ObjectTableDataProvider(TableDataProvider[T]):
    """Records are instances of a class; columns are its annotated attributes.

    Dataclasses contribute their fields, other classes their class-level type
    hints. New records are built by calling the class with keyword arguments.

    Args:
        name: Table name.
        cls: Record class.
        objects: Initial records.
    """

    def __init__(self, name: str, cls: type[T], objects: Iterable[T] = ()) -> None:
        attributes = _attribute_types(cls)
        if not attributes:
            raise ValueError(f"{cls.__name__} has no annotated attributes to expose as columns")
        table_def = SimpleTableDef(
            name,
            list(attributes),
            [_column_type_of(hint) for hint in attributes.values()],
        )
        super().__init__(table_def, objects)
        self.cls = cls

    def _values_of(self, record: T) -> tuple[Any, ...]:
        return tuple(getattr(record, name, None) for name in self.column_names)

    def _create(self, values: Mapping[str, Any]) -> T:
        return self.cls(**{name: values.get(name) for name in self.column_names})

    def _updated(self, record: T, changes: Mapping[str, Any]) -> T:
        if dataclasses.is_dataclass(record):
            return dataclasses.replace(record, **changes)  # type: ignore[type-var]
        clone = copy.copy(record)
        for name, value in changes.items():
            setattr(clone, name, value)
        return clone
