"""Rows and the DataSet cursor abstraction."""

from __future__ import annotations

import dataclasses
import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, Iterator, Protocol, Sequence

from metamodel.errors import DataSetStateError
from metamodel.query.items import SelectItem
from metamodel.schema import Column

logger = logging.getLogger(__name__)


class DataSetHeader:
    """The ordered select items describing the values of every row in a DataSet."""

    def __init__(self, select_items: Iterable[SelectItem]) -> None:
        self.select_items: tuple[SelectItem, ...] = tuple(select_items)
        self._cache: dict[Any, int | None] = {}

    def __len__(self) -> int:
        return len(self.select_items)

    def __iter__(self) -> Iterator[SelectItem]:
        return iter(self.select_items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DataSetHeader):
            return NotImplemented
        return self.select_items == other.select_items

    def __hash__(self) -> int:
        return hash(self.select_items)

    def index_of(self, key: SelectItem | Column | str) -> int | None:
        """Find the position of a select item, column or label in the header.

        Select items match exactly, then ignoring aliases, then ignoring the
        from item they were resolved against, then by alias.
        """
        try:
            return self._cache[key]
        except KeyError:
            pass
        if isinstance(key, SelectItem):
            index = self._index_of_item(key)
        elif isinstance(key, Column):
            index = self._find(lambda item: item.function is None and item.column == key)
        else:
            index = self._index_of_label(key)
        self._cache[key] = index
        return index

    def _find(self, predicate: Any) -> int | None:
        for i, item in enumerate(self.select_items):
            if predicate(item):
                return i
        return None

    def _index_of_item(self, key: SelectItem) -> int | None:
        try:
            return self.select_items.index(key)
        except ValueError:
            pass
        index = self._find(key.matches)
        if index is not None:
            return index
        if key.from_item is None:
            bare = dataclasses.replace(key, alias=None)
            index = self._find(lambda item: dataclasses.replace(item, alias=None, from_item=None) == bare)
            if index is not None:
                return index
        if key.is_literal and key.expression is not None:
            return self._index_of_label(key.expression)
        return None

    def _index_of_label(self, label: str) -> int | None:
        index = self._find(lambda item: item.alias == label)
        if index is not None:
            return index
        index = self._find(lambda item: item.to_expression() == label)
        if index is not None:
            return index
        return self._find(lambda item: item.function is None and item.column is not None and item.column.name == label)

    def __repr__(self) -> str:
        return f"DataSetHeader{[str(i) for i in self.select_items]}"


class Row:
    """An immutable tuple of values, one per select item of its header."""

    __slots__ = ("header", "values")

    def __init__(self, header: DataSetHeader, values: Sequence[Any]) -> None:
        if len(values) != len(header):
            raise ValueError(f"Row has {len(values)} values but the header has {len(header)} items")
        self.header = header
        self.values: tuple[Any, ...] = tuple(values)

    @property
    def select_items(self) -> tuple[SelectItem, ...]:
        return self.header.select_items

    def get_value(self, key: int | SelectItem | Column | str) -> Any:
        """Get a value by position, select item, column or label.

        Raises:
            KeyError: If the key does not identify a value of this row.
        """
        if isinstance(key, int):
            return self.values[key]
        index = self.header.index_of(key)
        if index is None:
            raise KeyError(key)
        return self.values[index]

    def __getitem__(self, key: int | SelectItem | Column | str) -> Any:
        return self.get_value(key)

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Row):
            return NotImplemented
        return self.values == other.values and self.header == other.header

    def __hash__(self) -> int:
        return hash(self.values)

    def __repr__(self) -> str:
        return f"Row[values={list(self.values)}]"


class Closeable(Protocol):
    def close(self) -> None: ...


class DataSet(ABC):
    """A single-pass cursor over rows.

    ``next()`` advances, ``get_row()`` returns the current row and ``close()``
    releases back-end resources. After a failure in ``next()`` the DataSet is
    terminal: further calls return False.
    """

    def __init__(self, header: DataSetHeader | Iterable[SelectItem]) -> None:
        self.header = header if isinstance(header, DataSetHeader) else DataSetHeader(header)
        self._row: Row | None = None
        self._closed = False
        self._terminal = False

    @property
    def select_items(self) -> tuple[SelectItem, ...]:
        return self.header.select_items

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def _fetch(self) -> Row | None:
        """Produce the next row, or None at the end."""

    def _release(self) -> None:
        """Release back-end resources. Called once by close()."""

    def next(self) -> bool:
        if self._closed or self._terminal:
            self._row = None
            return False
        try:
            row = self._fetch()
        except Exception:
            self._terminal = True
            self._row = None
            raise
        if row is None:
            self._terminal = True
            self._row = None
            return False
        self._row = row
        return True

    def get_row(self) -> Row:
        if self._row is None:
            raise DataSetStateError("No current row: call next() and check that it returned True")
        return self._row

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._row = None
        self._release()

    def to_rows(self) -> list[Row]:
        """Drain the remaining rows into a list."""
        return list(self)

    def to_object_arrays(self) -> list[list[Any]]:
        return [list(row.values) for row in self]

    def __iter__(self) -> Iterator[Row]:
        while self.next():
            yield self.get_row()

    def __enter__(self) -> DataSet:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def close_all(resources: Iterable[Closeable]) -> None:
    """Close every resource; re-raise the first failure after trying them all."""
    first_error: Exception | None = None
    for resource in resources:
        try:
            resource.close()
        except Exception as e:
            if first_error is None:
                first_error = e
            else:
                logger.warning("Failed to close %r", resource, exc_info=True)
    if first_error is not None:
        raise first_error


class InMemoryDataSet(DataSet):
    """DataSet over rows that are already in memory."""

    def __init__(self, header: DataSetHeader | Iterable[SelectItem], rows: Iterable[Row | Sequence[Any]]) -> None:
        super().__init__(header)
        self._rows = [r if isinstance(r, Row) else Row(self.header, r) for r in rows]
        self._position = 0

    def _fetch(self) -> Row | None:
        if self._position >= len(self._rows):
            return None
        row = self._rows[self._position]
        self._position += 1
        return row


class IteratorDataSet(DataSet):
    """DataSet pulling rows (or value sequences) from an iterator.

    Args:
        header: Select items of the produced rows.
        iterator: Source of rows or value sequences.
        resources: Things to close together with this DataSet, e.g. the source
            DataSets a query pipeline reads from.
    """

    def __init__(
        self,
        header: DataSetHeader | Iterable[SelectItem],
        iterator: Iterator[Row | Sequence[Any]],
        resources: Iterable[Closeable] = (),
    ) -> None:
        super().__init__(header)
        self._iterator = iterator
        self._resources = list(resources)

    def _fetch(self) -> Row | None:
        try:
            values = next(self._iterator)
        except StopIteration:
            return None
        if isinstance(values, Row):
            if values.header is self.header:
                return values
            values = values.values
        return Row(self.header, values)

    def _release(self) -> None:
        close = getattr(self._iterator, "close", None)
        if close is not None:
            close()
        close_all(self._resources)


class WrappingDataSet(DataSet):
    """DataSet delegating to another one, sharing its header."""

    def __init__(self, inner: DataSet) -> None:
        super().__init__(inner.header)
        self.inner = inner

    def _fetch(self) -> Row | None:
        if self.inner.next():
            return self.inner.get_row()
        return None

    def _release(self) -> None:
        self.inner.close()


class MaxRowsDataSet(WrappingDataSet):
    """Yields at most ``max_rows`` rows of the wrapped DataSet."""

    def __init__(self, inner: DataSet, max_rows: int) -> None:
        super().__init__(inner)
        self._remaining = max_rows

    def _fetch(self) -> Row | None:
        if self._remaining <= 0:
            return None
        row = super()._fetch()
        if row is not None:
            self._remaining -= 1
        return row


class FirstRowDataSet(WrappingDataSet):
    """Skips the rows before ``first_row`` (1-based) of the wrapped DataSet."""

    def __init__(self, inner: DataSet, first_row: int) -> None:
        if first_row < 1:
            raise ValueError("first_row must be at least 1")
        super().__init__(inner)
        self._to_skip = first_row - 1

    def _fetch(self) -> Row | None:
        while self._to_skip > 0:
            self._to_skip -= 1
            if super()._fetch() is None:
                return None
        return super()._fetch()
