"""DataSet reading rows from a DB-API cursor."""

from __future__ import annotations

import logging
from collections import deque
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

from sqlalchemy.engine import Dialect

from metamodel.data import DataSet, DataSetHeader, Row
from metamodel.errors import BackendIOError
from metamodel.query.items import SelectItem
from metamodel.types import ColumnType, convert_value

logger = logging.getLogger(__name__)


def driver_errors(dialect: Dialect) -> tuple[type[BaseException], ...]:
    """The exception base class of the DB-API module behind a SQLAlchemy dialect."""
    dbapi = getattr(dialect, "loaded_dbapi", None) or dialect.dbapi
    error = getattr(dbapi, "Error", None)
    return (error,) if isinstance(error, type) else ()


@contextmanager
def wrap_driver_errors(errors: tuple[type[BaseException], ...], message: str, sql: str | None = None) -> Iterator[None]:
    """Re-raise driver exceptions as BackendIOError carrying the SQL."""
    try:
        yield
    except errors as e:
        raise BackendIOError(f"{message}: {e}", sql=sql) from e


def _value_type(item: SelectItem) -> ColumnType | None:
    if item.column is None or item.function is not None:
        return None
    return item.column.type


class SqlDataSet(DataSet):
    """Rows fetched from a cursor in batches of ``fetch_size``.

    Values are converted to the Python classes of their column types, so a
    BOOLEAN column stored as 0/1 still reads as ``bool``. Extra trailing values
    (such as the row number of a ROWNUM-paged query) are dropped.

    Closing the DataSet closes the cursor, then the connection.
    """

    def __init__(
        self,
        header: DataSetHeader | Sequence[SelectItem],
        cursor: Any,
        connection: Any,
        sql: str,
        fetch_size: int = 500,
        errors: tuple[type[BaseException], ...] = (),
    ) -> None:
        super().__init__(header)
        self._cursor = cursor
        self._connection = connection
        self._sql = sql
        self._fetch_size = fetch_size
        self._errors = errors
        self._types = [_value_type(item) for item in self.header]
        self._buffer: deque[Sequence[Any]] = deque()
        self._exhausted = False

    def _fetch(self) -> Row | None:
        if not self._buffer:
            if self._exhausted:
                return None
            with wrap_driver_errors(self._errors, "Failed to fetch rows", self._sql):
                batch = self._cursor.fetchmany(self._fetch_size)
            if not batch:
                self._exhausted = True
                return None
            self._buffer.extend(batch)
        values = self._buffer.popleft()
        width = len(self._types)
        return Row(self.header, [convert_value(v, t) for v, t in zip(values[:width], self._types)])

    def _release(self) -> None:
        try:
            with wrap_driver_errors(self._errors, "Failed to close cursor", self._sql):
                self._cursor.close()
        finally:
            self._connection.close()
