"""Tests for rows, headers and data sets."""

import pytest

from metamodel import (
    Column,
    ColumnType,
    DataSetHeader,
    DataSetStateError,
    FromItem,
    FunctionType,
    InMemoryDataSet,
    Row,
    SelectItem,
    Table,
)
from metamodel.data import FirstRowDataSet, IteratorDataSet, MaxRowsDataSet, close_all


@pytest.fixture
def table():
    """Table developer(id, name)."""
    return Table("developer", [Column("id", type=ColumnType.INTEGER), Column("name", type=ColumnType.VARCHAR)])


@pytest.fixture
def header(table):
    """Header selecting id, name and MAX(id) AS top."""
    source = FromItem(table=table)
    id_item = SelectItem(column=table.get_column(0), from_item=source)
    name_item = SelectItem(column=table.get_column(1), from_item=source)
    top = SelectItem(column=table.get_column(0), function=FunctionType.MAX, alias="top")
    return DataSetHeader([id_item, name_item, top])


def data_set(header, count=4):
    return InMemoryDataSet(header, [(i, f"dev{i}", count) for i in range(1, count + 1)])


class Recorder:
    """Closeable that records close calls and can fail."""

    def __init__(self, log, name, error=None):
        self.log = log
        self.name = name
        self.error = error

    def close(self):
        self.log.append(self.name)
        if self.error is not None:
            raise self.error


class TestHeaderAndRow:
    """Tests for DataSetHeader lookups and Row access."""

    def test_index_of_select_item(self, header, table):
        """Test lookups by select item, with and without from item or alias."""
        assert header.index_of(header.select_items[1]) == 1
        assert header.index_of(SelectItem(column=table.get_column(1))) == 1
        assert header.index_of(SelectItem(column=table.get_column(0), function=FunctionType.MAX)) == 2
        assert header.index_of(SelectItem(column=table.get_column(1), function=FunctionType.MIN)) is None

    def test_index_of_column_and_label(self, header, table):
        """Test lookups by column, alias and expression text."""
        assert header.index_of(table.get_column(1)) == 1
        assert header.index_of("top") == 2
        assert header.index_of("developer.name") == 1
        assert header.index_of("name") == 1
        assert header.index_of("salary") is None

    def test_row_values(self, header, table):
        """Test value access by position, select item, column and label."""
        row = Row(header, [1, "Anthon", 4])
        assert row.get_value(0) == 1
        assert row[header.select_items[1]] == "Anthon"
        assert row[table.get_column(0)] == 1
        assert row["top"] == 4
        assert list(row) == [1, "Anthon", 4]
        assert len(row) == 3
        assert repr(row) == "Row[values=[1, 'Anthon', 4]]"

    def test_row_missing_key(self, header):
        """Test that an unknown key raises KeyError."""
        with pytest.raises(KeyError):
            Row(header, [1, "Anthon", 4]).get_value("salary")

    def test_row_width_checked(self, header):
        """Test that a row must have one value per header item."""
        with pytest.raises(ValueError, match="2 values but the header has 3"):
            Row(header, [1, "Anthon"])

    def test_row_equality(self, header):
        """Test that rows with equal values and headers are equal."""
        assert Row(header, [1, "a", 2]) == Row(header, [1, "a", 2])
        assert Row(header, [1, "a", 2]) != Row(header, [1, "b", 2])


class TestDataSet:
    """Tests for the DataSet cursor protocol."""

    def test_next_and_get_row(self, header):
        """Test advancing through rows."""
        ds = data_set(header, 2)
        assert ds.next()
        assert ds.get_row().values == (1, "dev1", 2)
        assert ds.next()
        assert not ds.next()
        assert not ds.next()

    def test_get_row_before_next(self, header):
        """Test that reading without a current row is a state error."""
        ds = data_set(header)
        with pytest.raises(DataSetStateError):
            ds.get_row()
        list(ds)
        with pytest.raises(DataSetStateError):
            ds.get_row()

    def test_close_is_idempotent(self, header):
        """Test that closing twice releases once and ends iteration."""
        log = []
        ds = IteratorDataSet(header, iter([(1, "a", 1)]), [Recorder(log, "source")])
        ds.close()
        ds.close()
        assert log == ["source"]
        assert ds.closed
        assert not ds.next()

    def test_failure_makes_data_set_terminal(self, header):
        """Test that an error while fetching ends the data set."""

        def rows():
            yield (1, "a", 1)
            raise RuntimeError("backend gone")

        ds = IteratorDataSet(header, rows())
        assert ds.next()
        with pytest.raises(RuntimeError):
            ds.next()
        assert not ds.next()

    def test_to_rows_and_arrays(self, header):
        """Test draining a data set."""
        assert [row.values[0] for row in data_set(header).to_rows()] == [1, 2, 3, 4]
        assert data_set(header, 1).to_object_arrays() == [[1, "dev1", 1]]

    def test_context_manager_closes(self, header):
        """Test that leaving a with block closes the data set."""
        with data_set(header) as ds:
            ds.next()
        assert ds.closed

    def test_max_rows_and_first_row(self, header):
        """Test the paging wrappers."""
        assert [r.values[0] for r in MaxRowsDataSet(data_set(header), 2)] == [1, 2]
        assert [r.values[0] for r in FirstRowDataSet(data_set(header), 3)] == [3, 4]
        assert list(FirstRowDataSet(data_set(header), 9)) == []
        paged = MaxRowsDataSet(FirstRowDataSet(data_set(header), 2), 2)
        assert [r.values[0] for r in paged] == [2, 3]

    def test_first_row_must_be_positive(self, header):
        """Test that first_row is 1-based."""
        with pytest.raises(ValueError, match="at least 1"):
            FirstRowDataSet(data_set(header), 0)

    def test_wrapper_closes_inner(self, header):
        """Test that closing a wrapper closes the wrapped data set."""
        inner = data_set(header)
        MaxRowsDataSet(inner, 1).close()
        assert inner.closed


class TestCloseAll:
    """Tests for close_all."""

    def test_closes_everything_and_raises_first(self):
        """Test that every resource is closed and the first failure re-raised."""
        log = []
        resources = [
            Recorder(log, "a"),
            Recorder(log, "b", ValueError("first")),
            Recorder(log, "c", ValueError("second")),
            Recorder(log, "d"),
        ]
        with pytest.raises(ValueError, match="first"):
            close_all(resources)
        assert log == ["a", "b", "c", "d"]
