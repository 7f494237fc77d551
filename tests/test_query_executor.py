"""Tests for the in-memory query executor."""

import pytest

from metamodel import (
    Column,
    ColumnType,
    ExecutorConfig,
    FilterItem,
    InMemoryDataSet,
    JoinType,
    NullOrdering,
    OperatorType,
    Query,
    QueryConstructionError,
    QueryExecutor,
    SchemaMismatchError,
    SelectItem,
    Table,
)

ROWS = {
    "a": [(1, "x"), (2, None), (3, "z")],
    "b": [(1, "one"), (1, "uno"), (4, "four")],
}


class Source:
    """Materializes the tables above and records every call."""

    def __init__(self, fail_on=None):
        self.calls = []
        self.data_sets = []
        self.fail_on = fail_on

    def __call__(self, table, columns, max_rows):
        self.calls.append((table.name, [c.name for c in columns], max_rows))
        if table.name == self.fail_on:
            raise RuntimeError(f"cannot read {table.name}")
        indexes = [c.number for c in columns]
        ds = InMemoryDataSet([SelectItem(column=c) for c in columns], [[r[i] for i in indexes] for r in ROWS[table.name]])
        self.data_sets.append(ds)
        return ds


@pytest.fixture
def tables():
    a = Table("a", [Column("id", type=ColumnType.INTEGER), Column("v", type=ColumnType.VARCHAR)], schema_name="s")
    b = Table("b", [Column("a_id", type=ColumnType.INTEGER), Column("w", type=ColumnType.VARCHAR)], schema_name="s")
    return a, b


@pytest.fixture
def source():
    return Source()


def run(query, source, **config):
    with QueryExecutor(source, ExecutorConfig(**config)).execute(query) as ds:
        return ds.to_object_arrays()


def join_query(join_type, a, b):
    on = FilterItem(SelectItem(column=a.get_column(0)), OperatorType.EQUALS_TO, SelectItem(column=b.get_column(0)))
    return Query().join(join_type, a, b, on).select("a.id", "b.w")


class TestJoins:
    """Tests for the join strategies."""

    @pytest.mark.parametrize(
        "join_type,expected",
        [
            (JoinType.INNER, [[1, "one"], [1, "uno"]]),
            (JoinType.LEFT, [[1, "one"], [1, "uno"], [2, None], [3, None]]),
            (JoinType.RIGHT, [[1, "one"], [1, "uno"], [None, "four"]]),
            (JoinType.FULL, [[1, "one"], [1, "uno"], [2, None], [3, None], [None, "four"]]),
        ],
    )
    def test_join_types(self, tables, source, join_type, expected):
        """Test rows produced by each kind of join."""
        assert run(join_query(join_type, *tables), source) == expected

    def test_only_referenced_columns_materialized(self, tables, source):
        """Test that each table is asked only for the columns the query uses."""
        run(join_query(JoinType.INNER, *tables), source)
        assert source.calls == [("a", ["id"], None), ("b", ["a_id", "w"], None)]

    def test_cross_product(self, tables, source):
        """Test that two from items without a condition form a cross product."""
        a, b = tables
        query = Query().from_table(a).from_table(b).select("a.id", "b.w").where("a.id", OperatorType.EQUALS_TO, 3)
        assert run(query, source) == [[3, "one"], [3, "uno"], [3, "four"]]


class TestOrdering:
    """Tests for ORDER BY, DISTINCT and paging."""

    def test_null_high(self, tables, source):
        """Test that NULL sorts last ascending and first descending by default."""
        a, _ = tables
        assert run(Query().from_table(a).select("v").order_by("v"), source) == [["x"], ["z"], [None]]
        assert run(Query().from_table(a).select("v").order_by("v DESC"), source) == [[None], ["z"], ["x"]]

    def test_null_low(self, tables, source):
        """Test NULL as the smallest value."""
        a, _ = tables
        query = Query().from_table(a).select("v").order_by("v")
        assert run(query, source, null_ordering=NullOrdering.LOW) == [[None], ["x"], ["z"]]

    def test_order_by_column_not_selected(self, tables, source):
        """Test ordering by a column that is not projected."""
        _, b = tables
        query = Query().from_table(b).select("w").order_by("a_id DESC").order_by("w")
        assert run(query, source) == [["four"], ["one"], ["uno"]]

    def test_distinct(self, tables, source):
        """Test that DISTINCT keeps the first of equal rows."""
        _, b = tables
        assert run(Query().from_table(b).select("a_id").select_distinct(), source) == [[1], [4]]

    def test_paging(self, tables, source):
        """Test first row and max rows after sorting."""
        a, _ = tables
        query = Query().from_table(a).select("id").order_by("id DESC").set_first_row(2).set_max_rows(1)
        assert run(query, source) == [[2]]

    def test_scalar_function(self, tables, source):
        """Test projecting a scalar function of a column."""
        a, _ = tables
        assert run(Query().from_table(a).select("UPPER(v)").order_by("id"), source) == [["X"], [None], ["Z"]]


class TestAggregation:
    """Tests for grouping and aggregates."""

    def test_group_by(self, tables, source):
        """Test counting rows per group."""
        _, b = tables
        query = Query().from_table(b).select("a_id", "COUNT(*)", "MAX(w)").group_by("a_id")
        assert run(query, source) == [[1, 2, "uno"], [4, 1, "four"]]

    def test_empty_ungrouped_aggregate(self, tables, source):
        """Test that aggregating no rows without GROUP BY yields one row."""
        a, _ = tables
        query = Query().from_table(a).select("COUNT(*)", "MAX(id)").where("id", OperatorType.GREATER_THAN, 10)
        assert run(query, source) == [[0, None]]

    def test_empty_grouped_aggregate(self, tables, source):
        """Test that grouping no rows yields no rows."""
        a, _ = tables
        query = Query().from_table(a).select("v", "COUNT(*)").group_by("v").where("id", OperatorType.GREATER_THAN, 10)
        assert run(query, source) == []

    def test_having(self, tables, source):
        """Test filtering groups on an aggregate."""
        _, b = tables
        query = Query().from_table(b).select("a_id").group_by("a_id")
        query.having(FilterItem(SelectItem.count_all(), OperatorType.GREATER_THAN, 1))
        assert run(query, source) == [[1]]


class TestSubQueries:
    """Tests for subqueries in the from clause."""

    def test_select_from_subquery(self, tables, source):
        """Test selecting from a distinct subquery."""
        _, b = tables
        inner = Query().from_table(b).select("a_id").select_distinct()
        outer = Query().from_(inner).select("subquery.a_id").order_by("a_id DESC")
        assert run(outer, source) == [[4], [1]]


class TestPushdown:
    """Tests for passing max rows to the materialization."""

    def test_plain_scan_pushes_down(self, tables, source):
        """Test that a plain scan asks for first row plus max rows."""
        a, _ = tables
        query = Query().from_table(a).select("id").set_first_row(2).set_max_rows(2)
        assert run(query, source) == [[2], [3]]
        assert source.calls[-1][2] == 3

    def test_filtered_scan_does_not_push_down(self, tables, source):
        """Test that filtering disables the hint."""
        a, _ = tables
        query = Query().from_table(a).select("id").where("id", OperatorType.GREATER_THAN, 1).set_max_rows(1)
        assert run(query, source) == [[2]]
        assert source.calls[-1][2] is None

    def test_pushdown_disabled(self, tables, source):
        """Test turning the hint off."""
        a, _ = tables
        run(Query().from_table(a).select("id").set_max_rows(1), source, pushdown_max_rows=False)
        assert source.calls[-1][2] is None


class TestResources:
    """Tests for closing materialized data sets."""

    def test_sources_closed_with_result(self, tables, source):
        """Test that closing the result closes what it read from."""
        run(join_query(JoinType.INNER, *tables), source)
        assert source.data_sets
        assert all(ds.closed for ds in source.data_sets)

    def test_sources_closed_on_failure(self, tables):
        """Test that a failing materialization closes the sources already opened."""
        source = Source(fail_on="b")
        with pytest.raises(RuntimeError, match="cannot read b"):
            QueryExecutor(source).execute(join_query(JoinType.INNER, *tables))
        assert len(source.data_sets) == 1
        assert source.data_sets[0].closed

    def test_materialized_data_missing_columns(self, tables):
        """Test that a source which leaves out requested columns is a schema mismatch."""
        a, _ = tables
        data_sets = []

        def narrow_source(table, columns, max_rows):
            ds = InMemoryDataSet([SelectItem(column=columns[0])], [[r[0]] for r in ROWS[table.name]])
            data_sets.append(ds)
            return ds

        with pytest.raises(SchemaMismatchError, match=r"lacks columns \['v'\]"):
            QueryExecutor(narrow_source).execute(Query().from_table(a).select("id", "v"))
        assert data_sets[0].closed

    def test_invalid_query(self, tables, source):
        """Test that queries are validated before anything is read."""
        a, _ = tables
        with pytest.raises(QueryConstructionError):
            QueryExecutor(source).execute(Query().from_table(a))
        assert source.calls == []
