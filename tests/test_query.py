"""Tests for the Query value, its items and the fluent builder."""

import pytest

from metamodel import (
    Column,
    ColumnType,
    Direction,
    FilterItem,
    FromItem,
    FunctionType,
    JoinType,
    LogicalOperator,
    OperatorType,
    Query,
    QueryConstructionError,
    SelectItem,
    Table,
)
from metamodel.query.query import split_identifier


@pytest.fixture
def developer():
    """Table developer(id, name, male)."""
    return Table(
        "developer",
        [
            Column("id", type=ColumnType.INTEGER),
            Column("name", type=ColumnType.VARCHAR),
            Column("male", type=ColumnType.BOOLEAN),
        ],
        schema_name="Schema",
    )


class TestItems:
    """Tests for from, select and filter items."""

    def test_from_item_kinds(self, developer):
        """Test that a from item is exactly one kind of source."""
        with pytest.raises(QueryConstructionError):
            FromItem()
        with pytest.raises(QueryConstructionError):
            FromItem(table=developer, sub_query=Query())
        sub = FromItem(sub_query=Query())
        assert sub.alias == "subquery"
        assert FromItem(table=developer, alias="d").label == "d"
        assert FromItem(table=developer).label == "developer"

    def test_join_leaves(self, developer):
        """Test that a join yields its tables left to right."""
        left, right = FromItem(table=developer, alias="a"), FromItem(table=developer, alias="b")
        join = FromItem.join(JoinType.LEFT, left, right)
        assert list(join.leaves()) == [left, right]
        assert str(join) == "Schema.developer a LEFT JOIN Schema.developer b"

    def test_select_item_expressions(self, developer):
        """Test the textual form of select items."""
        column = developer.get_column(0)
        assert SelectItem(column=column).to_expression() == "developer.id"
        assert str(SelectItem(column=column, function=FunctionType.SUM, alias="total")) == "SUM(developer.id) AS total"
        assert SelectItem.count_all().to_expression() == "COUNT(*)"
        assert SelectItem.count_all().is_count_all
        assert SelectItem(expression="42").is_literal

    def test_filter_normalization(self, developer):
        """Test that comparisons with NULL become IS NULL and IS NOT NULL."""
        item = SelectItem(column=developer.get_column(1))
        assert FilterItem(item, OperatorType.EQUALS_TO, None).operator is OperatorType.IS_NULL
        assert FilterItem(item, OperatorType.DIFFERENT_FROM, None).operator is OperatorType.IS_NOT_NULL
        assert FilterItem(item, OperatorType.IN, ["a", "b"]).operand == ("a", "b")
        assert FilterItem(item, OperatorType.IN, "a").operand == ("a",)

    def test_filter_operand_validation(self, developer):
        """Test that operands which cannot match the column type are rejected."""
        id_item = SelectItem(column=developer.get_column(0))
        with pytest.raises(QueryConstructionError, match="Cannot compare column 'id'"):
            FilterItem(id_item, OperatorType.GREATER_THAN, "abc")
        with pytest.raises(QueryConstructionError, match="Cannot compare column 'id'"):
            FilterItem(id_item, OperatorType.EQUALS_TO, "Infinity")
        with pytest.raises(QueryConstructionError, match="LIKE needs a string pattern"):
            FilterItem(id_item, OperatorType.LIKE, 5)
        with pytest.raises(QueryConstructionError, match="cannot compare with NULL"):
            FilterItem(id_item, OperatorType.LESS_THAN, None)

    def test_filter_negation(self, developer):
        """Test negation pushed through AND and OR."""
        id_item = SelectItem(column=developer.get_column(0))
        name_item = SelectItem(column=developer.get_column(1))
        condition = FilterItem.compound(
            LogicalOperator.AND,
            FilterItem(id_item, OperatorType.LESS_THAN, 3),
            FilterItem(name_item, OperatorType.IS_NULL),
        )
        negated = condition.negate()
        assert negated.logical_operator is LogicalOperator.OR
        assert [c.operator for c in negated.children] == [
            OperatorType.GREATER_THAN_OR_EQUAL,
            OperatorType.IS_NOT_NULL,
        ]
        assert str(negated) == "(developer.id >= 3 OR developer.name IS NOT NULL)"

    def test_parameter_values(self, developer):
        """Test the values bound for a filter tree, in order."""
        id_item = SelectItem(column=developer.get_column(0))
        name_item = SelectItem(column=developer.get_column(1))
        condition = FilterItem.compound(
            LogicalOperator.OR,
            FilterItem(id_item, OperatorType.IN, [1, 2]),
            FilterItem(name_item, OperatorType.IS_NOT_NULL),
            FilterItem(name_item, OperatorType.EQUALS_TO, "x"),
            FilterItem(id_item, OperatorType.EQUALS_TO, id_item),
        )
        assert condition.parameter_values() == [1, 2, "x"]


class TestQuery:
    """Tests for building Query values directly."""

    def test_select_resolution(self, developer):
        """Test resolving textual select expressions against the from items."""
        query = Query().from_table(developer, "d").select("d.name", "MAX(id) AS top", "'lit'")
        name, top, literal = query.select_items
        assert name.column.name == "name"
        assert name.from_item.alias == "d"
        assert top.function is FunctionType.MAX
        assert top.alias == "top"
        assert literal.is_literal

    def test_schema_qualified_name(self, developer):
        """Test resolving a name qualified by schema and table."""
        query = Query().from_table(developer).select("Schema.developer.id")
        assert query.select_items[0].column.name == "id"
        with pytest.raises(QueryConstructionError):
            Query().from_table(developer, "d").select("developer.id")

    def test_select_star(self, developer):
        """Test that '*' selects every column."""
        query = Query().from_table(developer).select("*")
        assert [item.column.name for item in query.select_items] == ["id", "name", "male"]

    def test_unresolvable_expression(self, developer):
        """Test that unknown names are rejected."""
        with pytest.raises(QueryConstructionError, match="Could not resolve 'salary'"):
            Query().from_table(developer).select("salary")
        with pytest.raises(QueryConstructionError, match="Only COUNT"):
            Query().from_table(developer).select("SUM(*)")

    def test_where_and_order(self, developer):
        """Test where triples and textual order by directions."""
        query = Query().from_table(developer).select("name").where("id", OperatorType.GREATER_THAN, 1)
        query.order_by("name DESC").order_by("id")
        assert str(query.where_items[0]) == "developer.id > 1"
        assert [(o.select_item.column.name, o.direction) for o in query.order_by_items] == [
            ("name", Direction.DESC),
            ("id", Direction.ASC),
        ]

    def test_order_by_alias(self, developer):
        """Test that an order by label matches a select alias first."""
        query = Query().from_table(developer).select("COUNT(*) AS n").order_by("n")
        assert query.order_by_items[0].select_item is query.select_items[0]

    def test_paging_validation(self, developer):
        """Test the bounds of max rows and first row."""
        query = Query().from_table(developer)
        with pytest.raises(QueryConstructionError):
            query.set_max_rows(-1)
        with pytest.raises(QueryConstructionError):
            query.set_first_row(0)
        assert query.set_max_rows(0).max_rows == 0

    def test_validate(self, developer):
        """Test rejection of empty and wrongly grouped queries."""
        with pytest.raises(QueryConstructionError, match="no select items"):
            Query().from_table(developer).validate()
        with pytest.raises(QueryConstructionError, match="no from items"):
            Query(select_items=[SelectItem(expression="1")]).validate()
        grouped = Query().from_table(developer).select("name", "COUNT(*)")
        with pytest.raises(QueryConstructionError, match="must be aggregated or appear in GROUP BY"):
            grouped.validate()
        grouped.group_by("name").validate()

    def test_validate_foreign_column(self, developer):
        """Test that a column of a table outside the from items is rejected."""
        other = Table("other", [Column("x")])
        query = Query().from_table(developer)
        query.select_items.append(SelectItem(column=other.get_column(0)))
        with pytest.raises(QueryConstructionError, match="not part of the from items"):
            query.validate()

    def test_clone_and_equality(self, developer):
        """Test that clones are equal but independent."""
        query = Query().from_table(developer).select("name").where("id", OperatorType.EQUALS_TO, 1)
        clone = query.clone()
        assert clone == query
        clone.select("id")
        assert clone != query
        assert len(query.select_items) == 1

    def test_to_sql(self, developer):
        """Test ANSI SQL with inlined values."""
        query = (
            Query()
            .from_table(developer)
            .select("name")
            .where("male", OperatorType.EQUALS_TO, True)
            .order_by("name")
            .set_max_rows(5)
        )
        assert query.to_sql() == (
            "SELECT name FROM Schema.developer WHERE male = TRUE ORDER BY name FETCH FIRST 5 ROWS ONLY"
        )

    def test_split_identifier(self):
        """Test splitting quoted and dotted identifiers."""
        assert split_identifier('s."my table".col') == ["s", "my table", "col"]
        assert split_identifier("[a.b].c") == ["a.b", "c"]
        assert split_identifier("`x`") == ["x"]


class TestQueryBuilder:
    """Tests for the fluent builder of a data context."""

    def test_unknown_table(self, memory_context):
        """Test that an unknown table name fails immediately."""
        with pytest.raises(QueryConstructionError, match="not found"):
            memory_context.query().from_("nothing")

    def test_incomplete_query(self, memory_context):
        """Test that executing without select items is rejected."""
        with pytest.raises(QueryConstructionError, match="needs both select items and from items"):
            memory_context.query().from_("developer").execute()

    def test_where_or(self, memory_context):
        """Test OR-ing conditions onto the most recent one."""
        query = (
            memory_context.query()
            .from_("developer")
            .select("name")
            .where("id")
            .eq(1)
            .or_("id")
            .eq(2)
            .or_("name")
            .eq("Doris")
            .and_("male")
            .eq(False)
            .to_query()
        )
        assert len(query.where_items) == 2
        first = query.where_items[0]
        assert first.logical_operator is LogicalOperator.OR
        assert len(first.children) == 3
        with memory_context.execute_query(query) as ds:
            assert ds.to_object_arrays() == [["Barbara"], ["Doris"]]

    def test_or_without_condition(self, memory_context):
        """Test that or_() needs a condition to extend."""
        with pytest.raises(QueryConstructionError, match="preceding condition"):
            memory_context.query().from_("developer").or_("id")

    def test_in_and_null_conditions(self, memory_context):
        """Test IN with varargs and IS NULL."""
        with memory_context.query().from_("developer").select("name").where("id").in_(1, 3, 4).execute() as ds:
            assert [r[0] for r in ds] == ["Anthon", "Carl", "Doris"]
        with memory_context.query().from_("developer").select("name").where("email").is_null().execute() as ds:
            assert ds.to_object_arrays() == [["Carl"]]
        with memory_context.query().from_("developer").select("name").where("name").not_like("%a%").execute() as ds:
            assert ds.to_object_arrays() == [["Anthon"], ["Doris"]]

    def test_join_on(self, memory_context):
        """Test a join built with on()."""
        builder = (
            memory_context.query()
            .from_("developer", "d")
            .left_join("product", "p")
            .on("d.id", "p.founder_developer")
            .select("d.name", "p.name")
            .order_by("d.id")
        )
        with builder.execute() as ds:
            assert ds.to_object_arrays() == [
                ["Anthon", "Anthons Algorithms"],
                ["Barbara", "Barbaras Basic Bundle"],
                ["Carl", None],
                ["Doris", None],
            ]

    def test_having_and_function_order(self, memory_context):
        """Test HAVING on an aggregate and ordering by one."""
        builder = (
            memory_context.query()
            .from_("developer")
            .select("male")
            .select_count()
            .group_by("male")
            .having(FunctionType.COUNT, "*")
            .ge(2)
            .order_by(FunctionType.MAX, "id")
            .desc()
        )
        with builder.execute() as ds:
            assert ds.to_object_arrays() == [[False, 2], [True, 2]]

    def test_direction_without_order(self, memory_context):
        """Test that asc()/desc() need an order by item."""
        with pytest.raises(QueryConstructionError):
            memory_context.query().from_("developer").desc()

    def test_offset_validation(self, memory_context):
        """Test that a negative offset is rejected."""
        with pytest.raises(QueryConstructionError):
            memory_context.query().from_("developer").offset(-1)

    def test_to_query_is_a_copy(self, memory_context):
        """Test that the built query is detached from the builder."""
        builder = memory_context.query().from_("developer").select("name")
        query = builder.to_query()
        builder.select("id")
        assert len(query.select_items) == 1

    def test_to_sql(self, memory_context):
        """Test rendering the built query."""
        builder = memory_context.query().from_("developer").select_count().where("name").like("A%")
        assert builder.to_sql() == "SELECT COUNT(*) FROM Schema.developer WHERE name LIKE 'A%'"
