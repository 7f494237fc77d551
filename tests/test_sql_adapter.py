"""Tests for the SQL adapter against a SQLite database file."""

import logging
from datetime import datetime

import pytest
from sqlalchemy import create_engine

from metamodel import BackendIOError, Column, ColumnType, DataContext, Query, QueryExecutor, SqlConfig, Table
from metamodel.dialects import LimitStyle
from metamodel.sql import SqlAdapter

DEVELOPERS = [
    (1, "Anthon", "anthon@example.com", True, datetime(2008, 6, 1, 9, 30)),
    (2, "Barbara", "barbara@example.com", False, datetime(2011, 3, 15, 14, 0)),
    (3, "Carl", None, True, datetime(2016, 11, 2, 8, 0)),
    (4, "Doris", "doris@example.com", False, None),
]
PRODUCTS = [("Anthons Algorithms", 11, 1), ("Barbaras Basic Bundle", 2, 2)]


def create_tables(callback):
    callback.create_table(None, "developer").with_column("id").of_type(ColumnType.INTEGER).as_primary_key().with_column(
        "name"
    ).of_type(ColumnType.VARCHAR).of_size(100).with_column("email").of_type(ColumnType.VARCHAR).with_column(
        "male"
    ).of_type(ColumnType.BOOLEAN).with_column("developer_since").of_type(ColumnType.TIMESTAMP).execute()
    callback.create_table(None, "product").with_column("name").of_type(ColumnType.VARCHAR).with_column(
        "version"
    ).of_type(ColumnType.INTEGER).with_column("founder_developer").of_type(ColumnType.INTEGER).execute()

    for row in DEVELOPERS:
        insert = callback.insert_into("developer")
        for name, value in zip(["id", "name", "email", "male", "developer_since"], row):
            insert.value(name, value)
        insert.execute()
    for name, version, founder in PRODUCTS:
        callback.insert_into("product").value("name", name).value("version", version).value(
            "founder_developer", founder
        ).execute()


@pytest.fixture
def engine(tmp_path):
    """An engine over an empty SQLite file."""
    engine = create_engine(f"sqlite:///{tmp_path / 'metamodel.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def sql_context(engine):
    """A data context over the developer and product tables in SQLite."""
    dc = DataContext(SqlAdapter(engine))
    dc.execute_update(create_tables)
    return dc


def count(dc, table):
    with dc.execute_query(f"SELECT COUNT(*) FROM {table}") as ds:
        return ds.to_object_arrays()[0][0]


class TestSqlSchema:
    """Tests for schema reflection."""

    def test_default_schema(self, sql_context):
        """Test that SQLite's main schema is the default."""
        assert "main" in sql_context.get_schema_names()
        schema = sql_context.get_default_schema()
        assert schema.name == "main"
        assert schema.table_names == ["developer", "product"]

    def test_reflected_columns(self, sql_context):
        """Test the types, keys and sizes of reflected columns."""
        developer = sql_context.get_table_by_qualified_label("developer")
        assert developer.column_names == ["id", "name", "email", "male", "developer_since"]
        assert [c.type for c in developer.columns] == [
            ColumnType.INTEGER,
            ColumnType.VARCHAR,
            ColumnType.VARCHAR,
            ColumnType.BOOLEAN,
            ColumnType.TIMESTAMP,
        ]
        assert [c.name for c in developer.primary_keys] == ["id"]
        assert developer.get_column_by_name("name").native_type == "VARCHAR(100)"
        assert developer.get_column_by_name("name").size == 100

    def test_refresh_after_ddl(self, sql_context):
        """Test that schema objects see tables created and dropped by later scripts."""
        schema = sql_context.get_default_schema()
        sql_context.execute_update(lambda cb: cb.create_table(None, "extra").with_column("x").execute())
        assert schema.table_names == ["developer", "extra", "product"]
        sql_context.execute_update(lambda cb: cb.drop_table("extra").execute())
        assert schema.table_names == ["developer", "product"]

    def test_adopt_schema_without_refresh(self, engine, sql_context):
        """Test that the working schema of a script is adopted when refreshing is off."""
        dc = DataContext(SqlAdapter(engine, SqlConfig(refresh_after_ddl=False)))
        schema = dc.get_default_schema()
        dc.execute_update(lambda cb: cb.create_table(None, "extra").with_column("x").of_type(ColumnType.INTEGER).execute())
        table = schema.get_table_by_name("extra")
        assert table is not None
        assert table.get_column(0).type is ColumnType.INTEGER


class TestSqlQueries:
    """Tests for queries pushed down to SQLite."""

    def test_values_are_typed(self, sql_context):
        """Test that stored values come back as the Python types of their columns."""
        query = sql_context.query().from_("developer").select("name", "male", "developer_since").where("id").eq(1)
        with query.execute() as ds:
            assert ds.to_object_arrays() == [["Anthon", True, datetime(2008, 6, 1, 9, 30)]]

    def test_paging_pushed_down(self, sql_context, caplog):
        """Test that LIMIT and OFFSET are rendered into the statement."""
        caplog.set_level(logging.DEBUG, logger="metamodel")
        query = sql_context.query().from_("developer").select("name").order_by("id").limit(2).offset(1)
        with query.execute() as ds:
            assert ds.to_object_arrays() == [["Barbara"], ["Carl"]]
        assert "LIMIT 2 OFFSET 1" in caplog.text

    def test_client_side_paging(self, sql_context, caplog):
        """Test paging applied to the rows when the dialect cannot express it."""
        caplog.set_level(logging.DEBUG, logger="metamodel")
        sql_context.adapter.rewriter.limit_style = LimitStyle.NONE
        query = sql_context.query().from_("developer").select("name").order_by("id").limit(2).offset(1)
        with query.execute() as ds:
            assert ds.to_object_arrays() == [["Barbara"], ["Carl"]]
        assert "LIMIT" not in caplog.text
        assert "Skipping to row 2 client-side" in caplog.text

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT name, email FROM developer WHERE male = TRUE ORDER BY name",
            "SELECT male, COUNT(*) FROM developer GROUP BY male ORDER BY male",
            "SELECT name FROM developer WHERE developer_since < TIMESTAMP '2015-01-01 00:00:00' ORDER BY id",
            "SELECT d.name, p.name FROM developer d JOIN product p ON d.id = p.founder_developer ORDER BY p.name",
            "SELECT name FROM developer WHERE email LIKE '%example.com' AND id IN (1, 3, 4) ORDER BY id DESC",
        ],
    )
    def test_same_result_as_in_memory(self, sql_context, sql):
        """Test that a pushed-down query returns what the in-memory executor computes."""
        query = sql_context.parse_query(sql)
        with sql_context.execute_query(query) as ds:
            pushed_down = ds.to_object_arrays()
        with QueryExecutor(sql_context.adapter.materialize_table).execute(query) as ds:
            in_memory = ds.to_object_arrays()
        assert pushed_down == in_memory
        assert pushed_down

    def test_missing_table(self, sql_context):
        """Test that a driver error is raised as BackendIOError carrying the SQL."""
        table = Table("missing", [Column("a")], schema_name="main")
        query = Query().from_table(table).select("a")
        with pytest.raises(BackendIOError) as excinfo:
            sql_context.execute_query(query)
        assert excinfo.value.sql == "SELECT a FROM missing"


class TestSqlUpdates:
    """Tests for update scripts against SQLite."""

    def test_inserts_are_batched(self, sql_context, caplog):
        """Test that repeated inserts run as one batch."""
        caplog.set_level(logging.DEBUG, logger="metamodel")

        def script(callback):
            for version in (3, 4, 5):
                callback.insert_into("product").value("name", "Carls Compiler").value("version", version).execute()

        sql_context.execute_update(script)

        assert "Flushed batch of 3 executions" in caplog.text
        assert "Reusing prepared statement" in caplog.text
        assert count(sql_context, "product") == 5

    def test_update_and_delete(self, sql_context):
        """Test updating and deleting the rows matching a condition."""

        def script(callback):
            callback.update("developer").value("email", "carl@example.com").where("id").eq(3).execute()
            callback.delete_from("product").where("version").lt(5).execute()

        sql_context.execute_update(script)

        with sql_context.execute_query("SELECT email FROM developer WHERE id = 3") as ds:
            assert ds.to_object_arrays() == [["carl@example.com"]]
        assert count(sql_context, "product") == 1

    def test_explicit_null(self, sql_context):
        """Test that a value set to None is written as NULL."""
        sql_context.execute_update(lambda cb: cb.update("developer").value("email", None).where("id").eq(1).execute())
        with sql_context.execute_query("SELECT name FROM developer WHERE email IS NULL ORDER BY id") as ds:
            assert ds.to_object_arrays() == [["Anthon"], ["Carl"]]

    def test_rollback_on_error(self, sql_context):
        """Test that statements already sent to the database are rolled back."""

        def script(callback):
            callback.insert_into("product").value("name", "Doomed").value("version", 1).execute()
            # a different statement flushes the pending insert
            callback.update("product").value("version", 99).execute()
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError, match="abort"):
            sql_context.execute_update(script)

        with sql_context.execute_query("SELECT name, version FROM product ORDER BY name") as ds:
            assert ds.to_object_arrays() == [["Anthons Algorithms", 11], ["Barbaras Basic Bundle", 2]]

    def test_inline_values(self, engine, sql_context):
        """Test statements with inlined literals, including a quote."""
        dc = DataContext(SqlAdapter(engine, SqlConfig(inline_values=True)))
        dc.execute_update(lambda cb: cb.insert_into("product").value("name", "O'Reilly Omnibus").value("version", 7).execute())
        with dc.query().from_("product").select("version").where("name").eq("O'Reilly Omnibus").execute() as ds:
            assert ds.to_object_arrays() == [[7]]
