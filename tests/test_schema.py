"""Tests for the schema, table and column model."""

import pytest

from metamodel import Column, ColumnType, Schema, SchemaMismatchError, SimpleTableDef, Table, TableType


@pytest.fixture
def schema():
    """Schema with a developer table."""
    table = Table("developer")
    table.add_column("id", type=ColumnType.INTEGER, primary_key=True, nullable=False)
    table.add_column("Name", type=ColumnType.VARCHAR, size=100)
    return Schema("company", [table])


class TestColumn:
    """Tests for Column."""

    def test_equality_by_key(self):
        """Test that columns are equal when schema, table and name match."""
        a = Column("id", type=ColumnType.INTEGER, table_name="t", schema_name="s")
        b = Column("id", type=ColumnType.VARCHAR, number=3, table_name="t", schema_name="s")
        c = Column("id", table_name="u", schema_name="s")
        assert a == b
        assert hash(a) == hash(b)
        assert a != c
        assert a.qualified_label == "s.t.id"

    def test_repr(self):
        """Test the textual form of a column."""
        column = Column("name", number=1, type=ColumnType.VARCHAR, nullable=True, native_type="TEXT", size=40)
        assert repr(column) == "Column[name=name,number=1,type=VARCHAR,nullable=True,native_type=TEXT,size=40]"


class TestTable:
    """Tests for Table."""

    def test_columns_numbered_and_owned(self, schema):
        """Test that added columns get their position and owner."""
        table = schema.get_table_by_name("developer")
        assert [c.number for c in table.columns] == [0, 1]
        assert {(c.schema_name, c.table_name) for c in table.columns} == {("company", "developer")}
        assert table.qualified_label == "company.developer"
        assert table.primary_keys == [table.get_column(0)]

    def test_duplicate_column(self):
        """Test that a table cannot have two columns with the same name."""
        table = Table("t", [Column("a")])
        with pytest.raises(SchemaMismatchError, match="Column 'a' already exists in table 't'"):
            table.add_column("a")

    def test_column_lookup_case(self, schema):
        """Test exact lookups first, then case-insensitive ones."""
        table = schema.get_table_by_name("developer")
        assert table.get_column_by_name("Name").name == "Name"
        assert table.get_column_by_name("NAME").name == "Name"
        assert table.get_column_by_name("salary") is None
        with pytest.raises(SchemaMismatchError, match="not found"):
            table.get_column_or_raise("salary")

    def test_case_sensitive_lookup(self):
        """Test that a case-sensitive table only matches exact names."""
        table = Table("t", [Column("Name")], case_sensitive=True)
        assert table.get_column_by_name("name") is None

    def test_copy_is_independent(self, schema):
        """Test that a copied table does not share columns with the original."""
        table = schema.get_table_by_name("developer")
        clone = table.copy()
        clone.add_column("email")
        clone.get_column(0).size = 12
        assert table.column_names == ["id", "Name"]
        assert table.get_column(0).size is None
        assert clone == table

    def test_repr(self):
        """Test the textual form of a table."""
        assert repr(Table("v", type=TableType.VIEW, remarks="all")) == "Table[name=v,type=VIEW,remarks=all]"


class TestSchema:
    """Tests for Schema."""

    def test_add_and_remove(self, schema):
        """Test adding and removing tables."""
        schema.add_table(Table("product", [Column("name")]))
        assert schema.table_names == ["developer", "product"]
        assert schema.get_table_by_name("product").get_column(0).schema_name == "company"
        removed = schema.remove_table("developer")
        assert removed.name == "developer"
        assert schema.table_names == ["product"]

    def test_duplicate_and_missing(self, schema):
        """Test errors for duplicate and unknown tables."""
        with pytest.raises(SchemaMismatchError, match="already exists"):
            schema.add_table(Table("developer"))
        with pytest.raises(SchemaMismatchError, match="not found"):
            schema.remove_table("nothing")
        with pytest.raises(SchemaMismatchError, match="not found"):
            schema.get_table_or_raise("nothing")

    def test_copy_and_replace(self, schema):
        """Test that a snapshot can be changed and swapped back in."""
        original_table = schema.get_table_by_name("developer")
        snapshot = schema.copy()
        snapshot.add_table(Table("product"))
        snapshot.get_table_by_name("developer").add_column("email")
        assert schema.table_count == 1
        assert original_table.column_count == 2

        schema.replace_tables(snapshot)
        assert schema.table_names == ["developer", "product"]
        assert schema.get_table_by_name("developer").column_names == ["id", "Name", "email"]
        assert repr(schema) == "Schema[name=company]"


class TestSimpleTableDef:
    """Tests for SimpleTableDef."""

    def test_to_table(self):
        """Test building a table with nullable typed columns."""
        table = SimpleTableDef("t", ["a", "b"], [ColumnType.INTEGER]).to_table("s")
        assert table.qualified_label == "s.t"
        assert [c.type for c in table.columns] == [ColumnType.INTEGER, None]
        assert all(c.nullable for c in table.columns)

    def test_from_table(self, schema):
        """Test deriving a definition from a table."""
        definition = SimpleTableDef.from_table(schema.get_table_by_name("developer"))
        assert definition == SimpleTableDef("developer", ["id", "Name"], [ColumnType.INTEGER, ColumnType.VARCHAR])
