"""Tests for column types and value conversion."""

import datetime
from decimal import Decimal

import pytest

from metamodel import ColumnType, SuperType, ValueConversionError
from metamodel.types import convert_value


class TestColumnType:
    """Tests for ColumnType members."""

    def test_super_types(self):
        """Test the super type predicates."""
        assert ColumnType.INTEGER.is_number
        assert ColumnType.DECIMAL.is_number
        assert ColumnType.VARCHAR.is_literal
        assert ColumnType.CLOB.is_literal
        assert ColumnType.BIT.is_boolean
        assert ColumnType.BLOB.is_binary
        assert ColumnType.DATE.is_time_based
        assert ColumnType.OTHER.super_type is SuperType.OTHER
        assert not ColumnType.VARCHAR.is_number

    def test_python_types(self):
        """Test the preferred Python class of each kind of type."""
        assert ColumnType.BIGINT.python_type is int
        assert ColumnType.NUMERIC.python_type is Decimal
        assert ColumnType.REAL.python_type is float
        assert ColumnType.TIMESTAMP.python_type is datetime.datetime
        assert ColumnType.VARBINARY.python_type is bytes


class TestFromNative:
    """Tests for mapping native type names."""

    @pytest.mark.parametrize(
        "native,expected",
        [
            ("VARCHAR(100)", ColumnType.VARCHAR),
            ("varchar2", ColumnType.VARCHAR),
            ("double precision", ColumnType.DOUBLE),
            ("NUMBER(10,2)", ColumnType.NUMERIC),
            ("NVARCHAR2(20)", ColumnType.NVARCHAR),
            ("timestamp with time zone", ColumnType.TIMESTAMP),
            ("DATETIME2(7)", ColumnType.TIMESTAMP),
            ("BOOL", ColumnType.BOOLEAN),
            ("BIGSERIAL", ColumnType.BIGINT),
            ("LONGTEXT", ColumnType.LONGVARCHAR),
        ],
    )
    def test_known_names(self, native, expected):
        """Test names found in the native type table."""
        assert ColumnType.from_native(native) is expected

    @pytest.mark.parametrize(
        "native,expected",
        [
            ("UNSIGNED BIG INT", ColumnType.INTEGER),
            ("NATIVE CHARACTER(70)", ColumnType.VARCHAR),
            ("TINYBLOB", ColumnType.BLOB),
            ("FLOATING", ColumnType.DOUBLE),
            ("SMALLDATETIME", ColumnType.TIMESTAMP),
        ],
    )
    def test_affinity_fallback(self, native, expected):
        """Test that unknown names are classified by the words they contain."""
        assert ColumnType.from_native(native) is expected

    def test_unknown_and_empty(self):
        """Test that unclassifiable names map to OTHER."""
        assert ColumnType.from_native("GEOMETRY") is ColumnType.OTHER
        assert ColumnType.from_native("") is ColumnType.OTHER
        assert ColumnType.from_native(None) is ColumnType.OTHER


class TestInfer:
    """Tests for inferring column types from values."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, ColumnType.NULL),
            (True, ColumnType.BOOLEAN),
            (42, ColumnType.INTEGER),
            (2**40, ColumnType.BIGINT),
            (-(2**40), ColumnType.BIGINT),
            (1.5, ColumnType.DOUBLE),
            (Decimal("1.5"), ColumnType.DECIMAL),
            ("text", ColumnType.VARCHAR),
            (b"\x00", ColumnType.BLOB),
            (datetime.datetime(2020, 1, 1, 12), ColumnType.TIMESTAMP),
            (datetime.date(2020, 1, 1), ColumnType.DATE),
            (datetime.time(12, 30), ColumnType.TIME),
            ([1, 2], ColumnType.OTHER),
        ],
    )
    def test_infer(self, value, expected):
        """Test the inferred type of a value."""
        assert ColumnType.infer(value) is expected

    def test_from_python_type(self):
        """Test inference from classes rather than values."""
        assert ColumnType.from_python_type(bool) is ColumnType.BOOLEAN
        assert ColumnType.from_python_type(int) is ColumnType.INTEGER
        assert ColumnType.from_python_type(datetime.datetime) is ColumnType.TIMESTAMP
        assert ColumnType.from_python_type("not a class") is ColumnType.OTHER


class TestConvertValue:
    """Tests for coercing values to column types."""

    def test_none_and_untyped_pass_through(self):
        """Test that NULL and untyped values are left alone."""
        assert convert_value(None, ColumnType.INTEGER) is None
        marker = object()
        assert convert_value(marker, None) is marker
        assert convert_value(marker, ColumnType.OTHER) is marker

    def test_numbers(self):
        """Test conversions to integer, decimal and floating point types."""
        assert convert_value("42", ColumnType.INTEGER) == 42
        assert convert_value("1.0", ColumnType.INTEGER) == 1
        assert convert_value(2.0, ColumnType.BIGINT) == 2
        assert convert_value(True, ColumnType.INTEGER) == 1
        assert convert_value(1.1, ColumnType.DECIMAL) == Decimal("1.1")
        assert convert_value(" 2.50 ", ColumnType.NUMERIC) == Decimal("2.50")
        result = convert_value(3, ColumnType.DOUBLE)
        assert result == 3.0
        assert isinstance(result, float)

    def test_lossy_integer_rejected(self):
        """Test that fractional values are not truncated to integers."""
        with pytest.raises(ValueConversionError):
            convert_value(1.5, ColumnType.INTEGER)
        with pytest.raises(ValueConversionError):
            convert_value(Decimal("2.25"), ColumnType.SMALLINT)

    def test_unparseable_number(self):
        """Test the error for text that is not a number."""
        with pytest.raises(ValueConversionError, match="Cannot convert 'abc' to INTEGER") as excinfo:
            convert_value("abc", ColumnType.INTEGER)
        assert excinfo.value.value == "abc"
        assert excinfo.value.column_type is ColumnType.INTEGER

    @pytest.mark.parametrize("text", ["Infinity", "-Infinity", "inf", "NaN"])
    def test_non_finite_integer(self, text):
        """Test that non-finite text does not convert to an integer."""
        with pytest.raises(ValueConversionError):
            convert_value(text, ColumnType.INTEGER)

    @pytest.mark.parametrize("text", ["true", "T", "yes", "Y", "1", "on"])
    def test_true_strings(self, text):
        """Test the strings that read as TRUE."""
        assert convert_value(text, ColumnType.BOOLEAN) is True

    def test_booleans(self):
        """Test other boolean conversions."""
        assert convert_value("off", ColumnType.BOOLEAN) is False
        assert convert_value(0, ColumnType.BIT) is False
        with pytest.raises(ValueConversionError):
            convert_value(2, ColumnType.BOOLEAN)
        with pytest.raises(ValueConversionError):
            convert_value("maybe", ColumnType.BOOLEAN)

    def test_literals_and_binary(self):
        """Test conversions between text and bytes."""
        assert convert_value(42, ColumnType.VARCHAR) == "42"
        assert convert_value(b"abc", ColumnType.VARCHAR) == "abc"
        assert convert_value("abc", ColumnType.BLOB) == b"abc"
        assert convert_value(bytearray(b"\x01"), ColumnType.VARBINARY) == b"\x01"
        with pytest.raises(ValueConversionError):
            convert_value(12, ColumnType.BLOB)

    def test_time_based(self):
        """Test conversions of ISO text and between dates and timestamps."""
        assert convert_value("2020-05-17T12:30:00Z", ColumnType.TIMESTAMP) == datetime.datetime(
            2020, 5, 17, 12, 30, tzinfo=datetime.timezone.utc
        )
        assert convert_value("2020-05-17 12:30:00", ColumnType.TIMESTAMP) == datetime.datetime(2020, 5, 17, 12, 30)
        assert convert_value(datetime.date(2020, 5, 17), ColumnType.TIMESTAMP) == datetime.datetime(2020, 5, 17)
        assert convert_value(datetime.datetime(2020, 5, 17, 8), ColumnType.DATE) == datetime.date(2020, 5, 17)
        assert convert_value("2020-05-17", ColumnType.DATE) == datetime.date(2020, 5, 17)
        assert convert_value("12:30", ColumnType.TIME) == datetime.time(12, 30)

    def test_invalid_time_based(self):
        """Test that values with no time interpretation are rejected."""
        with pytest.raises(ValueConversionError):
            convert_value("yesterday", ColumnType.DATE)
        with pytest.raises(ValueConversionError):
            convert_value(5, ColumnType.TIMESTAMP)
