"""Unit tests for record layouts and wire formats."""

import pytest

from shared.schemas.models import (
    CPS_BASIC_SCHEMA,
    HOUSING_CODES,
    HOUSING_TYPE_FIELD,
    Batch,
    FixedWidthField,
    ResultRecord,
    extract_codes,
)
from shared.utils.errors import ParseError
from tests.fixtures.mock_services import census_line


class TestFixedWidthSchema:
    """Test fixed-width field extraction."""

    def test_housing_type_field_position(self):
        """HEHOUSUT sits at offset 30, two characters wide."""
        assert HOUSING_TYPE_FIELD.offset == 30
        assert HOUSING_TYPE_FIELD.length == 2
        assert CPS_BASIC_SCHEMA.field("HEHOUSUT") is HOUSING_TYPE_FIELD

    def test_extract_trims_whitespace(self):
        assert HOUSING_TYPE_FIELD.extract(census_line("1")) == "1"
        assert HOUSING_TYPE_FIELD.extract(census_line("12")) == "12"

    def test_short_line_yields_partial_or_empty(self):
        """Lines shorter than the field never raise."""
        assert HOUSING_TYPE_FIELD.extract("x" * 10) == ""
        assert HOUSING_TYPE_FIELD.extract("0" * 30 + "7") == "7"

    def test_unknown_field(self):
        with pytest.raises(KeyError):
            CPS_BASIC_SCHEMA.field("NOPE")

    def test_decode_all_fields(self):
        schema_field = FixedWidthField(name="A", offset=0, length=3)
        assert schema_field.extract(" ab  ") == "ab"
        assert CPS_BASIC_SCHEMA.decode(census_line("5")) == {"HEHOUSUT": "5"}


class TestBatch:
    """Test the compute-log wire format."""

    def test_to_wire(self):
        batch = Batch(year=2019, records=("a", "b"))
        assert batch.to_wire() == "2019\na\nb\n"

    def test_from_wire(self):
        batch = Batch.from_wire("2019\na\nb\n")
        assert batch.year == 2019
        assert batch.records == ("a", "b")

    def test_year_only(self):
        batch = Batch.from_wire("2020\n")
        assert batch.year == 2020
        assert batch.records == ()

    def test_records_keep_control_characters(self):
        record = "abc\x1cdef\x0bghi\x85jkl"
        batch = Batch.from_wire(Batch(year=2019, records=(record, "b")).to_wire())
        assert batch.records == (record, "b")

    def test_carriage_returns_stripped(self):
        assert Batch.from_wire("2019\r\na\r\n").records == ("a",)

    def test_empty_batch_rejected(self):
        with pytest.raises(ParseError):
            Batch.from_wire("")

    def test_non_integer_year_rejected(self):
        with pytest.raises(ParseError) as exc_info:
            Batch.from_wire("twenty\na\n")
        assert exc_info.value.error_code == "PARSE_ERROR"


class TestResultRecord:
    """Test the results-log wire format."""

    def test_to_wire(self):
        assert ResultRecord(year=2019, codes=("1", "1", "3")).to_wire() == "2019:1,1,3"

    def test_from_wire(self):
        record = ResultRecord.from_wire("2019:1,1,3,7")
        assert record.year == 2019
        assert record.codes == ("1", "1", "3", "7")

    def test_from_wire_keeps_empty_tokens(self):
        """Short source lines produce empty codes that the aggregator drops."""
        assert ResultRecord.from_wire("2019:1,,2").codes == ("1", "", "2")

    def test_no_codes(self):
        assert ResultRecord.from_wire("2019:").codes == ()

    def test_missing_separator(self):
        with pytest.raises(ParseError):
            ResultRecord.from_wire("2019")

    def test_non_integer_year(self):
        with pytest.raises(ParseError):
            ResultRecord.from_wire("abc:1,2")


class TestCodeCatalog:
    """Test the housing unit type catalog."""

    def test_catalog_covers_codes_zero_to_twelve(self):
        assert HOUSING_CODES.codes() == list(range(13))
        assert HOUSING_CODES.describe(1) == "HOUSE, APARTMENT, FLAT"

    def test_parse_code(self):
        assert HOUSING_CODES.parse_code(" 7") == 7

    @pytest.mark.parametrize("token", ["99", "-1", "", "x1"])
    def test_rejects_codes_outside_catalog(self, token):
        with pytest.raises(ParseError):
            HOUSING_CODES.parse_code(token)

    def test_catalog_is_read_only(self):
        with pytest.raises(TypeError):
            HOUSING_CODES[1] = "changed"

    def test_extract_codes_in_record_order(self):
        records = [census_line("1"), census_line("12"), census_line("3")]
        assert extract_codes(records) == ("1", "12", "3")
