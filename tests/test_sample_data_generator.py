"""Test the sample data generator."""

import gzip

from scripts.generate_sample_data import SampleDataGenerator
from shared.schemas.models import HOUSING_TYPE_FIELD


class TestSampleDataGenerator:
    """Test the sample data generator."""

    def test_record_layout(self):
        """Housing code lands in the fixed-width field."""
        generator = SampleDataGenerator(seed=1)
        record = generator.generate_record(code=12)
        assert len(record) == 1000
        assert HOUSING_TYPE_FIELD.extract(record) == "12"
        assert record[30:32] == "12"

    def test_single_digit_code_is_right_aligned(self):
        record = SampleDataGenerator(seed=1).generate_record(code=5)
        assert record[30:32] == " 5"

    def test_repeatable_with_seed(self):
        assert SampleDataGenerator(seed=7).generate_records(20) == SampleDataGenerator(seed=7).generate_records(20)

    def test_malformed_records_are_not_counted(self):
        generator = SampleDataGenerator(seed=3)
        records = generator.generate_records(50, malformed=5)
        assert len(records) == 55
        assert sum(generator.expected_counts(records).values()) == 50

    def test_write_archive(self, tmp_path):
        path = tmp_path / "sample.dat.gz"
        records = SampleDataGenerator(seed=2).write_archive(str(path), 15)
        with gzip.open(path, "rt", encoding="latin-1") as handle:
            assert handle.read().splitlines() == records
