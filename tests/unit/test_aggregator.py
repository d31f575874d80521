"""Unit tests for the aggregate table and aggregator."""

import json
import threading

import pytest

from services.results.app.aggregator import AggregateTable, Aggregator
from shared.framework.consumer import LogMessage
from shared.schemas.models import HOUSING_CODES, ResultRecord
from shared.utils.errors import ParseError


def message(text):
    return LogMessage(topic="results", partition=0, offset=0, key=None, value=text.encode("utf-8"))


class TestAggregateTable:
    """Test the shared per-year table."""

    def test_seeding_creates_every_code(self):
        table = AggregateTable()
        assert table.ensure_year(2019)
        assert table.snapshot()[2019] == {code: 0 for code in HOUSING_CODES}

    def test_seeding_is_idempotent(self):
        table = AggregateTable()
        table.ensure_year(2019)
        table.increment(2019, 1)
        assert not table.ensure_year(2019)
        assert table.count(2019, 1) == 1

    def test_increment_rejects_unknown_code(self):
        with pytest.raises(KeyError):
            AggregateTable().increment(2019, 99)

    def test_counts_never_decrease(self):
        with pytest.raises(ValueError):
            AggregateTable().increment(2019, 1, amount=-1)

    def test_json_shape(self):
        table = AggregateTable()
        table.increment(2019, 3)
        document = json.loads(table.to_json())
        assert list(document) == ["2019"]
        assert len(document["2019"]) == 13
        assert document["2019"]["3"] == {"Description": HOUSING_CODES.describe(3), "Count": 1}
        assert document["2019"]["0"]["Count"] == 0

    def test_empty_table(self):
        assert AggregateTable().to_json() == "{}"


class TestAggregator:
    """Test applying result records."""

    def test_apply_counts_each_code(self):
        table = AggregateTable()
        Aggregator(table).apply_wire("2019:1,1,3,7")
        assert table.count(2019, 1) == 2
        assert table.count(2019, 3) == 1
        assert table.count(2019, 7) == 1
        assert table.total(2019) == 4

    def test_out_of_catalog_code_seeds_year_only(self):
        table = AggregateTable()
        aggregator = Aggregator(table)
        assert aggregator.apply_wire("2019:99") == 0
        assert table.years() == [2019]
        assert table.total() == 0
        assert aggregator.dropped_codes == 1

    def test_empty_and_unparseable_codes_dropped(self):
        table = AggregateTable()
        assert Aggregator(table).apply(ResultRecord(year=2020, codes=("", "x", "12"))) == 1
        assert table.count(2020, 12) == 1

    def test_malformed_record(self):
        with pytest.raises(ParseError):
            Aggregator(AggregateTable()).apply_wire("no separator")

    @pytest.mark.asyncio
    async def test_handle_drops_malformed_messages(self, metrics):
        table = AggregateTable()
        aggregator = Aggregator(table, metrics=metrics)
        await aggregator.handle(message("abc:1"))
        await aggregator.handle(message("2018:2"))

        assert aggregator.dropped_messages == 1
        assert table.years() == [2018]
        assert metrics.registry.get_sample_value("kafka_scale_result_messages_read_total") == 2


class TestConcurrency:
    """Test concurrent writers and readers of one table."""

    def test_concurrent_increments_lose_nothing(self):
        table = AggregateTable()
        aggregator = Aggregator(table)
        writers = 8
        per_writer = 500

        def write(year):
            for _ in range(per_writer):
                aggregator.apply(ResultRecord(year=year, codes=("1", "2")))

        totals = []
        stop = threading.Event()

        def read():
            while not stop.is_set():
                totals.append(table.total())
                json.loads(table.to_json())

        reader = threading.Thread(target=read)
        reader.start()
        threads = [threading.Thread(target=write, args=(2000 + i % 4,)) for i in range(writers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        stop.set()
        reader.join()

        assert table.total() == writers * per_writer * 2
        assert table.years() == [2000, 2001, 2002, 2003]
        assert all(a <= b for a, b in zip(totals, totals[1:]))
