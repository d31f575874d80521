"""End-to-end data flow integration tests."""

import asyncio

import aiohttp
import pytest

from scripts.generate_sample_data import SampleDataGenerator
from services.compute.app.config import ComputeConfig
from services.compute.app.main import ComputeService
from services.reader.app.config import ReaderConfig
from services.reader.app.main import run_reader
from services.results.app.config import ResultsConfig
from services.results.app.main import ResultsService
from shared.framework.config import OutputMode
from shared.framework.consumer import StageState
from tests.fixtures.mock_services import census_line


def reader_config(path, year):
    config = ReaderConfig()
    config.output_mode = OutputMode.KAFKA
    config.years = [year]
    config.months = []
    config.from_file = path
    config.max_batches = None
    return config


def compute_config():
    config = ComputeConfig()
    config.output_mode = OutputMode.KAFKA
    config.stop_at_end = True
    config.observability.health_port = 0
    return config


def results_config():
    config = ResultsConfig()
    config.stop_at_end = True
    config.host = "127.0.0.1"
    config.port = 0
    config.observability.health_port = 0
    return config


async def run_pipeline(log_client, path, year):
    """Read, compute and aggregate one archive, returning the /results body."""
    read_result = await run_reader(reader_config(path, year), log_client=log_client)

    compute = ComputeService(compute_config(), log_client=log_client)
    await asyncio.wait_for(compute.run(), timeout=30)
    assert compute.stage_state == StageState.TERMINATED_EOF

    results = ResultsService(results_config(), log_client=log_client)
    await results.startup()
    try:
        await asyncio.wait_for(results.consumer.wait(), timeout=30)
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://127.0.0.1:{results.query_server.port}/results") as resp:
                assert resp.status == 200
                assert resp.content_type == "application/json"
                body = await resp.json()
    finally:
        await results.shutdown()

    return read_result, body


class TestEndToEndFlow:
    """End-to-end data flow tests against the in-memory broker."""

    @pytest.mark.asyncio
    async def test_single_batch(self, log_client, broker, census_gz):
        """Ten house/apartment records from 2020 become one batch and a count of ten."""
        path = census_gz([census_line("1", serial=i) for i in range(10)])

        read_result, body = await run_pipeline(log_client, path, 2020)

        assert read_result.batches == 1
        assert broker.messages("results") == ["2020:1,1,1,1,1,1,1,1,1,1"]
        assert body["2020"]["1"]["Count"] == 10
        assert body["2020"]["1"]["Description"] == "HOUSE, APARTMENT, FLAT"
        assert sum(entry["Count"] for entry in body["2020"].values()) == 10

    @pytest.mark.asyncio
    async def test_generated_archive_across_partitions(self, log_client, broker, kafka_config, tmp_path):
        """Counts match the archive when batches are spread across partitions."""
        kafka_config.partitions = 3
        generator = SampleDataGenerator(seed=42)
        path = str(tmp_path / "jan19pub.dat.gz")
        records = generator.write_archive(path, 205, malformed=5)

        read_result, body = await run_pipeline(log_client, path, 2019)

        assert read_result.batches == 21
        assert read_result.dropped_records == 0
        assert len(broker.topics["compute"]) == 3

        # Only the records that made it into full batches are counted
        counted = records[:read_result.batches * 10]
        expected = generator.expected_counts(counted)
        for code, entry in body["2019"].items():
            assert entry["Count"] == expected.get(int(code), 0)

    @pytest.mark.asyncio
    async def test_partial_tail_is_dropped(self, log_client, broker, census_gz):
        path = census_gz([census_line("6", serial=i) for i in range(19)])

        read_result, body = await run_pipeline(log_client, path, 2021)

        assert read_result.batches == 1
        assert read_result.dropped_records == 9
        assert body["2021"]["6"]["Count"] == 10
