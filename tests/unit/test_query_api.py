"""Unit tests for the results query API."""

import aiohttp
import pytest
from aiohttp import test_utils

from services.results.app.aggregator import AggregateTable, Aggregator
from services.results.app.api import QueryServer
from shared.schemas.models import HOUSING_CODES


class TestQueryServer:
    """Test GET /results."""

    @pytest.mark.asyncio
    async def test_results_json(self):
        table = AggregateTable()
        Aggregator(table).apply_wire("2019:1,1,3,7")
        server = QueryServer(table)

        async with test_utils.TestClient(test_utils.TestServer(server.build_app())) as client:
            resp = await client.get("/results")
            assert resp.status == 200
            assert resp.content_type == "application/json"
            body = await resp.json()

        assert body["2019"]["1"] == {"Description": HOUSING_CODES.describe(1), "Count": 2}
        assert body["2019"]["3"]["Count"] == 1
        assert body["2019"]["12"]["Count"] == 0

    @pytest.mark.asyncio
    async def test_empty_table(self):
        async with test_utils.TestClient(test_utils.TestServer(QueryServer(AggregateTable()).build_app())) as client:
            resp = await client.get("/results")
            assert await resp.json() == {}

    @pytest.mark.asyncio
    async def test_snapshot_reflects_later_updates(self):
        table = AggregateTable()
        aggregator = Aggregator(table)
        async with test_utils.TestClient(test_utils.TestServer(QueryServer(table).build_app())) as client:
            aggregator.apply_wire("2020:1")
            first = await (await client.get("/results")).json()
            aggregator.apply_wire("2020:1")
            second = await (await client.get("/results")).json()

        assert first["2020"]["1"]["Count"] == 1
        assert second["2020"]["1"]["Count"] == 2

    @pytest.mark.asyncio
    async def test_start_on_ephemeral_port(self):
        table = AggregateTable()
        Aggregator(table).apply_wire("2021:5")
        server = QueryServer(table, host="127.0.0.1", port=0)
        await server.start()
        try:
            assert server.port != 0
            async with aiohttp.ClientSession() as session:
                async with session.get(f"http://127.0.0.1:{server.port}/results") as resp:
                    body = await resp.json()
            assert body["2021"]["5"]["Count"] == 1
        finally:
            await server.stop()
