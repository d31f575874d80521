"""HTTP query API over the aggregate table."""

from typing import Optional

import structlog
from aiohttp import web

from .aggregator import AggregateTable


logger = structlog.get_logger(__name__)


class QueryServer:
    """Serves ``GET /results`` as a JSON snapshot of the aggregate table."""

    def __init__(self, table: AggregateTable, host: str = "0.0.0.0", port: int = 8888):
        self.table = table
        self.host = host
        self.port = port
        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/results", self.get_results)
        return app

    async def start(self) -> None:
        """Start listening. Port 0 binds an ephemeral port, reported via ``self.port``."""
        self.app = self.build_app()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()
        if self.runner.addresses:
            self.port = self.runner.addresses[0][1]

        logger.info("Query server started", host=self.host, port=self.port)

    async def stop(self) -> None:
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
            self.site = None
        logger.info("Query server stopped")

    async def get_results(self, request: web.Request) -> web.Response:
        """Every year's per-code description and count."""
        body = self.table.to_json()
        return web.Response(text=body, content_type="application/json")
