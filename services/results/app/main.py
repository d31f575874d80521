"""Main entry point for the results service."""

import asyncio
from typing import Optional

from shared.framework.consumer import KafkaConsumer, StageState
from shared.framework.log_client import LogClient
from shared.framework.metrics import MetricsCollector
from shared.framework.service import AsyncService
from shared.utils.logging import setup_logging

from .aggregator import AggregateTable, Aggregator
from .api import QueryServer
from .config import ResultsConfig


class ResultsService(AsyncService):
    """Aggregates result records and serves the table over HTTP."""

    def __init__(
        self,
        config: Optional[ResultsConfig] = None,
        log_client: Optional[LogClient] = None,
        metrics: Optional[MetricsCollector] = None,
        table: Optional[AggregateTable] = None,
    ):
        config = config or ResultsConfig()
        super().__init__(config, metrics=metrics)
        self.config = config
        self.log_client = log_client or LogClient(config.kafka, retry_config=config.retry.to_retry_config())
        self.table = table or AggregateTable()
        self.aggregator = Aggregator(self.table, metrics=self.metrics, delay_ms=config.delay_ms)
        self.query_server = QueryServer(self.table, host=config.host, port=config.port)
        self.consumer: Optional[KafkaConsumer] = None

    async def _startup_hook(self) -> None:
        topics = self.config.topics
        await self.log_client.ensure_topic(topics.results_topic)

        self.consumer = self.log_client.consumer(
            topics.results_topic,
            topics.group_for(topics.results_topic),
            self.aggregator.handle,
            stop_at_end=self.config.stop_at_end,
        )
        self.add_consumer(self.consumer)

        await self.query_server.start()
        self.logger.info("Results stage configured", source=topics.results_topic, port=self.query_server.port)

    async def _on_stage_terminated(self, consumer: KafkaConsumer, state: StageState) -> None:
        """Keep answering queries over whatever was aggregated before the stage ended."""
        self.logger.info(
            "Aggregation stopped, still serving results",
            state=state.value,
            years=self.table.years(),
            port=self.query_server.port,
        )

    async def _shutdown_hook(self) -> None:
        await self.query_server.stop()


def main() -> None:
    """Run the results service with configuration from the environment."""
    config = ResultsConfig()
    setup_logging(config.service_name, config.observability.log_level, config.observability.log_format)
    asyncio.run(ResultsService(config).run())


if __name__ == "__main__":
    main()
