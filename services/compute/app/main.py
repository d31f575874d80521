"""Main entry point for the compute service."""

import asyncio
from typing import Optional

from shared.framework.config import OutputMode
from shared.framework.consumer import KafkaConsumer, StageState
from shared.framework.log_client import LogClient
from shared.framework.metrics import MetricsCollector
from shared.framework.service import AsyncService
from shared.framework.sinks import OutputSink, build_sink
from shared.schemas.models import CPS_BASIC_SCHEMA
from shared.utils.errors import ConfigurationError
from shared.utils.logging import setup_logging

from .config import ComputeConfig
from .transform import TransformStage


class ComputeService(AsyncService):
    """Transforms batches from the compute topic into result records."""

    def __init__(
        self,
        config: Optional[ComputeConfig] = None,
        log_client: Optional[LogClient] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        config = config or ComputeConfig()
        super().__init__(config, metrics=metrics)
        self.config = config
        self.log_client = log_client or LogClient(config.kafka, retry_config=config.retry.to_retry_config())
        self.sink: Optional[OutputSink] = None
        self.stage: Optional[TransformStage] = None
        self.consumer: Optional[KafkaConsumer] = None
        self.stage_state = StageState.IDLE

    async def _startup_hook(self) -> None:
        try:
            code_field = CPS_BASIC_SCHEMA.field(self.config.code_field)
        except KeyError:
            raise ConfigurationError(
                f"Unknown code field: {self.config.code_field}",
                config_key="code_field",
                config_value=self.config.code_field,
            ) from None

        topics = self.config.topics
        await self.log_client.ensure_topic(topics.compute_topic)

        producer = None
        if self.config.output_mode == OutputMode.KAFKA:
            await self.log_client.ensure_topic(topics.results_topic)
            producer = self.log_client.producer(topics.results_topic)
            self.add_producer(producer)

        self.sink = build_sink(self.config.output_mode, "compute", producer=producer)
        self.stage = TransformStage(
            self.sink,
            code_field=code_field,
            delay_ms=self.config.delay_ms,
            metrics=self.metrics,
        )
        self.consumer = self.log_client.consumer(
            topics.compute_topic,
            topics.group_for(topics.compute_topic),
            self.stage.handle,
            stop_at_end=self.config.stop_at_end,
        )
        self.add_consumer(self.consumer)
        self.logger.info(
            "Compute stage configured",
            source=topics.compute_topic,
            output=self.config.output_mode.value,
            stop_at_end=self.config.stop_at_end,
        )

    async def _on_stage_terminated(self, consumer: KafkaConsumer, state: StageState) -> None:
        """The service has a single stage, so it stops with it."""
        self.stage_state = state
        self.shutdown_event.set()

    async def _shutdown_hook(self) -> None:
        if self.consumer is not None:
            self.stage_state = self.consumer.state
        if self.stage is not None:
            self.logger.info("Compute stage finished", dropped=self.stage.dropped, state=self.stage_state.value)


def main() -> None:
    """Run the compute service with configuration from the environment."""
    config = ComputeConfig()
    setup_logging(config.service_name, config.observability.log_level, config.observability.log_format)
    service = ComputeService(config)
    asyncio.run(service.run())
    if service.stage_state == StageState.TERMINATED_ERROR:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
