"""Main entry point for the read command."""

import asyncio
from typing import Optional

import structlog

from shared.framework.config import OutputMode
from shared.framework.log_client import LogClient
from shared.framework.metrics import MetricsCollector
from shared.framework.sinks import build_sink
from shared.utils.logging import setup_logging

from .chunker import BatchChunker, ChunkRunResult
from .config import ReaderConfig
from .sources import SourceReader, build_locators


logger = structlog.get_logger(__name__)


async def run_reader(
    config: ReaderConfig,
    log_client: Optional[LogClient] = None,
    reader: Optional[SourceReader] = None,
    metrics: Optional[MetricsCollector] = None,
) -> ChunkRunResult:
    """Read every configured source and write its batches to the configured output."""
    config.validate()

    if metrics is None and config.observability.metrics_enabled:
        metrics = MetricsCollector(config.service_name)
        metrics.serve(config.observability.metrics_port)

    producer = None
    if config.output_mode == OutputMode.KAFKA:
        if log_client is None:
            log_client = LogClient(config.kafka, retry_config=config.retry.to_retry_config())
        await log_client.ensure_topic(config.topics.compute_topic)
        producer = log_client.producer(config.topics.compute_topic)

    sink = build_sink(config.output_mode, "chunk", producer=producer)
    chunker = BatchChunker(
        sink,
        batch_size=config.batch_size,
        max_batches=config.max_batches,
        delay_ms=config.delay_ms,
        metrics=metrics,
    )
    locators = build_locators(config.years, config.months, config.from_file, config.source_url_template)

    logger.info("Reading sources", sources=len(locators), output=config.output_mode.value, max_batches=config.max_batches)
    await sink.start()
    try:
        async with (reader or SourceReader(timeout=config.fetch_timeout)) as source_reader:
            result = await chunker.run(locators, source_reader)
    finally:
        await sink.stop()

    logger.info(
        "Read complete",
        batches=result.batches,
        sources_read=result.sources_read,
        failed_sources=len(result.failed_sources),
        dropped_records=result.dropped_records,
        aborted=result.aborted,
    )
    return result


def main() -> None:
    """Run the read command with configuration from the environment."""
    config = ReaderConfig()
    setup_logging(config.service_name, config.observability.log_level, config.observability.log_format)
    result = asyncio.run(run_reader(config))
    if result.aborted:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
