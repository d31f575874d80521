"""Per-batch transform from raw census records to a result record."""

import asyncio
from typing import Optional

import structlog

from shared.framework.consumer import LogMessage
from shared.framework.metrics import MetricsCollector
from shared.framework.sinks import OutputSink
from shared.schemas.models import HOUSING_TYPE_FIELD, Batch, FixedWidthField, ResultRecord, extract_codes
from shared.utils.errors import ParseError


logger = structlog.get_logger(__name__)


def transform_batch(text: str, code_field: FixedWidthField = HOUSING_TYPE_FIELD) -> ResultRecord:
    """
    Turn one wire-form batch into its result record.

    The first line is the year; every following line contributes the
    trimmed value of ``code_field``, in order. Raises ParseError when
    the batch is empty or its year is not an integer.
    """
    batch = Batch.from_wire(text)
    return ResultRecord(year=batch.year, codes=extract_codes(batch.records, code_field))


class TransformStage:
    """Message handler for the compute topic."""

    def __init__(
        self,
        sink: OutputSink,
        code_field: FixedWidthField = HOUSING_TYPE_FIELD,
        delay_ms: int = 0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.sink = sink
        self.code_field = code_field
        self.delay_ms = delay_ms
        self.metrics = metrics
        self.dropped = 0
        if metrics is not None:
            metrics.create_counter("compute_messages_read", "Batches read by the compute command")
            metrics.create_counter("result_messages_written", "Result records written by the compute command")

    async def handle(self, message: LogMessage) -> None:
        """Transform one batch. Malformed batches are dropped, sink failures propagate."""
        if self.metrics is not None:
            self.metrics.counter("compute_messages_read").inc()

        try:
            record = transform_batch(message.text(), self.code_field)
        except ParseError as e:
            self.dropped += 1
            logger.debug("Dropping malformed batch", error=e.message, offset=message.offset, partition=message.partition)
            if self.metrics is not None:
                self.metrics.record_message_processed(message.topic, "dropped")
            return

        if self.delay_ms > 0:
            await asyncio.sleep(self.delay_ms / 1000)

        await self.sink.emit(record.to_wire())
        if self.metrics is not None:
            self.metrics.counter("result_messages_written").inc()
            self.metrics.record_message_processed(message.topic, "success")
