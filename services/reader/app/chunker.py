"""Groups source records into fixed-size batches and emits them to a sink."""

import asyncio
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import AsyncIterable, Iterable, Iterator, List, Optional, Sequence

import structlog

from shared.framework.metrics import MetricsCollector
from shared.framework.sinks import OutputSink
from shared.schemas.models import MAX_BATCH_RECORDS, Batch
from shared.utils.errors import LogIOError, SourceFetchError

from .sources import SourceLocator, SourceReader


logger = structlog.get_logger(__name__)


class BatchAccumulator:
    """Collects consecutive records for one year until a batch is full."""

    def __init__(self, year: int, batch_size: int = MAX_BATCH_RECORDS):
        self.year = year
        self.batch_size = batch_size
        self._records: List[str] = []

    @property
    def pending(self) -> int:
        return len(self._records)

    def add(self, record: str) -> Optional[Batch]:
        """Add a record, returning the batch it completes, if any."""
        self._records.append(record)
        if len(self._records) < self.batch_size:
            return None
        batch = Batch(year=self.year, records=tuple(self._records))
        self._records = []
        return batch


def iter_batches(records: Iterable[str], year: int, batch_size: int = MAX_BATCH_RECORDS) -> Iterator[Batch]:
    """Full batches of ``records`` in source order. A short remainder is dropped."""
    accumulator = BatchAccumulator(year, batch_size)
    for record in records:
        batch = accumulator.add(record)
        if batch is not None:
            yield batch


@dataclass
class ChunkRunResult:
    """Outcome of one chunking run over one or more sources."""
    batches: int = 0
    sources_read: int = 0
    failed_sources: List[str] = field(default_factory=list)
    dropped_records: int = 0
    ceiling_reached: bool = False
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return not self.aborted


class BatchChunker:
    """
    Chunks record streams into batches and writes them to a sink.

    Batches are emitted in source order as soon as they fill. A
    trailing remainder shorter than a batch is dropped. When the
    optional ceiling is reached the run stops immediately.
    """

    def __init__(
        self,
        sink: OutputSink,
        batch_size: int = MAX_BATCH_RECORDS,
        max_batches: Optional[int] = None,
        delay_ms: int = 0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.sink = sink
        self.batch_size = batch_size
        self.max_batches = max_batches
        self.delay_ms = delay_ms
        self.metrics = metrics
        if metrics is not None:
            metrics.create_counter("chunks_written", "Batches written by the read command")
            metrics.create_counter("downloaded_gzips", "Census archives read by the read command")

    def _ceiling_reached(self, result: ChunkRunResult) -> bool:
        return self.max_batches is not None and result.batches >= self.max_batches

    async def chunk_stream(self, records: AsyncIterable[str], year: int, result: ChunkRunResult) -> None:
        """Chunk one stream. Sink failures propagate as LogIOError."""
        accumulator = BatchAccumulator(year, self.batch_size)
        async for record in records:
            batch = accumulator.add(record)
            if batch is None:
                continue

            await self.sink.emit(batch.to_wire())
            result.batches += 1
            if self.metrics is not None:
                self.metrics.counter("chunks_written").inc()

            if self._ceiling_reached(result):
                logger.info("Chunk count met, stopping", batches=result.batches)
                result.ceiling_reached = True
                return
            if self.delay_ms > 0:
                await asyncio.sleep(self.delay_ms / 1000)

        if accumulator.pending:
            logger.debug("Dropping trailing partial batch", year=year, records=accumulator.pending)
            result.dropped_records += accumulator.pending

    async def run(self, locators: Sequence[SourceLocator], reader: SourceReader) -> ChunkRunResult:
        """
        Chunk every source in order.

        A source that cannot be fetched is logged and skipped. A write
        that still fails after the producer's retries aborts the run.
        """
        result = ChunkRunResult()
        for locator in locators:
            if self._ceiling_reached(result):
                result.ceiling_reached = True
                break

            logger.info("Processing source", source=locator.location, year=locator.year, batches=result.batches)
            try:
                async with aclosing(reader.iter_lines(locator)) as lines:
                    await self.chunk_stream(lines, locator.year, result)
            except SourceFetchError as e:
                logger.error("Skipping source", source=locator.location, error=e.message, details=e.details)
                result.failed_sources.append(locator.location)
                if self.metrics is not None:
                    self.metrics.record_error("SourceFetchError", "reader")
                continue
            except LogIOError as e:
                logger.error("Error writing batch, aborting run", error=e.message, batches=result.batches)
                result.aborted = True
                if self.metrics is not None:
                    self.metrics.record_error("LogIOError", "reader")
                break

            result.sources_read += 1
            if self.metrics is not None:
                self.metrics.counter("downloaded_gzips").inc()
            if result.ceiling_reached:
                break

        return result
