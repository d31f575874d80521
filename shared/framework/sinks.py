"""Output sinks for stage results: the log, a local echo, or nowhere."""

import sys
from typing import Optional, TextIO

import structlog

from .config import OutputMode
from .producer import KafkaProducer, checksum_key


logger = structlog.get_logger(__name__)


class OutputSink:
    """Destination for the wire-form payloads a stage produces."""

    mode: OutputMode

    async def emit(self, payload: str) -> None:
        raise NotImplementedError

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


class KafkaSink(OutputSink):
    """Writes each payload to a topic, keyed by its checksum."""

    mode = OutputMode.KAFKA

    def __init__(self, producer: KafkaProducer):
        self.producer = producer

    async def emit(self, payload: str) -> None:
        await self.producer.send_message(payload, key=checksum_key(payload))

    async def start(self) -> None:
        await self.producer.start()

    async def stop(self) -> None:
        await self.producer.stop()


class EchoSink(OutputSink):
    """Writes each payload to a text stream, stdout by default."""

    mode = OutputMode.STDOUT

    def __init__(self, label: str, stream: Optional[TextIO] = None):
        self.label = label
        self.stream = stream or sys.stdout

    async def emit(self, payload: str) -> None:
        self.stream.write(f"{self.label}: {payload.rstrip()}\n")
        self.stream.flush()


class NullSink(OutputSink):
    """Discards every payload."""

    mode = OutputMode.NULL

    async def emit(self, payload: str) -> None:
        logger.debug("Discarding payload", size=len(payload))


def build_sink(mode: OutputMode, label: str, producer: Optional[KafkaProducer] = None) -> OutputSink:
    """Sink for ``mode``. A producer is required when writing to Kafka."""
    if mode == OutputMode.KAFKA:
        if producer is None:
            raise ValueError("a producer is required for the kafka sink")
        return KafkaSink(producer)
    if mode == OutputMode.STDOUT:
        return EchoSink(label)
    return NullSink()
