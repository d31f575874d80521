"""
Kafka producer abstraction for the pipeline stages.

Each send waits for its delivery report so a failed write is
surfaced to the caller. The client itself never retries; bounded
retry is applied here around one produce-and-flush attempt.
"""

import asyncio
import hashlib
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from confluent_kafka import KafkaError, KafkaException, Producer
import structlog

from shared.utils.errors import LogIOError
from shared.utils.retry import NO_RETRY, RetryConfig, retry_async

from .config import KafkaConfig


logger = structlog.get_logger(__name__)


def checksum_key(payload: str) -> str:
    """Content checksum of ``payload``, used only to route it to a partition."""
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


@dataclass
class ProducerConfig:
    """Producer configuration."""
    topic: str
    flush_timeout: float = 10.0
    linger_ms: int = 5


class KafkaProducer:
    """
    Kafka producer for one topic.

    Features:
    - Checksum keys for partition routing
    - Delivery confirmation per message
    - Bounded retry of retriable delivery failures
    """

    def __init__(
        self,
        config: ProducerConfig,
        kafka_config: KafkaConfig,
        producer_factory: Optional[Callable[[Dict[str, Any]], Any]] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.config = config
        self.kafka_config = kafka_config
        self.producer_factory = producer_factory or Producer
        self.retry_config = retry_config or NO_RETRY

        self.logger = structlog.get_logger("kafka-producer").bind(topic=config.topic)
        self.producer: Optional[Any] = None

        # Metrics
        self.messages_sent = 0
        self.messages_failed = 0

    def _create_producer(self) -> Any:
        """Create Kafka producer instance."""
        producer_config = {
            'bootstrap.servers': self.kafka_config.bootstrap_servers,
            # Retries are owned by the caller
            'retries': 0,
            'linger.ms': self.config.linger_ms,
        }

        return self.producer_factory(producer_config)

    @property
    def running(self) -> bool:
        return self.producer is not None

    async def start(self) -> None:
        """Start the producer."""
        if self.running:
            return

        self.logger.info("Starting Kafka producer")
        self.producer = self._create_producer()

    async def stop(self) -> None:
        """Flush outstanding messages and release the producer."""
        if not self.running:
            return

        self.logger.info("Stopping Kafka producer")
        remaining = await asyncio.to_thread(self.producer.flush, self.config.flush_timeout)
        if remaining:
            self.logger.warning("Messages left undelivered at shutdown", remaining=remaining)
        self.producer = None
        self.logger.info("Kafka producer stopped")

    async def send_message(self, payload: str, key: Optional[str] = None) -> None:
        """Write one message and wait until the broker acknowledges it."""
        if not self.running:
            raise LogIOError("Producer not started", topic=self.config.topic)

        if key is None:
            key = checksum_key(payload)

        self.logger.debug("Writing message", key=key)
        try:
            await retry_async(
                lambda: self._send_once(payload, key),
                self.retry_config,
                operation_name=f"produce:{self.config.topic}",
            )
        except LogIOError as e:
            self.messages_failed += 1
            self.logger.error("Error writing message", error=e.message, details=e.details)
            raise
        self.messages_sent += 1

    async def _send_once(self, payload: str, key: str) -> None:
        """One produce attempt followed by a flush for its delivery report."""
        outcome: Dict[str, Any] = {}

        def _delivery_callback(err: Optional[KafkaError], msg: Any) -> None:
            outcome["error"] = err
            outcome["message"] = msg

        try:
            self.producer.produce(
                topic=self.config.topic,
                value=payload.encode("utf-8"),
                key=key.encode("utf-8"),
                callback=_delivery_callback,
            )
        except BufferError as e:
            raise LogIOError(f"Local produce queue is full: {e}", topic=self.config.topic, retryable=True) from e
        except KafkaException as e:
            err = e.args[0] if e.args else None
            retriable = bool(err.retriable()) if isinstance(err, KafkaError) else False
            raise LogIOError(f"Produce failed: {e}", topic=self.config.topic, retryable=retriable) from e

        remaining = await asyncio.to_thread(self.producer.flush, self.config.flush_timeout)
        if remaining or "error" not in outcome:
            raise LogIOError("Delivery not confirmed before flush timeout", topic=self.config.topic, retryable=True)

        err = outcome["error"]
        if err is not None:
            raise LogIOError(
                f"Delivery failed: {err.str()}",
                topic=self.config.topic,
                retryable=bool(err.retriable()),
            )

        msg = outcome["message"]
        self.logger.debug("Message delivered", partition=msg.partition(), offset=msg.offset())

    def get_metrics(self) -> Dict[str, Any]:
        """Get producer metrics."""
        return {
            "messages_sent": self.messages_sent,
            "messages_failed": self.messages_failed,
            "running": self.running,
        }
