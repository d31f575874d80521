"""
Kafka consumer abstraction for the pipeline stages.

Runs one cancellable consume loop per stage. The blocking poll is
the only suspension point; it runs in a worker thread with a short
timeout so the stop signal is observed at the consume boundary.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from confluent_kafka import Consumer, KafkaError
import structlog

from shared.utils.errors import LogClosedError, LogIOError
from shared.utils.retry import NO_RETRY, RetryConfig

from .config import KafkaConfig


logger = structlog.get_logger(__name__)


class StageState(str, Enum):
    """Lifecycle of a consume loop."""
    IDLE = "idle"
    READING = "reading"
    SUSPENDED = "suspended"
    TERMINATED_EOF = "terminated_eof"
    TERMINATED_ERROR = "terminated_error"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (StageState.TERMINATED_EOF, StageState.TERMINATED_ERROR, StageState.CANCELLED)


@dataclass
class ConsumerConfig:
    """Consumer configuration."""
    topics: List[str]
    group_id: str
    auto_offset_reset: str = "earliest"
    enable_auto_commit: bool = True
    session_timeout_ms: int = 30000
    heartbeat_interval_ms: int = 3000
    poll_timeout: float = 1.0
    stop_at_end: bool = False


@dataclass(frozen=True)
class LogMessage:
    """A message read from the log."""
    topic: str
    partition: int
    offset: int
    key: Optional[bytes]
    value: bytes

    def text(self) -> str:
        return self.value.decode("utf-8", errors="replace")


MessageHandler = Callable[[LogMessage], Awaitable[None]]
ClientFactory = Callable[[Dict[str, Any]], Any]


class KafkaConsumer:
    """
    Consume loop for one pipeline stage.

    Features:
    - Consumer-group membership with auto-commit
    - Bounded retry of transient poll errors
    - Graceful end-of-log termination in finite mode
    - Cancellation observed at the poll boundary
    """

    def __init__(
        self,
        config: ConsumerConfig,
        kafka_config: KafkaConfig,
        message_handler: MessageHandler,
        consumer_factory: Optional[ClientFactory] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.config = config
        self.kafka_config = kafka_config
        self.message_handler = message_handler
        self.consumer_factory = consumer_factory or Consumer
        self.retry_config = retry_config or NO_RETRY

        self.logger = structlog.get_logger("kafka-consumer").bind(
            topics=config.topics, group_id=config.group_id
        )
        self.consumer: Optional[Any] = None
        self.state = StageState.IDLE
        self.task: Optional[asyncio.Task] = None
        self.error: Optional[BaseException] = None
        self._stop_event = asyncio.Event()
        self._at_end: Set[Tuple[str, int]] = set()

        # Metrics
        self.messages_processed = 0
        self.messages_failed = 0

    def _create_consumer(self) -> Any:
        """Create Kafka consumer instance."""
        consumer_config = {
            'bootstrap.servers': self.kafka_config.bootstrap_servers,
            'group.id': self.config.group_id,
            'auto.offset.reset': self.config.auto_offset_reset,
            'enable.auto.commit': self.config.enable_auto_commit,
            'session.timeout.ms': self.config.session_timeout_ms,
            'heartbeat.interval.ms': self.config.heartbeat_interval_ms,
            'enable.partition.eof': self.config.stop_at_end,
        }

        return self.consumer_factory(consumer_config)

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    async def start(self) -> None:
        """Subscribe and start the consume loop."""
        if self.running:
            return

        self.logger.info("Starting Kafka consumer", stop_at_end=self.config.stop_at_end)

        self.consumer = self._create_consumer()
        self.consumer.subscribe(self.config.topics)

        self._stop_event.clear()
        self.state = StageState.READING
        self.task = asyncio.create_task(self._consume_loop())

    async def stop(self) -> StageState:
        """Signal the loop to stop and wait for it to release the consumer."""
        if self.task is None:
            return self.state

        self.logger.info("Stopping Kafka consumer")
        self._stop_event.set()

        # The in-flight poll returns within one poll timeout
        try:
            await asyncio.wait_for(asyncio.shield(self.task), timeout=self.config.poll_timeout + 5.0)
        except asyncio.TimeoutError:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass

        self.logger.info("Kafka consumer stopped", state=self.state.value)
        return self.state

    async def wait(self) -> StageState:
        """Wait for the loop to reach a terminal state."""
        if self.task is not None:
            await asyncio.shield(self.task)
        return self.state

    async def read_message(self) -> Optional[LogMessage]:
        """Poll once. Returns None while the log has no data for this group."""
        message = await asyncio.to_thread(self.consumer.poll, self.config.poll_timeout)
        if message is None:
            return None

        error = message.error()
        if error is not None:
            if error.code() == KafkaError._PARTITION_EOF:
                self._at_end.add((message.topic(), message.partition()))
                if self.config.stop_at_end and self._all_partitions_at_end():
                    raise LogClosedError("End of log reached", topic=message.topic())
                return None
            raise LogIOError(
                f"Consume failed: {error.str()}",
                topic=message.topic(),
                partition=message.partition(),
                retryable=bool(error.retriable()),
            )

        self._at_end.discard((message.topic(), message.partition()))
        return LogMessage(
            topic=message.topic(),
            partition=message.partition(),
            offset=message.offset(),
            key=message.key(),
            value=message.value() or b"",
        )

    def _all_partitions_at_end(self) -> bool:
        assignment = self.consumer.assignment()
        if not assignment:
            return True
        return all((tp.topic, tp.partition) in self._at_end for tp in assignment)

    async def _consume_loop(self) -> None:
        """Main consumption loop."""
        failures = 0
        try:
            while not self._stop_event.is_set():
                try:
                    message = await self.read_message()
                except LogClosedError:
                    self.logger.info("Reader has been closed, end of log")
                    self.state = StageState.TERMINATED_EOF
                    return
                except LogIOError as e:
                    if self.retry_config.should_retry(e, failures):
                        delay = self.retry_config.get_delay(failures)
                        failures += 1
                        self.logger.warning("Transient consume error, retrying", error=e.message, attempt=failures, delay_seconds=round(delay, 3))
                        await asyncio.sleep(delay)
                        continue
                    self.logger.error("Error getting message from log", error=e.message, details=e.details)
                    self.error = e
                    self.state = StageState.TERMINATED_ERROR
                    return
                except Exception as e:
                    self.logger.error("Unrecoverable consumer failure", error=str(e), exc_info=True)
                    self.error = e
                    self.state = StageState.TERMINATED_ERROR
                    return

                failures = 0
                if message is None:
                    self.state = StageState.SUSPENDED
                    continue

                self.state = StageState.READING
                self.logger.debug(
                    "Message was read",
                    key=message.key,
                    partition=message.partition,
                    offset=message.offset,
                )
                try:
                    await self.message_handler(message)
                    self.messages_processed += 1
                except Exception as e:
                    self.messages_failed += 1
                    self.logger.error("Message handler error", error=str(e), offset=message.offset, exc_info=True)
                    self.error = e
                    self.state = StageState.TERMINATED_ERROR
                    return

            self.state = StageState.CANCELLED
        except asyncio.CancelledError:
            self.state = StageState.CANCELLED
            raise
        finally:
            self._close()

    def _close(self) -> None:
        if self.consumer is not None:
            self.consumer.close()
            self.consumer = None

    def get_metrics(self) -> Dict[str, Any]:
        """Get consumer metrics."""
        return {
            "messages_processed": self.messages_processed,
            "messages_failed": self.messages_failed,
            "state": self.state.value,
        }
