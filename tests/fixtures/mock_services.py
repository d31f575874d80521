"""In-memory stand-ins for the confluent-kafka clients."""

import threading
import time
import zlib
from concurrent.futures import Future
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Tuple

from confluent_kafka import KafkaError, KafkaException, TopicPartition


OFFSET_INVALID = -1001


class FakeKafkaMessage:
    """Shaped like ``confluent_kafka.Message``."""

    def __init__(
        self,
        topic: str,
        partition: int,
        offset: int,
        key: Optional[bytes],
        value: Optional[bytes],
        error: Optional[KafkaError] = None,
    ):
        self._topic = topic
        self._partition = partition
        self._offset = offset
        self._key = key
        self._value = value
        self._error = error

    def topic(self) -> str:
        return self._topic

    def partition(self) -> int:
        return self._partition

    def offset(self) -> int:
        return self._offset

    def key(self) -> Optional[bytes]:
        return self._key

    def value(self) -> Optional[bytes]:
        return self._value

    def error(self) -> Optional[KafkaError]:
        return self._error


class InMemoryBroker:
    """
    A single-node broker kept in memory.

    Topics hold partitions of (key, value) pairs. Consumer-group
    positions double as committed offsets, so consumers in one group
    share the work the way they do against a real cluster. Failures
    can be queued for the next produce or poll calls.
    """

    def __init__(self, default_partitions: int = 1):
        self.default_partitions = default_partitions
        self.topics: Dict[str, List[List[Tuple[Optional[bytes], bytes]]]] = {}
        self.committed: Dict[Tuple[str, str, int], int] = {}
        self.produce_errors: List[KafkaError] = []
        self.consume_errors: List[KafkaError] = []
        self.poll_exceptions: List[Exception] = []
        self.buffer_full = False
        self.create_calls = 0
        self._lock = threading.Lock()

    def create_topic(self, name: str, partitions: Optional[int] = None) -> bool:
        with self._lock:
            if name in self.topics:
                return False
            self.topics[name] = [[] for _ in range(partitions or self.default_partitions)]
            return True

    def delete_topic(self, name: str) -> bool:
        with self._lock:
            if name not in self.topics:
                return False
            del self.topics[name]
            self.committed = {k: v for k, v in self.committed.items() if k[1] != name}
            return True

    def append(self, topic: str, key: Optional[bytes], value: bytes) -> Tuple[int, int]:
        self.create_topic(topic)
        with self._lock:
            partitions = self.topics[topic]
            partition = zlib.crc32(key or b"") % len(partitions)
            partitions[partition].append((key, value))
            return partition, len(partitions[partition]) - 1

    def messages(self, topic: str) -> List[str]:
        """Every value written to ``topic``, partition by partition."""
        with self._lock:
            return [
                value.decode("utf-8")
                for partition in self.topics.get(topic, [])
                for _, value in partition
            ]

    def producer_factory(self, config: Dict[str, Any]) -> "FakeProducer":
        return FakeProducer(self, config)

    def consumer_factory(self, config: Dict[str, Any]) -> "FakeConsumer":
        return FakeConsumer(self, config)

    def admin_factory(self, config: Dict[str, Any]) -> "FakeAdminClient":
        return FakeAdminClient(self, config)


class FakeProducer:
    """Shaped like ``confluent_kafka.Producer``; delivery reports fire on flush/poll."""

    def __init__(self, broker: InMemoryBroker, config: Dict[str, Any]):
        self.broker = broker
        self.config = config
        self._pending: List[Tuple[Callable, Optional[KafkaError], Optional[FakeKafkaMessage]]] = []

    def produce(self, topic: str, value: bytes = None, key: bytes = None, callback: Callable = None, **kwargs) -> None:
        if self.broker.buffer_full:
            raise BufferError("Local: Queue full")

        if self.broker.produce_errors:
            error = self.broker.produce_errors.pop(0)
            self._pending.append((callback, error, None))
            return

        partition, offset = self.broker.append(topic, key, value)
        self._pending.append((callback, None, FakeKafkaMessage(topic, partition, offset, key, value)))

    def poll(self, timeout: float = 0) -> int:
        pending, self._pending = self._pending, []
        for callback, error, message in pending:
            if callback is not None:
                callback(error, message)
        return len(pending)

    def flush(self, timeout: float = None) -> int:
        self.poll(0)
        return 0


class FakeConsumer:
    """Shaped like ``confluent_kafka.Consumer`` with auto-commit on delivery."""

    def __init__(self, broker: InMemoryBroker, config: Dict[str, Any]):
        self.broker = broker
        self.config = config
        self.group_id = config.get("group.id", "")
        self.partition_eof = bool(config.get("enable.partition.eof", False))
        self.topics: List[str] = []
        self.closed = False
        self._eof_sent: Dict[Tuple[str, int], bool] = {}

    def subscribe(self, topics: List[str]) -> None:
        self.topics = list(topics)

    def assignment(self) -> List[TopicPartition]:
        with self.broker._lock:
            return [
                TopicPartition(topic, partition)
                for topic in self.topics
                for partition in range(len(self.broker.topics.get(topic, [])))
            ]

    def poll(self, timeout: float = None) -> Optional[FakeKafkaMessage]:
        if self.closed:
            raise RuntimeError("Consumer closed")
        if self.broker.poll_exceptions:
            raise self.broker.poll_exceptions.pop(0)

        if self.broker.consume_errors:
            error = self.broker.consume_errors.pop(0)
            topic = self.topics[0] if self.topics else ""
            return FakeKafkaMessage(topic, 0, OFFSET_INVALID, None, None, error=error)

        with self.broker._lock:
            for topic in self.topics:
                for partition, records in enumerate(self.broker.topics.get(topic, [])):
                    position_key = (self.group_id, topic, partition)
                    position = self.broker.committed.get(position_key, 0)
                    if position < len(records):
                        key, value = records[position]
                        self.broker.committed[position_key] = position + 1
                        self._eof_sent[(topic, partition)] = False
                        return FakeKafkaMessage(topic, partition, position, key, value)
                    if self.partition_eof and not self._eof_sent.get((topic, partition)):
                        self._eof_sent[(topic, partition)] = True
                        return FakeKafkaMessage(
                            topic, partition, position, None, None,
                            error=KafkaError(KafkaError._PARTITION_EOF),
                        )

        time.sleep(min(timeout or 0, 0.01))
        return None

    def committed(self, partitions: List[TopicPartition], timeout: float = None) -> List[TopicPartition]:
        with self.broker._lock:
            return [
                TopicPartition(
                    tp.topic,
                    tp.partition,
                    self.broker.committed.get((self.group_id, tp.topic, tp.partition), OFFSET_INVALID),
                )
                for tp in partitions
            ]

    def get_watermark_offsets(self, partition: TopicPartition, timeout: float = None, cached: bool = False) -> Tuple[int, int]:
        with self.broker._lock:
            records = self.broker.topics[partition.topic][partition.partition]
            return 0, len(records)

    def close(self) -> None:
        self.closed = True


class FakeAdminClient:
    """Shaped like ``confluent_kafka.admin.AdminClient``."""

    def __init__(self, broker: InMemoryBroker, config: Dict[str, Any]):
        self.broker = broker
        self.config = config

    def list_topics(self, timeout: float = None) -> SimpleNamespace:
        with self.broker._lock:
            return SimpleNamespace(topics={
                name: SimpleNamespace(partitions={
                    i: SimpleNamespace(id=i, leader=1) for i in range(len(partitions))
                })
                for name, partitions in self.broker.topics.items()
            })

    def create_topics(self, new_topics: List[Any], request_timeout: float = None, **kwargs) -> Dict[str, Future]:
        self.broker.create_calls += 1
        futures = {}
        for new_topic in new_topics:
            future: Future = Future()
            if self.broker.create_topic(new_topic.topic, new_topic.num_partitions):
                future.set_result(None)
            else:
                future.set_exception(KafkaException(KafkaError(KafkaError.TOPIC_ALREADY_EXISTS)))
            futures[new_topic.topic] = future
        return futures

    def delete_topics(self, topics: List[str], request_timeout: float = None, **kwargs) -> Dict[str, Future]:
        futures = {}
        for topic in topics:
            future: Future = Future()
            if self.broker.delete_topic(topic):
                future.set_result(None)
            else:
                future.set_exception(KafkaException(KafkaError(KafkaError.UNKNOWN_TOPIC_OR_PART)))
            futures[topic] = future
        return futures


def census_line(code: str, serial: int = 0, width: int = 60) -> str:
    """A fixed-width census record with ``code`` right-aligned in the housing type field."""
    prefix = f"{serial:015d}".ljust(30)
    return (prefix + f"{code:>2}").ljust(width, "0")
