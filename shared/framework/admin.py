"""
Topic administration against the Kafka cluster.

Covers topic lifecycle (idempotent create, delete) and the
inspection calls used by the operational commands (topic list,
per-partition first/last/committed offsets).
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from confluent_kafka import Consumer, KafkaError, KafkaException, TopicPartition
from confluent_kafka.admin import AdminClient, NewTopic
import structlog

from shared.utils.errors import LogIOError

from .config import KafkaConfig


logger = structlog.get_logger(__name__)

ClientFactory = Callable[[Dict[str, Any]], Any]


@dataclass(frozen=True)
class PartitionInfo:
    """One partition of a topic and its leader broker."""
    topic: str
    partition: int
    leader: int


@dataclass(frozen=True)
class PartitionOffsets:
    """Offsets for one partition. ``committed`` is None when the group has not committed."""
    partition: int
    first: int
    last: int
    committed: Optional[int] = None


def _error_code(exc: KafkaException) -> Optional[int]:
    err = exc.args[0] if exc.args else None
    return err.code() if isinstance(err, KafkaError) else None


class TopicAdmin:
    """Thin administrative layer over the confluent-kafka AdminClient."""

    def __init__(
        self,
        kafka_config: KafkaConfig,
        admin_factory: Optional[ClientFactory] = None,
        consumer_factory: Optional[ClientFactory] = None,
    ):
        self.kafka_config = kafka_config
        self.admin_factory = admin_factory or AdminClient
        self.consumer_factory = consumer_factory or Consumer
        self.timeout = kafka_config.admin_timeout
        self._admin: Optional[Any] = None

    @property
    def admin(self) -> Any:
        if self._admin is None:
            self._admin = self.admin_factory({'bootstrap.servers': self.kafka_config.bootstrap_servers})
        return self._admin

    def _metadata(self) -> Any:
        try:
            return self.admin.list_topics(timeout=self.timeout)
        except KafkaException as e:
            raise LogIOError(f"Error reading cluster metadata: {e}", retryable=True) from e

    def topic_exists(self, name: str) -> bool:
        return name in self._metadata().topics

    def create_topic_if_absent(self, name: str, partitions: int, replication_factor: int) -> bool:
        """Create ``name`` unless it exists. Returns True only when a topic was created."""
        if self.topic_exists(name):
            logger.debug("Topic already exists", topic=name)
            return False

        futures = self.admin.create_topics(
            [NewTopic(name, num_partitions=partitions, replication_factor=replication_factor)],
            request_timeout=self.timeout,
        )
        try:
            futures[name].result()
        except KafkaException as e:
            # Lost a race with another creator
            if _error_code(e) == KafkaError.TOPIC_ALREADY_EXISTS:
                return False
            raise LogIOError(f"Error creating topic: {e}", topic=name) from e

        logger.info("Created topic", topic=name, partitions=partitions, replication_factor=replication_factor)
        return True

    def list_topics(self) -> List[PartitionInfo]:
        """Every partition of every topic, sorted by topic then partition."""
        partitions = []
        for topic_name, topic in self._metadata().topics.items():
            for partition in topic.partitions.values():
                partitions.append(PartitionInfo(topic=topic_name, partition=partition.id, leader=partition.leader))
        return sorted(partitions, key=lambda p: (p.topic, p.partition))

    def partitions_for(self, topic: str) -> List[int]:
        """Partition ids of ``topic`` in ascending order."""
        metadata = self._metadata()
        if topic not in metadata.topics:
            raise LogIOError("Unknown topic", topic=topic)
        return sorted(metadata.topics[topic].partitions)

    def list_offsets(self, topic: str, group_id: Optional[str] = None) -> List[PartitionOffsets]:
        """First, last and (when ``group_id`` is given) committed offset per partition."""
        partitions = self.partitions_for(topic)
        consumer = self.consumer_factory({
            'bootstrap.servers': self.kafka_config.bootstrap_servers,
            'group.id': group_id or "kafka-scale-offsets",
            'enable.auto.commit': False,
        })
        try:
            committed: Dict[int, int] = {}
            if group_id:
                for tp in consumer.committed([TopicPartition(topic, p) for p in partitions], timeout=self.timeout):
                    if tp.offset >= 0:
                        committed[tp.partition] = tp.offset

            offsets = []
            for partition in partitions:
                first, last = consumer.get_watermark_offsets(TopicPartition(topic, partition), timeout=self.timeout)
                offsets.append(PartitionOffsets(
                    partition=partition,
                    first=first,
                    last=last,
                    committed=committed.get(partition),
                ))
            return offsets
        except KafkaException as e:
            raise LogIOError(f"Error listing offsets: {e}", topic=topic) from e
        finally:
            consumer.close()

    def delete_topics(self, topics: Sequence[str]) -> Dict[str, Optional[str]]:
        """Delete ``topics``. Returns topic -> error message (None on success)."""
        futures = self.admin.delete_topics(list(topics), request_timeout=self.timeout)
        results: Dict[str, Optional[str]] = {}
        for topic, future in futures.items():
            try:
                future.result()
                results[topic] = None
                logger.info("Deleted topic", topic=topic)
            except KafkaException as e:
                results[topic] = str(e)
                logger.error("Error deleting topic", topic=topic, error=str(e))
        return results
