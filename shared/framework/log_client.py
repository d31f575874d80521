"""
Single entry point to the durable partitioned log.

Bundles the producer, consumer and admin abstractions behind one
object so commands and tests can swap the underlying client
factories in one place.
"""

import asyncio
from typing import Any, Callable, Dict, Optional

import structlog

from shared.utils.retry import RetryConfig

from .admin import TopicAdmin
from .config import KafkaConfig
from .consumer import ConsumerConfig, KafkaConsumer, MessageHandler
from .producer import KafkaProducer, ProducerConfig


logger = structlog.get_logger(__name__)

ClientFactory = Callable[[Dict[str, Any]], Any]


class LogClient:
    """Factory for producers, consumers and the topic admin of one cluster."""

    def __init__(
        self,
        kafka_config: KafkaConfig,
        retry_config: Optional[RetryConfig] = None,
        producer_factory: Optional[ClientFactory] = None,
        consumer_factory: Optional[ClientFactory] = None,
        admin_factory: Optional[ClientFactory] = None,
    ):
        self.kafka_config = kafka_config
        self.retry_config = retry_config
        self.producer_factory = producer_factory
        self.consumer_factory = consumer_factory
        self.admin = TopicAdmin(kafka_config, admin_factory=admin_factory, consumer_factory=consumer_factory)

    def producer(self, topic: str) -> KafkaProducer:
        return KafkaProducer(
            ProducerConfig(topic=topic, flush_timeout=self.kafka_config.flush_timeout),
            self.kafka_config,
            producer_factory=self.producer_factory,
            retry_config=self.retry_config,
        )

    def consumer(
        self,
        topic: str,
        group_id: str,
        message_handler: MessageHandler,
        stop_at_end: bool = False,
    ) -> KafkaConsumer:
        config = ConsumerConfig(
            topics=[topic],
            group_id=group_id,
            auto_offset_reset=self.kafka_config.auto_offset_reset,
            enable_auto_commit=self.kafka_config.enable_auto_commit,
            session_timeout_ms=self.kafka_config.session_timeout_ms,
            heartbeat_interval_ms=self.kafka_config.heartbeat_interval_ms,
            poll_timeout=self.kafka_config.poll_timeout,
            stop_at_end=stop_at_end,
        )
        return KafkaConsumer(
            config,
            self.kafka_config,
            message_handler,
            consumer_factory=self.consumer_factory,
            retry_config=self.retry_config,
        )

    async def ensure_topic(self, name: str) -> bool:
        """Create ``name`` with the configured partitioning unless it exists."""
        return await asyncio.to_thread(
            self.admin.create_topic_if_absent,
            name,
            self.kafka_config.partitions,
            self.kafka_config.replication_factor,
        )
