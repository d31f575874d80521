"""
Core framework components for the pipeline commands.

Provides the log client (producer, consumer, topic admin) and the
base class for long-running services with health and metrics.
"""

from .service import AsyncService
from .consumer import ConsumerConfig, KafkaConsumer, LogMessage, StageState
from .producer import KafkaProducer, ProducerConfig, checksum_key
from .admin import TopicAdmin, PartitionInfo, PartitionOffsets
from .log_client import LogClient
from .config import ServiceConfig, KafkaConfig, TopicConfig, OutputMode
from .health import HealthChecker
from .metrics import MetricsCollector

__all__ = [
    "AsyncService",
    "ConsumerConfig",
    "KafkaConsumer",
    "LogMessage",
    "StageState",
    "KafkaProducer",
    "ProducerConfig",
    "checksum_key",
    "TopicAdmin",
    "PartitionInfo",
    "PartitionOffsets",
    "LogClient",
    "ServiceConfig",
    "KafkaConfig",
    "TopicConfig",
    "OutputMode",
    "HealthChecker",
    "MetricsCollector",
]
