"""
Configuration management for the pipeline commands.

Provides typed configuration classes with environment variable
injection and validation.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any

from shared.utils.errors import ConfigurationError
from shared.utils.retry import RetryConfig


ENVIRONMENTS = ("local", "dev", "staging", "prod")


class OutputMode(str, Enum):
    """Where a stage writes what it produces."""
    KAFKA = "kafka"
    STDOUT = "stdout"
    NULL = "null"


@dataclass
class KafkaConfig:
    """Kafka configuration."""
    bootstrap_servers: str = field(default_factory=lambda: os.getenv("KAFKA_SCALE_KAFKA_BOOTSTRAP", "localhost:9092"))
    auto_offset_reset: str = field(default_factory=lambda: os.getenv("KAFKA_SCALE_KAFKA_AUTO_OFFSET_RESET", "earliest"))
    enable_auto_commit: bool = field(default_factory=lambda: os.getenv("KAFKA_SCALE_KAFKA_AUTO_COMMIT", "true").lower() == "true")
    session_timeout_ms: int = field(default_factory=lambda: int(os.getenv("KAFKA_SCALE_KAFKA_SESSION_TIMEOUT_MS", "30000")))
    heartbeat_interval_ms: int = field(default_factory=lambda: int(os.getenv("KAFKA_SCALE_KAFKA_HEARTBEAT_INTERVAL_MS", "3000")))
    poll_timeout: float = field(default_factory=lambda: float(os.getenv("KAFKA_SCALE_KAFKA_POLL_TIMEOUT", "1.0")))
    flush_timeout: float = field(default_factory=lambda: float(os.getenv("KAFKA_SCALE_KAFKA_FLUSH_TIMEOUT", "10.0")))
    admin_timeout: float = field(default_factory=lambda: float(os.getenv("KAFKA_SCALE_KAFKA_ADMIN_TIMEOUT", "10.0")))
    partitions: int = field(default_factory=lambda: int(os.getenv("KAFKA_SCALE_PARTITIONS", "1")))
    replication_factor: int = field(default_factory=lambda: int(os.getenv("KAFKA_SCALE_REPLICATION_FACTOR", "1")))


@dataclass
class TopicConfig:
    """Topic names and the consumer group that reads each one."""
    compute_topic: str = field(default_factory=lambda: os.getenv("KAFKA_SCALE_COMPUTE_TOPIC", "compute"))
    results_topic: str = field(default_factory=lambda: os.getenv("KAFKA_SCALE_RESULTS_TOPIC", "results"))
    compute_group: str = field(default_factory=lambda: os.getenv("KAFKA_SCALE_COMPUTE_GROUP", "compute-group"))
    results_group: str = field(default_factory=lambda: os.getenv("KAFKA_SCALE_RESULTS_GROUP", "results-group"))

    def group_for(self, topic: str) -> str:
        """Consumer group used for ``topic``."""
        groups = {
            self.compute_topic: self.compute_group,
            self.results_topic: self.results_group,
        }
        if topic not in groups:
            raise ConfigurationError(f"No consumer group for topic {topic}", config_key="topic", config_value=topic)
        return groups[topic]


@dataclass
class RetrySettings:
    """Bounded retry settings for transient log errors."""
    max_attempts: int = field(default_factory=lambda: int(os.getenv("KAFKA_SCALE_RETRY_MAX_ATTEMPTS", "3")))
    base_delay: float = field(default_factory=lambda: float(os.getenv("KAFKA_SCALE_RETRY_BASE_DELAY", "0.1")))
    max_delay: float = field(default_factory=lambda: float(os.getenv("KAFKA_SCALE_RETRY_MAX_DELAY", "5.0")))

    def to_retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
        )


@dataclass
class ObservabilityConfig:
    """Observability configuration."""
    log_level: str = field(default_factory=lambda: os.getenv("KAFKA_SCALE_LOG_LEVEL", "info"))
    log_format: str = field(default_factory=lambda: os.getenv("KAFKA_SCALE_LOG_FORMAT", "json"))
    metrics_enabled: bool = field(default_factory=lambda: os.getenv("KAFKA_SCALE_WITH_METRICS", "false").lower() == "true")
    metrics_port: int = field(default_factory=lambda: int(os.getenv("KAFKA_SCALE_METRICS_PORT", "9090")))
    health_port: int = field(default_factory=lambda: int(os.getenv("KAFKA_SCALE_HEALTH_PORT", "8080")))


@dataclass
class ServiceConfig:
    """Base configuration shared by every command."""
    service_name: str
    environment: str = field(default_factory=lambda: os.getenv("KAFKA_SCALE_ENV", "local"))

    # Sub-configurations
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    topics: TopicConfig = field(default_factory=TopicConfig)
    retry: RetrySettings = field(default_factory=RetrySettings)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    # Stage behaviour
    output_mode: OutputMode = field(default_factory=lambda: OutputMode(os.getenv("KAFKA_SCALE_WRITE_TO", "kafka")))
    delay_ms: int = field(default_factory=lambda: int(os.getenv("KAFKA_SCALE_DELAY_MS", "0")))
    stop_at_end: bool = field(default_factory=lambda: os.getenv("KAFKA_SCALE_STOP_AT_END", "false").lower() == "true")

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.service_name:
            raise ConfigurationError("service_name is required", config_key="service_name")

        if self.environment not in ENVIRONMENTS:
            raise ConfigurationError(
                f"Invalid environment: {self.environment}",
                config_key="environment",
                config_value=self.environment,
            )

        if self.delay_ms < 0:
            raise ConfigurationError("delay must not be negative", config_key="delay_ms", config_value=self.delay_ms)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "service_name": self.service_name,
            "environment": self.environment,
            "kafka": {
                "bootstrap_servers": self.kafka.bootstrap_servers,
                "auto_offset_reset": self.kafka.auto_offset_reset,
                "enable_auto_commit": self.kafka.enable_auto_commit,
                "session_timeout_ms": self.kafka.session_timeout_ms,
                "poll_timeout": self.kafka.poll_timeout,
                "partitions": self.kafka.partitions,
                "replication_factor": self.kafka.replication_factor,
            },
            "topics": {
                "compute_topic": self.topics.compute_topic,
                "results_topic": self.topics.results_topic,
                "compute_group": self.topics.compute_group,
                "results_group": self.topics.results_group,
            },
            "retry": {
                "max_attempts": self.retry.max_attempts,
                "base_delay": self.retry.base_delay,
                "max_delay": self.retry.max_delay,
            },
            "observability": {
                "log_level": self.observability.log_level,
                "log_format": self.observability.log_format,
                "metrics_enabled": self.observability.metrics_enabled,
                "metrics_port": self.observability.metrics_port,
                "health_port": self.observability.health_port,
            },
            "output_mode": self.output_mode.value,
            "delay_ms": self.delay_ms,
            "stop_at_end": self.stop_at_end,
        }
