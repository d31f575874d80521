"""Prometheus metrics collection for the pipeline commands."""

from typing import Dict, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Info,
    generate_latest,
    start_http_server,
)
import structlog


logger = structlog.get_logger(__name__)

NAMESPACE = "kafka_scale"


class MetricsCollector:
    """Centralized metrics collection for one command."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()
        self.metrics: Dict[str, Counter] = {}

        self._init_common_metrics()

    def _init_common_metrics(self):
        """Initialize metrics shared by every command."""
        self.info = Info(
            f"{NAMESPACE}_service",
            "Information about the running command",
            registry=self.registry
        )

        self.messages_processed = Counter(
            f"{NAMESPACE}_messages_processed",
            "Messages handled by a stage",
            ["topic", "status"],
            registry=self.registry
        )

        self.errors = Counter(
            f"{NAMESPACE}_errors",
            "Errors raised inside the pipeline",
            ["error_type", "component"],
            registry=self.registry
        )

        self.health_status = Gauge(
            f"{NAMESPACE}_health_status",
            "Health status (1=healthy, 0=unhealthy)",
            registry=self.registry
        )

        self.memory_usage = Gauge(
            f"{NAMESPACE}_memory_usage_bytes",
            "Resident memory of the process in bytes",
            registry=self.registry
        )

    def create_counter(self, name: str, description: str) -> Counter:
        """Create a command-specific counter, e.g. ``chunks_written``."""
        if name in self.metrics:
            return self.metrics[name]
        counter = Counter(f"{NAMESPACE}_{name}", description, registry=self.registry)
        self.metrics[name] = counter
        return counter

    def counter(self, name: str) -> Counter:
        return self.metrics[name]

    def record_message_processed(self, topic: str, status: str):
        self.messages_processed.labels(topic=topic, status=status).inc()

    def record_error(self, error_type: str, component: str):
        self.errors.labels(error_type=error_type, component=component).inc()

    def set_health_status(self, healthy: bool):
        self.health_status.set(1 if healthy else 0)

    def set_memory_usage(self, bytes_used: int):
        self.memory_usage.set(bytes_used)

    def update_service_info(self, version: str, environment: str, **kwargs):
        self.info.info({
            "service": self.service_name,
            "version": version,
            "environment": environment,
            **kwargs
        })

    def serve(self, port: int) -> None:
        """Expose this registry on a standalone HTTP server (short-lived commands)."""
        start_http_server(port, registry=self.registry)
        logger.info("Started prometheus metrics http server", port=port)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics."""
        return CONTENT_TYPE_LATEST
