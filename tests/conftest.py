"""Pytest configuration and fixtures."""

import gzip

import pytest
from prometheus_client import CollectorRegistry

from shared.framework.config import KafkaConfig
from shared.framework.log_client import LogClient
from shared.framework.metrics import MetricsCollector
from shared.utils.retry import RetryConfig
from tests.fixtures.mock_services import InMemoryBroker, census_line


@pytest.fixture
def broker():
    """Fresh in-memory broker."""
    return InMemoryBroker()


@pytest.fixture
def kafka_config():
    """Kafka configuration with short timeouts for tests."""
    return KafkaConfig(
        bootstrap_servers="memory:9092",
        poll_timeout=0.05,
        flush_timeout=1.0,
        admin_timeout=1.0,
    )


@pytest.fixture
def retry_config():
    """Fast bounded retry."""
    return RetryConfig(max_attempts=3, base_delay=0.001, max_delay=0.01)


@pytest.fixture
def log_client(broker, kafka_config, retry_config):
    """Log client wired to the in-memory broker."""
    return LogClient(
        kafka_config,
        retry_config=retry_config,
        producer_factory=broker.producer_factory,
        consumer_factory=broker.consumer_factory,
        admin_factory=broker.admin_factory,
    )


@pytest.fixture
def metrics():
    """Metrics collector on its own registry."""
    return MetricsCollector("test", registry=CollectorRegistry())


@pytest.fixture
def census_lines():
    """Build ``count`` census records sharing one housing code."""
    def _build(count: int, code: str = "1"):
        return [census_line(code, serial=i) for i in range(count)]
    return _build


@pytest.fixture
def census_gz(tmp_path):
    """Write records to a gzip archive and return its path."""
    def _write(lines, name: str = "dec20pub.dat.gz"):
        path = tmp_path / name
        with gzip.open(path, "wt", encoding="latin-1") as handle:
            for line in lines:
                handle.write(line + "\n")
        return str(path)
    return _write
