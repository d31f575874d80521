"""Configuration for the results service."""

import os

from shared.framework.config import ServiceConfig


class ResultsConfig(ServiceConfig):
    """Configuration for the results service."""

    def __init__(self) -> None:
        super().__init__(service_name="results")

        self.host = os.getenv("KAFKA_SCALE_RESULTS_HOST", "0.0.0.0")
        self.port = int(os.getenv("KAFKA_SCALE_RESULTS_PORT", "8888"))
