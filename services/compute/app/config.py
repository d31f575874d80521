"""Configuration for the compute service."""

import os

from shared.framework.config import ServiceConfig


class ComputeConfig(ServiceConfig):
    """Configuration for the compute service."""

    def __init__(self) -> None:
        super().__init__(service_name="compute")

        # Fixed-width field holding the classification code of each record
        self.code_field = os.getenv("KAFKA_SCALE_CODE_FIELD", "HEHOUSUT")
