"""
Utility modules for the census pipeline.

Provides common utilities for:
- Structured logging
- Error handling
- Bounded retry of transient log errors
"""

from .logging import setup_logging
from .errors import (
    DataProcessingError,
    SourceFetchError,
    LogIOError,
    LogClosedError,
    ParseError,
    ConfigurationError,
)
from .retry import RetryConfig, retry_async

__all__ = [
    "setup_logging",
    "DataProcessingError",
    "SourceFetchError",
    "LogIOError",
    "LogClosedError",
    "ParseError",
    "ConfigurationError",
    "RetryConfig",
    "retry_async",
]
