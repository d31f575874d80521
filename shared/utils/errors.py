"""
Custom error classes for the census pipeline.

Provides structured error handling with error codes and
detail payloads, mirroring the stages of the pipeline.
"""

from typing import Optional, Dict, Any


class DataProcessingError(Exception):
    """Base exception for pipeline errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class SourceFetchError(DataProcessingError):
    """Error raised when a source archive cannot be fetched or decompressed."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="SOURCE_FETCH",
            details=details or {}
        )
        self.source = source
        self.status = status

        if source:
            self.details["source"] = source
        if status is not None:
            self.details["status"] = status


class LogIOError(DataProcessingError):
    """Error raised when a produce or consume call against the log fails."""

    def __init__(
        self,
        message: str,
        topic: Optional[str] = None,
        partition: Optional[int] = None,
        offset: Optional[int] = None,
        retryable: bool = False,
        details: Optional[Dict[str, Any]] = None,
        error_code: str = "LOG_IO"
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            details=details or {}
        )
        self.topic = topic
        self.partition = partition
        self.offset = offset
        self.retryable = retryable

        if topic:
            self.details["topic"] = topic
        if partition is not None:
            self.details["partition"] = partition
        if offset is not None:
            self.details["offset"] = offset
        self.details["retryable"] = retryable


class LogClosedError(LogIOError):
    """Raised when a finite consumer has reached the end of every partition."""

    def __init__(self, message: str, topic: Optional[str] = None):
        super().__init__(
            message=message,
            topic=topic,
            retryable=False,
            error_code="LOG_CLOSED"
        )


class ParseError(DataProcessingError):
    """Error raised when a batch or result record cannot be decoded."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="PARSE_ERROR",
            details=details or {}
        )
        self.field = field
        self.value = value

        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = str(value)


class ConfigurationError(DataProcessingError):
    """Error raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="CONFIG_ERROR",
            details=details or {}
        )
        self.config_key = config_key
        self.config_value = config_value

        if config_key:
            self.details["config_key"] = config_key
        if config_value is not None:
            self.details["config_value"] = str(config_value)
