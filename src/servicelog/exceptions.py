"""Exceptions raised by the logging pipeline."""

from __future__ import annotations


class ServiceLogError(Exception):
    """Base exception for logging pipeline errors."""

    def __init__(self, message: str, error_code: str = "SERVICELOG_ERROR"):
        """Initialize servicelog error."""
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class ConfigurationError(ServiceLogError):
    """Raised at assembly time when the pipeline options are invalid."""

    def __init__(self, message: str):
        """Initialize configuration error."""
        super().__init__(message, "CONFIGURATION_ERROR")


class SinkWriteError(ServiceLogError):
    """Raised by a sink when its destination rejects a write."""

    def __init__(self, sink: str, message: str):
        """Initialize sink write error."""
        self.sink = sink
        super().__init__(f"{sink}: {message}", "SINK_WRITE_ERROR")
