"""Structured logging pipeline for services.

Provides one configured pipeline per service: correlation IDs bound per
request, redaction of sensitive fields, and fan-out to independently leveled
sinks (console, Elasticsearch).

Usage:
    from servicelog import create_logger

    pipeline = create_logger(service_name="billing", sanitize={"sensitive_fields": ["ssn"]})
    pipeline.logger.info("charged user", {"ssn": "123-45-6789", "amount": 42})

Note:
    The Starlette middleware is not exported here to keep the web framework
    out of the top-level import:
    - RequestIdMiddleware, HttpLoggingMiddleware: import from servicelog.middleware
"""

from servicelog.config import ElasticsearchOptions, LoggerOptions, SanitizeOptions
from servicelog.constants import MASK_VALUE, REQUEST_ID_HEADER
from servicelog.context import (
    begin_scope,
    correlation_scope,
    generate_correlation_id,
    get_correlation_id,
    run_with_scope,
)
from servicelog.exceptions import ConfigurationError, ServiceLogError, SinkWriteError
from servicelog.levels import LogLevel
from servicelog.logger import LoggingPipeline, PipelineLogger, create_logger
from servicelog.records import LogRecord
from servicelog.sanitizer import redact
from servicelog.sinks import ConsoleSink, ElasticsearchSink, Sink

__all__ = [
    # Config
    "ElasticsearchOptions",
    "LoggerOptions",
    "SanitizeOptions",
    # Constants
    "MASK_VALUE",
    "REQUEST_ID_HEADER",
    # Context
    "begin_scope",
    "correlation_scope",
    "generate_correlation_id",
    "get_correlation_id",
    "run_with_scope",
    # Errors
    "ConfigurationError",
    "ServiceLogError",
    "SinkWriteError",
    # Pipeline
    "LogLevel",
    "LogRecord",
    "LoggingPipeline",
    "PipelineLogger",
    "create_logger",
    # Sanitizer
    "redact",
    # Sinks
    "ConsoleSink",
    "ElasticsearchSink",
    "Sink",
]
