"""Constants for the logging pipeline."""

# HTTP header carrying the request correlation ID back to the client
REQUEST_ID_HEADER = "X-Request-ID"

# Environment tag that enables production-only suppression
PRODUCTION_ENVIRONMENT = "prod"

# Fields that are always redacted once sanitization is enabled
BASE_SENSITIVE_FIELDS = frozenset({
    "password",
    "token",
    "accessToken",
    "refreshToken",
})

# Redaction placeholder
MASK_VALUE = "****"

# Placeholder for a container that refers back to one of its ancestors
CIRCULAR_VALUE = "[Circular]"

# Remote index naming: <service>-logs
INDEX_SUFFIX = "-logs"

# Event dict keys owned by the pipeline (everything else is caller context)
EVENT_KEY = "event"
ARGS_KEY = "positional_args"
SERVICE_KEY = "service"
ENVIRONMENT_KEY = "environment"
TIMESTAMP_KEY = "timestamp"
CORRELATION_ID_KEY = "correlation_id"
STACK_KEY = "stack"
DEGRADED_KEY = "degraded"
RECORD_KEY = "record"

RESERVED_KEYS = frozenset({
    EVENT_KEY,
    ARGS_KEY,
    SERVICE_KEY,
    ENVIRONMENT_KEY,
    TIMESTAMP_KEY,
    CORRELATION_ID_KEY,
    STACK_KEY,
    DEGRADED_KEY,
    "exc_info",
    "exception",
})


class Stages:
    """Names of the transform stages, as reported in ``degraded``."""

    SUPPRESSION = "suppression"
    REDACTION = "redaction"
    CORRELATION = "correlation"
    TIMESTAMP = "timestamp"
    INTERPOLATION = "interpolation"
    ERRORS = "errors"
    SERIALIZATION = "serialization"
