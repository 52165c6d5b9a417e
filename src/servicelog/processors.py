"""Transform stages applied to every log call.

Each stage is a structlog processor. A stage drops a record by raising
``structlog.DropEvent``; any other exception is contained by
:func:`guarded`, which skips the stage for that call and marks the record
as degraded. The stage order is fixed by :func:`build_processors`:

    suppression -> redaction -> enrichment -> serialization
"""

from __future__ import annotations

import re
import sys
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import structlog
from structlog.typing import EventDict, Processor, WrappedLogger

from servicelog.constants import (
    ARGS_KEY,
    CORRELATION_ID_KEY,
    DEGRADED_KEY,
    EVENT_KEY,
    PRODUCTION_ENVIRONMENT,
    RECORD_KEY,
    RESERVED_KEYS,
    STACK_KEY,
    TIMESTAMP_KEY,
    Stages,
)
from servicelog.context import get_correlation_id
from servicelog.levels import SUPPRESSED_IN_PRODUCTION, LogLevel
from servicelog.records import LogRecord
from servicelog.sanitizer import redact


def guarded(stage: Processor, name: str) -> Processor:
    """Wrap a stage so that its failure never reaches the caller.

    The stage receives its own shallow copy of the event dict. If it raises,
    the untouched input is passed on with ``name`` appended to ``degraded``.
    """

    def run(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> Any:
        try:
            return stage(logger, method_name, dict(event_dict))
        except structlog.DropEvent:
            raise
        except Exception:
            degraded = tuple(event_dict.get(DEGRADED_KEY, ()))
            return {**event_dict, DEGRADED_KEY: (*degraded, name)}

    run.__name__ = f"guarded_{name}"
    return run


class SuppressInProduction:
    """Drop verbose records when running in the production environment."""

    def __init__(
        self,
        environment: str,
        suppressed: Iterable[LogLevel] = SUPPRESSED_IN_PRODUCTION,
    ) -> None:
        self.environment = environment
        self.suppressed = frozenset(suppressed)

    def __call__(
        self,
        logger: WrappedLogger,  # noqa: ARG002
        method_name: str,
        event_dict: EventDict,
    ) -> EventDict:
        if self.environment == PRODUCTION_ENVIRONMENT and LogLevel.coerce(method_name) in self.suppressed:
            raise structlog.DropEvent
        return event_dict


class RedactSensitiveFields:
    """Mask sensitive fields in positional payloads and keyword context.

    Every mapping or sequence passed positionally is redacted on its own, so
    the first structured payload is always covered. Keyword context is
    redacted as a single mapping, which also masks sensitive keyword names.
    """

    def __init__(self, extra_fields: Iterable[str] = ()) -> None:
        self.extra_fields = frozenset(extra_fields)

    def __call__(
        self,
        logger: WrappedLogger,  # noqa: ARG002
        method_name: str,  # noqa: ARG002
        event_dict: EventDict,
    ) -> EventDict:
        args = event_dict.get(ARGS_KEY)
        if args:
            event_dict[ARGS_KEY] = tuple(
                redact(arg, self.extra_fields) if isinstance(arg, (Mapping, list, tuple)) else arg
                for arg in args
            )

        context = {k: v for k, v in event_dict.items() if k not in RESERVED_KEYS}
        if context:
            event_dict.update(redact(context, self.extra_fields))
        return event_dict


def add_correlation_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Add the correlation ID of the current scope, if one is bound."""
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict[CORRELATION_ID_KEY] = correlation_id
    return event_dict


_PLACEHOLDER = re.compile(r"%%|%[-#0 +]*\d*(?:\.\d+)?[diouxXeEfFgGcrsa]")


def _placeholder_count(template: str) -> int:
    return sum(1 for match in _PLACEHOLDER.finditer(template) if match.group() != "%%")


def interpolate_message(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """%-format the message with its leading scalar positional args.

    ``log.info("user %s logged in", "alice", {"ip": ip})`` becomes
    ``"user alice logged in"`` with ``({"ip": ip},)`` left as args. Only
    messages with placeholders and at least one leading scalar arg are
    formatted. Exceptions used as values stay in args so they still produce
    a stack. A placeholder/argument mismatch raises, which leaves the message
    as given and marks the record degraded.
    """
    template = event_dict.get(EVENT_KEY)
    args = event_dict.get(ARGS_KEY)
    if not isinstance(template, str) or not args:
        return event_dict

    count = _placeholder_count(template)
    if not count:
        return event_dict

    values: list[Any] = []
    for arg in args:
        if len(values) == count or isinstance(arg, (Mapping, list, tuple)):
            break
        values.append(arg)
    if not values:
        return event_dict

    event_dict[EVENT_KEY] = template % tuple(values)
    rest = args[len(values):]
    event_dict[ARGS_KEY] = tuple(arg for arg in values if isinstance(arg, BaseException)) + tuple(rest)
    return event_dict


def _attached_error(exc_info: Any) -> BaseException | None:
    if isinstance(exc_info, BaseException):
        return exc_info
    if isinstance(exc_info, tuple):
        return exc_info[1] if len(exc_info) == 3 else None
    if exc_info:
        return sys.exc_info()[1]
    return None


def normalize_error(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Turn an attached exception into ``stack`` text.

    The exception may be passed as the message itself, as a positional
    argument, or through ``exc_info``. When the message is empty it falls
    back to the exception text.
    """
    error = _attached_error(event_dict.pop("exc_info", None))

    event = event_dict.get(EVENT_KEY)
    if isinstance(event, BaseException):
        error = error or event
        event_dict[EVENT_KEY] = str(event)

    args = event_dict.get(ARGS_KEY)
    if args and any(isinstance(arg, BaseException) for arg in args):
        error = error or next(arg for arg in args if isinstance(arg, BaseException))
        event_dict[ARGS_KEY] = tuple(arg for arg in args if not isinstance(arg, BaseException))

    if error is None:
        return event_dict

    if not event_dict.get(EVENT_KEY):
        event_dict[EVENT_KEY] = str(error)

    event_dict["exc_info"] = error
    event_dict = structlog.processors.format_exc_info(logger, method_name, event_dict)
    stack = event_dict.pop("exception", None)
    if stack:
        event_dict[STACK_KEY] = stack
    return event_dict


def serialize_record(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,
    event_dict: EventDict,
) -> dict[str, LogRecord]:
    """Final stage: build the LogRecord handed to the sinks."""
    return {RECORD_KEY: LogRecord.from_event_dict(method_name, event_dict)}


def build_processors(
    environment: str,
    sensitive_fields: Iterable[str] | None = None,
    timestamper: Callable[..., EventDict] | None = None,
) -> list[Processor]:
    """Assemble the ordered stage list for one pipeline.

    Args:
        environment: Deployment environment tag.
        sensitive_fields: Extra field names to redact. ``None`` disables the
            redaction stage entirely; an empty iterable redacts the base set.
        timestamper: Override for the timestamp stage.

    Returns:
        The guarded processors, serialization last.
    """
    stages: list[tuple[str, Processor]] = [
        (Stages.SUPPRESSION, SuppressInProduction(environment)),
    ]
    if sensitive_fields is not None:
        stages.append((Stages.REDACTION, RedactSensitiveFields(sensitive_fields)))
    stages += [
        (Stages.CORRELATION, add_correlation_id),
        (Stages.TIMESTAMP, timestamper or structlog.processors.TimeStamper(fmt="iso", utc=True, key=TIMESTAMP_KEY)),
        (Stages.INTERPOLATION, interpolate_message),
        (Stages.ERRORS, normalize_error),
        (Stages.SERIALIZATION, serialize_record),
    ]
    return [guarded(stage, name) for name, stage in stages]
