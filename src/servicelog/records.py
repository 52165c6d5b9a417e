"""The canonical record handed to every sink."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from servicelog.constants import (
    ARGS_KEY,
    CORRELATION_ID_KEY,
    DEGRADED_KEY,
    ENVIRONMENT_KEY,
    EVENT_KEY,
    RESERVED_KEYS,
    SERVICE_KEY,
    STACK_KEY,
    TIMESTAMP_KEY,
    Stages,
)
from servicelog.levels import LogLevel


def utc_timestamp() -> str:
    """Current instant as ISO-8601 text in UTC, ``Z`` suffixed."""
    return datetime.now(tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _message_text(event: Any) -> str:
    if event is None:
        return ""
    return event if isinstance(event, str) else str(event)


@dataclass(frozen=True)
class LogRecord:
    """One log call after the transform stages have run."""

    level: LogLevel
    message: str
    timestamp: str
    service: str
    environment: str
    args: tuple[Any, ...] = ()
    meta: Mapping[str, Any] = field(default_factory=dict)
    correlation_id: str | None = None
    stack: str | None = None
    degraded: tuple[str, ...] = ()

    @property
    def auxiliary(self) -> Any | None:
        """The structured payload sinks render: first arg, else the meta."""
        if self.args:
            return self.args[0]
        if self.meta:
            return dict(self.meta)
        return None

    @classmethod
    def from_event_dict(cls, level: LogLevel | str, event_dict: Mapping[str, Any]) -> LogRecord:
        """Build a record from a processed structlog event dict."""
        return cls(
            level=LogLevel.coerce(level),
            message=_message_text(event_dict.get(EVENT_KEY)),
            timestamp=event_dict.get(TIMESTAMP_KEY) or utc_timestamp(),
            service=event_dict.get(SERVICE_KEY, ""),
            environment=event_dict.get(ENVIRONMENT_KEY, ""),
            args=tuple(event_dict.get(ARGS_KEY, ())),
            meta={k: v for k, v in event_dict.items() if k not in RESERVED_KEYS},
            correlation_id=event_dict.get(CORRELATION_ID_KEY),
            stack=event_dict.get(STACK_KEY),
            degraded=tuple(event_dict.get(DEGRADED_KEY, ())),
        )

    @classmethod
    def salvage(cls, level: LogLevel | str, event_dict: Mapping[str, Any]) -> LogRecord:
        """Build a best-effort record when serialization did not complete.

        Only text fields are kept; positional args and caller context are
        dropped because they could not be serialized.
        """
        degraded = tuple(str(stage) for stage in event_dict.get(DEGRADED_KEY, ()))
        if Stages.SERIALIZATION not in degraded:
            degraded += (Stages.SERIALIZATION,)
        correlation_id = event_dict.get(CORRELATION_ID_KEY)
        stack = event_dict.get(STACK_KEY)
        return cls(
            level=LogLevel.coerce(level),
            message=_message_text(event_dict.get(EVENT_KEY)),
            timestamp=str(event_dict.get(TIMESTAMP_KEY) or utc_timestamp()),
            service=str(event_dict.get(SERVICE_KEY, "")),
            environment=str(event_dict.get(ENVIRONMENT_KEY, "")),
            correlation_id=None if correlation_id is None else str(correlation_id),
            stack=None if stack is None else str(stack),
            degraded=degraded,
        )
