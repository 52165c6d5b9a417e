"""Log levels, ordered from most verbose to most severe."""

from __future__ import annotations

from enum import Enum


class LogLevel(str, Enum):
    """Severity of a log record.

    Members are declared in ascending severity, so declaration order is the
    ordering used for level filtering.
    """

    SILLY = "silly"
    DEBUG = "debug"
    VERBOSE = "verbose"
    HTTP = "http"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    def admits(self, level: LogLevel | str) -> bool:
        """Return True if ``level`` passes a threshold set at this level."""
        return LogLevel.coerce(level).severity >= self.severity

    @classmethod
    def coerce(cls, value: LogLevel | str) -> LogLevel:
        """Parse a level name, accepting common aliases.

        Args:
            value: A LogLevel or a (case-insensitive) level name.

        Returns:
            The matching LogLevel.

        Raises:
            ValueError: If the name is not a known level or alias.
        """
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        return cls(_ALIASES.get(name, name))


_SEVERITY = {level: rank for rank, level in enumerate(LogLevel)}

_ALIASES = {
    "trace": LogLevel.SILLY.value,
    "warning": LogLevel.WARN.value,
    "critical": LogLevel.ERROR.value,
    "fatal": LogLevel.ERROR.value,
    "exception": LogLevel.ERROR.value,
}

# Dropped before any other stage when running in production
SUPPRESSED_IN_PRODUCTION = frozenset({
    LogLevel.SILLY,
    LogLevel.DEBUG,
    LogLevel.VERBOSE,
})
