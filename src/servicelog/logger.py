"""Pipeline assembly: stages, sinks and the logging call surface.

Usage:
    from servicelog import create_logger

    pipeline = create_logger(
        service_name="billing",
        sanitize={"sensitive_fields": ["ssn"]},
        elasticsearch={"url": "http://elasticsearch:9200", "min_level": "error"},
    )
    log = pipeline.logger

    async def handle(request):
        log.info("charged user", {"ssn": "123-45-6789", "amount": 42})

    await pipeline.begin_scope(handle, request)
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from functools import partialmethod
from typing import Any, TextIO

import structlog
from pydantic import ValidationError
from structlog.typing import Processor

from servicelog.config import LoggerOptions
from servicelog.constants import ENVIRONMENT_KEY, RECORD_KEY, SERVICE_KEY
from servicelog.context import begin_scope, correlation_scope, generate_correlation_id
from servicelog.exceptions import ConfigurationError
from servicelog.levels import LogLevel
from servicelog.processors import build_processors
from servicelog.records import LogRecord
from servicelog.sinks import ErrorHandler, FailureReporter, Sink, build_sinks


class FanOutLogger:
    """The wrapped logger: hands each serialized record to every sink.

    Sinks are tried independently. A sink that rejects the record's level is
    skipped; a sink that fails is reported and the remaining sinks still
    receive the record.
    """

    def __init__(self, sinks: Sequence[Sink], min_level: LogLevel, reporter: ErrorHandler) -> None:
        self.sinks = tuple(sinks)
        self.min_level = min_level
        self.reporter = reporter

    def admits(self, level: LogLevel) -> bool:
        return self.min_level.admits(level)

    def dispatch(self, _level: LogLevel, /, **event_dict: Any) -> None:
        record = event_dict.pop(RECORD_KEY, None)
        if not isinstance(record, LogRecord):
            record = LogRecord.salvage(_level, event_dict)

        for sink in self.sinks:
            if not sink.accepts(record.level):
                continue
            try:
                sink.write(record)
            except Exception as exc:
                self.reporter(sink.name, exc)

    silly = partialmethod(dispatch, LogLevel.SILLY)
    debug = partialmethod(dispatch, LogLevel.DEBUG)
    verbose = partialmethod(dispatch, LogLevel.VERBOSE)
    http = partialmethod(dispatch, LogLevel.HTTP)
    info = partialmethod(dispatch, LogLevel.INFO)
    warn = partialmethod(dispatch, LogLevel.WARN)
    error = partialmethod(dispatch, LogLevel.ERROR)


class PipelineLogger(structlog.BoundLoggerBase):
    """Bound logger exposing one method per level.

    Positional arguments after the message are kept as the record's ``args``;
    keyword arguments become its ``meta``. No method ever raises.
    """

    _logger: FanOutLogger

    def _log(self, level: LogLevel | str, event: Any, args: tuple[Any, ...], kw: dict[str, Any]) -> None:
        try:
            level = LogLevel.coerce(level)
            if not self._logger.admits(level):
                return None
            if args:
                kw["positional_args"] = args
            return self._proxy_to_logger(level.value, event, **kw)
        except Exception as exc:
            self._logger.reporter("emit", exc)
            return None

    def log(self, level: LogLevel | str, event: Any = None, /, *args: Any, **kw: Any) -> None:
        return self._log(level, event, args, kw)

    def silly(self, event: Any = None, *args: Any, **kw: Any) -> None:
        return self._log(LogLevel.SILLY, event, args, kw)

    def debug(self, event: Any = None, *args: Any, **kw: Any) -> None:
        return self._log(LogLevel.DEBUG, event, args, kw)

    def verbose(self, event: Any = None, *args: Any, **kw: Any) -> None:
        return self._log(LogLevel.VERBOSE, event, args, kw)

    def http(self, event: Any = None, *args: Any, **kw: Any) -> None:
        return self._log(LogLevel.HTTP, event, args, kw)

    def info(self, event: Any = None, *args: Any, **kw: Any) -> None:
        return self._log(LogLevel.INFO, event, args, kw)

    def warn(self, event: Any = None, *args: Any, **kw: Any) -> None:
        return self._log(LogLevel.WARN, event, args, kw)

    def error(self, event: Any = None, *args: Any, **kw: Any) -> None:
        return self._log(LogLevel.ERROR, event, args, kw)

    def exception(self, event: Any = None, *args: Any, **kw: Any) -> None:
        """Log at error level with the exception being handled attached."""
        kw.setdefault("exc_info", True)
        return self._log(LogLevel.ERROR, event, args, kw)

    trace = silly
    warning = warn


class LoggingPipeline:
    """One assembled pipeline: the logger, its sinks and the scope hook."""

    def __init__(
        self,
        options: LoggerOptions,
        logger: PipelineLogger,
        sinks: Sequence[Sink],
        processors: Sequence[Processor],
    ) -> None:
        self.options = options
        self.logger = logger
        self.sinks = tuple(sinks)
        self.processors = tuple(processors)

    @property
    def service_name(self) -> str:
        return self.options.service_name

    def emit(self, level: LogLevel | str, message: Any, /, *args: Any, **meta: Any) -> None:
        """Log ``message`` at ``level``; see :class:`PipelineLogger`."""
        self.logger.log(level, message, *args, **meta)

    def begin_scope(self, work: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run one unit of work under a freshly generated correlation ID."""
        return begin_scope(work, *args, **kwargs)

    @contextmanager
    def scope(self, correlation_id: str | None = None) -> Iterator[str]:
        """Context manager form of :meth:`begin_scope`; yields the ID."""
        with correlation_scope(correlation_id or generate_correlation_id()) as bound:
            yield bound

    def get_logger(self, **initial_values: Any) -> PipelineLogger:
        """Logger with extra context bound to every record."""
        return self.logger.bind(**initial_values)

    async def flush(self) -> None:
        """Wait for background sink writes to finish."""
        for sink in self.sinks:
            await sink.flush()

    def close(self) -> None:
        """Release sink resources. Background writes still pending are not awaited."""
        for sink in self.sinks:
            sink.close()

    async def aclose(self) -> None:
        """Flush pending writes, then release sink resources."""
        for sink in self.sinks:
            await sink.aclose()


def create_logger(
    options: LoggerOptions | None = None,
    /,
    *,
    stream: TextIO | None = None,
    **settings: Any,
) -> LoggingPipeline:
    """Assemble a logging pipeline.

    Args:
        options: Complete options. When omitted, ``settings`` are used to
            build them (unset fields fall back to ``SERVICELOG_*`` variables).
        stream: Console stream override (defaults to stdout).
        **settings: Fields of :class:`LoggerOptions`.

    Returns:
        The assembled pipeline.

    Raises:
        ConfigurationError: If the options are missing or invalid.
    """
    if options is None:
        try:
            options = LoggerOptions(**settings)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid logger options: {exc}") from exc
    elif settings:
        raise ConfigurationError("Pass either a LoggerOptions instance or keyword settings, not both")

    reporter = FailureReporter((stream or sys.stdout) if options.enable_console else None)
    sinks = build_sinks(options, reporter, stream=stream)
    processors = build_processors(
        environment=options.env,
        sensitive_fields=None if options.sanitize is None else options.sanitize.sensitive_fields,
    )

    logger = PipelineLogger(
        FanOutLogger(sinks, options.min_level, reporter),
        processors,
        {SERVICE_KEY: options.service_name, ENVIRONMENT_KEY: options.env},
    )
    return LoggingPipeline(options, logger, sinks, processors)
