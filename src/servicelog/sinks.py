"""Output sinks: local console and remote search index.

Every sink has its own minimum level and its own projection of a
:class:`~servicelog.records.LogRecord` into a destination payload.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import sys
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, TextIO

import httpx

from servicelog.config import LoggerOptions
from servicelog.constants import INDEX_SUFFIX
from servicelog.exceptions import SinkWriteError
from servicelog.levels import LogLevel
from servicelog.records import LogRecord, utc_timestamp

ErrorHandler = Callable[[str, BaseException], None]


def index_name(service_name: str) -> str:
    """Remote index namespace for a service."""
    return f"{service_name}{INDEX_SUFFIX}"


class FailureReporter:
    """Writes a one-line notice when logging itself fails.

    Notices bypass the pipeline so that a failing sink cannot recurse into
    itself. Write errors on the notice stream are ignored.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream if stream is not None else sys.stderr

    def __call__(self, source: str, exc: BaseException) -> None:
        notice = f"{utc_timestamp()} [{LogLevel.ERROR.value}] servicelog: {source} failed: {exc!r}\n"
        with contextlib.suppress(Exception):
            self.stream.write(notice)
            self.stream.flush()


class Sink(ABC):
    """A destination with its own level threshold and projection."""

    name = "sink"

    def __init__(self, min_level: LogLevel = LogLevel.SILLY) -> None:
        self.min_level = min_level

    def accepts(self, level: LogLevel | str) -> bool:
        return self.min_level.admits(level)

    @abstractmethod
    def project(self, record: LogRecord) -> Any:
        """Render ``record`` into this sink's payload."""

    @abstractmethod
    def write(self, record: LogRecord) -> None:
        """Deliver ``record``. Raises on failure; the dispatcher reports it."""

    async def flush(self) -> None:  # noqa: B027
        """Wait for writes still in flight. Most sinks write synchronously."""

    def close(self) -> None:  # noqa: B027
        """Release resources held by the sink."""

    async def aclose(self) -> None:
        """Flush, then release resources."""
        await self.flush()
        self.close()


class ConsoleSink(Sink):
    """Human-oriented lines on a text stream (stdout by default)."""

    name = "console"

    def __init__(self, min_level: LogLevel = LogLevel.SILLY, stream: TextIO | None = None) -> None:
        super().__init__(min_level)
        self.stream = stream if stream is not None else sys.stdout

    def project(self, record: LogRecord) -> str:
        parts = [record.timestamp, f"[{record.level.value}]", f"{record.service}:"]
        if record.correlation_id:
            parts.append(f"reqId={record.correlation_id}")
        parts.append(record.message)
        if record.degraded:
            parts.append(f"degraded={','.join(record.degraded)}")
        line = " ".join(parts)

        if record.stack:
            line += f"\n{record.stack}"

        payload = record.auxiliary
        if payload is not None:
            line += f" {json.dumps(payload, indent=2, default=str)}"
        return line

    def write(self, record: LogRecord) -> None:
        self.stream.write(self.project(record) + "\n")
        self.stream.flush()


_JSON_HEADERS = {"Content-Type": "application/json"}


class ElasticsearchSink(Sink):
    """Indexes records as JSON documents under ``<service>-logs``.

    Inside a running event loop each write is a background task so the
    caller never waits on the network; failures of those tasks go to
    ``on_error``. Outside an event loop the request is made synchronously
    and failures are raised to the dispatcher.

    Connections are pooled: one blocking client and one async client are
    created on first use and kept until :meth:`close` / :meth:`aclose`.
    """

    name = "elasticsearch"

    def __init__(
        self,
        url: str,
        service_name: str,
        min_level: LogLevel = LogLevel.SILLY,
        timeout: float = 5.0,
        on_error: ErrorHandler | None = None,
    ) -> None:
        super().__init__(min_level)
        self.url = url.rstrip("/")
        self.service_name = service_name
        self.index = index_name(service_name)
        self.document_url = f"{self.url}/{self.index}/_doc"
        self.timeout = httpx.Timeout(timeout)
        self.on_error = on_error or FailureReporter()
        self._pending: set[asyncio.Task[None]] = set()
        self._client: httpx.Client | None = None
        self._async_client: httpx.AsyncClient | None = None
        self._async_loop: asyncio.AbstractEventLoop | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create the blocking HTTP client (lazy initialization)."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, headers=_JSON_HEADERS)
        return self._client

    @property
    def async_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client for the running event loop."""
        loop = asyncio.get_running_loop()
        # A pool opened on another loop cannot be reused here
        if self._async_client is None or self._async_loop is not loop:
            self._async_client = httpx.AsyncClient(timeout=self.timeout, headers=_JSON_HEADERS)
            self._async_loop = loop
        return self._async_client

    def project(self, record: LogRecord) -> dict[str, Any]:
        document: dict[str, Any] = {
            "timestamp": record.timestamp,
            "level": record.level.value,
            "message": record.message,
            "stack": record.stack,
            "meta": record.auxiliary,
            "service": record.service or self.service_name,
        }
        if record.correlation_id:
            document["correlation_id"] = record.correlation_id
        if record.degraded:
            document["degraded"] = list(record.degraded)
        return document

    def write(self, record: LogRecord) -> None:
        body = json.dumps(self.project(record), default=str)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._send_sync(body)
            return

        task = loop.create_task(self._send(body))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def close(self) -> None:
        """Close the blocking HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    async def aclose(self) -> None:
        """Wait for pending writes, then close both HTTP clients."""
        await self.flush()
        if self._async_client is not None:
            await self._async_client.aclose()
            self._async_client = None
            self._async_loop = None
        self.close()

    def _send_sync(self, body: str) -> None:
        response = self.client.post(self.document_url, content=body)
        self._check(response)

    async def _send(self, body: str) -> None:
        """Send one document. Failures are reported, never raised."""
        try:
            response = await self.async_client.post(self.document_url, content=body)
            self._check(response)
        except Exception as exc:
            self.on_error(self.name, exc)

    def _check(self, response: httpx.Response) -> None:
        if not response.is_success:
            raise SinkWriteError(self.name, f"{self.document_url} returned {response.status_code}")


def build_sinks(
    options: LoggerOptions,
    reporter: ErrorHandler,
    stream: TextIO | None = None,
) -> list[Sink]:
    """Create the sinks enabled by ``options``.

    Args:
        options: The pipeline options.
        reporter: Receives failures of background writes.
        stream: Console stream override (defaults to stdout).

    Returns:
        The sinks in dispatch order: console first, then remote.
    """
    sinks: list[Sink] = []

    if options.enable_console:
        sinks.append(ConsoleSink(options.console_min_level, stream=stream))

    if options.elasticsearch is not None:
        sinks.append(
            ElasticsearchSink(
                url=str(options.elasticsearch.url),
                service_name=options.service_name,
                min_level=options.elasticsearch_min_level,
                timeout=options.elasticsearch.timeout,
                on_error=reporter,
            )
        )

    return sinks
