"""Starlette middleware: per-request correlation scope and access logging.

Usage:
    app.add_middleware(HttpLoggingMiddleware, logger=pipeline.logger)
    app.add_middleware(RequestIdMiddleware)  # added last, runs first
"""

import json
import time
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from servicelog.constants import REQUEST_ID_HEADER
from servicelog.context import begin_scope, get_correlation_id
from servicelog.levels import LogLevel
from servicelog.logger import PipelineLogger


def http_level_for_status(status_code: int) -> LogLevel:
    """Level of an access record: errors for 4xx/5xx, http for redirects."""
    if status_code >= 400:
        return LogLevel.ERROR
    if status_code >= 300:
        return LogLevel.HTTP
    return LogLevel.INFO


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Open a fresh correlation scope for every request.

    The generated ID is:
    1. Bound for the whole request chain, so every record logged while
       handling it carries the ID
    2. Stored on ``request.state.request_id``
    3. Returned in the X-Request-ID response header
    """

    def __init__(self, app: ASGIApp, header_name: str = REQUEST_ID_HEADER) -> None:
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        async def handle() -> Response:
            request_id = get_correlation_id()
            request.state.request_id = request_id
            response = await call_next(request)
            response.headers[self.header_name] = request_id
            return response

        return await begin_scope(handle)


class HttpLoggingMiddleware(BaseHTTPMiddleware):
    """Log one record per request with method, path, status and timing."""

    def __init__(
        self,
        app: ASGIApp,
        logger: PipelineLogger,
        log_request_body: bool = False,
        exclude_paths: set[str] | None = None,
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application.
            logger: The pipeline logger records are emitted on.
            log_request_body: Whether to attach JSON request bodies.
            exclude_paths: Paths to skip (e.g., health checks).
        """
        super().__init__(app)
        self.logger = logger
        self.log_request_body = log_request_body
        self.exclude_paths = exclude_paths if exclude_paths is not None else {"/health", "/ready"}

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        start_time = time.perf_counter()
        request_context: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
        }
        if request.query_params:
            request_context["query"] = dict(request.query_params)
        if self.log_request_body:
            body = await self._read_json_body(request)
            if body is not None:
                request_context["body"] = body

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = int((time.perf_counter() - start_time) * 1000)
            self.logger.error(
                f"{request.method} {request.url.path} 500 {duration_ms}ms",
                {**request_context, "status_code": 500, "duration_ms": duration_ms},
                exc_info=exc,
            )
            raise

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        self.logger.log(
            http_level_for_status(response.status_code),
            f"{request.method} {request.url.path} {response.status_code} {duration_ms}ms",
            {**request_context, "status_code": response.status_code, "duration_ms": duration_ms},
        )
        return response

    async def _read_json_body(self, request: Request) -> Any:
        if "application/json" not in request.headers.get("content-type", ""):
            return None
        raw = await request.body()
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None
