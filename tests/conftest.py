"""Shared pytest fixtures and configuration."""

import io
import os
from collections.abc import Callable
from typing import Any

import pytest

from servicelog import LoggingPipeline, create_logger


@pytest.fixture(autouse=True)
def clean_servicelog_env(monkeypatch):
    """Keep SERVICELOG_* variables from the host out of option parsing."""
    for name in list(os.environ):
        if name.startswith("SERVICELOG_"):
            monkeypatch.delenv(name)
    yield


@pytest.fixture
def stream() -> io.StringIO:
    """In-memory console stream."""
    return io.StringIO()


@pytest.fixture
def make_pipeline(stream: io.StringIO) -> Callable[..., LoggingPipeline]:
    """Factory for pipelines writing their console output to ``stream``."""

    def factory(**settings: Any) -> LoggingPipeline:
        settings.setdefault("service_name", "billing")
        return create_logger(stream=stream, **settings)

    return factory


@pytest.fixture
def console_lines(stream: io.StringIO) -> Callable[[], list[str]]:
    """Non-empty lines written to the console stream so far."""

    def read() -> list[str]:
        return [line for line in stream.getvalue().splitlines() if line.strip()]

    return read


@pytest.fixture
def es_url() -> str:
    """Base URL of the (mocked) Elasticsearch node."""
    return "http://elasticsearch.test:9200"
