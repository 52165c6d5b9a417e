"""Correlation ID scopes.

A correlation ID is bound to the current logical call chain through a
ContextVar, so it follows the chain across ``await`` points and into tasks
created from it, while concurrent chains keep their own value.

Usage:
    with correlation_scope("req-9"):
        logger.info("charged user")  # record carries correlation_id="req-9"

    await begin_scope(handle_request, request)  # fresh UUID4 for this chain
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, TypeVar
from uuid import uuid4

T = TypeVar("T")

# Context variable for correlation ID - async-safe across concurrent requests
correlation_id_var: ContextVar[str | None] = ContextVar("servicelog_correlation_id", default=None)


def generate_correlation_id() -> str:
    """Generate a new correlation ID (UUID4)."""
    return str(uuid4())


def get_correlation_id() -> str | None:
    """Get the correlation ID bound by the innermost active scope.

    Returns:
        The correlation ID, or None outside of any scope.
    """
    return correlation_id_var.get()


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[str]:
    """Bind ``correlation_id`` for the duration of the ``with`` block.

    The previous binding (if any) is restored on exit, including exit through
    an exception, so scopes nest.

    Args:
        correlation_id: The identifier to bind.

    Yields:
        The bound identifier.
    """
    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


def run_with_scope(correlation_id: str, work: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run ``work(*args, **kwargs)`` with ``correlation_id`` bound.

    If ``work`` returns an awaitable (for example because it is a coroutine
    function), an awaitable is returned that runs it to completion with the
    identifier bound. Await it from the chain that should own the scope.

    Args:
        correlation_id: The identifier to bind.
        work: The callable that handles the unit of work.
        *args: Positional arguments for ``work``.
        **kwargs: Keyword arguments for ``work``.

    Returns:
        Whatever ``work`` returns, or an awaitable of it.
    """
    with correlation_scope(correlation_id):
        result = work(*args, **kwargs)
    if inspect.isawaitable(result):
        return _await_in_scope(correlation_id, result)
    return result


async def _await_in_scope(correlation_id: str, awaitable: Awaitable[T]) -> T:
    with correlation_scope(correlation_id):
        return await awaitable


def begin_scope(work: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run ``work`` in a fresh scope with a newly generated correlation ID.

    This is the per-request entry hook; ``work`` can read the generated ID
    with :func:`get_correlation_id`.
    """
    return run_with_scope(generate_correlation_id(), work, *args, **kwargs)
