"""Sensitive data redaction for log payloads.

Walks arbitrarily nested mappings and sequences and returns a copy in which
every value stored under a sensitive key is replaced by ``MASK_VALUE``.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from servicelog.constants import BASE_SENSITIVE_FIELDS, CIRCULAR_VALUE, MASK_VALUE

_VISIT = 0
_LEAVE = 1


def sensitive_fields(extra_fields: Iterable[str] = ()) -> frozenset[str]:
    """Build the rule set: the base sensitive names plus ``extra_fields``."""
    if isinstance(extra_fields, str):
        extra_fields = (extra_fields,)
    return BASE_SENSITIVE_FIELDS.union(extra_fields)


def redact(data: Any, extra_fields: Iterable[str] = ()) -> Any:
    """Return a redacted deep copy of ``data``.

    Key matching is exact and case-sensitive. Mappings come back as dicts,
    lists and tuples keep their type, sets are shallow-copied and any other
    value is returned as-is. A container that appears inside itself is
    replaced by ``CIRCULAR_VALUE`` instead of being followed.

    The walk uses an explicit stack, so nesting depth is not bounded by the
    interpreter's recursion limit.

    Args:
        data: The value to redact.
        extra_fields: Field names to mask in addition to the base set.

    Returns:
        A structure with the same shape as ``data`` that shares no container
        with it.
    """
    return _redact(data, sensitive_fields(extra_fields))


def _redact(data: Any, sensitive: frozenset[str]) -> Any:
    root: list[Any] = [None]
    on_path: set[int] = set()
    stack: list[tuple[int, Any, Any, Any]] = [(_VISIT, data, root, 0)]

    while stack:
        action, value, parent, slot = stack.pop()

        if action == _LEAVE:
            on_path.discard(id(value))
            if isinstance(value, tuple):
                parent[slot] = tuple(parent[slot])
            continue

        if isinstance(value, (set, frozenset)):
            parent[slot] = type(value)(value)
            continue

        if not isinstance(value, (Mapping, list, tuple)):
            parent[slot] = value
            continue

        if id(value) in on_path:
            parent[slot] = CIRCULAR_VALUE
            continue

        on_path.add(id(value))
        stack.append((_LEAVE, value, parent, slot))

        if isinstance(value, Mapping):
            copy: Any = {}
            for key, item in value.items():
                if key in sensitive:
                    copy[key] = MASK_VALUE
                else:
                    # Placeholder keeps the original key order
                    copy[key] = None
                    stack.append((_VISIT, item, copy, key))
        else:
            copy = [None] * len(value)
            for index, item in enumerate(value):
                stack.append((_VISIT, item, copy, index))

        parent[slot] = copy

    return root[0]
