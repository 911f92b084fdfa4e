"""Dot-path lookup into nested event structures."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Final


class _Missing:
    """Marker for a path that does not resolve to a value."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Final = _Missing()


def resolve_path(obj: Any, path: str) -> Any:
    """Resolve a dot-separated path against nested mappings and sequences.

    Numeric segments index into lists and tuples. Any segment that cannot be
    followed yields ``MISSING``; an explicit ``None`` stored at the path is
    returned as ``None``.

    Examples:
        >>> resolve_path({"data": {"severity": 7}}, "data.severity")
        7
        >>> resolve_path({"data": {}}, "data.severity")
        MISSING
    """
    current = obj
    for segment in path.split("."):
        if isinstance(current, Mapping):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, Sequence) and not isinstance(current, str | bytes):
            try:
                current = current[int(segment)]
            except (ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return current
