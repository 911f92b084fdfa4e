"""Per-webhook payload transformations.

A transformation spec reshapes ``event.data`` before delivery:

    {
        "student": "student.id",
        "name": {"source": "student.name", "format": "uppercase"},
        "gate": {"source": "location.gate", "default": "main"},
    }

Bare strings are source paths inside ``event.data``. Mapping specs take a
``source`` path, an optional ``format`` and an optional ``default`` used when
the source resolves to nothing. An empty spec delivers ``event.data`` as is.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from .exceptions import InvalidConfigurationError
from .paths import MISSING, resolve_path

_ALLOWED_KEYS = frozenset({"source", "format", "default"})


def _uppercase(value: Any) -> Any:
    return value.upper() if isinstance(value, str) else value


def _lowercase(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


def _iso_date(value: Any) -> Any:
    return value.isoformat() if isinstance(value, date) else value


def _unix_timestamp(value: Any) -> Any:
    if isinstance(value, datetime):
        return int(value.timestamp())
    return value


FORMATTERS: dict[str, Callable[[Any], Any]] = {
    "uppercase": _uppercase,
    "lowercase": _lowercase,
    "iso-date": _iso_date,
    "unix-timestamp": _unix_timestamp,
}


def format_value(value: Any, format_name: str | None) -> Any:
    """Apply a named format. Unknown names and non-matching types pass through."""
    if value is MISSING or format_name is None:
        return value
    formatter = FORMATTERS.get(format_name)
    return formatter(value) if formatter else value


@dataclass(frozen=True)
class FieldMapping:
    """How one output key is produced."""

    source: str | None
    format: str | None = None
    default: Any = MISSING

    def apply(self, data: Any) -> Any:
        value = resolve_path(data, self.source) if self.source else MISSING
        value = format_value(value, self.format)
        if value is MISSING and self.default is not MISSING:
            return self.default
        return value


@dataclass(frozen=True)
class Transformation:
    """Compiled transformation spec for one webhook."""

    mappings: tuple[tuple[str, FieldMapping], ...] = field(default_factory=tuple)

    def __bool__(self) -> bool:
        return bool(self.mappings)

    def apply(self, event: Any) -> Any:
        """Reshape ``event.data``; keys whose value resolves to nothing are omitted."""
        data = event["data"] if isinstance(event, Mapping) else event.data
        if not self.mappings:
            return data

        transformed: dict[str, Any] = {}
        for output_key, mapping in self.mappings:
            value = mapping.apply(data)
            if value is not MISSING:
                transformed[output_key] = value
        return transformed


def _compile_mapping(output_key: str, spec: Any) -> FieldMapping:
    field_name = f"transformations.{output_key}"

    if isinstance(spec, str):
        if not spec:
            raise InvalidConfigurationError(field_name, "source path must not be empty")
        return FieldMapping(source=spec)

    if not isinstance(spec, Mapping):
        raise InvalidConfigurationError(field_name, "must be a source path or a mapping")

    unknown = set(spec) - _ALLOWED_KEYS
    if unknown:
        raise InvalidConfigurationError(field_name, f"unknown keys: {sorted(unknown)}")

    source = spec.get("source")
    if source is not None and (not isinstance(source, str) or not source):
        raise InvalidConfigurationError(field_name, "source must be a non-empty string")
    format_name = spec.get("format")
    if format_name is not None and not isinstance(format_name, str):
        raise InvalidConfigurationError(field_name, "format must be a string")

    return FieldMapping(
        source=source,
        format=format_name,
        default=spec["default"] if "default" in spec else MISSING,
    )


def compile_transformations(spec: Mapping[str, Any] | None) -> Transformation:
    """Parse a transformation spec into a ``Transformation``.

    Raises:
        InvalidConfigurationError: If the transformation spec is malformed.
    """
    if not spec:
        return Transformation()
    if not isinstance(spec, Mapping):
        raise InvalidConfigurationError("transformations", "must be a mapping")
    return Transformation(
        mappings=tuple((str(key), _compile_mapping(str(key), value)) for key, value in spec.items())
    )


def transform(event: Any, spec: Mapping[str, Any] | Transformation | None) -> Any:
    """Build the data delivered for an event.

    Args:
        event: Event model or mapping with a ``data`` field.
        spec: Raw transformation spec or a compiled ``Transformation``.

    Returns:
        ``event.data`` itself when the transformation spec is empty, otherwise a new dict.
    """
    transformation = spec if isinstance(spec, Transformation) else compile_transformations(spec)
    return transformation.apply(event)
