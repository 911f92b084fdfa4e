"""Per-webhook event filters.

A filter spec maps dot-separated field paths to conditions:

    {
        "data.severity": {"$gte": 5},
        "data.campus": {"$in": ["north", "south"]},
        "metadata.source": "student-pass-system",
    }

Specs are parsed once, when a webhook is registered, into a ``FilterSet`` of
typed operator variants. Malformed specs raise ``InvalidConfigurationError``
at that point instead of failing silently during delivery.

Semantics:
- All entries must pass (logical AND); evaluation stops at the first failure.
- A literal condition is an equality test.
- An operator object may hold several operators; all of them must pass.
- A path that does not resolve compares as ``None`` for equality and
  membership operators, and fails ordered comparisons and ``$regex``.
- Paths start at one of the event's top-level keys: ``id``, ``type``,
  ``data``, ``metadata`` and ``created_at``. ``created`` is accepted as the
  same timestamp, matching the field name in the delivered payload.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .exceptions import InvalidConfigurationError
from .paths import MISSING, resolve_path

_REGEX_FLAGS: dict[str, re.RegexFlag] = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}
# Accepted for compatibility with JavaScript-style option strings; no effect.
_IGNORED_REGEX_OPTIONS = frozenset("gu")


def _strict_equals(left: Any, right: Any) -> bool:
    """Equality that does not treat booleans as integers."""
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return bool(left == right)


def _absent_as_none(value: Any) -> Any:
    return None if value is MISSING else value


@dataclass(frozen=True)
class Eq:
    operand: Any

    def test(self, value: Any) -> bool:
        return _strict_equals(_absent_as_none(value), self.operand)


@dataclass(frozen=True)
class Ne:
    operand: Any

    def test(self, value: Any) -> bool:
        return not _strict_equals(_absent_as_none(value), self.operand)


@dataclass(frozen=True)
class In:
    operand: tuple[Any, ...]

    def test(self, value: Any) -> bool:
        value = _absent_as_none(value)
        return any(_strict_equals(value, candidate) for candidate in self.operand)


@dataclass(frozen=True)
class NotIn:
    operand: tuple[Any, ...]

    def test(self, value: Any) -> bool:
        value = _absent_as_none(value)
        return not any(_strict_equals(value, candidate) for candidate in self.operand)


@dataclass(frozen=True)
class _Ordered:
    operand: Any

    def _compare(self, value: Any) -> bool:
        raise NotImplementedError

    def test(self, value: Any) -> bool:
        if value is MISSING or value is None:
            return False
        try:
            return self._compare(value)
        except TypeError:
            # Incomparable types never match
            return False


@dataclass(frozen=True)
class Gt(_Ordered):
    def _compare(self, value: Any) -> bool:
        return bool(value > self.operand)


@dataclass(frozen=True)
class Gte(_Ordered):
    def _compare(self, value: Any) -> bool:
        return bool(value >= self.operand)


@dataclass(frozen=True)
class Lt(_Ordered):
    def _compare(self, value: Any) -> bool:
        return bool(value < self.operand)


@dataclass(frozen=True)
class Lte(_Ordered):
    def _compare(self, value: Any) -> bool:
        return bool(value <= self.operand)


@dataclass(frozen=True)
class Regex:
    pattern: re.Pattern[str]

    def test(self, value: Any) -> bool:
        if value is MISSING or value is None:
            return False
        return self.pattern.search(str(value)) is not None


Condition = Eq | Ne | In | NotIn | Gt | Gte | Lt | Lte | Regex

_SCALAR_OPERATORS: dict[str, type[Eq | Ne | Gt | Gte | Lt | Lte]] = {
    "$eq": Eq,
    "$ne": Ne,
    "$gt": Gt,
    "$gte": Gte,
    "$lt": Lt,
    "$lte": Lte,
}
_MEMBERSHIP_OPERATORS: dict[str, type[In | NotIn]] = {
    "$in": In,
    "$nin": NotIn,
}


@dataclass(frozen=True)
class FieldFilter:
    """All conditions attached to one field path."""

    path: str
    conditions: tuple[Condition, ...]

    def matches(self, target: Any) -> bool:
        value = resolve_path(target, self.path)
        return all(condition.test(value) for condition in self.conditions)


@dataclass(frozen=True)
class FilterSet:
    """Compiled filter spec for one webhook."""

    fields: tuple[FieldFilter, ...] = field(default_factory=tuple)

    def __bool__(self) -> bool:
        return bool(self.fields)

    def matches(self, event: Any) -> bool:
        """Return True if the event passes every field filter."""
        if not self.fields:
            return True
        target = event_view(event)
        return all(field_filter.matches(target) for field_filter in self.fields)


def event_view(event: Any) -> Mapping[str, Any]:
    """Expose an event's top-level fields as a mapping for path lookup."""
    if isinstance(event, Mapping):
        return event
    return {
        "id": event.id,
        "type": event.type,
        "data": event.data,
        "metadata": event.metadata,
        "created_at": event.created_at,
        "created": event.created_at,
    }


def _compile_regex(path: str, pattern: Any, options: Any) -> Regex:
    field_name = f"filters.{path}"
    if not isinstance(pattern, str):
        raise InvalidConfigurationError(field_name, "$regex must be a string")
    if options is None:
        options = ""
    if not isinstance(options, str):
        raise InvalidConfigurationError(field_name, "$options must be a string")

    flags = 0
    for letter in options:
        if letter in _REGEX_FLAGS:
            flags |= _REGEX_FLAGS[letter]
        elif letter not in _IGNORED_REGEX_OPTIONS:
            raise InvalidConfigurationError(field_name, f"unsupported regex option {letter!r}")

    try:
        return Regex(re.compile(pattern, flags))
    except re.error as e:
        raise InvalidConfigurationError(field_name, f"invalid regex: {e}") from e


def _compile_condition(path: str, condition: Any) -> tuple[Condition, ...]:
    field_name = f"filters.{path}"

    if not isinstance(condition, Mapping) or not condition:
        return (Eq(condition),)

    operator_keys = [key for key in condition if isinstance(key, str) and key.startswith("$")]
    if not operator_keys:
        # A plain mapping is a literal to compare against
        return (Eq(dict(condition)),)
    if len(operator_keys) != len(condition):
        raise InvalidConfigurationError(
            field_name, "cannot mix operators and plain keys in one condition"
        )

    compiled: list[Condition] = []
    for operator, operand in condition.items():
        if operator in _SCALAR_OPERATORS:
            compiled.append(_SCALAR_OPERATORS[operator](operand))
        elif operator in _MEMBERSHIP_OPERATORS:
            if not isinstance(operand, Sequence | set | frozenset) or isinstance(
                operand, str | bytes
            ):
                raise InvalidConfigurationError(field_name, f"{operator} requires a list")
            compiled.append(_MEMBERSHIP_OPERATORS[operator](tuple(operand)))
        elif operator == "$regex":
            compiled.append(_compile_regex(path, operand, condition.get("$options")))
        elif operator == "$options":
            if "$regex" not in condition:
                raise InvalidConfigurationError(field_name, "$options requires $regex")
        else:
            raise InvalidConfigurationError(field_name, f"unknown operator {operator}")

    return tuple(compiled)


def compile_filters(spec: Mapping[str, Any] | None) -> FilterSet:
    """Parse a filter spec into a ``FilterSet``.

    Args:
        spec: Mapping of field path to condition. ``None`` or empty matches all.

    Returns:
        Compiled filter set.

    Raises:
        InvalidConfigurationError: If the filter spec is malformed.
    """
    if not spec:
        return FilterSet()
    if not isinstance(spec, Mapping):
        raise InvalidConfigurationError("filters", "must be a mapping of field path to condition")

    fields: list[FieldFilter] = []
    for path, condition in spec.items():
        if not isinstance(path, str) or not path or any(not part for part in path.split(".")):
            raise InvalidConfigurationError("filters", f"invalid field path {path!r}")
        fields.append(FieldFilter(path=path, conditions=_compile_condition(path, condition)))
    return FilterSet(fields=tuple(fields))


def matches(event: Any, spec: Mapping[str, Any] | FilterSet | None) -> bool:
    """Evaluate a filter spec against an event.

    Args:
        event: Event model or mapping with ``data``/``metadata`` fields.
        spec: Raw filter spec or an already compiled ``FilterSet``.

    Returns:
        True if the event passes; always True for an empty spec.
    """
    filter_set = spec if isinstance(spec, FilterSet) else compile_filters(spec)
    return filter_set.matches(event)
