"""Mapping policy and parameter serialization.

One dispatch table turns a single value into its wire string, used alike for
query parameters, form parameters and path variables:

    datetime        -> policy datetime formatter, else ISO 8601
    date            -> policy date formatter, else ISO 8601
    bool            -> policy boolean serializer, else "true"/"false"
    Classification  -> preferred sub-item if the policy names one, else code
    Enum            -> its value
    anything else   -> str(value)

Parameter objects expose their fields through form_fields(), which reads
pydantic models, dataclasses, mappings, or a to_form_fields() method.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Iterable, Protocol, runtime_checkable

from pydantic import BaseModel


DateFormatter = Callable[[date], str]
DateTimeFormatter = Callable[[datetime], str]
DateParser = Callable[[str], date]
DateTimeParser = Callable[[str], datetime]


@runtime_checkable
class Classification(Protocol):
    """A code value with optional sub-items, e.g. a generated status enum.

    Example:
        class MemberStatus(Enum):
            FORMALIZED = ("FML", {"flg": "1"})

            def code(self) -> str:
                return self.value[0]

            def sub_item_map(self) -> dict[str, Any]:
                return self.value[1]
    """

    def code(self) -> str: ...

    def sub_item_map(self) -> Mapping[str, Any]: ...


@runtime_checkable
class FormFieldsProvider(Protocol):
    """Explicit field contract for parameter objects that are not models."""

    def to_form_fields(self) -> Iterable[tuple[str, Any]]: ...


def boolean_to_string(value: bool | None) -> str | None:
    if value is None:
        return None
    return "true" if value else "false"


def boolean_value_of(exp: Any) -> bool | None:
    """Read a boolean from any expression: only "true" (any case) is True."""
    if exp is None:
        return None
    if isinstance(exp, bool):
        return exp
    return str(exp).lower() == "true"


# =============================================================================
# Mapping Policy
# =============================================================================


class RemoteMappingPolicy:
    """Wire representation of dates, booleans and classifications.

    Shared by reference between senders and receivers; implementations must
    not change state once in use. Every hook returns None for "use default".
    """

    def date_formatter(self) -> DateFormatter | None:
        return None

    def datetime_formatter(self) -> DateTimeFormatter | None:
        return None

    def date_parser(self) -> DateParser | None:
        return None

    def datetime_parser(self) -> DateTimeParser | None:
        return None

    def serialize_boolean(self, value: bool | None) -> str | None:
        return boolean_to_string(value)

    def deserialize_boolean(self, exp: Any) -> bool | None:
        return boolean_value_of(exp)

    def boolean_deserializer(self) -> Callable[[Any], bool | None] | None:
        """Custom boolean reading for receivers, None to leave it to the decoder."""
        return None

    def cls_preferred_item(self) -> str | None:
        return None


class VacantMappingPolicy(RemoteMappingPolicy):
    """Policy with every default: ISO dates, "true"/"false", raw codes."""

    def __repr__(self) -> str:
        return "VacantMappingPolicy()"


class SelectedMappingPolicy(RemoteMappingPolicy):
    """Policy configured by fluent selection.

    A strftime pattern given as a formatter also reads the values back in
    receivers; a callable formatter needs its parser given alongside.

    Usage:
        policy = (
            SelectedMappingPolicy()
            .with_date_formatter("%Y/%m/%d")
            .with_boolean_deserializer(lambda exp: exp in ("1", 1))
            .with_boolean_serializer(lambda b: "1" if b else "0")
            .with_cls_preferred_item("flg")
        )
    """

    def __init__(self) -> None:
        self._date_formatter: DateFormatter | None = None
        self._datetime_formatter: DateTimeFormatter | None = None
        self._date_parser: DateParser | None = None
        self._datetime_parser: DateTimeParser | None = None
        self._boolean_serializer: Callable[[bool | None], str | None] | None = None
        self._boolean_deserializer: Callable[[Any], bool | None] | None = None
        self._cls_preferred_item: str | None = None

    def with_date_formatter(
        self, formatter: DateFormatter | str, parser: DateParser | None = None
    ) -> SelectedMappingPolicy:
        """Set the date formatter, a callable or a strftime pattern."""
        self._date_formatter = _as_formatter(formatter)
        if parser is not None:
            self._date_parser = parser
        elif isinstance(formatter, str):
            pattern = formatter
            self._date_parser = lambda exp: datetime.strptime(exp, pattern).date()
        return self

    def with_datetime_formatter(
        self, formatter: DateTimeFormatter | str, parser: DateTimeParser | None = None
    ) -> SelectedMappingPolicy:
        """Set the date-time formatter, a callable or a strftime pattern."""
        self._datetime_formatter = _as_formatter(formatter)
        if parser is not None:
            self._datetime_parser = parser
        elif isinstance(formatter, str):
            pattern = formatter
            self._datetime_parser = lambda exp: datetime.strptime(exp, pattern)
        return self

    def with_boolean_serializer(
        self, serializer: Callable[[bool | None], str | None]
    ) -> SelectedMappingPolicy:
        self._boolean_serializer = serializer
        return self

    def with_boolean_deserializer(
        self, deserializer: Callable[[Any], bool | None]
    ) -> SelectedMappingPolicy:
        self._boolean_deserializer = deserializer
        return self

    def with_cls_preferred_item(self, item_name: str) -> SelectedMappingPolicy:
        if not item_name:
            raise ValueError("The argument 'item_name' should not be empty.")
        self._cls_preferred_item = item_name
        return self

    def date_formatter(self) -> DateFormatter | None:
        return self._date_formatter

    def datetime_formatter(self) -> DateTimeFormatter | None:
        return self._datetime_formatter

    def date_parser(self) -> DateParser | None:
        return self._date_parser

    def datetime_parser(self) -> DateTimeParser | None:
        return self._datetime_parser

    def serialize_boolean(self, value: bool | None) -> str | None:
        if self._boolean_serializer is not None:
            return self._boolean_serializer(value)
        return boolean_to_string(value)

    def deserialize_boolean(self, exp: Any) -> bool | None:
        if self._boolean_deserializer is not None:
            return self._boolean_deserializer(exp)
        return boolean_value_of(exp)

    def boolean_deserializer(self) -> Callable[[Any], bool | None] | None:
        return self._boolean_deserializer

    def cls_preferred_item(self) -> str | None:
        return self._cls_preferred_item


def _as_formatter(formatter: Callable[[Any], str] | str) -> Callable[[Any], str]:
    if isinstance(formatter, str):
        pattern = formatter
        return lambda value: value.strftime(pattern)
    if not callable(formatter):
        raise TypeError(f"formatter must be callable or a strftime pattern, got {formatter!r}")
    return formatter


# =============================================================================
# Parameter Serializer
# =============================================================================


def is_collection(value: Any) -> bool:
    """True for values that expand into repeated parameters."""
    return isinstance(value, (list, tuple, set, frozenset))


class ParameterSerializer:
    """Serializes parameter names and values with a mapping policy."""

    def serialized_parameter_name(self, name: str, policy: RemoteMappingPolicy) -> str:
        return name

    def serialized_parameter_value(self, value: Any, policy: RemoteMappingPolicy) -> str | None:
        if value is None:
            return None
        # datetime is a date subclass, so it is checked first
        if isinstance(value, datetime):
            formatter = policy.datetime_formatter()
            return formatter(value) if formatter is not None else value.isoformat()
        if isinstance(value, date):
            formatter = policy.date_formatter()
            return formatter(value) if formatter is not None else value.isoformat()
        if isinstance(value, bool):
            return policy.serialize_boolean(value)
        if isinstance(value, Classification):
            preferred_item = policy.cls_preferred_item()
            if preferred_item is not None:
                preferred = value.sub_item_map().get(preferred_item)
                if preferred is not None:
                    return str(preferred)
            return value.code()
        if isinstance(value, Enum):
            return str(value.value)
        return str(value)


def form_fields(form: Any) -> list[tuple[str, Any]]:
    """Enumerate (name, value) pairs of a parameter object in declaration order.

    Pydantic models use their serialization alias when one is declared.

    Raises:
        TypeError: If the object exposes no fields.
    """
    if isinstance(form, FormFieldsProvider):
        return list(form.to_form_fields())
    if isinstance(form, BaseModel):
        pairs = []
        for name, field_info in type(form).model_fields.items():
            wire_name = field_info.serialization_alias or field_info.alias or name
            pairs.append((wire_name, getattr(form, name)))
        return pairs
    if dataclasses.is_dataclass(form) and not isinstance(form, type):
        return [(f.name, getattr(form, f.name)) for f in dataclasses.fields(form)]
    if isinstance(form, Mapping):
        return [(str(key), value) for key, value in form.items()]
    if hasattr(form, "__dict__"):
        return [(key, value) for key, value in vars(form).items() if not key.startswith("_")]
    raise TypeError(f"Cannot enumerate fields of parameter object: {type(form).__name__}")
