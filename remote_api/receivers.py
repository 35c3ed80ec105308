"""Response body receivers.

A receiver turns the response body text into the declared return type.
Declared types may be plain classes, pydantic models, dataclasses or
generic shapes such as list[Row] or Page[Row]. When the mapping policy reads
dates, date-times or booleans its own way, those values are converted
before the declared type is validated. A missing body raises
ValueError and a decode failure raises the engine's error; the pipeline
wraps both into RemoteApiResponseParseFailureError.
"""

from __future__ import annotations

import dataclasses
import json
import types
import typing
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Callable, Protocol

from pydantic import BaseModel, TypeAdapter

from remote_api.mapping import RemoteMappingPolicy
from remote_api.xml_body import root_value

if TYPE_CHECKING:
    from remote_api.rule import RemoteApiRule


class ResponseBodyReceiver(Protocol):
    def to_response_return(self, body: str | None, return_type: Any, rule: RemoteApiRule) -> Any: ...


@lru_cache(maxsize=512)
def _cached_adapter(tp: Any) -> TypeAdapter:
    return TypeAdapter(tp)


def type_adapter(tp: Any) -> TypeAdapter:
    """TypeAdapter for the declared type, cached when the type is hashable."""
    try:
        return _cached_adapter(tp)
    except TypeError:
        return TypeAdapter(tp)


def _require_body(body: str | None, format_name: str) -> str:
    if body is None:
        raise ValueError(f"Not found the response body as {format_name}.")
    return body


def _keep_response_body(rule: RemoteApiRule, body: str, body_type: str) -> None:
    option = rule.send_receive_log_option
    if option.enabled:
        option.keeper().keep_response_body(body, body_type)


class JsonReceiver:
    """JSON receiver, decoding through pydantic into the declared type.

    Args:
        mapping_policy: Shared mapping policy.
        decoder: Optional callable (text, type) -> object replacing pydantic.
    """

    body_type = "json"

    def __init__(
        self,
        mapping_policy: RemoteMappingPolicy,
        decoder: Callable[[str, Any], Any] | None = None,
    ) -> None:
        self.mapping_policy = mapping_policy
        self.decoder = decoder

    def to_response_return(self, body: str | None, return_type: Any, rule: RemoteApiRule) -> Any:
        target = _require_body(body, "JSON")
        _keep_response_body(rule, target, self.body_type)
        if self.decoder is not None:
            return self.decoder(target, return_type)
        if not _reads_by_policy(self.mapping_policy):
            return type_adapter(return_type).validate_json(target)
        data = read_by_policy(json.loads(target), return_type, self.mapping_policy)
        return type_adapter(return_type).validate_python(data)

    def __repr__(self) -> str:
        return f"JsonReceiver({self.mapping_policy!r})"


class XmlReceiver:
    """XML receiver: the root element's content is decoded into the declared type.

    Text values are coerced by pydantic, e.g. "3" into an int field.

    Args:
        mapping_policy: Shared mapping policy.
        force_list: Tag names always read as lists, even with one child.
    """

    body_type = "xml"

    def __init__(self, mapping_policy: RemoteMappingPolicy, force_list: set[str] | None = None) -> None:
        self.mapping_policy = mapping_policy
        self.force_list = set(force_list or ())

    def to_response_return(self, body: str | None, return_type: Any, rule: RemoteApiRule) -> Any:
        target = _require_body(body, "XML")
        _keep_response_body(rule, target, self.body_type)
        data = read_by_policy(root_value(target, self.force_list), return_type, self.mapping_policy)
        return type_adapter(return_type).validate_python(data)

    def __repr__(self) -> str:
        return f"XmlReceiver({self.mapping_policy!r})"


class SplitReceiver:
    """Delimited key-value receiver: "sea=mystic&land=oneman".

    Pairs that do not split into exactly a key and a value are skipped.
    Keys matching a declared field of the return type fill that field;
    boolean fields are read through the mapping policy.

    Args:
        mapping_policy: Policy used for boolean fields.
        delimiter: Separator between pairs.
        key_value_delimiter: Separator between key and value.
    """

    def __init__(
        self,
        mapping_policy: RemoteMappingPolicy,
        delimiter: str = "&",
        key_value_delimiter: str = "=",
    ) -> None:
        if not delimiter or not key_value_delimiter:
            raise ValueError("Delimiters should not be empty.")
        self.mapping_policy = mapping_policy
        self.delimiter = delimiter
        self.key_value_delimiter = key_value_delimiter

    @property
    def body_type(self) -> str:
        return f"split({self.delimiter}, {self.key_value_delimiter})"

    def to_response_return(self, body: str | None, return_type: Any, rule: RemoteApiRule) -> Any:
        if typing.get_origin(return_type) is not None or not isinstance(return_type, type):
            raise TypeError(f"The specified type is not a class: type={return_type!r}")
        target = _require_body(body, "SPLIT")
        _keep_response_body(rule, target, self.body_type)
        values = self.split(target)
        fields = _declared_fields(return_type)
        matched: dict[str, Any] = {}
        for name, annotation in fields.items():
            if name in values:
                value: Any = values[name]
                if _is_boolean(annotation):
                    value = self.mapping_policy.deserialize_boolean(value)
                matched[name] = value
        return _instantiate(return_type, matched)

    def split(self, target: str) -> dict[str, str]:
        values: dict[str, str] = {}
        for key_value in target.split(self.delimiter):
            parts = key_value.split(self.key_value_delimiter)
            if len(parts) != 2:
                continue
            values[parts[0]] = parts[1]
        return values

    def __repr__(self) -> str:
        return f"SplitReceiver({self.delimiter!r}, {self.key_value_delimiter!r})"


def _declared_fields(tp: type) -> dict[str, Any]:
    """Wire name -> annotation of the fields declared by the type."""
    if issubclass(tp, BaseModel):
        return {
            (info.alias or name): info.annotation
            for name, info in tp.model_fields.items()
        }
    hints = typing.get_type_hints(tp)
    if dataclasses.is_dataclass(tp):
        return {f.name: hints.get(f.name) for f in dataclasses.fields(tp)}
    return dict(hints)


def _is_boolean(annotation: Any) -> bool:
    """bool, or bool | None."""
    if annotation is bool:
        return True
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        return args == [bool]
    return False


def _instantiate(tp: type, matched: dict[str, Any]) -> Any:
    if issubclass(tp, BaseModel):
        return tp.model_validate(matched)
    if dataclasses.is_dataclass(tp):
        return tp(**matched)
    instance = tp()
    for name, value in matched.items():
        setattr(instance, name, value)
    return instance


# =============================================================================
# Policy Reading
# =============================================================================


def _reads_by_policy(policy: RemoteMappingPolicy) -> bool:
    return (
        policy.date_parser() is not None
        or policy.datetime_parser() is not None
        or policy.boolean_deserializer() is not None
    )


def read_by_policy(data: Any, tp: Any, policy: RemoteMappingPolicy) -> Any:
    """Convert decoded values the policy reads its own way, guided by the declared type.

    Only date, datetime and boolean values are touched; everything else is left
    for pydantic. Walks models, dataclasses, lists, dicts and optionals.
    """
    if not _reads_by_policy(policy) or tp is None or tp is Any:
        return data
    origin = typing.get_origin(tp)
    args = typing.get_args(tp)
    if origin is typing.Annotated:
        return read_by_policy(data, args[0], policy)
    if origin in (typing.Union, types.UnionType):
        present = [arg for arg in args if arg is not type(None)]
        # ambiguous unions are left to pydantic
        return read_by_policy(data, present[0], policy) if len(present) == 1 else data
    if isinstance(data, list) and origin is not None and _is_sequence_origin(origin):
        if origin is tuple and not (len(args) == 2 and args[1] is Ellipsis):
            return data
        element_type = args[0] if args else Any
        return [read_by_policy(element, element_type, policy) for element in data]
    if isinstance(data, dict) and origin is not None and _is_mapping_origin(origin):
        value_type = args[1] if len(args) == 2 else Any
        return {key: read_by_policy(value, value_type, policy) for key, value in data.items()}
    if not isinstance(tp, type):
        return data
    if isinstance(data, dict) and (issubclass(tp, BaseModel) or dataclasses.is_dataclass(tp)):
        fields = _readable_fields(tp)
        return {key: read_by_policy(value, fields.get(key), policy) for key, value in data.items()}
    return _read_scalar(data, tp, policy)


def _read_scalar(data: Any, tp: type, policy: RemoteMappingPolicy) -> Any:
    if tp is bool:
        deserializer = policy.boolean_deserializer()
        if deserializer is not None and data is not None and not isinstance(data, bool):
            return deserializer(data)
        return data
    if not isinstance(data, str):
        return data
    # datetime is a date subclass, so it is checked first
    if issubclass(tp, datetime):
        parser = policy.datetime_parser()
        return parser(data) if parser is not None else data
    if issubclass(tp, date):
        date_parser = policy.date_parser()
        return date_parser(data) if date_parser is not None else data
    return data


def _is_sequence_origin(origin: Any) -> bool:
    if not isinstance(origin, type) or issubclass(origin, (str, bytes)):
        return False
    return issubclass(origin, (Sequence, set, frozenset))


def _is_mapping_origin(origin: Any) -> bool:
    return isinstance(origin, type) and issubclass(origin, Mapping)


def _readable_fields(tp: type) -> dict[str, Any]:
    """Input name -> annotation; pydantic fields are readable by alias and by name."""
    if issubclass(tp, BaseModel):
        fields: dict[str, Any] = {}
        for name, info in tp.model_fields.items():
            fields[name] = info.annotation
            if isinstance(info.validation_alias, str):
                fields[info.validation_alias] = info.annotation
            if info.alias:
                fields[info.alias] = info.annotation
        return fields
    hints = typing.get_type_hints(tp)
    return {f.name: hints.get(f.name) for f in dataclasses.fields(tp)}
