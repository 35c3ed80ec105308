"""Query and request body senders.

A query sender turns a parameter object into a query string ("?a=1&b=2"),
a body sender attaches the parameter object to the outgoing request as a
form, JSON or XML entity. All of them serialize single values through the
ParameterSerializer and the mapping policy, and record what they sent into
the call's send/receive log keeper when logging is enabled.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Protocol
from urllib.parse import quote_plus

from pydantic import BaseModel, TypeAdapter

from remote_api.mapping import (
    Classification,
    ParameterSerializer,
    RemoteMappingPolicy,
    form_fields,
    is_collection,
)
from remote_api.transport import EnclosingRequest
from remote_api.xml_body import dict_to_xml

if TYPE_CHECKING:
    from remote_api.rule import RemoteApiRule


class QueryParameterSender(Protocol):
    def to_query_string(self, param: Any, charset: str, rule: RemoteApiRule) -> str: ...


class RequestBodySender(Protocol):
    def prepare_body_request(self, request: EnclosingRequest, param: Any, rule: RemoteApiRule) -> None: ...


def _serialized_pairs(
    param: Any, policy: RemoteMappingPolicy, serializer: ParameterSerializer
) -> list[tuple[str, str]]:
    """(name, value) wire pairs: None skipped, collections expanded in order."""
    pairs: list[tuple[str, str]] = []
    for name, plain_value in form_fields(param):
        if plain_value is None:
            continue
        wire_name = serializer.serialized_parameter_name(name, policy)
        values = plain_value if is_collection(plain_value) else [plain_value]
        for value in values:
            serialized = serializer.serialized_parameter_value(value, policy)
            pairs.append((wire_name, serialized if serialized is not None else ""))
    return pairs


def _encode_pairs(pairs: list[tuple[str, str]], charset: str) -> str:
    return "&".join(
        f"{quote_plus(name, encoding=charset)}={quote_plus(value, encoding=charset)}"
        for name, value in pairs
    )


# =============================================================================
# Query Sender
# =============================================================================


class QuerySender:
    """Form-style query string sender.

    {location: None, stage_list: ["", ""]} -> "?stage_list=&stage_list="
    """

    def __init__(
        self, mapping_policy: RemoteMappingPolicy, serializer: ParameterSerializer | None = None
    ) -> None:
        self.mapping_policy = mapping_policy
        self.serializer = serializer or ParameterSerializer()

    def to_query_string(self, param: Any, charset: str, rule: RemoteApiRule) -> str:
        pairs = _serialized_pairs(param, self.mapping_policy, self.serializer)
        query_string = "?" + _encode_pairs(pairs, charset) if pairs else ""
        option = rule.send_receive_log_option
        if option.enabled:
            option.keeper().keep_query_string(query_string)
        return query_string

    def __repr__(self) -> str:
        return f"QuerySender({self.mapping_policy!r})"


# =============================================================================
# Body Senders
# =============================================================================


class FormSender:
    """application/x-www-form-urlencoded body sender."""

    def __init__(
        self, mapping_policy: RemoteMappingPolicy, serializer: ParameterSerializer | None = None
    ) -> None:
        self.mapping_policy = mapping_policy
        self.serializer = serializer or ParameterSerializer()

    def prepare_body_request(self, request: EnclosingRequest, param: Any, rule: RemoteApiRule) -> None:
        charset = rule.request_body_charset
        pairs = _serialized_pairs(param, self.mapping_policy, self.serializer)
        body = _encode_pairs(pairs, charset)
        request.set_entity(body.encode(charset), f"application/x-www-form-urlencoded; charset={charset}")
        option = rule.send_receive_log_option
        if option.enabled:
            option.keeper().keep_form_parameters(pairs)

    def __repr__(self) -> str:
        return f"FormSender({self.mapping_policy!r})"


class JsonSender:
    """JSON body sender.

    Pydantic models are dumped by alias; dates and classifications follow the
    mapping policy. A custom encoder replaces the default encoding entirely.

    Args:
        mapping_policy: Wire representation of dates and classifications.
        encoder: Optional callable returning the JSON text of the parameter.
    """

    body_type = "json"

    def __init__(
        self,
        mapping_policy: RemoteMappingPolicy,
        encoder: Callable[[Any], str] | None = None,
    ) -> None:
        self.mapping_policy = mapping_policy
        self.encoder = encoder

    def prepare_body_request(self, request: EnclosingRequest, param: Any, rule: RemoteApiRule) -> None:
        charset = rule.request_body_charset
        body = self.to_json(param)
        request.set_entity(body.encode(charset), f"application/json; charset={charset}")
        option = rule.send_receive_log_option
        if option.enabled:
            option.keeper().keep_request_body(body, self.body_type)

    def to_json(self, param: Any) -> str:
        if self.encoder is not None:
            return self.encoder(param)
        return _ANY_ADAPTER.dump_json(to_plain(param, self.mapping_policy)).decode("utf-8")

    def __repr__(self) -> str:
        return f"JsonSender({self.mapping_policy!r})"


class XmlSender:
    """XML body sender.

    Args:
        mapping_policy: Wire representation of dates and classifications.
        root_name: Root element name; defaults to the parameter's class name.
    """

    body_type = "xml"

    def __init__(self, mapping_policy: RemoteMappingPolicy, root_name: str | None = None) -> None:
        self.mapping_policy = mapping_policy
        self.root_name = root_name

    def prepare_body_request(self, request: EnclosingRequest, param: Any, rule: RemoteApiRule) -> None:
        charset = rule.request_body_charset
        body = self.to_xml(param, charset)
        request.set_entity(body.encode(charset), f"application/xml; charset={charset}")
        option = rule.send_receive_log_option
        if option.enabled:
            option.keeper().keep_request_body(body, self.body_type)

    def to_xml(self, param: Any, charset: str = "utf-8") -> str:
        root_name = self.root_name or type(param).__name__
        return dict_to_xml(root_name, to_plain(param, self.mapping_policy), charset)

    def __repr__(self) -> str:
        return f"XmlSender({self.mapping_policy!r}, root_name={self.root_name!r})"


_ANY_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


def to_plain(value: Any, policy: RemoteMappingPolicy) -> Any:
    """Reduce a parameter object to dicts, lists and scalars.

    Dates and classifications are rendered by the policy; booleans and
    numbers stay native so JSON keeps their types.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, BaseModel):
        return {name: to_plain(v, policy) for name, v in form_fields(value)}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_plain(getattr(value, f.name), policy) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(k): to_plain(v, policy) for k, v in value.items()}
    if is_collection(value):
        return [to_plain(v, policy) for v in value]
    if isinstance(value, (date, datetime, Classification)):
        return ParameterSerializer().serialized_parameter_value(value, policy)
    if isinstance(value, Enum):
        return to_plain(value.value, policy)
    return value
