"""URL Builder - request path assembly from base, action path and path variables.

Action paths may carry placeholders, "{name}" or "{}", which are filled by the
path variables in order. Variables left over after every placeholder is
filled are appended as "/a/b". A trailing slash on the action path is kept.

    build_request_path("http://localhost:8090/harbor", "/sea/land", ["hangar", 3], ...)
    -> "http://localhost:8090/harbor/sea/land/hangar/3"

    build_request_path(base, "/sea/{seaId}/land/", [3], ...)
    -> base + "/sea/3/land/"
"""

from __future__ import annotations

import re
from typing import Any, Sequence
from urllib.parse import quote_plus

from remote_api.errors import (
    MessageBuilder,
    RemoteApiArgumentError,
    RemoteApiPathVariableNullElementError,
    RemoteApiPathVariableShortElementError,
    type_name,
)
from remote_api.mapping import ParameterSerializer, RemoteMappingPolicy


PLACEHOLDER_PATTERN = re.compile(r"\{[^{}/]*\}")


def build_request_path(
    return_type: Any,
    url_base: str,
    action_path: str,
    path_variables: Sequence[Any],
    policy: RemoteMappingPolicy,
    serializer: ParameterSerializer,
    charset: str = "utf-8",
) -> str:
    """Build the request path: url_base + action_path (+ path variables).

    Args:
        return_type: Declared result type, used in error messages only.
        url_base: e.g. "http://localhost:8090/harbor".
        action_path: e.g. "/sea/land" or "/sea/{seaId}/land".
        path_variables: Ordered values, each serialized with the policy and
            percent-encoded with the charset.
        policy: Mapping policy for value serialization.
        serializer: Parameter serializer.
        charset: Path variable charset.

    Returns:
        The request path without query string.

    Raises:
        RemoteApiArgumentError: If url_base, action_path or path_variables is None.
        RemoteApiPathVariableNullElementError: If an element is None.
        RemoteApiPathVariableShortElementError: If there are fewer variables
            than placeholders.
    """
    if url_base is None:
        raise RemoteApiArgumentError("The argument 'url_base' should not be None.")
    if action_path is None:
        raise RemoteApiArgumentError("The argument 'action_path' should not be None.")
    if path_variables is None:
        raise RemoteApiArgumentError("The argument 'path_variables' should not be None.")

    for index, element in enumerate(path_variables):
        if element is None:
            br = MessageBuilder("Null element in path variables.")
            br.add_item("Advice", "Path variables cannot contain None.")
            br.add_item("Return Type", type_name(return_type))
            br.add_item("URL Base", url_base)
            br.add_item("Action Path", action_path)
            br.add_item("Path Variables", repr(list(path_variables)))
            br.add_item("Null Index", index)
            raise RemoteApiPathVariableNullElementError(br.build())

    encoded = [
        encode_path_variable(serializer.serialized_parameter_value(element, policy), charset)
        for element in path_variables
    ]
    return url_base + _fill_action_path(return_type, url_base, action_path, path_variables, encoded)


def encode_path_variable(value: str | None, charset: str) -> str:
    """Encode one path variable form-style: "my/s ti-c" -> "my%2Fs+ti-c"."""
    return quote_plus(value or "", safe="", encoding=charset)


def build_url(request_path: str, query_string: str | None) -> str:
    """Append the query string (already starting with "?") to the request path."""
    if query_string:
        return request_path + query_string
    return request_path


def _fill_action_path(
    return_type: Any,
    url_base: str,
    action_path: str,
    path_variables: Sequence[Any],
    encoded: list[str],
) -> str:
    placeholders = PLACEHOLDER_PATTERN.findall(action_path)
    if len(encoded) < len(placeholders):
        br = MessageBuilder("Short elements of path variables for the action path.")
        br.add_item("Advice", "Make sure every placeholder has a path variable.")
        br.add_item("Return Type", type_name(return_type))
        br.add_item("URL Base", url_base)
        br.add_item("Action Path", action_path)
        br.add_item("Placeholders", ", ".join(placeholders))
        br.add_item("Path Variables", repr(list(path_variables)))
        raise RemoteApiPathVariableShortElementError(br.build())

    remaining = iter(encoded)
    filled = PLACEHOLDER_PATTERN.sub(lambda _m: next(remaining), action_path)
    leftover = list(remaining)
    if not leftover:
        return filled
    trailing_slash = filled.endswith("/")
    base = filled.rstrip("/") if trailing_slash else filled
    path = base + "/" + "/".join(leftover)
    return path + "/" if trailing_slash else path
