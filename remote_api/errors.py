"""Error taxonomy for remote API calls.

Every classified error carries the context needed to reconstruct the failing
call (declared return type, URL, request parameter, HTTP status and response
body where applicable). The message is assembled once, at construction.

See DESIGN.md "Error Taxonomy" for the hierarchy.
"""

from __future__ import annotations

from typing import Any


def type_name(tp: Any) -> str:
    """Readable name of a declared type, including parameterized generics."""
    if tp is None:
        return "None"
    if isinstance(tp, type) and not getattr(tp, "__args__", None):
        return tp.__qualname__
    return repr(tp).replace("typing.", "")


class MessageBuilder:
    """Builds the multi-line messages carried by remote API errors.

    Usage:
        br = MessageBuilder("Client Error as HTTP status from the remote API.")
        br.add_item("Remote API", url)
        msg = br.build()
    """

    def __init__(self, notice: str) -> None:
        self._notice = notice
        self._items: list[tuple[str, list[str]]] = []

    def add_item(self, title: str, *elements: Any) -> MessageBuilder:
        self._items.append((title, [str(el) for el in elements]))
        return self

    def build(self) -> str:
        lines = [self._notice]
        for title, elements in self._items:
            lines.append("")
            lines.append(f"[{title}]")
            lines.extend(elements)
        return "\n".join(lines)


class RemoteApiError(Exception):
    """Base class for remote API errors."""


class RemoteApiArgumentError(RemoteApiError, ValueError):
    """Raised when a required call argument is None or malformed."""


# =============================================================================
# Configuration Errors
# =============================================================================


class RemoteApiConfigurationError(RemoteApiError):
    """Raised when the rule or the call shape is misconfigured (programmer error)."""


class RemoteApiSenderNotFoundError(RemoteApiConfigurationError):
    """Raised when a query or body sender is needed but not set on the rule."""


class RemoteApiReceiverNotFoundError(RemoteApiConfigurationError):
    """Raised when a response body receiver is needed but not set on the rule."""


class RemoteApiTranslatorNotFoundError(RemoteApiConfigurationError):
    """Raised when a client error hook is read but not set on the rule."""


class RemoteApiRuleLockedError(RemoteApiConfigurationError):
    """Raised when a rule is changed after the call has started using it."""


class RemoteApiPathVariableNullElementError(RemoteApiConfigurationError):
    """Raised when a path variable element is None."""


class RemoteApiPathVariableShortElementError(RemoteApiConfigurationError):
    """Raised when there are fewer path variables than path placeholders."""


# =============================================================================
# Call Errors
# =============================================================================


class RemoteApiCallError(RemoteApiError):
    """Base class for errors detected while a call is running.

    Attributes:
        return_type: The declared result type of the call.
        url: The request URL (with query string if any).
        request_debug: Debug representation of the request parameter, or None.
    """

    def __init__(
        self,
        msg: str,
        return_type: Any,
        url: str,
        request_debug: str | None = None,
    ) -> None:
        super().__init__(msg)
        self.return_type = return_type
        self.url = url
        self.request_debug = request_debug


class RemoteApiRequestFailureError(RemoteApiCallError):
    """Raised when the request fails at transport level (connection, timeout, IO)."""


class RemoteApiResponseParseFailureError(RemoteApiCallError):
    """Raised when a response body cannot be converted to the declared type."""

    def __init__(
        self,
        msg: str,
        return_type: Any,
        url: str,
        request_debug: str | None,
        http_status: int,
        response_body: str | None,
    ) -> None:
        super().__init__(msg, return_type, url, request_debug)
        self.http_status = http_status
        self.response_body = response_body


class RemoteApiHttpBasisError(RemoteApiCallError):
    """Raised when the response status is outside 2xx.

    Attributes:
        http_status: The HTTP status of the response.
        response_body: The raw response body, or None if there was none.
        failure_response: The body parsed as the rule's failure response type,
            None if no type is configured or the body could not be parsed.
        failure_response_cause: The parse error when the failure body could
            not be parsed, else None.
    """

    def __init__(
        self,
        msg: str,
        return_type: Any,
        url: str,
        request_debug: str | None,
        http_status: int,
        response_body: str | None,
        failure_response: Any = None,
        failure_response_cause: Exception | None = None,
    ) -> None:
        super().__init__(msg, return_type, url, request_debug)
        self.http_status = http_status
        self.response_body = response_body
        self.failure_response = failure_response
        self.failure_response_cause = failure_response_cause


class RemoteApiHttpClientError(RemoteApiHttpBasisError):
    """Raised for 4xx responses (e.g. not found, bad request).

    Attributes:
        retry_determined: Decision of the rule's retry determiner, None when
            no determiner is configured. The call itself is never retried.
        retry_headers: Headers the determiner asked to send on the retry.
    """

    def __init__(
        self,
        *args: Any,
        retry_determined: bool | None = None,
        retry_headers: dict[str, list[str]] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.retry_determined = retry_determined
        self.retry_headers: dict[str, list[str]] = {
            name: list(values) for name, values in (retry_headers or {}).items()
        }


class RemoteApiHttpServerError(RemoteApiHttpBasisError):
    """Raised for every non-2xx, non-4xx response (5xx, unexpected 1xx/3xx)."""


class RemoteApiValidationError(RemoteApiCallError):
    """Base class for bean validation failures."""


class RemoteApiRequestValidationError(RemoteApiValidationError):
    """Raised when the request parameter fails validation before dispatch."""


class RemoteApiResponseValidationError(RemoteApiValidationError):
    """Raised when the parsed result fails validation after the response."""
