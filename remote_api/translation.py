"""Client error hooks and the response header hook.

Three callbacks may be registered on a rule:

    translator(ClientErrorTranslatingResource) -> BaseException | None
        Rewrites a 4xx error into a domain exception. Returning None keeps the
        client error. Invoked at most once per call.

    determiner(ClientErrorRetryResource) -> bool
        Decides whether the caller should re-issue the call. The pipeline
        never loops; the decision and any headers the determiner sets are
        recorded on the client error for the caller to act on.

    handler(ResponseHeaderResource) -> None
        Sees the response headers after classification, with the mapped body
        (success result or failure response) and the HTTP error if any.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Iterable, Protocol, Sequence

if TYPE_CHECKING:
    from remote_api.errors import RemoteApiHttpBasisError, RemoteApiHttpClientError
    from remote_api.models import HttpMethod


class ClientErrorTranslator(Protocol):
    def __call__(self, resource: ClientErrorTranslatingResource) -> BaseException | None: ...


class ClientErrorRetryDeterminer(Protocol):
    def __call__(self, resource: ClientErrorRetryResource) -> bool: ...


ResponseHeaderHandler = Callable[["ResponseHeaderResource"], Any]


# =============================================================================
# Client Error Resources
# =============================================================================


class ClientErrorTranslatingResource:
    """What a translator sees of the failed call.

    Attributes:
        return_type: Declared result type of the call.
        url: Request URL.
        http_status: Status of the 4xx response.
        client_error: The client error that would be raised without translation.
    """

    def __init__(self, return_type: Any, url: str, client_error: RemoteApiHttpClientError) -> None:
        self.return_type = return_type
        self.url = url
        self.client_error = client_error

    @property
    def http_status(self) -> int:
        return self.client_error.http_status

    @property
    def failure_response(self) -> Any:
        """The parsed failure body, or None."""
        return self.client_error.failure_response

    def __repr__(self) -> str:
        return f"ClientErrorTranslatingResource(url={self.url!r}, http_status={self.http_status})"


class ClientErrorRetryResource:
    """What a retry determiner sees of the failed call.

    client_error is the error as built before the decision; the raised error
    carries the decision and the registered headers from construction on.
    set_header()/add_header() register headers for the retry; they do not
    touch the finished call's rule.
    """

    def __init__(
        self,
        return_type: Any,
        url_base: str,
        action_path: str,
        path_variables: Sequence[Any],
        param: Any,
        http_method: HttpMethod,
        client_error: RemoteApiHttpClientError,
    ) -> None:
        self.return_type = return_type
        self.url_base = url_base
        self.action_path = action_path
        self.path_variables = tuple(path_variables)
        self.param = param
        self.http_method = http_method
        self.client_error = client_error
        self._retry_headers: dict[str, list[str]] = {}

    def set_header(self, name: str, value: str) -> None:
        """Overwrite the retry header of the name."""
        _assert_header(name, value)
        self._retry_headers[name] = [value]

    def add_header(self, name: str, value: str) -> None:
        """Add a value to the retry header of the name."""
        _assert_header(name, value)
        self._retry_headers.setdefault(name, []).append(value)

    @property
    def retry_headers(self) -> dict[str, list[str]]:
        return {name: list(values) for name, values in self._retry_headers.items()}

    def __repr__(self) -> str:
        return (
            f"ClientErrorRetryResource({self.http_method.value} {self.url_base}{self.action_path}, "
            f"path_variables={list(self.path_variables)})"
        )


def _assert_header(name: str, value: str) -> None:
    if name is None:
        raise ValueError("The argument 'name' should not be None.")
    if value is None:
        raise ValueError("The argument 'value' should not be None.")


# =============================================================================
# Response Header Resources
# =============================================================================


class ResponseHeaderProvider:
    """Read-only view of response headers, in response order."""

    def __init__(self, header_list: Iterable[tuple[str, str | None]]) -> None:
        self._header_list = list(header_list)

    def find_present_value_list(self, header_name: str) -> list[str]:
        """Values of the header (exact name match), skipping absent values."""
        if header_name is None:
            raise ValueError("The argument 'header_name' should not be None.")
        return [
            value
            for name, value in self._header_list
            if name == header_name and value is not None
        ]

    @property
    def response_header_list(self) -> list[tuple[str, str | None]]:
        return list(self._header_list)


class ResponseHeaderResource:
    """Headers with the call's mapped body and HTTP error, if any.

    Attributes:
        header_provider: The response headers.
        mapped_body_return: The success result or the parsed failure response,
            None when nothing was mapped. Not yet validated.
        remote_error_cause: The HTTP error about to be raised, None on success.
    """

    def __init__(
        self,
        header_provider: ResponseHeaderProvider,
        mapped_body_return: Any = None,
        remote_error_cause: RemoteApiHttpBasisError | None = None,
    ) -> None:
        self.header_provider = header_provider
        self.mapped_body_return = mapped_body_return
        self.remote_error_cause = remote_error_cause
