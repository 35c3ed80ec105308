"""Transport - httpx client construction and request/response conversion.

The pipeline builds one httpx.Client per call from the rule (timeouts, TLS
trust, transport override) and closes it when the call ends. Body senders
fill an EnclosingRequest, which is converted to an httpx.Request at send
time. The response is read completely into a ReceivedResponse and released
before classification.
"""

from __future__ import annotations

import codecs
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from remote_api.rule import RemoteApiRule


def _sanitize_header_value(value: str) -> str:
    """Replace non-ASCII characters with '?' (headers are ASCII per RFC 7230)."""
    return value.encode("ascii", errors="replace").decode("ascii")


def _to_seconds(millis: int) -> float | None:
    # zero means no limit
    return millis / 1000.0 if millis > 0 else None


def build_timeout(rule: RemoteApiRule) -> httpx.Timeout:
    """Map the rule's millisecond timeouts onto httpx connect/read/write/pool."""
    socket_timeout = _to_seconds(rule.socket_timeout)
    return httpx.Timeout(
        connect=_to_seconds(rule.connect_timeout),
        read=socket_timeout,
        write=socket_timeout,
        pool=_to_seconds(rule.connection_request_timeout),
    )


def build_client_kwargs(rule: RemoteApiRule) -> dict[str, Any]:
    """Build kwargs for httpx.Client from the rule.

    Redirects are not followed; a 3xx response is classified by the pipeline.
    """
    kwargs: dict[str, Any] = {
        "timeout": build_timeout(rule),
        "follow_redirects": False,
    }
    if rule.ssl_untrusted:
        kwargs["verify"] = False
    if rule.transport is not None:
        kwargs["transport"] = rule.transport
    return kwargs


def create_client(rule: RemoteApiRule) -> httpx.Client:
    return httpx.Client(**build_client_kwargs(rule))


class EnclosingRequest:
    """Outgoing request under construction; body senders attach the entity.

    Attributes:
        method: HTTP method name.
        url: Full URL, query string included.
        headers: Ordered (name, value) pairs; a name may repeat.
        content: Encoded body, or None for no body.
    """

    def __init__(self, method: str, url: str) -> None:
        self.method = method
        self.url = url
        self.headers: list[tuple[str, str]] = []
        self.content: bytes | None = None

    def set_header(self, name: str, value: str) -> None:
        """Replace every value of the header (case-insensitive name)."""
        lowered = name.lower()
        self.headers = [(n, v) for n, v in self.headers if n.lower() != lowered]
        self.headers.append((name, value))

    def add_header(self, name: str, value: str) -> None:
        self.headers.append((name, value))

    def set_entity(self, content: bytes, content_type: str | None = None) -> None:
        self.content = content
        if content_type is not None:
            self.set_header("Content-Type", content_type)

    def find_header(self, name: str) -> str | None:
        lowered = name.lower()
        for n, v in self.headers:
            if n.lower() == lowered:
                return v
        return None

    def to_httpx(self, client: httpx.Client) -> httpx.Request:
        headers = [(name, _sanitize_header_value(value)) for name, value in self.headers]
        return client.build_request(self.method, self.url, headers=headers, content=self.content)

    def __repr__(self) -> str:
        return f"EnclosingRequest({self.method} {self.url})"


class ReceivedResponse:
    """Fully read response: status, headers in order, body text or None."""

    def __init__(self, http_status: int, header_list: list[tuple[str, str]], body: str | None) -> None:
        self.http_status = http_status
        self.header_list = header_list
        self.body = body

    def __repr__(self) -> str:
        return f"ReceivedResponse(http_status={self.http_status}, body_length={len(self.body or '')})"


def original_case_headers(headers: httpx.Headers) -> list[tuple[str, str]]:
    # multi_items() lowercases names
    return [
        (name.decode(headers.encoding), value.decode(headers.encoding))
        for name, value in headers.raw
    ]


def _known_charset(charset: str | None) -> str | None:
    if charset is None:
        return None
    try:
        codecs.lookup(charset)
    except LookupError:
        return None
    return charset


def send(client: httpx.Client, request: EnclosingRequest, default_charset: str) -> ReceivedResponse:
    """Send the request and read the whole response.

    The body is decoded with the response's declared charset, falling back to
    default_charset when none is declared or the declared one is unknown. An
    empty body is returned as None.

    Raises:
        httpx.RequestError: On connection, timeout or protocol failure.
        httpx.InvalidURL: If the request URL cannot be parsed.
    """
    response = client.send(request.to_httpx(client), stream=True)
    try:
        content = response.read()
        header_list = original_case_headers(response.headers)
        charset = _known_charset(response.charset_encoding) or default_charset
        body = content.decode(charset, errors="replace") if content else None
        return ReceivedResponse(response.status_code, header_list, body)
    finally:
        response.close()
