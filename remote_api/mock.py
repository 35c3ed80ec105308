"""Mock transport for tests: predicate-matched canned responses.

    client = MockHttpClient.create(lambda response: (
        response.as_json_directly('{"product_id": 3}', lambda request: "/product/" in request.url),
        response.as_json_directly('{"cause": "not found"}', lambda request: True).http_status(404),
    ))
    behavior.set_mock_http_client(client)

Registrations are tried in order; the first whose determiner accepts the
request provides the response. Peekers see every request before matching.
"""

from __future__ import annotations

from pathlib import Path
from typing import IO, Any, Callable
from urllib.parse import unquote_plus

import httpx

from remote_api.errors import MessageBuilder, RemoteApiError
from remote_api.transport import original_case_headers


class MockHttpResponseNotFoundError(RemoteApiError):
    """Raised when no registered mock response matches the request."""


class MockSupposedRequest:
    """The request as the mock sees it.

    Attributes:
        url: Full URL, percent-decoded, e.g. http://localhost:8090/harbor/lido/product/list/1
        body: Request body text, None when the request has no body.
        host: Host name.
        port: Explicit port, None when the scheme default is used.
        headers: Header name -> values, in request order.
    """

    def __init__(
        self,
        url: str,
        body: str | None,
        host: str | None,
        port: int | None,
        headers: dict[str, list[str]],
    ) -> None:
        self.url = url
        self.body = body
        self.host = host
        self.port = port
        self.headers = headers

    def __repr__(self) -> str:
        return f"request:{{{self.url}, {self.body}}}"


MockRequestDeterminer = Callable[[MockSupposedRequest], bool]
MockRequestPeeking = Callable[[MockSupposedRequest], Any]


class MockHttpResponseResource:
    """A registered response; http_status() overrides the default 200."""

    def __init__(self, provider: Callable[[MockSupposedRequest], httpx.Response | None], description: str) -> None:
        self.provider = provider
        self.description = description
        self.status: int | None = None

    def http_status(self, http_status: int) -> MockHttpResponseResource:
        if http_status is None:
            raise ValueError("The argument 'http_status' should not be None.")
        self.status = http_status
        return self

    def __repr__(self) -> str:
        return f"MockHttpResponseResource({self.description}, status={self.status})"


class MockFreedomResponse:
    """Registry of canned responses and request peekers."""

    def __init__(self) -> None:
        self.request_peeking_list: list[MockRequestPeeking] = []
        self.response_resource_list: list[MockHttpResponseResource] = []

    def peek_request(self, peeking: MockRequestPeeking) -> None:
        _assert_argument_not_none("peeking", peeking)
        self.request_peeking_list.append(peeking)

    def as_json(self, response_file: str | Path | IO[Any], determiner: MockRequestDeterminer) -> MockHttpResponseResource:
        """Respond with the JSON of a file path or a readable stream."""
        _assert_argument_not_none("response_file", response_file)
        return self._register(_LazyContent(response_file), "application/json", determiner, f"json:{response_file}")

    def as_json_directly(self, json: str, determiner: MockRequestDeterminer) -> MockHttpResponseResource:
        _assert_argument_not_none("json", json)
        return self._register(_LazyContent(json.encode("utf-8")), "application/json", determiner, "json:directly")

    def as_json_no_content(self, determiner: MockRequestDeterminer) -> MockHttpResponseResource:
        return self._register(None, None, determiner, "json:no-content")

    def as_xml(self, response_file: str | Path | IO[Any], determiner: MockRequestDeterminer) -> MockHttpResponseResource:
        _assert_argument_not_none("response_file", response_file)
        return self._register(
            _LazyContent(response_file), "application/xml; charset=utf-8", determiner, f"xml:{response_file}"
        )

    def as_xml_directly(self, xml: str, determiner: MockRequestDeterminer) -> MockHttpResponseResource:
        _assert_argument_not_none("xml", xml)
        return self._register(
            _LazyContent(xml.encode("utf-8")), "application/xml; charset=utf-8", determiner, "xml:directly"
        )

    def _register(
        self,
        content: _LazyContent | None,
        content_type: str | None,
        determiner: MockRequestDeterminer,
        description: str,
    ) -> MockHttpResponseResource:
        _assert_argument_not_none("determiner", determiner)

        def provide(request: MockSupposedRequest) -> httpx.Response | None:
            if not determiner(request):
                return None
            if content is None:
                return httpx.Response(200)
            return httpx.Response(200, headers={"Content-Type": content_type}, content=content.read())

        resource = MockHttpResponseResource(provide, description)
        self.response_resource_list.append(resource)
        return resource


class _LazyContent:
    """File or stream content, read on first use and kept."""

    def __init__(self, source: bytes | str | Path | IO[Any]) -> None:
        self._source = source
        self._content: bytes | None = source if isinstance(source, bytes) else None

    def read(self) -> bytes:
        if self._content is None:
            if isinstance(self._source, (str, Path)):
                path = Path(self._source)
                if not path.exists():
                    raise FileNotFoundError(f"Not found the response file: {path}")
                self._content = path.read_bytes()
            else:
                data = self._source.read()
                self._content = data.encode("utf-8") if isinstance(data, str) else data
        return self._content


class MockHttpClient(httpx.BaseTransport):
    """httpx transport answering from a MockFreedomResponse."""

    def __init__(self, freedom_response: MockFreedomResponse) -> None:
        self.freedom_response = freedom_response

    @classmethod
    def create(cls, setup: Callable[[MockFreedomResponse], Any]) -> MockHttpClient:
        response = MockFreedomResponse()
        setup(response)
        return cls(response)

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        supposed = self.to_supposed_request(request)
        for peeking in self.freedom_response.request_peeking_list:
            peeking(supposed)
        for resource in self.freedom_response.response_resource_list:
            provided = resource.provider(supposed)
            if provided is not None:
                if resource.status is not None:
                    provided.status_code = resource.status
                return provided
        br = MessageBuilder("Not found the mock response for the request.")
        br.add_item(
            "Advice",
            "Register a response whose determiner accepts the request, e.g.",
            "  MockHttpClient.create(lambda response: response.as_json_directly(",
            '      json, lambda request: "/harbor/" in request.url))',
        )
        br.add_item("Request", supposed.url, *([supposed.body] if supposed.body is not None else []))
        br.add_item("Response Resource", *self.freedom_response.response_resource_list)
        raise MockHttpResponseNotFoundError(br.build())

    def to_supposed_request(self, request: httpx.Request) -> MockSupposedRequest:
        content = request.read()
        headers: dict[str, list[str]] = {}
        for name, value in original_case_headers(request.headers):
            headers.setdefault(name, []).append(value)
        return MockSupposedRequest(
            url=unquote_plus(str(request.url)),
            body=content.decode("utf-8") if content else None,
            host=request.url.host or None,
            port=request.url.port,
            headers=headers,
        )


def _assert_argument_not_none(name: str, value: Any) -> None:
    if value is None:
        raise ValueError(f"The argument '{name}' should not be None.")
