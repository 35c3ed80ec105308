"""Tests for client error and response header resources."""

from __future__ import annotations

import pytest

from remote_api.errors import RemoteApiHttpClientError
from remote_api.models import HttpMethod
from remote_api.translation import (
    ClientErrorRetryResource,
    ClientErrorTranslatingResource,
    ResponseHeaderProvider,
)
from tests.conftest import URL_BASE, HarborFailure


def _client_error(failure: object = None) -> RemoteApiHttpClientError:
    return RemoteApiHttpClientError(
        "Client Error", HarborFailure, f"{URL_BASE}/sea", None, 404, '{"cause": "NOT_FOUND"}', failure
    )


class TestTranslatingResource:
    def test_exposes_status_and_failure(self) -> None:
        failure = HarborFailure(cause="NOT_FOUND")
        resource = ClientErrorTranslatingResource(HarborFailure, f"{URL_BASE}/sea", _client_error(failure))
        assert resource.http_status == 404
        assert resource.failure_response is failure


class TestRetryResource:
    def _resource(self) -> ClientErrorRetryResource:
        return ClientErrorRetryResource(
            dict, URL_BASE, "/sea/", [3], None, HttpMethod.GET, _client_error()
        )

    def test_headers(self) -> None:
        resource = self._resource()
        resource.add_header("X-Token", "a")
        resource.add_header("X-Token", "b")
        resource.set_header("X-Trace", "t")
        resource.set_header("X-Trace", "u")
        assert resource.retry_headers == {"X-Token": ["a", "b"], "X-Trace": ["u"]}

    def test_none_value_rejected(self) -> None:
        with pytest.raises(ValueError):
            self._resource().set_header("X-Token", None)  # type: ignore[arg-type]

    def test_path_variables_frozen(self) -> None:
        assert self._resource().path_variables == (3,)


class TestResponseHeaderProvider:
    def test_values_in_order(self) -> None:
        provider = ResponseHeaderProvider([("Set-Cookie", "a"), ("X-Id", "1"), ("Set-Cookie", "b")])
        assert provider.find_present_value_list("Set-Cookie") == ["a", "b"]

    def test_absent_values_skipped(self) -> None:
        provider = ResponseHeaderProvider([("X-Id", None), ("X-Id", "1")])
        assert provider.find_present_value_list("X-Id") == ["1"]

    def test_missing_header(self) -> None:
        assert ResponseHeaderProvider([]).find_present_value_list("X-Id") == []

    def test_exact_name_match(self) -> None:
        provider = ResponseHeaderProvider([("x-id", "1")])
        assert provider.find_present_value_list("X-Id") == []


class TestClientErrorRetryFields:
    def test_defaults(self) -> None:
        error = _client_error()
        assert error.retry_determined is None
        assert error.retry_headers == {}

    def test_set_at_construction(self) -> None:
        headers = {"Authorization": ["Bearer renewed"]}
        error = RemoteApiHttpClientError(
            "Client Error", dict, f"{URL_BASE}/sea", None, 401, None, None,
            retry_determined=True, retry_headers=headers,
        )
        headers["Authorization"].append("other")
        headers["X-Late"] = ["x"]
        assert error.retry_determined is True
        assert error.retry_headers == {"Authorization": ["Bearer renewed"]}
