"""Tests for the send/receive log keeper, option and logger."""

from __future__ import annotations

import logging
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from remote_api.models import HttpMethod
from remote_api.send_receive_log import (
    SendReceiveLogger,
    SendReceiveLogKeeper,
    SendReceiveLogOption,
    synchronous_log_async,
)

BEGIN = datetime(2017, 10, 14, 0, 31, 54, 773000)
END = datetime(2017, 10, 14, 0, 31, 54, 785000)


def _keeper() -> SendReceiveLogKeeper:
    keeper = SendReceiveLogKeeper()
    keeper.keep_begin_datetime(BEGIN)
    keeper.keep_end_datetime(END)
    keeper.keep_facade_exp("HarborBhv")
    keeper.keep_http_status(200)
    return keeper


class TestKeeper:
    def test_facade_class_uses_name(self) -> None:
        keeper = SendReceiveLogKeeper()
        keeper.keep_facade_exp(SendReceiveLogKeeper)
        assert keeper.facade_exp == "SendReceiveLogKeeper"

    def test_repeated_names_become_lists(self) -> None:
        keeper = SendReceiveLogKeeper()
        keeper.keep_response_header("X-Sea", "a")
        keeper.keep_response_header("X-Sea", "b")
        keeper.keep_response_header("X-Land", "c")
        assert keeper.response_headers == {"X-Sea": ["a", "b"], "X-Land": "c"}

    def test_snapshot_is_detached(self) -> None:
        keeper = _keeper()
        keeper.keep_form_parameters([("land", "a"), ("land", "b")])
        record = keeper.snapshot(HttpMethod.POST, "http://h/sea")
        keeper.keep_form_parameters([("land", "c")])
        assert record.form_parameters == {"land": ["a", "b"]}
        assert record.http_method is HttpMethod.POST

    def test_snapshot_cause(self) -> None:
        keeper = _keeper()
        cause = ValueError("x")
        keeper.keep_cause(cause)
        record = keeper.snapshot(HttpMethod.GET, "http://h/sea")
        assert record.cause_type == "ValueError"
        assert record.cause_hash == format(id(cause), "x")


class TestOption:
    def test_keeper_created_once(self) -> None:
        option = SendReceiveLogOption()
        assert option.keeper() is option.keeper()

    def test_fluent(self) -> None:
        option = SendReceiveLogOption().categorize("harbor").suppress_response_body().target_response_header("X-Id")
        assert option.category_name == "harbor"
        assert option.response_body_suppressed
        assert option.response_header_targets == {"X-Id"}

    def test_empty_category_rejected(self) -> None:
        with pytest.raises(ValueError):
            SendReceiveLogOption().categorize("")


class TestBuildWhole:
    """Line format of the send/receive log."""

    def test_first_line(self) -> None:
        record = _keeper().snapshot(HttpMethod.GET, "http://localhost:8090/harbor/sea/land/hangar/3")
        line = SendReceiveLogger().build_whole(record, _view(SendReceiveLogOption()))
        assert line == (
            "GET http://localhost:8090/harbor/sea/land/hangar/3 200 HarborBhv"
            " (2017-10-14 00:31:54.773) [00m00s012ms]"
        )

    def test_blocks(self) -> None:
        keeper = _keeper()
        keeper.keep_request_headers({"X-Api-Key": ["secret"]})
        keeper.keep_query_string("?sea=mystic")
        keeper.keep_request_body('{"land": "oneman"}', "json")
        keeper.keep_response_header("X-Id", "7")
        keeper.keep_response_header("X-Other", "8")
        keeper.keep_response_body("", "json")
        option = SendReceiveLogOption().target_response_header("X-Id")
        line = SendReceiveLogger().build_whole(keeper.snapshot(HttpMethod.POST, "http://h/sea"), _view(option))
        assert line.split("\n")[1:] == [
            "requestHeader:{X-Api-Key=secret}",
            "requestParameter:?sea=mystic",
            'requestBody(json):{"land": "oneman"}',
            "responseHeader:{X-Id=7}",
            "responseBody(json):(empty)",
        ]

    def test_form_parameters_shown_when_no_query(self) -> None:
        keeper = _keeper()
        keeper.keep_form_parameters([("sea", "mystic"), ("land", "a"), ("land", "b")])
        line = SendReceiveLogger().build_whole(keeper.snapshot(HttpMethod.POST, "http://h"), _view(SendReceiveLogOption()))
        assert "\nrequestParameter:{sea=mystic, land=[a, b]}" in line

    def test_filters_and_suppression(self) -> None:
        keeper = _keeper()
        keeper.keep_query_string("?password=x")
        keeper.keep_request_body("secret", "json")
        keeper.keep_response_body("big", "json")
        option = (
            SendReceiveLogOption()
            .filter_request_parameter(lambda exp: "?password=***")
            .filter_request_body(lambda exp: None)
            .suppress_response_body()
        )
        line = SendReceiveLogger().build_whole(keeper.snapshot(HttpMethod.POST, "http://h"), _view(option))
        assert "requestParameter:?password=***" in line
        assert "requestBody(json):secret" in line
        assert "responseBody" not in line

    def test_cause_and_no_status(self) -> None:
        keeper = SendReceiveLogKeeper()
        keeper.keep_begin_datetime(BEGIN)
        keeper.keep_cause(RuntimeError("x"))
        line = SendReceiveLogger().build_whole(keeper.snapshot(HttpMethod.GET, "http://h"), _view(SendReceiveLogOption()))
        assert line.startswith("GET http://h --- unknown (2017-10-14 00:31:54.773) [no ended] *RuntimeError #")

    def test_multi_line_value_starts_on_new_line(self) -> None:
        keeper = _keeper()
        keeper.keep_response_body("a\nb", "json")
        line = SendReceiveLogger().build_whole(keeper.snapshot(HttpMethod.GET, "http://h"), _view(SendReceiveLogOption()))
        assert line.endswith("\nresponseBody(json):\na\nb")


class TestShow:
    """Emission through the async executor."""

    def test_logger_name_and_level(self, caplog: pytest.LogCaptureFixture) -> None:
        option = SendReceiveLogOption().categorize("harbor")
        record = _keeper().snapshot(HttpMethod.GET, "http://h/sea")
        with caplog.at_level(logging.INFO, logger="remote_api.sendreceive"):
            SendReceiveLogger().show(record, option, synchronous_log_async)
        assert [r.name for r in caplog.records] == ["remote_api.sendreceive.harbor"]
        assert caplog.records[0].levelno == logging.INFO

    def test_top_keyword(self) -> None:
        logger = SendReceiveLogger("myapp").derive_logger(SendReceiveLogOption())
        assert logger.name == "myapp.remote_api.sendreceive"

    def test_not_handed_off_when_info_disabled(self, caplog: pytest.LogCaptureFixture) -> None:
        log_async = MagicMock()
        with caplog.at_level(logging.WARNING, logger="remote_api.sendreceive"):
            SendReceiveLogger().show(_keeper().snapshot(HttpMethod.GET, "http://h"), SendReceiveLogOption(), log_async)
        log_async.assert_not_called()

    def test_formatting_failure_logged_not_raised(self, caplog: pytest.LogCaptureFixture) -> None:
        class Broken(SendReceiveLogger):
            def build_whole(self, record, option):
                raise RuntimeError("broken")

        with caplog.at_level(logging.INFO, logger="remote_api.sendreceive"):
            Broken().show(_keeper().snapshot(HttpMethod.GET, "http://h"), SendReceiveLogOption(), synchronous_log_async)
        assert "Failed to show send-receive log" in caplog.text

    def test_executor_failure_logged_not_raised(self, caplog: pytest.LogCaptureFixture) -> None:
        def rejecting(task):
            raise RuntimeError("shutdown")

        with caplog.at_level(logging.INFO, logger="remote_api.sendreceive"):
            SendReceiveLogger().show(_keeper().snapshot(HttpMethod.GET, "http://h"), SendReceiveLogOption(), rejecting)
        assert "Failed to hand off send-receive log" in caplog.text


def _view(option: SendReceiveLogOption):
    from remote_api.send_receive_log import _OptionView

    return _OptionView.of(option)
