"""Send/receive audit logging for remote API calls.

A SendReceiveLogKeeper collects what one call sent and received. At the end
of the call the pipeline freezes it into a SendReceiveRecord and hands the
record to an async executor, where SendReceiveLogger formats and emits one
log line. Formatting or emission failures are logged and never propagated.

Example line:
    GET http://localhost:8090/harbor/sea/land/hangar/3 200 HarborBhv (2017-10-14 00:31:54.773) [00m00s012ms]
    requestParameter:?sea=mystic
    responseBody(json):{"land": "oneman"}
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable

from remote_api.models import HttpMethod, SendReceiveRecord


LogAsync = Callable[[Callable[[], None]], None]
StringFilter = Callable[[str], "str | None"]

LOGGER_MIDDLE_NAME = "remote_api.sendreceive"

_BEGIN_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_default_executor: ThreadPoolExecutor | None = None
_default_executor_lock = threading.Lock()


def default_log_async(task: Callable[[], None]) -> None:
    """Run the task on a shared single-thread executor (fire-and-forget)."""
    global _default_executor
    with _default_executor_lock:
        if _default_executor is None:
            _default_executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="remote-api-sendreceive"
            )
    _default_executor.submit(task)


def synchronous_log_async(task: Callable[[], None]) -> None:
    """Run the task on the calling thread (tests, scripts)."""
    task()


# =============================================================================
# Keeper
# =============================================================================


class SendReceiveLogKeeper:
    """Mutable per-call accumulator; one keeper per call, never shared."""

    def __init__(self) -> None:
        self.begin_datetime: datetime | None = None
        self.end_datetime: datetime | None = None
        self.facade_exp: str | None = None
        self.request_headers: dict[str, Any] = {}
        self.query_string: str | None = None
        self.form_parameters: dict[str, Any] = {}
        self.request_body: str | None = None
        self.request_body_type: str | None = None
        self.http_status: int | None = None
        self.response_headers: dict[str, Any] = {}
        self.response_body: str | None = None
        self.response_body_type: str | None = None
        self.cause: BaseException | None = None

    def keep_begin_datetime(self, begin: datetime) -> None:
        self.begin_datetime = begin

    def keep_end_datetime(self, end: datetime) -> None:
        self.end_datetime = end

    def keep_facade_exp(self, facade_exp: Any) -> None:
        if isinstance(facade_exp, type):
            self.facade_exp = facade_exp.__name__
        else:
            self.facade_exp = str(facade_exp)

    def keep_request_headers(self, headers: dict[str, list[str]]) -> None:
        for name, values in headers.items():
            for value in values:
                _add_hierarchal_element(self.request_headers, name, value)

    def keep_query_string(self, query_string: str) -> None:
        self.query_string = query_string

    def keep_form_parameters(self, parameters: list[tuple[str, Any]]) -> None:
        for name, value in parameters:
            _add_hierarchal_element(self.form_parameters, name, value)

    def keep_request_body(self, content: str | None, body_type: str) -> None:
        self.request_body = content
        self.request_body_type = body_type

    def keep_http_status(self, http_status: int) -> None:
        self.http_status = http_status

    def keep_response_header(self, name: str, value: str) -> None:
        _add_hierarchal_element(self.response_headers, name, value)

    def keep_response_body(self, content: str | None, body_type: str | None) -> None:
        self.response_body = content
        self.response_body_type = body_type

    def keep_cause(self, cause: BaseException) -> None:
        self.cause = cause

    def snapshot(self, http_method: HttpMethod, request_path: str) -> SendReceiveRecord:
        """Freeze the current state for hand-off to the log task."""
        return SendReceiveRecord(
            http_method=http_method,
            request_path=request_path,
            facade_exp=self.facade_exp,
            begin_datetime=self.begin_datetime,
            end_datetime=self.end_datetime,
            request_headers=_copy_map(self.request_headers),
            query_string=self.query_string,
            form_parameters=_copy_map(self.form_parameters),
            request_body=self.request_body,
            request_body_type=self.request_body_type,
            http_status=self.http_status,
            response_headers=_copy_map(self.response_headers),
            response_body=self.response_body,
            response_body_type=self.response_body_type,
            cause_type=type(self.cause).__name__ if self.cause is not None else None,
            cause_hash=format(id(self.cause), "x") if self.cause is not None else None,
        )


def _add_hierarchal_element(target: dict[str, Any], name: str, value: Any) -> None:
    # single value as-is, second value turns the entry into a list
    if name in target:
        existing = target[name]
        if isinstance(existing, list):
            existing.append(value)
        else:
            target[name] = [existing, value]
    else:
        target[name] = value


def _copy_map(source: dict[str, Any]) -> dict[str, Any]:
    return {key: list(value) if isinstance(value, list) else value for key, value in source.items()}


# =============================================================================
# Option
# =============================================================================


class SendReceiveLogOption:
    """What the send/receive log shows for one call.

    Usage (inside a rule setup):
        rule.enable_send_receive_log(lambda op: op.categorize("harbor").suppress_response_body())
    """

    def __init__(self) -> None:
        self.enabled = False
        self.category_name: str | None = None
        self.response_body_suppressed = False
        self.request_parameter_filter: StringFilter | None = None
        self.request_body_filter: StringFilter | None = None
        self.response_body_filter: StringFilter | None = None
        self.response_header_targets: set[str] = set()
        self._keeper: SendReceiveLogKeeper | None = None

    def categorize(self, category_name: str) -> SendReceiveLogOption:
        if not category_name:
            raise ValueError("The argument 'category_name' should not be empty.")
        self.category_name = category_name
        return self

    def suppress_response_body(self) -> SendReceiveLogOption:
        self.response_body_suppressed = True
        return self

    def filter_request_parameter(self, parameter_filter: StringFilter) -> SendReceiveLogOption:
        """The filter may return None to keep the original expression."""
        self.request_parameter_filter = parameter_filter
        return self

    def filter_request_body(self, body_filter: StringFilter) -> SendReceiveLogOption:
        self.request_body_filter = body_filter
        return self

    def filter_response_body(self, body_filter: StringFilter) -> SendReceiveLogOption:
        self.response_body_filter = body_filter
        return self

    def target_response_header(self, *header_names: str) -> SendReceiveLogOption:
        self.response_header_targets.update(header_names)
        return self

    def enable(self) -> SendReceiveLogOption:
        self.enabled = True
        return self

    def keeper(self) -> SendReceiveLogKeeper:
        """The call's keeper, created on first use."""
        if self._keeper is None:
            self._keeper = SendReceiveLogKeeper()
        return self._keeper

    def __repr__(self) -> str:
        return (
            f"SendReceiveLogOption(enabled={self.enabled}, category={self.category_name!r}, "
            f"suppress_response_body={self.response_body_suppressed})"
        )


# =============================================================================
# Logger
# =============================================================================


class SendReceiveLogger:
    """Formats a send/receive record into one line and emits it at INFO.

    Args:
        top_keyword: Optional prefix of the logger name, e.g. "myapp" gives
            "myapp.remote_api.sendreceive".
    """

    def __init__(self, top_keyword: str | None = None) -> None:
        self._top_keyword = top_keyword

    def show(
        self,
        record: SendReceiveRecord,
        option: SendReceiveLogOption,
        log_async: LogAsync,
    ) -> None:
        """Hand the record to the async executor; never raises."""
        logger = self.derive_logger(option)
        if not logger.isEnabledFor(logging.INFO):
            return
        filters = _OptionView.of(option)

        def task() -> None:
            try:
                logger.info(self.build_whole(record, filters))
            except Exception:
                logger.info("*Failed to show send-receive log", exc_info=True)

        try:
            log_async(task)
        except Exception:
            logger.info("*Failed to hand off send-receive log", exc_info=True)

    def derive_logger(self, option: SendReceiveLogOption) -> logging.Logger:
        base = f"{self._top_keyword}.{LOGGER_MIDDLE_NAME}" if self._top_keyword else LOGGER_MIDDLE_NAME
        if option.category_name:
            return logging.getLogger(f"{base}.{option.category_name}")
        return logging.getLogger(base)

    def build_whole(self, record: SendReceiveRecord, option: _OptionView) -> str:
        parts: list[str] = []
        status_exp = str(record.http_status) if record.http_status is not None else "---"
        parts.append(f"{record.http_method.value} {record.request_path} {status_exp}")
        parts.append(f" {record.facade_exp or 'unknown'}")
        if record.begin_datetime is not None:
            parts.append(f" ({_format_begin(record.begin_datetime)})")
        else:
            parts.append(" (no begun)")
        parts.append(f" [{_performance_view(record.begin_datetime, record.end_datetime)}]")
        caller_exp = self.find_caller_exp(record)
        if caller_exp is not None:
            parts.append(f" caller:{{{caller_exp}}}")
        if record.cause_type is not None:
            parts.append(f" *{record.cause_type} #{record.cause_hash}")

        header_exp = _build_map_exp(record.request_headers)
        if header_exp is not None:
            parts.append(_send_receive_block("requestHeader", header_exp))
        params_exp = record.query_string or _build_map_exp(record.form_parameters)
        if params_exp is not None:
            parts.append(
                _send_receive_block("requestParameter", _apply(option.request_parameter_filter, params_exp))
            )
        if record.request_body is not None:
            title = f"requestBody({record.request_body_type or 'unknown'})"
            parts.append(_send_receive_block(title, _apply(option.request_body_filter, record.request_body)))

        target_headers = {
            name: value
            for name, value in record.response_headers.items()
            if name in option.response_header_targets
        }
        header_exp = _build_map_exp(target_headers)
        if header_exp is not None:
            parts.append(_send_receive_block("responseHeader", header_exp))
        if not option.response_body_suppressed and record.response_body is not None:
            title = f"responseBody({record.response_body_type or 'unknown'})"
            parts.append(_send_receive_block(title, _apply(option.response_body_filter, record.response_body)))
        return "".join(parts)

    def find_caller_exp(self, record: SendReceiveRecord) -> str | None:
        """Override to show the caller, e.g. the inbound request path."""
        return None


class _OptionView:
    """Read-only copy of the option fields the log task needs."""

    def __init__(
        self,
        request_parameter_filter: StringFilter | None,
        request_body_filter: StringFilter | None,
        response_body_filter: StringFilter | None,
        response_header_targets: frozenset[str],
        response_body_suppressed: bool,
    ) -> None:
        self.request_parameter_filter = request_parameter_filter
        self.request_body_filter = request_body_filter
        self.response_body_filter = response_body_filter
        self.response_header_targets = response_header_targets
        self.response_body_suppressed = response_body_suppressed

    @classmethod
    def of(cls, option: SendReceiveLogOption) -> _OptionView:
        return cls(
            option.request_parameter_filter,
            option.request_body_filter,
            option.response_body_filter,
            frozenset(option.response_header_targets),
            option.response_body_suppressed,
        )


def _apply(string_filter: StringFilter | None, exp: str) -> str:
    if string_filter is None:
        return exp
    filtered = string_filter(exp)
    return filtered if filtered is not None else exp


def _format_begin(begin: datetime) -> str:
    return f"{begin.strftime(_BEGIN_TIME_FORMAT)}.{begin.microsecond // 1000:03d}"


def _performance_view(begin: datetime | None, end: datetime | None) -> str:
    if begin is None or end is None:
        return "no ended"
    millis = max(int((end - begin).total_seconds() * 1000), 0)
    hours, rest = divmod(millis, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    seconds, millis = divmod(rest, 1000)
    view = f"{minutes:02d}m{seconds:02d}s{millis:03d}ms"
    return f"{hours:02d}h{view}" if hours else view


def _build_map_exp(values: dict[str, Any]) -> str | None:
    if not values:
        return None
    elements = []
    for key, value in values.items():
        if isinstance(value, list):
            value_exp = str(value[0]) if len(value) == 1 else "[" + ", ".join(str(v) for v in value) + "]"
        else:
            value_exp = str(value)
        elements.append(f"{key}={value_exp}")
    return "{" + ", ".join(elements) + "}"


def _send_receive_block(title: str, value: str) -> str:
    # multi-line values start on their own line
    separator = "\n" if "\n" in value else ""
    return f"\n{title}:{separator}{value if value else '(empty)'}"
