"""Remote API Rule - the per-call configuration aggregate.

A rule is created fresh for every call, populated by the behavior's default
setup and then the call's own setup callback, and locked by the pipeline
before first use. Setters on a locked rule raise RemoteApiRuleLockedError.

Usage:
    def rule_setup(rule: RemoteApiRule) -> None:
        rule.send_body_by(JsonSender(policy))
        rule.receive_body_by(JsonReceiver(policy))
        rule.set_socket_timeout(5000)
        rule.handle_failure_response_as(HarborFailure)
"""

from __future__ import annotations

import codecs
from typing import TYPE_CHECKING, Any, Callable

from remote_api.errors import (
    MessageBuilder,
    RemoteApiArgumentError,
    RemoteApiReceiverNotFoundError,
    RemoteApiRuleLockedError,
    RemoteApiSenderNotFoundError,
    RemoteApiTranslatorNotFoundError,
)
from remote_api.send_receive_log import SendReceiveLogOption
from remote_api.validation import SendReceiveValidatorOption

if TYPE_CHECKING:
    import httpx

    from remote_api.receivers import ResponseBodyReceiver
    from remote_api.senders import QueryParameterSender, RequestBodySender
    from remote_api.translation import (
        ClientErrorRetryDeterminer,
        ClientErrorTranslator,
        ResponseHeaderHandler,
    )


DEFAULT_TIMEOUT_MILLIS = 3000
DEFAULT_CHARSET = "utf-8"


class RemoteApiRule:
    """Effective configuration of one remote API call."""

    def __init__(self) -> None:
        self._locked = False

        # strategies, resolved at first use
        self._query_parameter_sender: QueryParameterSender | None = None
        self._request_body_sender: RequestBodySender | None = None
        self._response_body_receiver: ResponseBodyReceiver | None = None

        # transport
        self._ssl_untrusted = False
        self._connect_timeout = DEFAULT_TIMEOUT_MILLIS
        self._connection_request_timeout = DEFAULT_TIMEOUT_MILLIS
        self._socket_timeout = DEFAULT_TIMEOUT_MILLIS
        self._transport: httpx.BaseTransport | None = None

        # charsets
        self._path_variable_charset = DEFAULT_CHARSET
        self._query_parameter_charset = DEFAULT_CHARSET
        self._request_body_charset = DEFAULT_CHARSET
        self._response_body_charset = DEFAULT_CHARSET

        # headers, name -> values in registration order
        self._headers: dict[str, list[str]] = {}

        # failure handling
        self._failure_response_type: Any = None
        self._client_error_translator: ClientErrorTranslator | None = None
        self._client_error_retry_determiner: ClientErrorRetryDeterminer | None = None
        self._response_header_handler: ResponseHeaderHandler | None = None

        # cross-cutting options
        self._validator_option = SendReceiveValidatorOption()
        self._send_receive_log_option = SendReceiveLogOption()

    # =========================================================================
    # Lock
    # =========================================================================

    def lock(self) -> None:
        """Freeze the rule; called by the pipeline after every setup has run."""
        self._locked = True

    @property
    def is_locked(self) -> bool:
        return self._locked

    def _assert_unlocked(self, setting: str) -> None:
        if self._locked:
            br = MessageBuilder("The rule is locked so you cannot change it.")
            br.add_item("Advice", "Configure the rule only inside the rule setup callback.")
            br.add_item("Setting", setting)
            br.add_item("Rule", repr(self))
            raise RemoteApiRuleLockedError(br.build())

    # =========================================================================
    # Sender / Receiver
    # =========================================================================

    def send_query_by(self, sender: QueryParameterSender) -> None:
        self._assert_unlocked("query_parameter_sender")
        _assert_argument_not_none("sender", sender)
        self._query_parameter_sender = sender

    def send_body_by(self, sender: RequestBodySender) -> None:
        self._assert_unlocked("request_body_sender")
        _assert_argument_not_none("sender", sender)
        self._request_body_sender = sender

    def receive_body_by(self, receiver: ResponseBodyReceiver) -> None:
        self._assert_unlocked("response_body_receiver")
        _assert_argument_not_none("receiver", receiver)
        self._response_body_receiver = receiver

    def has_query_parameter_sender(self) -> bool:
        return self._query_parameter_sender is not None

    def has_request_body_sender(self) -> bool:
        return self._request_body_sender is not None

    def has_response_body_receiver(self) -> bool:
        return self._response_body_receiver is not None

    @property
    def query_parameter_sender(self) -> QueryParameterSender:
        """The query sender.

        Raises:
            RemoteApiSenderNotFoundError: If no query sender is set.
        """
        if self._query_parameter_sender is None:
            raise RemoteApiSenderNotFoundError(
                _not_found_message("query parameter sender", "rule.send_query_by(QuerySender(policy))")
            )
        return self._query_parameter_sender

    @property
    def request_body_sender(self) -> RequestBodySender:
        """The request body sender.

        Raises:
            RemoteApiSenderNotFoundError: If no body sender is set.
        """
        if self._request_body_sender is None:
            raise RemoteApiSenderNotFoundError(
                _not_found_message("request body sender", "rule.send_body_by(JsonSender(policy))")
            )
        return self._request_body_sender

    @property
    def response_body_receiver(self) -> ResponseBodyReceiver:
        """The response body receiver.

        Raises:
            RemoteApiReceiverNotFoundError: If no receiver is set.
        """
        if self._response_body_receiver is None:
            raise RemoteApiReceiverNotFoundError(
                _not_found_message("response body receiver", "rule.receive_body_by(JsonReceiver(policy))")
            )
        return self._response_body_receiver

    # =========================================================================
    # Transport
    # =========================================================================

    def set_ssl_untrusted(self, ssl_untrusted: bool) -> None:
        """Trust every server certificate (test or internal servers only)."""
        self._assert_unlocked("ssl_untrusted")
        self._ssl_untrusted = ssl_untrusted

    def set_connect_timeout(self, millis: int) -> None:
        self._assert_unlocked("connect_timeout")
        self._connect_timeout = _assert_timeout("connect_timeout", millis)

    def set_connection_request_timeout(self, millis: int) -> None:
        self._assert_unlocked("connection_request_timeout")
        self._connection_request_timeout = _assert_timeout("connection_request_timeout", millis)

    def set_socket_timeout(self, millis: int) -> None:
        self._assert_unlocked("socket_timeout")
        self._socket_timeout = _assert_timeout("socket_timeout", millis)

    def use_transport(self, transport: httpx.BaseTransport) -> None:
        """Replace the network transport, e.g. with a MockHttpClient."""
        self._assert_unlocked("transport")
        _assert_argument_not_none("transport", transport)
        self._transport = transport

    @property
    def ssl_untrusted(self) -> bool:
        return self._ssl_untrusted

    @property
    def connect_timeout(self) -> int:
        return self._connect_timeout

    @property
    def connection_request_timeout(self) -> int:
        return self._connection_request_timeout

    @property
    def socket_timeout(self) -> int:
        return self._socket_timeout

    @property
    def transport(self) -> httpx.BaseTransport | None:
        return self._transport

    # =========================================================================
    # Charset
    # =========================================================================

    def encode_request_path_variable_as(self, charset: str) -> None:
        self._assert_unlocked("path_variable_charset")
        self._path_variable_charset = _assert_charset(charset)

    def encode_request_query_as(self, charset: str) -> None:
        self._assert_unlocked("query_parameter_charset")
        self._query_parameter_charset = _assert_charset(charset)

    def encode_request_body_as(self, charset: str) -> None:
        self._assert_unlocked("request_body_charset")
        self._request_body_charset = _assert_charset(charset)

    def encode_response_body_as(self, charset: str) -> None:
        self._assert_unlocked("response_body_charset")
        self._response_body_charset = _assert_charset(charset)

    @property
    def path_variable_charset(self) -> str:
        return self._path_variable_charset

    @property
    def query_parameter_charset(self) -> str:
        return self._query_parameter_charset

    @property
    def request_body_charset(self) -> str:
        return self._request_body_charset

    @property
    def response_body_charset(self) -> str:
        return self._response_body_charset

    # =========================================================================
    # Header
    # =========================================================================

    def set_header(self, name: str, value: str) -> None:
        """Set the header, replacing any value already registered for the name."""
        self._assert_unlocked(f"header {name}")
        _assert_argument_not_none("name", name)
        _assert_argument_not_none("value", value)
        self._headers[name] = [value]

    def add_header(self, name: str, value: str) -> None:
        """Add a value to the header, keeping values already registered."""
        self._assert_unlocked(f"header {name}")
        _assert_argument_not_none("name", name)
        _assert_argument_not_none("value", value)
        self._headers.setdefault(name, []).append(value)

    @property
    def headers(self) -> dict[str, list[str]]:
        """Copy of the registered headers, name -> values."""
        return {name: list(values) for name, values in self._headers.items()}

    # =========================================================================
    # Failure Handling
    # =========================================================================

    def handle_failure_response_as(self, failure_response_type: Any) -> None:
        """Parse 4xx bodies into this type, best-effort."""
        self._assert_unlocked("failure_response_type")
        _assert_argument_not_none("failure_response_type", failure_response_type)
        self._failure_response_type = failure_response_type

    def translate_client_error(self, translator: ClientErrorTranslator) -> None:
        self._assert_unlocked("client_error_translator")
        _assert_argument_not_none("translator", translator)
        self._client_error_translator = translator

    def determine_client_error_retry(self, determiner: ClientErrorRetryDeterminer) -> None:
        self._assert_unlocked("client_error_retry_determiner")
        _assert_argument_not_none("determiner", determiner)
        self._client_error_retry_determiner = determiner

    def handle_response_header(self, handler: ResponseHeaderHandler) -> None:
        """Receive response headers after classification, before return or raise."""
        self._assert_unlocked("response_header_handler")
        _assert_argument_not_none("handler", handler)
        self._response_header_handler = handler

    @property
    def failure_response_type(self) -> Any:
        return self._failure_response_type

    def has_client_error_translator(self) -> bool:
        return self._client_error_translator is not None

    def has_client_error_retry_determiner(self) -> bool:
        return self._client_error_retry_determiner is not None

    @property
    def client_error_translator(self) -> ClientErrorTranslator:
        if self._client_error_translator is None:
            raise RemoteApiTranslatorNotFoundError(
                _not_found_message("client error translator", "rule.translate_client_error(translator)")
            )
        return self._client_error_translator

    @property
    def client_error_retry_determiner(self) -> ClientErrorRetryDeterminer:
        if self._client_error_retry_determiner is None:
            raise RemoteApiTranslatorNotFoundError(
                _not_found_message(
                    "client error retry determiner", "rule.determine_client_error_retry(determiner)"
                )
            )
        return self._client_error_retry_determiner

    @property
    def response_header_handler(self) -> ResponseHeaderHandler | None:
        return self._response_header_handler

    # =========================================================================
    # Validation / Logging
    # =========================================================================

    def customize_validator(self, setup: Callable[[SendReceiveValidatorOption], Any]) -> None:
        """e.g. rule.customize_validator(lambda op: op.handle_as_warn_return())"""
        self._assert_unlocked("validator_option")
        setup(self._validator_option)

    def enable_send_receive_log(
        self, setup: Callable[[SendReceiveLogOption], Any] | None = None
    ) -> None:
        """e.g. rule.enable_send_receive_log(lambda op: op.categorize("harbor"))"""
        self._assert_unlocked("send_receive_log_option")
        self._send_receive_log_option.enable()
        if setup is not None:
            setup(self._send_receive_log_option)

    @property
    def validator_option(self) -> SendReceiveValidatorOption:
        return self._validator_option

    @property
    def send_receive_log_option(self) -> SendReceiveLogOption:
        return self._send_receive_log_option

    def __repr__(self) -> str:
        return (
            f"RemoteApiRule(query={self._query_parameter_sender!r}, body={self._request_body_sender!r}, "
            f"receiver={self._response_body_receiver!r}, ssl_untrusted={self._ssl_untrusted}, "
            f"timeouts=({self._connect_timeout}, {self._connection_request_timeout}, {self._socket_timeout}), "
            f"headers={self._headers}, failure_response_type={self._failure_response_type!r}, "
            f"locked={self._locked})"
        )


def _assert_argument_not_none(name: str, value: Any) -> None:
    if value is None:
        raise RemoteApiArgumentError(f"The argument '{name}' should not be None.")


def _assert_timeout(name: str, millis: int) -> int:
    if isinstance(millis, bool) or not isinstance(millis, int) or millis < 0:
        raise RemoteApiArgumentError(f"The argument '{name}' should be zero or positive millis: {millis!r}")
    return millis


def _assert_charset(charset: str) -> str:
    _assert_argument_not_none("charset", charset)
    try:
        return codecs.lookup(charset).name
    except LookupError as e:
        raise RemoteApiArgumentError(f"Unknown charset: {charset}") from e


def _not_found_message(what: str, example: str) -> str:
    br = MessageBuilder(f"Not found the {what} in the rule.")
    br.add_item("Advice", f"Set the {what} in your default rule or the call's rule setup.", f"  e.g. {example}")
    return br.build()
