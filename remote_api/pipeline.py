"""Request/Response Pipeline - one typed remote API call per invocation.

Flow of a call:
    1. Build: check arguments, create and lock the rule, validate the param.
    2. Compose: request path, query string (query sender), headers, body
       (body sender, resolved before any network I/O).
    3. Dispatch: one httpx client per call, always closed.
    4. Classify: 2xx success, 4xx client error, anything else server error.
    5. Success: receiver -> result -> header hook -> return validation.
       Client error: best-effort failure parse, retry determiner, header hook,
       translator (at most once). Server error: header hook, raise.
    6. Send/receive log, on every exit path, handed to the async executor.

See DESIGN.md "Pipeline" for the decisions behind each stage.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Sequence

import httpx
from pydantic import ValidationError

from remote_api.errors import (
    MessageBuilder,
    RemoteApiArgumentError,
    RemoteApiHttpClientError,
    RemoteApiHttpServerError,
    RemoteApiRequestFailureError,
    RemoteApiRequestValidationError,
    RemoteApiResponseParseFailureError,
    RemoteApiResponseValidationError,
    type_name,
)
from remote_api.mapping import ParameterSerializer, RemoteMappingPolicy, VacantMappingPolicy
from remote_api.models import HttpMethod, StatusCategory
from remote_api.rule import RemoteApiRule
from remote_api.send_receive_log import (
    LogAsync,
    SendReceiveLogger,
    SendReceiveLogOption,
    default_log_async,
)
from remote_api.translation import (
    ClientErrorRetryResource,
    ClientErrorTranslatingResource,
    ResponseHeaderProvider,
    ResponseHeaderResource,
)
from remote_api.transport import EnclosingRequest, ReceivedResponse, create_client, send
from remote_api.url import build_request_path, build_url
from remote_api.validation import BeanValidator

logger = logging.getLogger(__name__)

RuleSetup = Callable[[RemoteApiRule], Any]


class _EmptyRequestBody:
    """Marker for body-bearing methods with nothing to send."""

    _instance: _EmptyRequestBody | None = None

    def __new__(cls) -> _EmptyRequestBody:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "EMPTY_REQUEST_BODY"


EMPTY_REQUEST_BODY = _EmptyRequestBody()


class RemoteApi:
    """Orchestrates remote API calls.

    Usage:
        api = RemoteApi(default_rule_setup, "HarborBhv")
        product = api.request_get(Product, "http://localhost:8090/harbor", "/product", [3])

    Args:
        default_rule_setup: Applied to every call's rule before the call's own setup.
        facade_exp: Caller shown in the send/receive log, a class or a name.
        log_async: Executor for send/receive log emission.
        send_receive_logger: Formats and emits the send/receive log.
        path_variable_policy: Mapping policy for path variables.
    """

    def __init__(
        self,
        default_rule_setup: RuleSetup,
        facade_exp: Any,
        log_async: LogAsync | None = None,
        send_receive_logger: SendReceiveLogger | None = None,
        path_variable_policy: RemoteMappingPolicy | None = None,
    ) -> None:
        if default_rule_setup is None:
            raise RemoteApiArgumentError("The argument 'default_rule_setup' should not be None.")
        self.default_rule_setup = default_rule_setup
        self.facade_exp = facade_exp
        self.log_async = log_async or default_log_async
        self.send_receive_logger = send_receive_logger or SendReceiveLogger()
        self.path_variable_policy = path_variable_policy or VacantMappingPolicy()
        self.parameter_serializer = ParameterSerializer()
        self.bean_validator = BeanValidator()

    # =========================================================================
    # Entry Points
    # =========================================================================

    def request_get(
        self,
        return_type: Any,
        url_base: str,
        action_path: str,
        path_variables: Sequence[Any],
        query: Any = None,
        rule_setup: RuleSetup | None = None,
    ) -> Any:
        """GET with an optional query parameter object."""
        return self.do_request(
            HttpMethod.GET, return_type, url_base, action_path, path_variables, query, None, rule_setup
        )

    def request_post(
        self,
        return_type: Any,
        url_base: str,
        action_path: str,
        path_variables: Sequence[Any],
        body: Any,
        rule_setup: RuleSetup | None = None,
    ) -> Any:
        """POST the body through the rule's body sender.

        Pass EMPTY_REQUEST_BODY to send no body.
        """
        _assert_argument_not_none("body", body)
        return self.do_request(
            HttpMethod.POST, return_type, url_base, action_path, path_variables, None, body, rule_setup
        )

    def request_put(
        self,
        return_type: Any,
        url_base: str,
        action_path: str,
        path_variables: Sequence[Any],
        body: Any,
        rule_setup: RuleSetup | None = None,
    ) -> Any:
        _assert_argument_not_none("body", body)
        return self.do_request(
            HttpMethod.PUT, return_type, url_base, action_path, path_variables, None, body, rule_setup
        )

    def request_patch(
        self,
        return_type: Any,
        url_base: str,
        action_path: str,
        path_variables: Sequence[Any],
        body: Any,
        rule_setup: RuleSetup | None = None,
    ) -> Any:
        _assert_argument_not_none("body", body)
        return self.do_request(
            HttpMethod.PATCH, return_type, url_base, action_path, path_variables, None, body, rule_setup
        )

    def request_delete(
        self,
        return_type: Any,
        url_base: str,
        action_path: str,
        path_variables: Sequence[Any],
        query: Any = None,
        body: Any = None,
        rule_setup: RuleSetup | None = None,
    ) -> Any:
        """DELETE with an optional query and an optional body."""
        return self.do_request(
            HttpMethod.DELETE, return_type, url_base, action_path, path_variables, query, body, rule_setup
        )

    # =========================================================================
    # Request
    # =========================================================================

    def do_request(
        self,
        http_method: HttpMethod,
        return_type: Any,
        url_base: str,
        action_path: str,
        path_variables: Sequence[Any],
        query: Any,
        body: Any,
        rule_setup: RuleSetup | None,
    ) -> Any:
        """Run one call; returns the result or raises a classified error.

        Raises:
            RemoteApiArgumentError: If a required argument is None.
            RemoteApiConfigurationError: If the rule lacks a needed strategy.
            RemoteApiCallError: For transport, status, parse and validation failures.
        """
        _assert_argument_not_none("return_type", return_type)
        _assert_argument_not_none("url_base", url_base)
        _assert_argument_not_none("action_path", action_path)
        _assert_argument_not_none("path_variables", path_variables)

        rule = self.create_rule(rule_setup)
        param = body if _has_body(body) else query
        for checked in (query, body):
            if checked is not None and _has_body(checked):
                self.validate_param(return_type, url_base, action_path, path_variables, checked, rule)

        option = rule.send_receive_log_option
        if option.enabled:
            option.keeper().keep_begin_datetime(datetime.now())
            option.keeper().keep_facade_exp(self.facade_exp)

        request_path: str | None = None
        try:
            request_path = build_request_path(
                return_type,
                url_base,
                action_path,
                path_variables,
                self.path_variable_policy,
                self.parameter_serializer,
                rule.path_variable_charset,
            )
            query_string = None
            if query is not None:
                query_string = rule.query_parameter_sender.to_query_string(
                    query, rule.query_parameter_charset, rule
                )
            url = build_url(request_path, query_string)
            logger.debug(
                "#flow #remote ...Requesting as %s to Remote API:\n %s\n   => %s",
                http_method.value,
                url,
                type_name(return_type),
            )
            response = self.dispatch(http_method, return_type, url, param, body, rule)
            return self.handle_response(
                http_method, return_type, url_base, action_path, path_variables, url, param, response, rule
            )
        except BaseException as e:
            if option.enabled:
                option.keeper().keep_cause(e)
            raise
        finally:
            if option.enabled:
                option.keeper().keep_end_datetime(datetime.now())
                self.show_send_receive_log(http_method, request_path or url_base + action_path, option)

    def create_rule(self, rule_setup: RuleSetup | None) -> RemoteApiRule:
        rule = self.new_rule()
        self.default_rule_setup(rule)
        if rule_setup is not None:
            rule_setup(rule)
        rule.lock()
        return rule

    def new_rule(self) -> RemoteApiRule:
        return RemoteApiRule()

    def dispatch(
        self,
        http_method: HttpMethod,
        return_type: Any,
        url: str,
        param: Any,
        body: Any,
        rule: RemoteApiRule,
    ) -> ReceivedResponse:
        """Build and send the request; the client is closed on every exit path."""
        body_sender = rule.request_body_sender if _has_body(body) else None
        request = EnclosingRequest(http_method.value, url)
        headers = rule.headers
        for name, values in headers.items():
            for value in values:
                request.add_header(name, value)
        option = rule.send_receive_log_option
        if option.enabled and headers:
            option.keeper().keep_request_headers(headers)

        with create_client(rule) as client:
            if body_sender is not None:
                body_sender.prepare_body_request(request, body, rule)
            try:
                return send(client, request, rule.response_body_charset)
            except (httpx.RequestError, httpx.InvalidURL) as e:
                br = MessageBuilder("Failed to send the request to the remote API.")
                _setup_request_info(br, return_type, url, param)
                br.add_item("Cause", f"{type(e).__name__}: {e}")
                raise RemoteApiRequestFailureError(
                    br.build(), return_type, url, _debug_exp(param)
                ) from e

    # =========================================================================
    # Response
    # =========================================================================

    def handle_response(
        self,
        http_method: HttpMethod,
        return_type: Any,
        url_base: str,
        action_path: str,
        path_variables: Sequence[Any],
        url: str,
        param: Any,
        response: ReceivedResponse,
        rule: RemoteApiRule,
    ) -> Any:
        option = rule.send_receive_log_option
        if option.enabled:
            keeper = option.keeper()
            keeper.keep_http_status(response.http_status)
            for name, value in response.header_list:
                keeper.keep_response_header(name, value)
            keeper.keep_response_body(response.body, None)

        logger.debug(
            "#flow #remote ...Parsing response from Remote API:\n %s\n   => %s (%s)",
            url,
            type_name(return_type),
            response.http_status,
        )
        category = StatusCategory.of(response.http_status)
        if category is StatusCategory.SUCCESS:
            result = self.to_result(return_type, url, param, response, rule)
            self.handle_response_header(rule, response, result, None)
            self.validate_return(return_type, url, param, response, result, rule)
            return result

        if category is StatusCategory.CLIENT_ERROR:
            failure_response, failure_cause = self.prepare_failure_response(url, response, rule)
            br = MessageBuilder("Client Error as HTTP status from the remote API.")
            _setup_request_info(br, return_type, url, param)
            _setup_response_info(br, response)
            if failure_response is not None:
                br.add_item("Failure Response", repr(failure_response))
            error_args = (
                br.build(),
                return_type,
                url,
                _debug_exp(param),
                response.http_status,
                response.body,
                failure_response,
                failure_cause,
            )
            retry_determined: bool | None = None
            retry_headers: dict[str, list[str]] = {}
            if rule.has_client_error_retry_determiner():
                retry_resource = ClientErrorRetryResource(
                    return_type,
                    url_base,
                    action_path,
                    path_variables,
                    param,
                    http_method,
                    RemoteApiHttpClientError(*error_args),
                )
                retry_determined = bool(rule.client_error_retry_determiner(retry_resource))
                retry_headers = retry_resource.retry_headers
            client_error = RemoteApiHttpClientError(
                *error_args, retry_determined=retry_determined, retry_headers=retry_headers
            )
            self.handle_response_header(rule, response, failure_response, client_error)
            if rule.has_client_error_translator():
                translated = rule.client_error_translator(
                    ClientErrorTranslatingResource(return_type, url, client_error)
                )
                if translated is not None:
                    raise translated from client_error
            raise client_error

        br = MessageBuilder("Server Error as HTTP status from the remote API.")
        _setup_request_info(br, return_type, url, param)
        _setup_response_info(br, response)
        server_error = RemoteApiHttpServerError(
            br.build(), return_type, url, _debug_exp(param), response.http_status, response.body
        )
        self.handle_response_header(rule, response, None, server_error)
        raise server_error

    def to_result(
        self,
        return_type: Any,
        url: str,
        param: Any,
        response: ReceivedResponse,
        rule: RemoteApiRule,
    ) -> Any:
        """Convert the body with the rule's receiver.

        Raises:
            RemoteApiReceiverNotFoundError: If no receiver is set.
            RemoteApiResponseParseFailureError: If the body cannot be converted.
        """
        if return_type is type(None) and response.body is None:
            return None
        receiver = rule.response_body_receiver
        try:
            return receiver.to_response_return(response.body, return_type, rule)
        except Exception as e:
            br = MessageBuilder("Failed to parse the response body of the remote API.")
            _setup_request_info(br, return_type, url, param)
            _setup_response_info(br, response)
            br.add_item("Cause", f"{type(e).__name__}: {e}")
            raise RemoteApiResponseParseFailureError(
                br.build(), return_type, url, _debug_exp(param), response.http_status, response.body
            ) from e

    def prepare_failure_response(
        self, url: str, response: ReceivedResponse, rule: RemoteApiRule
    ) -> tuple[Any, Exception | None]:
        """Parse a 4xx body into the failure response type, best-effort.

        Returns:
            (failure response or None, parse error or None).
        """
        failure_type = rule.failure_response_type
        if failure_type is None:
            return None, None
        try:
            return rule.response_body_receiver.to_response_return(response.body, failure_type, rule), None
        except Exception as e:
            logger.debug("Failed to parse the failure response as %s: %s (%s)", type_name(failure_type), url, e)
            return None, e

    def handle_response_header(
        self,
        rule: RemoteApiRule,
        response: ReceivedResponse,
        mapped_body_return: Any,
        remote_error: Any,
    ) -> None:
        handler = rule.response_header_handler
        if handler is not None:
            provider = ResponseHeaderProvider(response.header_list)
            handler(ResponseHeaderResource(provider, mapped_body_return, remote_error))

    # =========================================================================
    # Validation
    # =========================================================================

    def validate_param(
        self,
        return_type: Any,
        url_base: str,
        action_path: str,
        path_variables: Sequence[Any],
        param: Any,
        rule: RemoteApiRule,
    ) -> None:
        """Validate the param before dispatch; override to add cross checks."""
        option = rule.validator_option
        if option.param_suppressed:
            return
        try:
            self.bean_validator.validate(param)
        except ValidationError as e:
            br = MessageBuilder("Validation Error as Param object for the remote API.")
            br.add_item("Return Type", type_name(return_type))
            br.add_item("URL Base", url_base)
            br.add_item("Action Path", action_path)
            br.add_item("Path Variables", repr(list(path_variables)))
            br.add_item("Param", repr(param))
            br.add_item("Validation Error", str(e))
            msg = br.build()
            if option.warn_param:
                logger.warning(msg)
                return
            raise RemoteApiRequestValidationError(
                msg, return_type, url_base + action_path, _debug_exp(param)
            ) from e

    def validate_return(
        self,
        return_type: Any,
        url: str,
        param: Any,
        response: ReceivedResponse,
        result: Any,
        rule: RemoteApiRule,
    ) -> None:
        """Validate the result after parse."""
        option = rule.validator_option
        if option.return_suppressed:
            return
        try:
            self.bean_validator.validate(result)
        except ValidationError as e:
            br = MessageBuilder("Validation Error as Return object for the remote API.")
            _setup_request_info(br, return_type, url, param)
            _setup_response_info(br, response)
            br.add_item("Return", repr(result))
            br.add_item("Validation Error", str(e))
            msg = br.build()
            if option.warn_return:
                logger.warning(msg)
                return
            raise RemoteApiResponseValidationError(msg, return_type, url, _debug_exp(param)) from e

    # =========================================================================
    # Send/Receive Log
    # =========================================================================

    def show_send_receive_log(
        self, http_method: HttpMethod, request_path: str, option: SendReceiveLogOption
    ) -> None:
        try:
            record = option.keeper().snapshot(http_method, request_path)
        except Exception:
            logger.info("*Failed to snapshot send-receive log: %s", request_path, exc_info=True)
            return
        self.send_receive_logger.show(record, option, self.log_async)


def _has_body(body: Any) -> bool:
    return body is not None and body is not EMPTY_REQUEST_BODY


def _assert_argument_not_none(name: str, value: Any) -> None:
    if value is None:
        raise RemoteApiArgumentError(f"The argument '{name}' should not be None.")


def _debug_exp(param: Any) -> str | None:
    return repr(param) if param is not None else None


def _setup_request_info(br: MessageBuilder, return_type: Any, url: str, param: Any) -> None:
    br.add_item("Return Type", type_name(return_type))
    br.add_item("Remote API", url)
    if param is not None:
        br.add_item("Request Param (or Body)", repr(param))


def _setup_response_info(br: MessageBuilder, response: ReceivedResponse) -> None:
    br.add_item("Response Status", response.http_status)
    br.add_item("Response Body", response.body if response.body is not None else "(no body)")
