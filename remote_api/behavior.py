"""Behavior - the per-remote-service facade.

Subclass RemoteBehavior once per remote service, fix the URL base and the
default rule, and expose one method per endpoint:

    class RemoteHarborBhv(RemoteBehavior):
        def url_base(self) -> str:
            return "http://localhost:8090/harbor"

        def your_default_rule(self, rule: RemoteApiRule) -> None:
            policy = VacantMappingPolicy()
            rule.send_query_by(QuerySender(policy))
            rule.send_body_by(JsonSender(policy))
            rule.receive_body_by(JsonReceiver(policy))

        def request_product(self, product_id: int) -> Product:
            return self.do_request_get(Product, "/product", self.more_url(product_id), self.no_query())
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Any, Sequence

from remote_api.config_loader import apply_rule_config
from remote_api.errors import RemoteApiArgumentError
from remote_api.mapping import RemoteMappingPolicy, VacantMappingPolicy
from remote_api.models import RuleConfig
from remote_api.pipeline import EMPTY_REQUEST_BODY, RemoteApi, RuleSetup
from remote_api.rule import RemoteApiRule
from remote_api.send_receive_log import LogAsync

if TYPE_CHECKING:
    import httpx


def _no_rule_setup(rule: RemoteApiRule) -> None:
    pass


class RemoteBehavior(abc.ABC):
    """Base class of remote service facades.

    Args:
        log_async: Executor for send/receive log emission, the shared
            background worker when None.
    """

    def __init__(self, log_async: LogAsync | None = None) -> None:
        self._mock_transport: httpx.BaseTransport | None = None
        self.remote_api = self.create_remote_api(log_async)

    def create_remote_api(self, log_async: LogAsync | None) -> RemoteApi:
        return RemoteApi(
            self.setup_default_rule,
            self.facade_exp(),
            log_async=log_async,
            path_variable_policy=self.path_variable_policy(),
        )

    # =========================================================================
    # Default Rule
    # =========================================================================

    def setup_default_rule(self, rule: RemoteApiRule) -> None:
        config = self.rule_config()
        if config is not None:
            apply_rule_config(rule, config)
        if self._mock_transport is not None:
            rule.use_transport(self._mock_transport)
        if self.is_use_applicational_user_agent():
            rule.set_header("User-Agent", self.build_applicational_user_agent())
        self.your_default_rule(rule)

    @abc.abstractmethod
    def url_base(self) -> str:
        """e.g. "http://localhost:8090/harbor" """

    @abc.abstractmethod
    def your_default_rule(self, rule: RemoteApiRule) -> None:
        """Set up senders, receiver and anything shared by every call."""

    def rule_config(self) -> RuleConfig | None:
        """File-based rule settings applied before your_default_rule()."""
        return None

    def path_variable_policy(self) -> RemoteMappingPolicy:
        return VacantMappingPolicy()

    def facade_exp(self) -> Any:
        """Caller shown in logs, the class by default."""
        return type(self)

    def is_use_applicational_user_agent(self) -> bool:
        return False

    def build_applicational_user_agent(self) -> str:
        """e.g. "harbor-sea-RemoteHarborBhv" """
        words = [
            word
            for word in (self.user_agent_service_name(), self.user_agent_app_name())
            if word is not None
        ]
        words.append(type(self).__name__)
        return "-".join(words)

    def user_agent_service_name(self) -> str | None:
        return None

    def user_agent_app_name(self) -> str | None:
        return None

    # =========================================================================
    # Request
    # =========================================================================

    def do_request_get(
        self,
        return_type: Any,
        action_path: str,
        path_variables: Sequence[Any],
        query: Any = None,
        rule_setup: RuleSetup | None = None,
    ) -> Any:
        return self.remote_api.request_get(
            return_type, self.url_base(), action_path, path_variables, query, rule_setup or _no_rule_setup
        )

    def do_request_post(
        self,
        return_type: Any,
        action_path: str,
        path_variables: Sequence[Any],
        body: Any,
        rule_setup: RuleSetup | None = None,
    ) -> Any:
        return self.remote_api.request_post(
            return_type, self.url_base(), action_path, path_variables, body, rule_setup or _no_rule_setup
        )

    def do_request_put(
        self,
        return_type: Any,
        action_path: str,
        path_variables: Sequence[Any],
        body: Any,
        rule_setup: RuleSetup | None = None,
    ) -> Any:
        return self.remote_api.request_put(
            return_type, self.url_base(), action_path, path_variables, body, rule_setup or _no_rule_setup
        )

    def do_request_patch(
        self,
        return_type: Any,
        action_path: str,
        path_variables: Sequence[Any],
        body: Any,
        rule_setup: RuleSetup | None = None,
    ) -> Any:
        return self.remote_api.request_patch(
            return_type, self.url_base(), action_path, path_variables, body, rule_setup or _no_rule_setup
        )

    def do_request_delete(
        self,
        return_type: Any,
        action_path: str,
        path_variables: Sequence[Any],
        query: Any = None,
        body: Any = None,
        rule_setup: RuleSetup | None = None,
    ) -> Any:
        return self.remote_api.request_delete(
            return_type,
            self.url_base(),
            action_path,
            path_variables,
            query,
            body,
            rule_setup or _no_rule_setup,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def more_url(self, *path_variables: Any) -> tuple[Any, ...]:
        """Path variables appended after the action path (or filling its placeholders)."""
        return path_variables

    def no_more_url(self) -> tuple[Any, ...]:
        return ()

    def query(self, param: Any) -> Any:
        if param is None:
            raise RemoteApiArgumentError("The argument 'param' should not be None.")
        return param

    def no_query(self) -> None:
        return None

    def no_request_body(self) -> Any:
        return EMPTY_REQUEST_BODY

    def set_mock_http_client(self, mock_transport: httpx.BaseTransport) -> None:
        """Route every call through the mock transport. For tests only."""
        self._mock_transport = mock_transport
