"""Config Loader - loads rule settings from YAML.

Handles loading YAML config files with environment variable substitution and
copying the loaded settings onto a rule. A behavior returns the loaded
RuleConfig from rule_config(); it is applied before your_default_rule().

See DESIGN.md "Configuration" for the file format.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml

from remote_api.errors import RemoteApiError
from remote_api.models import RuleConfig
from remote_api.rule import RemoteApiRule


class ConfigError(RemoteApiError):
    """Raised when configuration loading fails."""


_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_rule_config(config_path: Path | str) -> RuleConfig:
    """Load rule configuration from YAML with ${ENV_VAR} substitution."""
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return RuleConfig.model_validate(raw_config)
    except Exception as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def apply_rule_config(rule: RemoteApiRule, config: RuleConfig) -> None:
    """Copy every present setting of the config onto the rule.

    Header values given as a list are added one by one; a single value is set.
    """
    if config.timeouts is not None:
        if config.timeouts.connect is not None:
            rule.set_connect_timeout(config.timeouts.connect)
        if config.timeouts.connection_request is not None:
            rule.set_connection_request_timeout(config.timeouts.connection_request)
        if config.timeouts.socket is not None:
            rule.set_socket_timeout(config.timeouts.socket)

    if config.ssl_untrusted is not None:
        rule.set_ssl_untrusted(config.ssl_untrusted)

    if config.charsets is not None:
        if config.charsets.path_variable is not None:
            rule.encode_request_path_variable_as(config.charsets.path_variable)
        if config.charsets.query is not None:
            rule.encode_request_query_as(config.charsets.query)
        if config.charsets.request_body is not None:
            rule.encode_request_body_as(config.charsets.request_body)
        if config.charsets.response_body is not None:
            rule.encode_response_body_as(config.charsets.response_body)

    for name, value in config.headers.items():
        if isinstance(value, list):
            for element in value:
                rule.add_header(name, element)
        else:
            rule.set_header(name, value)

    log_config = config.send_receive_log
    if log_config is not None and log_config.enabled:

        def setup_log(op: Any) -> None:
            if log_config.category:
                op.categorize(log_config.category)
            if log_config.suppress_response_body:
                op.suppress_response_body()
            if log_config.response_headers:
                op.target_response_header(*log_config.response_headers)

        rule.enable_send_receive_log(setup_log)

    validator_config = config.validator
    if validator_config is not None:

        def setup_validator(op: Any) -> None:
            if validator_config.suppress_param:
                op.suppress_param()
            if validator_config.suppress_return:
                op.suppress_return()
            if validator_config.warn_param:
                op.handle_as_warn_param()
            if validator_config.warn_return:
                op.handle_as_warn_return()

        rule.customize_validator(setup_validator)


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
