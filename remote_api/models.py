"""Internal data models for remote-api.

All models use Pydantic v2. See DESIGN.md "Data Models" for field descriptions.
"""

from __future__ import annotations

import codecs
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# HTTP Models
# =============================================================================


class HttpMethod(str, Enum):
    """HTTP methods supported by the pipeline."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class StatusCategory(str, Enum):
    """Closed partition of HTTP status codes, exactly one per status."""

    SUCCESS = "success"  # 200 <= s < 300
    CLIENT_ERROR = "client_error"  # 400 <= s < 500
    SERVER_ERROR = "server_error"  # everything else, including redirects

    @classmethod
    def of(cls, status_code: int) -> StatusCategory:
        if 200 <= status_code < 300:
            return cls.SUCCESS
        if 400 <= status_code < 500:
            return cls.CLIENT_ERROR
        return cls.SERVER_ERROR


# =============================================================================
# Send/Receive Log Models
# =============================================================================


class SendReceiveRecord(BaseModel):
    """Immutable snapshot of one call's send/receive artifacts.

    Handed to the async log task; the keeper it came from is never read
    again after the snapshot is taken. Header and parameter maps hold a
    string for a single value and a list for repeated names.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    http_method: HttpMethod = Field(description="Request method")
    request_path: str = Field(description="URL base + action path + path variables, no query")
    facade_exp: str | None = Field(default=None, description="Calling behavior, e.g. class name")
    begin_datetime: datetime | None = Field(default=None, description="When the call began")
    end_datetime: datetime | None = Field(default=None, description="When the call ended")
    request_headers: dict[str, Any] = Field(default_factory=dict, description="Headers from the rule")
    query_string: str | None = Field(default=None, description="Serialized query, e.g. ?sea=mystic")
    form_parameters: dict[str, Any] = Field(default_factory=dict, description="Form body parameters")
    request_body: str | None = Field(default=None, description="Request body text")
    request_body_type: str | None = Field(default=None, description="Body format tag, e.g. json")
    http_status: int | None = Field(default=None, description="Response status")
    response_headers: dict[str, Any] = Field(default_factory=dict, description="Response headers")
    response_body: str | None = Field(default=None, description="Response body text")
    response_body_type: str | None = Field(default=None, description="Body format tag, e.g. json")
    cause_type: str | None = Field(default=None, description="Exception class name if the call failed")
    cause_hash: str | None = Field(default=None, description="Identity hash of the exception")


# =============================================================================
# Rule Configuration Models
# =============================================================================


def _check_charset(value: str | None) -> str | None:
    if value is not None:
        try:
            codecs.lookup(value)
        except LookupError as e:
            raise ValueError(f"unknown charset '{value}'") from e
    return value


class TimeoutConfig(BaseModel):
    """Timeouts in milliseconds."""

    model_config = ConfigDict(extra="forbid")

    connect: int | None = Field(default=None, ge=0, description="Connect timeout")
    connection_request: int | None = Field(default=None, ge=0, description="Pool acquisition timeout")
    socket: int | None = Field(default=None, ge=0, description="Read/write timeout")


class CharsetConfig(BaseModel):
    """Charsets (codec names) for each encoded part of the call."""

    model_config = ConfigDict(extra="forbid")

    path_variable: str | None = Field(default=None)
    query: str | None = Field(default=None)
    request_body: str | None = Field(default=None)
    response_body: str | None = Field(default=None)

    @field_validator("path_variable", "query", "request_body", "response_body")
    @classmethod
    def validate_charset(cls, v: str | None) -> str | None:
        return _check_charset(v)


class SendReceiveLogConfig(BaseModel):
    """Send/receive log settings."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=False, description="Emit the send/receive log")
    category: str | None = Field(default=None, description="Logger name suffix")
    suppress_response_body: bool = Field(default=False, description="Omit the response body")
    response_headers: list[str] = Field(
        default_factory=list, description="Response header names to show"
    )


class ValidatorConfig(BaseModel):
    """Bean validation settings."""

    model_config = ConfigDict(extra="forbid")

    suppress_param: bool = Field(default=False)
    suppress_return: bool = Field(default=False)
    warn_param: bool = Field(default=False, description="Log param validation errors instead of raising")
    warn_return: bool = Field(default=False, description="Log return validation errors instead of raising")


class RuleConfig(BaseModel):
    """Top-level rule configuration file structure.

    Every field is optional; only present values are applied to a rule.
    """

    model_config = ConfigDict(extra="forbid")

    timeouts: TimeoutConfig | None = Field(default=None)
    ssl_untrusted: bool | None = Field(default=None, description="Trust every server certificate")
    charsets: CharsetConfig | None = Field(default=None)
    headers: dict[str, str | list[str]] = Field(
        default_factory=dict, description="Headers (supports ${ENV_VAR} substitution)"
    )
    send_receive_log: SendReceiveLogConfig | None = Field(default=None)
    validator: ValidatorConfig | None = Field(default=None)
