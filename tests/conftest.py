"""Pytest configuration and fixtures for remote-api tests.

This file provides:
- Sample classifications, parameter objects and result models
- Builders for rules, pipelines and httpx.MockTransport-backed calls
- A synchronous log executor so send/receive log lines land in caplog
- HarborServer: the integration FastAPI server as a subprocess
"""

from __future__ import annotations

import dataclasses
import socket
import subprocess
import sys
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Generator

import httpx
import pytest
from pydantic import BaseModel, Field

from remote_api.mapping import RemoteMappingPolicy, VacantMappingPolicy
from remote_api.pipeline import RemoteApi
from remote_api.receivers import JsonReceiver
from remote_api.rule import RemoteApiRule
from remote_api.send_receive_log import synchronous_log_async
from remote_api.senders import FormSender, JsonSender, QuerySender

# Project root for fixture paths
PROJECT_ROOT = Path(__file__).parent.parent
URL_BASE = "http://localhost:8090/harbor"
HARBOR_SERVER_MODULE = "tests.integration.harbor_server"


# =============================================================================
# Sample Types
# =============================================================================


class Flg(Enum):
    """Classification with a preferred sub-item, like a generated CDef."""

    TRUE = ("1", {"alias": "Checked", "flag": "true"})
    FALSE = ("0", {"alias": "Unchecked", "flag": "false"})

    def code(self) -> str:
        return self.value[0]

    def sub_item_map(self) -> dict[str, Any]:
        return self.value[1]


class MemberStatus(Enum):
    """Classification without sub-items."""

    FORMALIZED = ("FML", {})
    PROVISIONAL = ("PRV", {})

    def code(self) -> str:
        return self.value[0]

    def sub_item_map(self) -> dict[str, Any]:
        return self.value[1]


@dataclasses.dataclass
class SeaQuery:
    location: str | None = None
    stage_list: list[str] | None = None


class ProductRow(BaseModel):
    product_id: int
    product_name: str


class ProductDetail(BaseModel):
    product_id: int = Field(ge=1)
    product_name: str
    regular_price: int | None = None


class HarborFailure(BaseModel):
    cause: str
    errors: list[str] = Field(default_factory=list)


class SigninBody(BaseModel):
    account: str = Field(min_length=1)
    password: str


# =============================================================================
# Builders
# =============================================================================


def json_default_rule(policy: RemoteMappingPolicy | None = None) -> Callable[[RemoteApiRule], None]:
    """Default rule setup: query sender, JSON body sender, JSON receiver."""
    policy = policy or VacantMappingPolicy()

    def setup(rule: RemoteApiRule) -> None:
        rule.send_query_by(QuerySender(policy))
        rule.send_body_by(JsonSender(policy))
        rule.receive_body_by(JsonReceiver(policy))

    return setup


def form_default_rule(policy: RemoteMappingPolicy | None = None) -> Callable[[RemoteApiRule], None]:
    policy = policy or VacantMappingPolicy()

    def setup(rule: RemoteApiRule) -> None:
        rule.send_query_by(QuerySender(policy))
        rule.send_body_by(FormSender(policy))
        rule.receive_body_by(JsonReceiver(policy))

    return setup


class RecordingTransport(httpx.MockTransport):
    """httpx.MockTransport that keeps every request it handled."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def recording(request: httpx.Request) -> httpx.Response:
            request.read()
            self.requests.append(request)
            return handler(request)

        super().__init__(recording)


def json_response(status_code: int = 200, body: str | None = None, headers: dict[str, str] | None = None) -> httpx.Response:
    all_headers = {"Content-Type": "application/json"}
    all_headers.update(headers or {})
    if body is None:
        return httpx.Response(status_code, headers=headers or {})
    return httpx.Response(status_code, headers=all_headers, content=body.encode("utf-8"))


def make_api(
    transport: httpx.BaseTransport,
    default_rule: Callable[[RemoteApiRule], None] | None = None,
    facade_exp: Any = "HarborBhv",
) -> RemoteApi:
    """RemoteApi routed through the transport, logging synchronously."""
    default_rule = default_rule or json_default_rule()

    def setup(rule: RemoteApiRule) -> None:
        rule.use_transport(transport)
        default_rule(rule)

    return RemoteApi(setup, facade_exp, log_async=synchronous_log_async)


def new_rule(setup: Callable[[RemoteApiRule], None] | None = None) -> RemoteApiRule:
    rule = RemoteApiRule()
    if setup is not None:
        setup(rule)
    return rule


# =============================================================================
# Harbor Server
# =============================================================================


class PortReservation:
    """Holds a reserved port with the socket kept open until the server binds.

    Usage:
        reservation = PortReservation()
        server = HarborServer(reservation)
        server.start()  # calls release() internally, then binds
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(("127.0.0.1", 0))  # Port 0 = OS assigns ephemeral port
        self._port = self._socket.getsockname()[1]
        self._released = False

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> int:
        """Release the socket and return the port; later calls are no-ops."""
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except OSError:
            time.sleep(0.1)
    return False


class HarborServer:
    """Manages the harbor server subprocess for integration tests."""

    def __init__(self, reservation: PortReservation) -> None:
        self._reservation = reservation
        self.port = reservation.port
        self.host = "127.0.0.1"
        self.url_base = f"http://{self.host}:{self.port}/harbor"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the server subprocess.

        Raises:
            RuntimeError: If the server fails to start within 10 seconds.
        """
        self._reservation.release()
        self._process = subprocess.Popen(
            [
                sys.executable, "-m", HARBOR_SERVER_MODULE,
                "--host", self.host,
                "--port", str(self.port),
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )
        if not wait_for_server_ready(self.host, self.port):
            stderr = ""
            if self._process and self._process.stderr:
                stderr = self._process.stderr.read().decode(errors="replace")
            self.stop()
            raise RuntimeError(
                f"HarborServer failed to start on port {self.port}. stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the subprocess, SIGTERM first then SIGKILL after 5s."""
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait(timeout=5)
            self._process = None

    def __enter__(self) -> HarborServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture(scope="session")
def harbor_server() -> Generator[HarborServer, None, None]:
    """Harbor server started once per test session."""
    with HarborServer(PortReservation()) as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Automatically apply markers based on test location.

    Tests under tests/integration/ get the integration marker, everything
    else the unit marker:
        pytest -m integration  # only integration tests
        pytest -m unit         # only unit tests
    """
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
