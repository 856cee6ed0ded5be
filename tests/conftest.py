"""Pytest configuration and fixtures for vaultwire tests.

This file provides:
- PortReservation: Race-free port allocation for test servers
- MockServer: Subprocess management for the mock Vault server
- RecordingHandler: Scripted httpx.MockTransport handler for unit tests
- Fixtures: Shared test infrastructure (configs, clients, servers)
"""

from __future__ import annotations

import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Callable, Generator

import httpx
import pytest

from vaultwire.client import Vault
from vaultwire.models import RawResponse, VaultConfig

# Project root for fixture paths
PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_vault"

MOCK_ADDRESS = "http://vault.test:8200"


def make_raw_response(
    status_code: int = 200,
    body: bytes | str = b"",
    content_type: str | None = "application/json",
) -> RawResponse:
    """Create a RawResponse for envelope and validation tests."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return RawResponse(status_code=status_code, content_type=content_type, body=body)


class RecordingHandler:
    """httpx.MockTransport handler that records requests and replays scripted responses.

    Responses are consumed in order; the last one repeats once the script
    runs out. Entries may be httpx.Response objects or exceptions to raise.

    Usage:
        handler = RecordingHandler(httpx.Response(200, json={"data": {}}))
        vault = Vault(config, transport=httpx.MockTransport(handler))
        ...
        assert handler.requests[0].url.path == "/v1/secret/data/hello"
    """

    def __init__(self, *script: httpx.Response | Exception) -> None:
        self._script = list(script) or [httpx.Response(200, json={})]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self._script) - 1)
        entry = self._script[index]
        if isinstance(entry, Exception):
            raise entry
        # Fresh copy: a Response object is bound to the request it answered
        return httpx.Response(entry.status_code, headers=entry.headers, content=entry.content)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    WHY this exists: find_free_port() has a race window - another process can
    grab the port between when we find it and when our server binds. This class
    keeps the socket open until just before the server starts, eliminating the race.
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
        """Release the socket and return the port for server use.

        Safe to call multiple times - subsequent calls are no-ops.
        """
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port

    def __enter__(self) -> PortReservation:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except (ConnectionRefusedError, socket.timeout, OSError):
            time.sleep(0.1)
    return False


class MockServer:
    """Manages the mock Vault server subprocess for integration tests.

    Runs tests/integration/mock_vault.py as a subprocess. Failure injection
    and state resets go through its /_control endpoints.
    """

    def __init__(self, port: int | PortReservation) -> None:
        if isinstance(port, PortReservation):
            self._reservation: PortReservation | None = port
            self.port = port.port
        else:
            self._reservation = None
            self.port = port
        self.host = "127.0.0.1"
        self.base_url = f"http://{self.host}:{self.port}"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the mock server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        if self._reservation:
            self._reservation.release()

        self._process = subprocess.Popen(
            [
                sys.executable, "-m", MOCK_SERVER_MODULE,
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
                f"MockServer failed to start on port {self.port}. "
                f"stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the mock server subprocess with graceful shutdown.

        Uses SIGTERM first, then SIGKILL after 5s if process doesn't exit.
        Safe to call multiple times or if server was never started.
        """
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                # Process ignored SIGTERM, escalate to SIGKILL
                self._process.kill()
                try:
                    self._process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    pass  # Process is unkillable (zombie?), nothing more we can do
            self._process = None

    def reset(self) -> None:
        """Clear stored secrets, issued tokens and pending failures."""
        httpx.post(f"{self.base_url}/_control/reset", timeout=5.0).raise_for_status()

    def fail_next(self, count: int, status_code: int = 500) -> None:
        """Make the next count /v1 requests answer status_code with a plain-text body."""
        httpx.post(
            f"{self.base_url}/_control/fail",
            json={"count": count, "status_code": status_code},
            timeout=5.0,
        ).raise_for_status()

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture
def mock_config() -> VaultConfig:
    """Config pointing at the fake address served by httpx.MockTransport."""
    return VaultConfig(address=MOCK_ADDRESS, token="s.parent-token", retry_interval_ms=0)


@pytest.fixture
def make_vault(
    mock_config: VaultConfig,
) -> Generator[Callable[..., Vault], None, None]:
    """Factory building Vault clients over a RecordingHandler; closes them afterwards.

    Example:
        def test_read(make_vault):
            handler = RecordingHandler(httpx.Response(200, json={...}))
            vault = make_vault(handler, engine_version=1)
    """
    clients: list[Vault] = []

    def factory(handler: RecordingHandler, **config_updates: Any) -> Vault:
        config = mock_config.model_copy(update=config_updates)
        vault = Vault(config, transport=httpx.MockTransport(handler))
        clients.append(vault)
        return vault

    yield factory

    for vault in clients:
        vault.close()


@pytest.fixture(scope="session")
def fixture_mock_vault_server() -> Generator[MockServer, None, None]:
    """Start the mock Vault server once per test session."""
    with MockServer(PortReservation()) as server:
        yield server


@pytest.fixture
def mock_vault_server(fixture_mock_vault_server: MockServer) -> MockServer:
    """Session server with its state reset for the current test."""
    fixture_mock_vault_server.reset()
    return fixture_mock_vault_server


@pytest.fixture
def server_config(mock_vault_server: MockServer) -> VaultConfig:
    """Config for the mock Vault server, tuned for fast retries."""
    return VaultConfig(
        address=mock_vault_server.base_url,
        open_timeout=5,
        read_timeout=5,
        retry_interval_ms=10,
    )


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Automatically apply markers based on test location.

    Enables running subsets via:
        pytest -m integration  # only integration tests
        pytest -m unit         # only unit tests
    """
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
