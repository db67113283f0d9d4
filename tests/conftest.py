"""Pytest configuration and shared fixtures.

This module defines:
- Test markers (unit, integration, property)
- Fake FixtureResource implementations for unit tests
- A live echo server fixture for integration tests
"""

import socket
import threading

import pytest

from perfbench.adapters.config.settings import ServerSettings
from perfbench.adapters.outbound.echo_server_fixture import EchoServerFixture
from perfbench.application.fixture_manager import FixtureManager


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "unit: Fast unit tests with fake fixtures (no sockets)",
    )
    config.addinivalue_line(
        "markers",
        "integration: Tests against the echo app or a live uvicorn server",
    )
    config.addinivalue_line(
        "markers",
        "property: Hypothesis property-based tests",
    )


class FakeResource:
    """FixtureResource that counts start/stop calls.

    Optionally fails its first ``fail_starts`` start() calls, and can block
    inside start() until ``gate`` is set to widen race windows.
    """

    def __init__(self, value: object = "fake-value", fail_starts: int = 0) -> None:
        self.value = value
        self.fail_starts = fail_starts
        self.starts = 0
        self.stops = 0
        self.running = False
        self.gate: threading.Event | None = None
        self._lock = threading.Lock()

    def start(self) -> object:
        if self.gate is not None:
            self.gate.wait(timeout=5)
        with self._lock:
            if self.fail_starts > 0:
                self.fail_starts -= 1
                raise OSError("address already in use")
            if self.running:
                raise AssertionError("start() called while already running")
            self.starts += 1
            self.running = True
        return self.value

    def stop(self) -> None:
        with self._lock:
            self.stops += 1
            self.running = False


@pytest.fixture
def fake_resource() -> FakeResource:
    return FakeResource()


@pytest.fixture
def fixture_manager(fake_resource: FakeResource) -> FixtureManager:
    """Manager with one fake fixture registered as "fake"."""
    manager = FixtureManager()
    manager.register("fake", fake_resource)
    return manager


def find_free_port() -> int:
    """Find a free port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        s.listen(1)
        return s.getsockname()[1]


@pytest.fixture
def server_settings() -> ServerSettings:
    """Loopback server settings on an ephemeral port."""
    return ServerSettings(host="127.0.0.1", port=0, startup_timeout_seconds=10, log_level="WARNING")


@pytest.fixture
def live_echo_server(server_settings: ServerSettings):
    """Running echo server; yields its address and stops it afterwards."""
    fixture = EchoServerFixture(server_settings)
    address = fixture.start()
    try:
        yield address
    finally:
        fixture.stop()
