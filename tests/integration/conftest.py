"""Integration test configuration.

Provides a TestClient over the echo app. Tests that need real sockets
(fragmented frames, close handshakes) use ``live_echo_server`` from the
root conftest instead.
"""

import pytest
from fastapi.testclient import TestClient

from perfbench.adapters.config.settings import ServerSettings
from perfbench.entrypoints.api_server import create_app


@pytest.fixture
def echo_app_settings() -> ServerSettings:
    return ServerSettings(upload_chunk_bytes=64 * 1024)


@pytest.fixture
def client(echo_app_settings: ServerSettings):
    """TestClient with lifespan events enabled."""
    with TestClient(create_app(echo_app_settings), raise_server_exceptions=False) as test_client:
        yield test_client
