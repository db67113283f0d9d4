# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Integration tests against a live uvicorn echo server.

These cover what the ASGI TestClient cannot: fragmented frames on the wire,
the closing handshake, parallel sockets and fixture sharing.
"""

import asyncio
import socket

import httpx
import pytest
import websockets

from perfbench.adapters.config.settings import ServerSettings
from perfbench.adapters.outbound.echo_server_fixture import (
    ECHO_SERVER_FIXTURE,
    EchoServerAddress,
    EchoServerFixture,
)
from perfbench.application.fixture_manager import FixtureManager
from perfbench.domain.entities import NORMAL_CLOSURE
from perfbench.domain.errors import FixtureStartError
from tests.conftest import find_free_port

pytestmark = pytest.mark.integration


class TestWebSocketFraming:
    @pytest.mark.asyncio
    async def test_fragmented_binary_echoed_as_one_message(self, live_echo_server: EchoServerAddress) -> None:
        first, second = b"\x01" * 128, b"\x02" * 128
        async with websockets.connect(live_echo_server.ws_url) as ws:
            await ws.send([first, second])
            reply = await ws.recv()
        assert isinstance(reply, bytes)
        assert reply == first + second

    @pytest.mark.asyncio
    async def test_fragmented_text_echoed_as_text(self, live_echo_server: EchoServerAddress) -> None:
        async with websockets.connect(live_echo_server.ws_url) as ws:
            await ws.send(["hello, ", "world"])
            reply = await ws.recv()
        assert reply == "hello, world"

    @pytest.mark.asyncio
    async def test_hundred_messages_in_order(self, live_echo_server: EchoServerAddress) -> None:
        payloads = [i.to_bytes(2, "big") * 128 for i in range(100)]
        assert all(len(payload) == 256 for payload in payloads)
        async with websockets.connect(live_echo_server.ws_url) as ws:
            for payload in payloads:
                await ws.send(payload)
            received = [await ws.recv() for _ in payloads]
        assert received == payloads
        assert ws.close_code == NORMAL_CLOSURE

    @pytest.mark.asyncio
    async def test_close_handshake_returns_normal_closure(self, live_echo_server: EchoServerAddress) -> None:
        ws = await websockets.connect(live_echo_server.ws_url)
        await ws.send(b"ping")
        assert await ws.recv() == b"ping"
        await ws.close(code=NORMAL_CLOSURE)
        assert ws.close_code == NORMAL_CLOSURE

    @pytest.mark.asyncio
    async def test_parallel_connections_do_not_interleave(self, live_echo_server: EchoServerAddress) -> None:
        async def session(tag: int) -> list[bytes]:
            async with websockets.connect(live_echo_server.ws_url) as ws:
                received = []
                for i in range(20):
                    await ws.send(bytes([tag, i]) * 64)
                    received.append(await ws.recv())
                return received

        results = await asyncio.gather(*(session(tag) for tag in range(10)))

        for tag, received in enumerate(results):
            assert received == [bytes([tag, i]) * 64 for i in range(20)]


class TestHttpEndpoints:
    def test_noop_and_upload_over_real_socket(self, live_echo_server: EchoServerAddress) -> None:
        with httpx.Client(base_url=live_echo_server.http_url) as client:
            assert client.get("/noop").status_code == 200
            response = client.post("/upload", files={"file": ("a.bin", b"z" * 100_000)})
            assert response.json()["bytes"] == 100_000
            missing = client.post("/upload", files={"nope": ("a.bin", b"z")})
            assert missing.status_code == 400
            assert client.get("/noop").status_code == 200


class TestFixtureLifecycle:
    def test_start_is_idempotent(self, server_settings: ServerSettings) -> None:
        fixture = EchoServerFixture(server_settings)
        try:
            first = fixture.start()
            assert fixture.start() == first
            assert first.port > 0
            assert first.ws_url == f"ws://127.0.0.1:{first.port}/echo"
        finally:
            fixture.stop()
            fixture.stop()
        assert fixture.address is None

    def test_stopped_server_refuses_connections(self, server_settings: ServerSettings) -> None:
        fixture = EchoServerFixture(server_settings)
        address = fixture.start()
        fixture.stop()
        with pytest.raises(httpx.ConnectError):
            httpx.get(f"{address.http_url}/noop", timeout=2)

    def test_shared_through_fixture_manager(self, server_settings: ServerSettings) -> None:
        manager = FixtureManager()
        manager.register(ECHO_SERVER_FIXTURE, EchoServerFixture(server_settings))

        first = manager.acquire(ECHO_SERVER_FIXTURE)
        second = manager.acquire(ECHO_SERVER_FIXTURE)
        try:
            assert first.value == second.value
            assert httpx.get(f"{first.value.http_url}/noop").status_code == 200
        finally:
            manager.release(first)
            assert manager.is_live(ECHO_SERVER_FIXTURE)
            manager.release(second)
        assert not manager.is_live(ECHO_SERVER_FIXTURE)

    def test_bind_failure_is_fixture_start_error(self) -> None:
        port = find_free_port()
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", port))
            blocker.listen(1)

            manager = FixtureManager()
            manager.register(
                ECHO_SERVER_FIXTURE,
                EchoServerFixture(ServerSettings(host="127.0.0.1", port=port)),
            )
            with pytest.raises(FixtureStartError) as exc_info:
                manager.acquire(ECHO_SERVER_FIXTURE)

        assert isinstance(exc_info.value.__cause__, OSError)
        assert manager.ref_count(ECHO_SERVER_FIXTURE) == 0
