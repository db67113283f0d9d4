# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Network workloads against the shared echo server, plus name resolution.

Every HTTP and WebSocket workload declares the "echo_server" fixture; setup
receives its EchoServerAddress and opens clients on the engine's event loop, so the
connections stay usable across all run calls of one run. Each run checks
what came back and raises ProtocolError on a mismatch, which the engine
records as a failed sample.
"""

import asyncio
import random
import socket
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx
import websockets

from perfbench.adapters.outbound.echo_server_fixture import ECHO_SERVER_FIXTURE, EchoServerAddress
from perfbench.domain.entities import NORMAL_CLOSURE
from perfbench.domain.errors import ProtocolError
from perfbench.domain.value_objects import ParameterSpace, Scalar, WorkloadDescriptor

CLIENT_MAX_MESSAGE_BYTES = 16 * 1024 * 1024
FIXTURES = (ECHO_SERVER_FIXTURE,)


def _address(fixtures: Mapping[str, Any]) -> EchoServerAddress:
    return fixtures[ECHO_SERVER_FIXTURE]


def _payload(size: int) -> bytes:
    return random.Random(size).randbytes(size)


async def _connect(url: str) -> websockets.ClientConnection:
    # No keepalive pings inside measured loops
    return await websockets.connect(url, max_size=CLIENT_MAX_MESSAGE_BYTES, ping_interval=None)


def check_echo(sent: bytes | str, received: bytes | str) -> None:
    """Raise ProtocolError unless the echo has the same type and content."""
    if type(received) is not type(sent):
        raise ProtocolError(
            f"Echo changed message type: sent {type(sent).__name__}, got {type(received).__name__}"
        )
    if received != sent:
        raise ProtocolError(f"Echo mismatch: sent {len(sent)} units, got {len(received)}")


# --- HTTP ---------------------------------------------------------------


@dataclass
class HttpState:
    client: httpx.AsyncClient
    requests: int = 1
    payload: bytes = b""


async def _http_noop_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> HttpState:
    client = httpx.AsyncClient(base_url=_address(fixtures).http_url)
    return HttpState(client=client, requests=int(params["requests"]))


async def http_noop(state: HttpState) -> int:
    """Issue concurrent GET /noop requests and require a 200 from each."""
    responses = await asyncio.gather(*(state.client.get("/noop") for _ in range(state.requests)))
    for response in responses:
        response.raise_for_status()
    return len(responses)


async def _upload_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> HttpState:
    client = httpx.AsyncClient(base_url=_address(fixtures).http_url, timeout=60.0)
    return HttpState(client=client, payload=_payload(int(params["size_mb"]) * 1024 * 1024))


async def upload(state: HttpState) -> int:
    """POST the payload as the multipart "file" part; the server reports its size."""
    response = await state.client.post(
        "/upload",
        files={"file": ("payload.bin", state.payload, "application/octet-stream")},
    )
    response.raise_for_status()
    received = response.json()["bytes"]
    if received != len(state.payload):
        raise ProtocolError(f"Server counted {received} bytes, sent {len(state.payload)}")
    return received


async def _http_teardown(state: HttpState) -> None:
    await state.client.aclose()


# --- WebSocket ----------------------------------------------------------


@dataclass
class EchoState:
    connections: list[websockets.ClientConnection]
    message: bytes | str
    messages: int


async def _ws_echo_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> EchoState:
    ws = await _connect(_address(fixtures).ws_url)
    return EchoState(
        connections=[ws],
        message=_payload(int(params["payload_bytes"])),
        messages=int(params["messages"]),
    )


async def _ws_text_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> EchoState:
    ws = await _connect(_address(fixtures).ws_url)
    chars = int(params["text_chars"])
    return EchoState(
        connections=[ws],
        message=("perfbench-" * (chars // 10 + 1))[:chars],
        messages=int(params["messages"]),
    )


async def _ws_concurrent_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> EchoState:
    url = _address(fixtures).ws_url
    connections = await asyncio.gather(*(_connect(url) for _ in range(int(params["connections"]))))
    return EchoState(
        connections=list(connections),
        message=_payload(int(params["payload_bytes"])),
        messages=int(params["messages"]),
    )


async def _echo_many(ws: websockets.ClientConnection, message: bytes | str, count: int) -> int:
    for _ in range(count):
        await ws.send(message)
        check_echo(message, await ws.recv())
    return count


async def ws_echo(state: EchoState) -> int:
    """Round-trip the message ``messages`` times on every connection."""
    counts = await asyncio.gather(
        *(_echo_many(ws, state.message, state.messages) for ws in state.connections)
    )
    return sum(counts)


async def _ws_fragmented_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> EchoState:
    ws = await _connect(_address(fixtures).ws_url)
    return EchoState(
        connections=[ws],
        message=_payload(2 * int(params["fragment_bytes"])),
        messages=int(params["messages"]),
    )


async def ws_fragmented(state: EchoState) -> int:
    """Send each message as two frames; expect it echoed as one message."""
    ws = state.connections[0]
    half = len(state.message) // 2
    fragments = [state.message[:half], state.message[half:]]
    for _ in range(state.messages):
        await ws.send(fragments)
        check_echo(state.message, await ws.recv())
    return state.messages


async def _ws_teardown(state: EchoState) -> None:
    await asyncio.gather(*(ws.close() for ws in state.connections))


def _connect_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> str:
    return _address(fixtures).ws_url


async def ws_connect(url: str) -> int:
    """Open a connection and complete the closing handshake."""
    ws = await _connect(url)
    await ws.close()
    if ws.close_code != NORMAL_CLOSURE:
        raise ProtocolError(f"Closing handshake ended with code {ws.close_code}")
    return ws.close_code


# --- DNS ----------------------------------------------------------------


def _dns_setup(params: Mapping[str, Scalar], fixtures: Mapping[str, Any]) -> str:
    return str(params["host"])


async def dns_resolution(host: str) -> int:
    """Resolve the host through the event loop's resolver.

    Raises:
        ProtocolError: If the resolver returned no addresses
    """
    infos = await asyncio.get_running_loop().getaddrinfo(host, None, type=socket.SOCK_STREAM)
    if not infos:
        raise ProtocolError(f"No addresses for {host}")
    return len(infos)


HTTP_NOOP = WorkloadDescriptor(
    name="network.http_noop",
    setup=_http_noop_setup,
    run=http_noop,
    teardown=_http_teardown,
    parameters=ParameterSpace.of(requests=(1, 10, 100)),
    fixtures=FIXTURES,
    category="network",
    description="Concurrent GET /noop over a pooled HTTP client",
)

UPLOAD = WorkloadDescriptor(
    name="network.upload",
    setup=_upload_setup,
    run=upload,
    teardown=_http_teardown,
    parameters=ParameterSpace.of(size_mb=(10,)),
    fixtures=FIXTURES,
    category="network",
    description="Multipart upload of a binary file part",
)

WS_ECHO = WorkloadDescriptor(
    name="network.ws_echo",
    setup=_ws_echo_setup,
    run=ws_echo,
    teardown=_ws_teardown,
    parameters=ParameterSpace.of(payload_bytes=(256, 4096, 65536), messages=(1, 100)),
    fixtures=FIXTURES,
    category="network",
    description="Binary WebSocket echo round trips on one connection",
)

WS_TEXT_ECHO = WorkloadDescriptor(
    name="network.ws_text_echo",
    setup=_ws_text_setup,
    run=ws_echo,
    teardown=_ws_teardown,
    parameters=ParameterSpace.of(text_chars=(1024,), messages=(1, 100)),
    fixtures=FIXTURES,
    category="network",
    description="Text WebSocket echo round trips on one connection",
)

WS_FRAGMENTED = WorkloadDescriptor(
    name="network.ws_fragmented",
    setup=_ws_fragmented_setup,
    run=ws_fragmented,
    teardown=_ws_teardown,
    parameters=ParameterSpace.of(fragment_bytes=(128, 4096), messages=(1, 100)),
    fixtures=FIXTURES,
    category="network",
    description="Two-fragment binary messages echoed as one",
)

WS_CONCURRENT = WorkloadDescriptor(
    name="network.ws_concurrent",
    setup=_ws_concurrent_setup,
    run=ws_echo,
    teardown=_ws_teardown,
    parameters=ParameterSpace.of(connections=(10,), payload_bytes=(256,), messages=(10,)),
    fixtures=FIXTURES,
    category="network",
    description="Echo round trips on parallel WebSocket connections",
)

WS_CONNECT = WorkloadDescriptor(
    name="network.ws_connect",
    setup=_connect_setup,
    run=ws_connect,
    fixtures=FIXTURES,
    category="network",
    description="WebSocket handshake plus closing handshake",
)

DNS_RESOLUTION = WorkloadDescriptor(
    name="network.dns_resolution",
    setup=_dns_setup,
    run=dns_resolution,
    parameters=ParameterSpace.of(host=("localhost",)),
    category="network",
    description="Asynchronous getaddrinfo for a host name",
)

WORKLOADS = (
    HTTP_NOOP,
    UPLOAD,
    WS_ECHO,
    WS_TEXT_ECHO,
    WS_FRAGMENTED,
    WS_CONCURRENT,
    WS_CONNECT,
    DNS_RESOLUTION,
)
