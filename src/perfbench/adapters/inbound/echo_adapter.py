# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Echo server routes (GET /noop, WS /echo, POST /upload).

Benchmarks measure against these endpoints, so their behavior is part of
the measurement contract:
- /noop answers immediately with an empty 200
- /echo returns every logical message unchanged and with the same type;
  fragmented inbound messages arrive here already reassembled by the
  WebSocket protocol layer and are echoed as one message
- /upload drains the "file" part and reports how many bytes it held
"""

from typing import Any, Protocol

import structlog
from fastapi import APIRouter, Request, Response, WebSocket, status
from starlette.datastructures import UploadFile

from perfbench.adapters.inbound.request_models import UploadResponse
from perfbench.domain.entities import NORMAL_CLOSURE, Connection
from perfbench.domain.errors import ProtocolError

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["echo"])

UPLOAD_FIELD = "file"
DEFAULT_UPLOAD_CHUNK_BYTES = 64 * 1024


class MessageChannel(Protocol):
    """The subset of Starlette's WebSocket the echo loop uses."""

    async def receive(self) -> dict[str, Any]: ...

    async def send_text(self, data: str) -> None: ...

    async def send_bytes(self, data: bytes) -> None: ...


async def serve_echo(channel: MessageChannel, connection: Connection) -> Connection:
    """Echo messages on an accepted channel until the peer closes.

    The connection must already be OPEN. On return it is CLOSED: either
    the peer's close frame was answered by the protocol layer, or a
    transport error aborted the connection.

    Args:
        channel: Accepted WebSocket
        connection: Connection state owned by this task

    Returns:
        The same connection, for inspection
    """
    try:
        while connection.is_open():
            message = await channel.receive()
            if message["type"] == "websocket.disconnect":
                connection.begin_close(message.get("code", NORMAL_CLOSURE))
                break

            text = message.get("text")
            if text is not None:
                await channel.send_text(text)
                connection.record_echo(len(text.encode("utf-8")))
                continue

            data = message.get("bytes")
            if data is not None:
                await channel.send_bytes(data)
                connection.record_echo(len(data))
    except Exception as e:
        logger.warning(
            "connection_aborted",
            connection_id=connection.connection_id,
            error_type=type(e).__name__,
            error=str(e),
        )
        connection.abort()
        return connection

    connection.finish_close()
    logger.debug(
        "connection_closed",
        connection_id=connection.connection_id,
        close_code=connection.close_code,
        messages=connection.messages_echoed,
        bytes=connection.bytes_echoed,
    )
    return connection


@router.get("/noop", status_code=status.HTTP_200_OK)
async def noop() -> Response:
    """Request/response overhead probe: empty 200."""
    return Response(status_code=status.HTTP_200_OK)


@router.websocket("/echo")
async def echo(websocket: WebSocket) -> None:
    """WebSocket echo endpoint (WS /echo)."""
    connection = Connection()
    await websocket.accept()
    connection.open()
    logger.debug("connection_opened", connection_id=connection.connection_id)
    await serve_echo(websocket, connection)


@router.get("/echo")
async def echo_without_upgrade() -> None:
    """Plain HTTP on the echo path is a protocol error."""
    raise ProtocolError("WebSocket upgrade required for /echo")


@router.post("/upload", response_model=UploadResponse)
async def upload(request: Request) -> UploadResponse:
    """Drain a multipart file part and report its size (POST /upload).

    Raises:
        ProtocolError: If the body is not multipart or has no "file" part
    """
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith("multipart/form-data"):
        raise ProtocolError(f"Upload must be multipart/form-data, got '{content_type or 'none'}'")

    settings = getattr(request.app.state, "server_settings", None)
    chunk_size = settings.upload_chunk_bytes if settings else DEFAULT_UPLOAD_CHUNK_BYTES

    try:
        form = await request.form()
    except Exception as e:
        raise ProtocolError(f"Malformed multipart body: {e}") from e

    try:
        part = form.get(UPLOAD_FIELD)
        if not isinstance(part, UploadFile):
            raise ProtocolError(f"Multipart body has no '{UPLOAD_FIELD}' file part")

        total = 0
        while chunk := await part.read(chunk_size):
            total += len(chunk)
    finally:
        await form.close()

    logger.debug("upload_received", filename=part.filename, bytes=total)
    return UploadResponse(filename=part.filename, bytes=total)
