# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Yakov Shkolnikov and contributors
"""Echo server as a shared fixture.

Runs the FastAPI echo app under uvicorn in a daemon thread bound to a
local socket. Registered with the FixtureManager as "echo_server" so every
network workload talks to one server instance per process.
"""

import socket
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog
import uvicorn
from fastapi import FastAPI

from perfbench.adapters.config.settings import ServerSettings, get_settings
from perfbench.entrypoints.api_server import create_app

ECHO_SERVER_FIXTURE = "echo_server"

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EchoServerAddress:
    """Where a running echo server listens."""

    host: str
    port: int

    @property
    def http_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def ws_url(self) -> str:
        return f"ws://{self.host}:{self.port}/echo"


class EchoServerFixture:
    """FixtureResource that serves the echo app on a background thread.

    start() binds the listening socket itself, so a bind failure surfaces
    synchronously, then waits until uvicorn reports it is serving. Both
    start() and stop() are idempotent-if-retried.

    Args:
        settings: Server settings (default: from environment)
        app_factory: Builds the ASGI app (default: create_app)
    """

    def __init__(
        self,
        settings: ServerSettings | None = None,
        app_factory: Callable[[ServerSettings], FastAPI] | None = None,
    ) -> None:
        self._settings = settings or get_settings().server
        self._app_factory = app_factory or create_app
        self._lock = threading.Lock()
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self._socket: socket.socket | None = None
        self._address: EchoServerAddress | None = None

    @property
    def address(self) -> EchoServerAddress | None:
        return self._address

    def start(self) -> EchoServerAddress:
        """Bind, serve, and wait for readiness.

        Returns:
            Address of the running server

        Raises:
            OSError: If the socket cannot be bound
            RuntimeError: If uvicorn exits during startup
            TimeoutError: If the server is not serving within startup_timeout_seconds
        """
        with self._lock:
            if self._address is not None:
                return self._address

            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind((self._settings.host, self._settings.port))
            except OSError:
                sock.close()
                raise
            host, port = sock.getsockname()[:2]

            config = uvicorn.Config(
                self._app_factory(self._settings),
                log_level=self._settings.log_level.lower(),
                ws_max_size=self._settings.ws_max_message_bytes,
                access_log=False,
                lifespan="on",
                timeout_graceful_shutdown=max(1, int(self._settings.startup_timeout_seconds)),
            )
            server = uvicorn.Server(config)
            thread = threading.Thread(
                target=server.run,
                kwargs={"sockets": [sock]},
                name="perfbench-echo-server",
                daemon=True,
            )
            thread.start()

            try:
                self._wait_until_serving(server, thread)
            except BaseException:
                server.should_exit = True
                thread.join(timeout=self._settings.startup_timeout_seconds)
                sock.close()
                raise

            self._server = server
            self._thread = thread
            self._socket = sock
            self._address = EchoServerAddress(host=host, port=port)
            logger.info("echo_server_started", host=host, port=port)
            return self._address

    def _wait_until_serving(self, server: uvicorn.Server, thread: threading.Thread) -> None:
        timeout = self._settings.startup_timeout_seconds
        deadline = time.monotonic() + timeout
        while not server.started:
            if not thread.is_alive():
                raise RuntimeError("Echo server exited during startup")
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Echo server did not start within {timeout}s")
            time.sleep(0.01)

    def stop(self) -> None:
        """Ask uvicorn to exit, join the thread, close the socket."""
        with self._lock:
            if self._server is None:
                return
            server, thread, sock = self._server, self._thread, self._socket
            self._server = self._thread = self._socket = None
            address, self._address = self._address, None

            server.should_exit = True
            if thread is not None:
                thread.join(timeout=self._settings.startup_timeout_seconds)
                if thread.is_alive():
                    server.force_exit = True
                    thread.join(timeout=self._settings.startup_timeout_seconds)
            if sock is not None:
                sock.close()
            logger.info(
                "echo_server_stopped",
                host=address.host if address else None,
                port=address.port if address else None,
            )
