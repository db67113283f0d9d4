"""Application layer ports (interfaces for adapters).

Defines protocols that external adapters must implement to interact
with the application layer. This keeps the fixture manager and the
execution engine free of any server or framework dependency.
"""

from typing import Any, Protocol


class FixtureResource(Protocol):
    """Port for a shared resource with a start/stop lifecycle.

    Implementations:
        - EchoServerFixture: uvicorn-served echo app on a local socket

    Both calls must be idempotent-if-retried: calling start() on a running
    resource returns the live value, calling stop() on a stopped resource
    does nothing.
    """

    def start(self) -> Any:
        """Bring the resource up (may block, e.g. bind a listening socket).

        Returns:
            Value handed to workloads (e.g. the server address).

        Raises:
            Exception: If the resource cannot be started
        """
        ...

    def stop(self) -> None:
        """Tear the resource down."""
        ...
