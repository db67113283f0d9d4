"""Domain entities for the echo server.

Entities represent objects with identity and lifecycle in the domain.
Unlike value objects, entities are mutable and can change over time.

All entities in this module have NO external dependencies - only Python
stdlib and typing imports.
"""

from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

from perfbench.domain.errors import InvalidTransitionError

NORMAL_CLOSURE = 1000


class ConnectionState(Enum):
    """Lifecycle state of one WebSocket connection."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


_ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.CONNECTING: frozenset({ConnectionState.OPEN, ConnectionState.CLOSING}),
    ConnectionState.OPEN: frozenset({ConnectionState.CLOSING}),
    ConnectionState.CLOSING: frozenset({ConnectionState.CLOSED}),
    ConnectionState.CLOSED: frozenset(),
}


@dataclass
class Connection:
    """Per-client connection state held by the task that serves it.

    A Connection is created on accept and discarded on close. Only the
    handling task mutates it, so it carries no lock.

    Attributes:
        connection_id: Unique identifier (for log correlation).
        state: Current lifecycle state.
        messages_echoed: Logical messages sent back to the client.
        bytes_echoed: Payload bytes sent back (UTF-8 length for text).
        close_code: Close code received from the peer, if any.

    Example:
        >>> conn = Connection()
        >>> conn.open()
        >>> conn.record_echo(256)
        >>> conn.begin_close(1000)
        >>> conn.finish_close()
        >>> conn.state
        <ConnectionState.CLOSED: 'closed'>
    """

    connection_id: str = field(default_factory=lambda: uuid4().hex[:12])
    state: ConnectionState = ConnectionState.CONNECTING
    messages_echoed: int = 0
    bytes_echoed: int = 0
    close_code: int | None = None

    def _transition(self, target: ConnectionState) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Connection {self.connection_id}: "
                f"{self.state.value} -> {target.value} not allowed"
            )
        self.state = target

    def open(self) -> None:
        """Handshake completed."""
        self._transition(ConnectionState.OPEN)

    def begin_close(self, code: int | None = None) -> None:
        """Close frame received or local error; no further echo allowed."""
        self._transition(ConnectionState.CLOSING)
        self.close_code = code

    def finish_close(self) -> None:
        """Close handshake completed or socket torn down."""
        self._transition(ConnectionState.CLOSED)

    def abort(self) -> None:
        """Tear the connection down from any live state (transport error)."""
        if self.state is ConnectionState.CLOSED:
            return
        if self.state is not ConnectionState.CLOSING:
            self._transition(ConnectionState.CLOSING)
        self._transition(ConnectionState.CLOSED)

    def record_echo(self, n_bytes: int) -> None:
        """Account for one echoed message.

        Raises:
            InvalidTransitionError: If the connection is not open.
        """
        if self.state is not ConnectionState.OPEN:
            raise InvalidTransitionError(
                f"Connection {self.connection_id}: cannot echo in state {self.state.value}"
            )
        self.messages_echoed += 1
        self.bytes_echoed += n_bytes

    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    def is_closed(self) -> bool:
        return self.state is ConnectionState.CLOSED
