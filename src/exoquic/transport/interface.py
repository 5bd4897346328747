"""
Transport interface.

A transport is one socket connection. It reports its lifecycle to a
listener through four events:

- ``on_open``: the handshake completed
- ``on_message``: a text frame arrived
- ``on_error``: something failed; a close event always follows
- ``on_close``: the connection ended, with the close code and reason

Events are delivered sequentially from a single task, so a listener sees
messages in arrival order and never sees an event after ``on_close``.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Protocol, runtime_checkable


@runtime_checkable
class TransportListener(Protocol):
    """Receives the lifecycle events of one transport."""

    async def on_open(self) -> None:
        """Called once when the connection is established."""
        ...

    async def on_message(self, data: str) -> None:
        """Called for each received text frame, in arrival order."""
        ...

    async def on_error(self, error: Exception) -> None:
        """Called when the transport fails. A close event follows."""
        ...

    async def on_close(self, code: int | None, reason: str) -> None:
        """
        Called exactly once when the connection ends.

        Args:
            code: Close code, or None if the connection never carried one
            reason: Close reason, possibly empty
        """
        ...


class Transport(ABC):
    """
    Abstract base class for a single socket connection.

    Implementations:
    - WebSocketTransport: websockets-based client connection
    """

    @abstractmethod
    async def start(self) -> None:
        """
        Begin connecting in the background.

        Returns as soon as the connection attempt is scheduled. Connection
        failures are reported through ``on_error`` and ``on_close``, never
        raised from here.
        """
        pass

    @abstractmethod
    async def close(self, code: int, reason: str) -> None:
        """
        Close the connection with the given code and reason.

        Safe to call at any point of the lifecycle and more than once.
        ``on_close`` is still delivered exactly once.
        """
        pass


TransportFactory = Callable[[str, Sequence[str], TransportListener], Transport]
"""Builds a transport from (server_url, subprotocols, listener)."""


__all__ = [
    "Transport",
    "TransportFactory",
    "TransportListener",
]
