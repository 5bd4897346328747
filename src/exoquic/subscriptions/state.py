"""
Connection states of a subscriber.

State transitions:
    IDLE -> CONNECTING
    CONNECTING -> OPEN | CLOSING | CLOSED
    OPEN -> CLOSING | CLOSED
    CLOSING -> CLOSED
    CLOSED -> CONNECTING (subscribe again) | RECONNECTING
    RECONNECTING -> CONNECTING | CLOSED (unsubscribed while waiting)
"""

from enum import Enum


class ConnectionState(Enum):
    """States a subscriber's connection can be in."""

    IDLE = "idle"
    """Created, never subscribed."""

    CONNECTING = "connecting"
    """A transport was started and the handshake is pending."""

    OPEN = "open"
    """The transport is connected and delivering batches."""

    CLOSING = "closing"
    """Unsubscribe requested; waiting for the transport to close."""

    CLOSED = "closed"
    """The transport is gone."""

    RECONNECTING = "reconnecting"
    """Waiting out the backoff delay before the next session."""


VALID_TRANSITIONS: dict[ConnectionState, set[ConnectionState]] = {
    ConnectionState.IDLE: {ConnectionState.CONNECTING},
    ConnectionState.CONNECTING: {
        ConnectionState.OPEN,
        ConnectionState.CLOSING,
        ConnectionState.CLOSED,
    },
    ConnectionState.OPEN: {
        ConnectionState.CLOSING,
        ConnectionState.CLOSED,
    },
    ConnectionState.CLOSING: {ConnectionState.CLOSED},
    ConnectionState.CLOSED: {
        ConnectionState.CONNECTING,
        ConnectionState.RECONNECTING,
    },
    ConnectionState.RECONNECTING: {
        ConnectionState.CONNECTING,
        ConnectionState.CLOSED,
    },
}
"""Allowed state transitions."""


def is_valid_transition(from_state: ConnectionState, to_state: ConnectionState) -> bool:
    """
    Check if a state transition is valid.

    Args:
        from_state: Current state
        to_state: Target state

    Returns:
        True if transition is allowed, False otherwise
    """
    return to_state in VALID_TRANSITIONS.get(from_state, set())


__all__ = [
    "ConnectionState",
    "VALID_TRANSITIONS",
    "is_valid_transition",
]
