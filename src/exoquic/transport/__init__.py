"""Transport primitives for the exoquic library."""

from exoquic.transport.interface import Transport, TransportFactory, TransportListener
from exoquic.transport.websocket import WebSocketTransport

__all__ = [
    "Transport",
    "TransportFactory",
    "TransportListener",
    "WebSocketTransport",
]
