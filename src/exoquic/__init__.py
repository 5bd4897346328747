"""
exoquic - Resilient subscription client for exoquic event streams.

This library provides:
- SubscriptionManager: authorizes subscribers against your token endpoint
- Token caching with automatic renewal of expired tokens
- WebSocket subscribers with reconnection and exponential backoff
- A replay cache that redelivers received batches after reconnects
- In-memory and SQLite stores for the cache
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("exoquic-py")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

# Authorization
from exoquic.auth import (
    AuthorizationResult,
    TokenAuthority,
    TokenClaims,
    TokenFetcher,
    decode_token,
    replay_partition_name,
    subscription_key,
)

# Configuration
from exoquic.config import (
    DEFAULT_SERVER_URL,
    NORMAL_CLOSURE,
    ConnectionSettings,
    resolve_server_url,
)

# Exceptions
from exoquic.exceptions import (
    AuthFetchError,
    AuthorizationError,
    ConfigurationError,
    ConnectionStateError,
    ExoquicError,
    InvalidTokenError,
    MalformedTokenError,
    SerializationError,
    StoreError,
    TransportError,
)

# Manager
from exoquic.manager import SubscriptionManager

# Stores
from exoquic.stores import InMemoryStore, PartitionedStore, SQLiteStore

# Subscriptions
from exoquic.subscriptions import (
    BatchCallback,
    CachingSubscriber,
    ConnectionState,
    EventBatch,
    PlainSubscriber,
    ReconnectBackoff,
    ReplayCache,
    Subscriber,
)

# Transport
from exoquic.transport import Transport, TransportFactory, TransportListener, WebSocketTransport

__all__ = [
    "__version__",
    # Manager
    "SubscriptionManager",
    # Authorization
    "AuthorizationResult",
    "TokenAuthority",
    "TokenClaims",
    "TokenFetcher",
    "decode_token",
    "replay_partition_name",
    "subscription_key",
    # Configuration
    "ConnectionSettings",
    "DEFAULT_SERVER_URL",
    "NORMAL_CLOSURE",
    "resolve_server_url",
    # Subscriptions
    "BatchCallback",
    "CachingSubscriber",
    "ConnectionState",
    "EventBatch",
    "PlainSubscriber",
    "ReconnectBackoff",
    "ReplayCache",
    "Subscriber",
    # Stores
    "InMemoryStore",
    "PartitionedStore",
    "SQLiteStore",
    # Transport
    "Transport",
    "TransportFactory",
    "TransportListener",
    "WebSocketTransport",
    # Exceptions
    "ExoquicError",
    "ConfigurationError",
    "AuthorizationError",
    "AuthFetchError",
    "InvalidTokenError",
    "MalformedTokenError",
    "TransportError",
    "ConnectionStateError",
    "StoreError",
    "SerializationError",
]
