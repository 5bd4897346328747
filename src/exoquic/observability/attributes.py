"""
Standard span attributes for exoquic.

Attribute names are shared by every component so traces from the token
authority, replay cache and subscribers line up.
"""

# =============================================================================
# Subscription Attributes
# =============================================================================

ATTR_SUBSCRIPTION_KEY = "exoquic.subscription.key"
"""Canonical key of the subscription request (string)."""

ATTR_TOPIC = "exoquic.topic"
"""Topic claim of the authorization token (string)."""

ATTR_CHANNEL = "exoquic.channel"
"""Channel claim of the authorization token (string)."""

ATTR_SUBSCRIPTION_ID = "exoquic.subscription.id"
"""Subscription id claim of the authorization token (string)."""

ATTR_CACHE_HIT = "exoquic.token.cache_hit"
"""Whether a cached token was reused (boolean)."""

ATTR_TOKEN_RENEWED = "exoquic.token.renewed"
"""Whether an expired cached token was replaced (boolean)."""

ATTR_CACHE_ENABLED = "exoquic.cache.enabled"
"""Whether the subscriber replays and caches batches (boolean)."""

ATTR_MANAGER = "exoquic.manager.name"
"""Namespace of the subscription manager (string)."""

# =============================================================================
# Replay Cache Attributes
# =============================================================================

ATTR_PARTITION = "exoquic.replay.partition"
"""Name of the replay cache partition (string)."""

ATTR_BATCH_COUNT = "exoquic.replay.batch_count"
"""Number of batches read from or written to the replay cache (integer)."""

ATTR_BATCH_SIZE = "exoquic.batch.size"
"""Number of events in one batch (integer)."""

# =============================================================================
# Connection Attributes
# =============================================================================

ATTR_SERVER_URL = "server.address"
"""Subscribe endpoint (OpenTelemetry semantic convention)."""

ATTR_SESSION = "exoquic.connection.session"
"""Monotonic session number within a subscriber (integer)."""

ATTR_RECONNECT_DELAY = "exoquic.connection.reconnect_delay"
"""Delay in seconds before the next reconnect attempt (float)."""

# =============================================================================
# Database Attributes (OpenTelemetry Semantic Conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'sqlite')."""

ATTR_DB_NAME = "db.name"
"""Database name being accessed."""

ATTR_DB_OPERATION = "db.operation"
"""Database operation type (e.g., 'INSERT', 'SELECT')."""


__all__ = [
    "ATTR_BATCH_COUNT",
    "ATTR_BATCH_SIZE",
    "ATTR_CACHE_ENABLED",
    "ATTR_CACHE_HIT",
    "ATTR_CHANNEL",
    "ATTR_DB_NAME",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_MANAGER",
    "ATTR_PARTITION",
    "ATTR_RECONNECT_DELAY",
    "ATTR_SERVER_URL",
    "ATTR_SESSION",
    "ATTR_SUBSCRIPTION_ID",
    "ATTR_SUBSCRIPTION_KEY",
    "ATTR_TOKEN_RENEWED",
    "ATTR_TOPIC",
]
