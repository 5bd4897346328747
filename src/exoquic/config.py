"""
Configuration for exoquic subscribers.

This module provides:
- ConnectionSettings: Per-subscriber connection and reconnection settings
- resolve_server_url: Map an environment shorthand or explicit URL to the
  subscribe endpoint
- Default values shared by the manager and subscribers
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from urllib.parse import urlparse

from exoquic.exceptions import ConfigurationError

NORMAL_CLOSURE = 1000
"""WebSocket close code for a normal closure. The only code that never reconnects."""

ABNORMAL_CLOSURE = 1006
"""Close code reported when the connection dropped without a close frame."""

DEFAULT_ENV = "dev"
DEFAULT_SERVER_URL_TEMPLATE = "wss://{env}.exoquic.com/subscribe"
DEFAULT_SERVER_URL = DEFAULT_SERVER_URL_TEMPLATE.format(env=DEFAULT_ENV)

DEFAULT_SHOULD_RECONNECT = True
DEFAULT_RECONNECT_DELAY = 1.0
DEFAULT_MAX_RECONNECT_DELAY = 10.0
DEFAULT_BACKOFF_MULTIPLIER = 1.5

_ENV_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")
_SOCKET_SCHEMES = ("ws", "wss")


@dataclass(frozen=True)
class ConnectionSettings:
    """
    Connection settings for a subscriber.

    Settings are immutable for the lifetime of a subscriber. The delay that
    actually grows between reconnect attempts is tracked separately by the
    subscriber's ReconnectBackoff, starting from ``reconnect_delay``.

    Attributes:
        server_url: WebSocket URL of the subscribe endpoint
        should_reconnect: Reconnect after a non-clean close
        reconnect_delay: Initial delay in seconds before the first reconnect
        max_reconnect_delay: Upper bound in seconds for the reconnect delay
        backoff_multiplier: Growth factor applied after each attempt

    Example:
        >>> settings = ConnectionSettings(
        ...     server_url="wss://prod.exoquic.com/subscribe",
        ...     reconnect_delay=0.5,
        ... )
    """

    server_url: str = DEFAULT_SERVER_URL
    should_reconnect: bool = DEFAULT_SHOULD_RECONNECT
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    max_reconnect_delay: float = DEFAULT_MAX_RECONNECT_DELAY
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER

    def __post_init__(self) -> None:
        """Validate configuration values."""
        _validate_socket_url(self.server_url)

        if self.reconnect_delay <= 0:
            raise ConfigurationError(
                f"reconnect_delay must be positive, got {self.reconnect_delay}. "
                "Use a value like 1.0 (default) seconds."
            )

        if self.max_reconnect_delay <= 0:
            raise ConfigurationError(
                f"max_reconnect_delay must be positive, got {self.max_reconnect_delay}."
            )

        if self.max_reconnect_delay < self.reconnect_delay:
            raise ConfigurationError(
                f"max_reconnect_delay ({self.max_reconnect_delay}) must be >= "
                f"reconnect_delay ({self.reconnect_delay})."
            )

        if self.backoff_multiplier <= 1.0:
            raise ConfigurationError(
                f"backoff_multiplier must be > 1.0, got {self.backoff_multiplier}."
            )

    def with_server_url(self, server_url: str) -> ConnectionSettings:
        """Return a copy of these settings bound to another server URL."""
        return replace(self, server_url=server_url)


def _validate_socket_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in _SOCKET_SCHEMES or not parsed.netloc:
        raise ConfigurationError(
            f"server_url must be a ws:// or wss:// URL, got {url!r}. "
            "Pass subscribe_url='wss://host/subscribe' or a valid env name."
        )


def resolve_server_url(env: str | None = DEFAULT_ENV, subscribe_url: str | None = None) -> str:
    """
    Resolve the subscribe endpoint.

    An explicit ``subscribe_url`` always wins. Otherwise the environment
    shorthand is expanded into ``wss://{env}.exoquic.com/subscribe``.

    Args:
        env: Environment shorthand such as "dev" or "prod"
        subscribe_url: Explicit endpoint override

    Returns:
        The WebSocket URL to connect to

    Raises:
        ConfigurationError: If neither value yields a valid URL

    Example:
        >>> resolve_server_url("prod")
        'wss://prod.exoquic.com/subscribe'
        >>> resolve_server_url("prod", "ws://localhost:8080/subscribe")
        'ws://localhost:8080/subscribe'
    """
    if subscribe_url:
        _validate_socket_url(subscribe_url)
        return subscribe_url

    if not env or not _ENV_PATTERN.match(env):
        raise ConfigurationError(
            f"env must be a lowercase DNS label such as 'dev' or 'prod', got {env!r}."
        )

    return DEFAULT_SERVER_URL_TEMPLATE.format(env=env)


__all__ = [
    "ABNORMAL_CLOSURE",
    "ConnectionSettings",
    "DEFAULT_BACKOFF_MULTIPLIER",
    "DEFAULT_ENV",
    "DEFAULT_MAX_RECONNECT_DELAY",
    "DEFAULT_RECONNECT_DELAY",
    "DEFAULT_SERVER_URL",
    "DEFAULT_SHOULD_RECONNECT",
    "NORMAL_CLOSURE",
    "resolve_server_url",
]
