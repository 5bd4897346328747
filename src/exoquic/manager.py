"""
Subscription manager: the entry point of the exoquic client.

The manager resolves the subscribe endpoint once, owns the token authority
and the replay cache, and hands out authorized subscribers.

Example:
    >>> async def fetch_token(request):
    ...     response = await http.post("/exoquic/token", json=request)
    ...     return response.text
    >>>
    >>> async with SubscriptionManager(fetch_token, env="prod") as manager:
    ...     subscriber = await manager.authorize_subscriber({"topic": "orders"})
    ...     await subscriber.subscribe(print)
    ...     await subscriber.wait_closed()

Persisting tokens and batches across restarts:
    >>> manager = SubscriptionManager(
    ...     fetch_token,
    ...     store=SQLiteStore("exoquic.db"),
    ... )
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from types import TracebackType
from typing import Any, Self

from exoquic.auth.authority import TokenAuthority, TokenFetcher
from exoquic.config import DEFAULT_ENV, ConnectionSettings, resolve_server_url
from exoquic.exceptions import ConfigurationError
from exoquic.observability import ATTR_CACHE_ENABLED, ATTR_MANAGER, Tracer, create_tracer
from exoquic.stores.in_memory import InMemoryStore
from exoquic.stores.interface import PartitionedStore
from exoquic.subscriptions.replay import ReplayCache
from exoquic.subscriptions.subscriber import CachingSubscriber, PlainSubscriber, Subscriber
from exoquic.transport.interface import TransportFactory

logger = logging.getLogger(__name__)


class SubscriptionManager:
    """
    Hands out authorized subscribers.

    With caching enabled (the default), tokens are reused until they expire
    and subscribers replay previously received batches on every connect.
    Without a store an InMemoryStore is created, so the cache lives as long
    as the manager.

    Attributes:
        name: Namespace of this manager's partitions in the store
        server_url: Resolved subscribe endpoint
        cache_enabled: Default caching mode for authorize_subscriber()
    """

    def __init__(
        self,
        fetcher: TokenFetcher,
        *,
        env: str = DEFAULT_ENV,
        subscribe_url: str | None = None,
        name: str = "default",
        cache_enabled: bool = True,
        store: PartitionedStore | None = None,
        settings: ConnectionSettings | None = None,
        transport_factory: TransportFactory | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """
        Initialize the subscription manager.

        Args:
            fetcher: Sync or async callable exchanging a request for a token
            env: Environment shorthand, expanded to wss://{env}.exoquic.com/subscribe
            subscribe_url: Explicit endpoint; overrides env
            name: Namespace for this manager's cached data
            cache_enabled: Cache tokens and event batches by default
            store: Backing store for the cache (default: a new InMemoryStore)
            settings: Reconnection settings; the server URL is always the resolved one
            transport_factory: Builds transports (default WebSocketTransport)
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
            clock: Returns the current epoch time in seconds (default time.time)

        Raises:
            ConfigurationError: If the endpoint or name is invalid
        """
        if not callable(fetcher):
            raise ConfigurationError(
                f"fetcher must be a callable returning a token, got {type(fetcher).__name__}."
            )
        if not name:
            raise ConfigurationError("name must be a non-empty string.")

        self.name = name
        self.server_url = resolve_server_url(env, subscribe_url)
        self.cache_enabled = cache_enabled
        self._settings = (settings or ConnectionSettings(server_url=self.server_url)).with_server_url(
            self.server_url
        )
        self._transport_factory = transport_factory
        self._enable_tracing = enable_tracing
        self._child_tracer = tracer
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

        self._owns_store = store is None and cache_enabled
        if store is None and cache_enabled:
            store = InMemoryStore(tracer=tracer, enable_tracing=enable_tracing)
        self._store = store

        self._replay_cache = (
            ReplayCache(store, namespace=name, tracer=tracer, enable_tracing=enable_tracing)
            if store is not None
            else None
        )
        self._authority = TokenAuthority(
            fetcher,
            store=store,
            replay_cache=self._replay_cache,
            namespace=name,
            clock=clock or time.time,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )
        self._subscribers: list[Subscriber] = []

        logger.debug(
            "Created subscription manager",
            extra={"manager": name, "server_url": self.server_url, "cache_enabled": cache_enabled},
        )

    @property
    def settings(self) -> ConnectionSettings:
        """Connection settings handed to every subscriber."""
        return self._settings

    @property
    def store(self) -> PartitionedStore | None:
        return self._store

    @property
    def replay_cache(self) -> ReplayCache | None:
        return self._replay_cache

    @property
    def authority(self) -> TokenAuthority:
        return self._authority

    @property
    def subscribers(self) -> list[Subscriber]:
        """Subscribers created by this manager that have not finished yet."""
        return list(self._subscribers)

    async def authorize_subscriber(
        self,
        request: Any = None,
        *,
        cache_enabled: bool | None = None,
        subscriber_name: str | None = None,
    ) -> Subscriber:
        """
        Authorize a subscriber for a subscription request.

        Args:
            request: JSON-serializable data sent to the token fetcher
            cache_enabled: Override the manager's caching mode for this subscriber
            subscriber_name: Explicit name of the subscriber's replay partition

        Returns:
            A CachingSubscriber when caching is active, else a PlainSubscriber.
            The subscriber is not subscribed yet.

        Raises:
            AuthorizationError: If no valid token could be obtained
            ConfigurationError: If caching is requested but the manager has no store
        """
        use_cache = self.cache_enabled if cache_enabled is None else cache_enabled
        if use_cache and self._replay_cache is None:
            raise ConfigurationError(
                "Caching was requested but this manager has no store. "
                "Create the manager with cache_enabled=True or pass store=..."
            )

        with self._tracer.span(
            "exoquic.manager.authorize_subscriber",
            {ATTR_CACHE_ENABLED: use_cache, ATTR_MANAGER: self.name},
        ):
            result = await self._authority.authorize(
                request,
                use_cache=use_cache,
                subscriber_name=subscriber_name,
            )

        subscriber: Subscriber
        if use_cache:
            assert self._replay_cache is not None
            subscriber = CachingSubscriber(
                result.token,
                self._settings,
                self._replay_cache,
                result.partition,
                claims=result.claims,
                transport_factory=self._transport_factory,
                activity_hook=self._track_activity,
                tracer=self._child_tracer,
                enable_tracing=self._enable_tracing,
            )
        else:
            subscriber = PlainSubscriber(
                result.token,
                self._settings,
                claims=result.claims,
                transport_factory=self._transport_factory,
                activity_hook=self._track_activity,
                tracer=self._child_tracer,
                enable_tracing=self._enable_tracing,
            )

        self._subscribers.append(subscriber)
        logger.info(
            "Authorized subscriber",
            extra={
                "manager": self.name,
                "subscription_key": result.subscription_key,
                "partition": result.partition if use_cache else None,
                "cached_token": result.from_cache,
            },
        )
        return subscriber

    def _track_activity(self, subscriber: Subscriber, active: bool) -> None:
        if active:
            if subscriber not in self._subscribers:
                self._subscribers.append(subscriber)
        elif subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    async def clear_cache(self) -> None:
        """Delete every cached token, subscriber registration and event batch."""
        if self._replay_cache is None:
            return
        await self._authority.clear()
        await self._replay_cache.purge_all()
        logger.info("Cleared subscription cache", extra={"manager": self.name})

    async def close(self) -> None:
        """
        Unsubscribe every subscriber and release the store.

        A store passed in by the caller is left open.
        """
        for subscriber in list(self._subscribers):
            await subscriber.unsubscribe()
        self._subscribers.clear()

        if self._owns_store and self._store is not None:
            await self._store.close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


__all__ = ["SubscriptionManager"]
