"""
Token authority: obtains, caches and renews subscription tokens.

The authority exchanges an application's subscription request for an
authorization token by calling the application-supplied fetcher. With a
store attached, tokens are cached under the request's canonical key and
reused until they expire. When an expired token is renewed the replay
partitions tied to it are purged, since the server starts a fresh
subscription for the new token.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from exoquic.auth.tokens import (
    TokenClaims,
    decode_token,
    replay_partition_name,
    subscription_key,
)
from exoquic.exceptions import (
    AuthFetchError,
    InvalidTokenError,
    MalformedTokenError,
    StoreError,
)
from exoquic.observability import (
    ATTR_CACHE_HIT,
    ATTR_CHANNEL,
    ATTR_PARTITION,
    ATTR_SUBSCRIPTION_ID,
    ATTR_SUBSCRIPTION_KEY,
    ATTR_TOKEN_RENEWED,
    ATTR_TOPIC,
    SpanKindEnum,
    Tracer,
    create_tracer,
)
from exoquic.stores.interface import PartitionedStore
from exoquic.subscriptions.replay import ReplayCache

logger = logging.getLogger(__name__)

TokenFetcher = Callable[[Any], "str | Awaitable[str]"]
"""Application callable exchanging a subscription request for a token."""


@dataclass(frozen=True)
class AuthorizationResult:
    """
    Outcome of one authorization.

    Attributes:
        token: Encoded authorization token
        claims: Decoded claims of the token
        subscription_key: Canonical key of the request
        partition: Replay partition name for the subscriber
        renewed: True if an expired cached token was replaced
        from_cache: True if the token came from the cache unchanged
    """

    token: str
    claims: TokenClaims
    subscription_key: str
    partition: str
    renewed: bool = False
    from_cache: bool = False


class TokenAuthority:
    """
    Obtains authorization tokens for subscription requests.

    Without a store every call invokes the fetcher. With a store, tokens
    are cached per subscription key; an unexpired cached token is reused
    and an expired one is refetched, overwritten and its replay partitions
    purged before ``authorize`` returns.

    Example:
        >>> authority = TokenAuthority(fetch_token, store=InMemoryStore())
        >>> result = await authority.authorize({"topic": "orders"})
        >>> result.claims.topic
        'orders'
    """

    def __init__(
        self,
        fetcher: TokenFetcher,
        *,
        store: PartitionedStore | None = None,
        replay_cache: ReplayCache | None = None,
        namespace: str = "default",
        clock: Callable[[], float] = time.time,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the token authority.

        Args:
            fetcher: Sync or async callable returning a token for a request
            store: Store for cached tokens; None disables caching
            replay_cache: Replay cache purged on token renewal
            namespace: Prefix of the token partition in the store
            clock: Returns the current epoch time in seconds
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._fetcher = fetcher
        self._store = store
        self._replay_cache = replay_cache
        self._namespace = namespace
        self._clock = clock
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def caching_enabled(self) -> bool:
        return self._store is not None

    @property
    def token_partition(self) -> str:
        """Store partition holding cached tokens."""
        return f"{self._namespace}/subscription_tokens"

    async def authorize(
        self,
        request: Any,
        *,
        use_cache: bool = True,
        subscriber_name: str | None = None,
    ) -> AuthorizationResult:
        """
        Obtain a token for a subscription request.

        Args:
            request: JSON-serializable subscription request
            use_cache: Set False to bypass the token cache for this call
            subscriber_name: Explicit replay partition name

        Returns:
            AuthorizationResult with the token and its claims

        Raises:
            AuthFetchError: If the fetcher raises
            InvalidTokenError: If the fetcher returns an empty or non-string value
            MalformedTokenError: If the token cannot be decoded
            StoreError: If purging the replay cache of a renewed token fails
        """
        key = subscription_key(request)

        with self._tracer.span(
            "exoquic.token_authority.authorize",
            {ATTR_SUBSCRIPTION_KEY: key},
            kind=SpanKindEnum.CLIENT,
        ) as span:
            if self._store is None or not use_cache:
                token = await self._fetch(request, key)
                claims = decode_token(token)
                result = AuthorizationResult(
                    token=token,
                    claims=claims,
                    subscription_key=key,
                    partition=replay_partition_name(claims, subscriber_name),
                )
            else:
                result = await self._authorize_cached(request, key, subscriber_name)
                await self._register(result)

            if span is not None:
                span.set_attribute(ATTR_TOPIC, result.claims.topic)
                span.set_attribute(ATTR_CHANNEL, result.claims.channel)
                span.set_attribute(ATTR_SUBSCRIPTION_ID, result.claims.subscription_id)
                span.set_attribute(ATTR_CACHE_HIT, result.from_cache)
            self._log_result(result)
            return result

    async def _authorize_cached(
        self,
        request: Any,
        key: str,
        subscriber_name: str | None,
    ) -> AuthorizationResult:
        cached = await self._read_cached(key)

        if cached is None:
            token = await self._fetch(request, key)
            claims = decode_token(token)
            await self._write_cached(key, token)
            return AuthorizationResult(
                token=token,
                claims=claims,
                subscription_key=key,
                partition=replay_partition_name(claims, subscriber_name),
            )

        previous: TokenClaims | None
        try:
            previous = decode_token(cached)
        except MalformedTokenError as e:
            logger.warning(
                "Discarding undecodable cached token",
                extra={"subscription_key": key, "error": str(e)},
            )
            previous = None

        now = int(self._clock())
        if previous is not None and not previous.is_expired(now):
            return AuthorizationResult(
                token=cached,
                claims=previous,
                subscription_key=key,
                partition=replay_partition_name(previous, subscriber_name),
                from_cache=True,
            )

        logger.info(
            "Cached token expired, fetching a new one",
            extra={
                "subscription_key": key,
                "exp": previous.exp if previous is not None else None,
                "now": now,
            },
        )
        token = await self._fetch(request, key)
        claims = decode_token(token)
        await self._write_cached(key, token)

        stale = []
        if previous is not None:
            stale.append(replay_partition_name(previous))
        stale.append(replay_partition_name(claims))
        if subscriber_name:
            stale.append(subscriber_name)
        await self._purge(list(dict.fromkeys(stale)))

        return AuthorizationResult(
            token=token,
            claims=claims,
            subscription_key=key,
            partition=replay_partition_name(claims, subscriber_name),
            renewed=True,
        )

    async def _register(self, result: AuthorizationResult) -> None:
        if self._replay_cache is None:
            return
        try:
            await self._replay_cache.ensure_partition(
                result.partition,
                subscription_key=result.subscription_key,
                claims=result.claims,
            )
        except StoreError as e:
            logger.warning(
                "Could not register replay partition",
                extra={"partition": result.partition, "error": str(e)},
            )

    async def _fetch(self, request: Any, key: str) -> str:
        try:
            token = self._fetcher(request)
            if inspect.isawaitable(token):
                token = await token
        except Exception as e:
            logger.error(
                "Token fetcher failed",
                extra={"subscription_key": key, "error": str(e)},
                exc_info=True,
            )
            raise AuthFetchError(key, f"{type(e).__name__}: {e}") from e

        if not isinstance(token, str) or not token:
            raise InvalidTokenError(token)
        return token

    async def _read_cached(self, key: str) -> str | None:
        assert self._store is not None
        try:
            return await self._store.get(self.token_partition, key)
        except StoreError as e:
            logger.warning(
                "Could not read cached token, fetching a new one",
                extra={"subscription_key": key, "error": str(e)},
            )
            return None

    async def _write_cached(self, key: str, token: str) -> None:
        assert self._store is not None
        try:
            await self._store.put(self.token_partition, key, token)
        except StoreError as e:
            logger.warning(
                "Could not cache token",
                extra={"subscription_key": key, "error": str(e)},
            )

    async def _purge(self, partitions: list[str]) -> None:
        if self._replay_cache is None:
            return
        for partition in partitions:
            with self._tracer.span(
                "exoquic.token_authority.purge",
                {ATTR_PARTITION: partition, ATTR_TOKEN_RENEWED: True},
            ):
                await self._replay_cache.clear(partition)

    async def forget(self, request: Any) -> None:
        """Drop the cached token of a request, if any."""
        if self._store is None:
            return
        await self._store.delete(self.token_partition, subscription_key(request))

    async def clear(self) -> None:
        """Drop every cached token."""
        if self._store is None:
            return
        await self._store.delete_partition(self.token_partition)

    def _log_result(self, result: AuthorizationResult) -> None:
        logger.info(
            "Authorized subscriber",
            extra={
                "subscription_key": result.subscription_key,
                "topic": result.claims.topic,
                "channel": result.claims.channel,
                "subscription_id": result.claims.subscription_id,
                "cache_hit": result.from_cache,
                "renewed": result.renewed,
            },
        )


__all__ = [
    "AuthorizationResult",
    "TokenAuthority",
    "TokenFetcher",
]
