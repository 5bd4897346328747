"""
Subscribers: the connection state machine.

A subscriber owns at most one live transport. ``subscribe()`` opens a
session; when the session closes with any code other than 1000 and
reconnecting is enabled, a new session is opened after the backoff delay.
Each session is numbered and events from a superseded transport are
ignored.

Two flavours exist:
- PlainSubscriber: delivers live batches only
- CachingSubscriber: replays its cached batches at the start of every
  session, before any live batch, and appends every delivered batch to
  the replay cache

Example:
    >>> subscriber = await manager.authorize_subscriber({"topic": "orders"})
    >>> async with subscriber:
    ...     await subscriber.subscribe(handle_batch)
    ...     await subscriber.wait_closed()
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from abc import ABC
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import TYPE_CHECKING, Self

from exoquic.config import NORMAL_CLOSURE, ConnectionSettings
from exoquic.exceptions import (
    ConnectionStateError,
    SerializationError,
    StoreError,
    TransportError,
)
from exoquic.observability import (
    ATTR_BATCH_COUNT,
    ATTR_BATCH_SIZE,
    ATTR_PARTITION,
    ATTR_RECONNECT_DELAY,
    ATTR_SERVER_URL,
    ATTR_SESSION,
    SpanKindEnum,
    Tracer,
    create_tracer,
)
from exoquic.serialization import json_loads
from exoquic.subscriptions.backoff import ReconnectBackoff
from exoquic.subscriptions.replay import EventBatch, ReplayCache
from exoquic.subscriptions.state import VALID_TRANSITIONS, ConnectionState, is_valid_transition
from exoquic.transport.interface import Transport, TransportFactory
from exoquic.transport.websocket import WebSocketTransport

if TYPE_CHECKING:
    from exoquic.auth.tokens import TokenClaims

logger = logging.getLogger(__name__)

BatchCallback = Callable[[EventBatch], Awaitable[None] | None]
"""Application callback receiving one event batch (sync or async)."""

SleepFunction = Callable[[float], Awaitable[None]]

ActivityHook = Callable[["Subscriber", bool], None]
"""Called with True when a subscriber starts a subscription and False when it finishes."""


class _SessionListener:
    """Routes the events of one transport to its subscriber, tagged with the session."""

    def __init__(self, subscriber: Subscriber, session: int) -> None:
        self._subscriber = subscriber
        self._session = session
        self.replay_done = asyncio.Event()

    async def on_open(self) -> None:
        await self._subscriber._handle_open(self._session)

    async def on_message(self, data: str) -> None:
        await self.replay_done.wait()
        await self._subscriber._handle_message(self._session, data)

    async def on_error(self, error: Exception) -> None:
        await self._subscriber._handle_error(self._session, error)

    async def on_close(self, code: int | None, reason: str) -> None:
        await self._subscriber._handle_close(self._session, code, reason)


class Subscriber(ABC):
    """
    Base class for subscribers.

    Holds one authorization token and one set of connection settings for
    its whole lifetime. Use PlainSubscriber or CachingSubscriber.
    """

    def __init__(
        self,
        token: str,
        settings: ConnectionSettings,
        *,
        claims: TokenClaims | None = None,
        transport_factory: TransportFactory | None = None,
        sleep: SleepFunction = asyncio.sleep,
        activity_hook: ActivityHook | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the subscriber.

        Args:
            token: Authorization token, sent as the only sub-protocol
            settings: Connection and reconnection settings
            claims: Decoded claims of the token, if known
            transport_factory: Builds transports (default WebSocketTransport)
            sleep: Awaitable used to wait out reconnect delays
            activity_hook: Notified when the subscription starts and finishes
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._token = token
        self._settings = settings
        self._claims = claims
        self._transport_factory: TransportFactory = transport_factory or WebSocketTransport
        self._sleep = sleep
        self._activity_hook = activity_hook
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

        self._backoff = ReconnectBackoff(settings)
        self._state = ConnectionState.IDLE
        self._is_subscribed = False
        self._is_connected = False
        self._callback: BatchCallback | None = None
        self._transport: Transport | None = None
        self._listener: _SessionListener | None = None
        self._session = 0
        self._reconnect_task: asyncio.Task[None] | None = None
        self._closed = asyncio.Event()
        self._closed.set()

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def is_subscribed(self) -> bool:
        """True from ``subscribe()`` until unsubscribed or terminally closed."""
        return self._is_subscribed

    @property
    def is_connected(self) -> bool:
        """True while a transport is open."""
        return self._is_connected

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def settings(self) -> ConnectionSettings:
        return self._settings

    @property
    def authorization_token(self) -> str:
        return self._token

    @property
    def claims(self) -> TokenClaims | None:
        return self._claims

    @property
    def reconnect_delay(self) -> float:
        """Delay in seconds the next reconnect will wait."""
        return self._backoff.current

    @property
    def reconnect_attempts(self) -> int:
        """Reconnects performed since the last ``subscribe()``."""
        return self._backoff.attempts

    @property
    def session(self) -> int:
        """Number of the current session (0 before the first subscribe)."""
        return self._session

    @property
    def caching_enabled(self) -> bool:
        return False

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def subscribe(self, callback: BatchCallback) -> Self:
        """
        Start receiving event batches.

        Does nothing if already subscribed. Connection failures are not
        raised; they drive reconnection.

        Args:
            callback: Called with every event batch, sync or async

        Returns:
            The subscriber itself
        """
        if self._is_subscribed:
            logger.debug("Subscriber already subscribed, ignoring subscribe()")
            return self

        self._callback = callback
        self._is_subscribed = True
        self._closed.clear()
        self._backoff.reset()
        if self._activity_hook is not None:
            self._activity_hook(self, True)

        logger.info(
            "Subscribing",
            extra={"server_url": self._settings.server_url, "caching": self.caching_enabled},
        )
        await self._open_session()
        return self

    async def unsubscribe(self) -> None:
        """
        Stop receiving event batches.

        Cancels a pending reconnect and closes the transport with code 1000.
        Calling it when not subscribed does nothing.
        """
        if not self._is_subscribed:
            return

        self._is_subscribed = False
        await self._cancel_reconnect()

        if self._state is ConnectionState.RECONNECTING:
            self._transition(ConnectionState.CLOSED)
            self._finish_session()
            return

        transport = self._transport
        if transport is None:
            self._finish_session()
            return

        if self._state is not ConnectionState.CLOSING:
            self._transition(ConnectionState.CLOSING)
        # A reader parked behind replay must reach the close frame
        if self._listener is not None:
            self._listener.replay_done.set()
        await transport.close(NORMAL_CLOSURE, "unsubscribe")

    async def wait_closed(self) -> None:
        """Wait until the subscriber is no longer subscribed."""
        await self._closed.wait()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.unsubscribe()

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------

    async def _replay(self, session: int) -> None:
        """Deliver cached batches before the session's live batches."""
        return None

    async def _delivered(self, batch: EventBatch) -> None:
        """Called after the callback accepted a live batch."""
        return None

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    def _transition(self, new_state: ConnectionState) -> None:
        if not is_valid_transition(self._state, new_state):
            valid_targets = VALID_TRANSITIONS.get(self._state, set())
            raise ConnectionStateError(
                f"Cannot transition from {self._state.value} to {new_state.value}. "
                f"Valid transitions: {sorted(s.value for s in valid_targets)}"
            )

        old_state = self._state
        self._state = new_state
        logger.info(
            "Subscriber state changed",
            extra={
                "session": self._session,
                "from_state": old_state.value,
                "to_state": new_state.value,
            },
        )

    def _is_current(self, session: int) -> bool:
        return session == self._session

    async def _open_session(self) -> None:
        self._transition(ConnectionState.CONNECTING)
        self._session += 1
        session = self._session

        listener = _SessionListener(self, session)
        self._listener = listener
        transport = self._transport_factory(
            self._settings.server_url,
            [self._token],
            listener,
        )
        self._transport = transport

        with self._tracer.span(
            "exoquic.subscriber.connect",
            {ATTR_SERVER_URL: self._settings.server_url, ATTR_SESSION: session},
            kind=SpanKindEnum.CLIENT,
        ):
            await transport.start()

        try:
            await self._replay(session)
        finally:
            listener.replay_done.set()

    def _schedule_reconnect(self) -> None:
        self._transition(ConnectionState.RECONNECTING)
        delay = self._backoff.current
        logger.warning(
            "Subscriber disconnected, scheduling reconnect",
            extra={"session": self._session, "delay": delay},
        )
        self._reconnect_task = asyncio.create_task(
            self._reconnect(delay),
            name=f"exoquic-reconnect:{self._session}",
        )

    async def _reconnect(self, delay: float) -> None:
        await self._sleep(delay)

        if (
            not self._is_subscribed
            or self._state is not ConnectionState.RECONNECTING
            or not self._settings.should_reconnect
        ):
            return

        self._reconnect_task = None
        self._backoff.advance()

        with self._tracer.span(
            "exoquic.subscriber.reconnect",
            {ATTR_RECONNECT_DELAY: delay, ATTR_SESSION: self._session + 1},
        ):
            try:
                await self._open_session()
            except Exception as e:
                logger.error(
                    "Reconnect failed, giving up",
                    extra={"session": self._session, "error": str(e)},
                    exc_info=True,
                )
                self._is_subscribed = False
                self._transport = None
                if is_valid_transition(self._state, ConnectionState.CLOSED):
                    self._transition(ConnectionState.CLOSED)
                self._finish_session()

    async def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _finish_session(self) -> None:
        self._closed.set()
        if self._activity_hook is not None:
            self._activity_hook(self, False)

    # -------------------------------------------------------------------------
    # Transport events
    # -------------------------------------------------------------------------

    async def _handle_open(self, session: int) -> None:
        if not self._is_current(session) or self._state is not ConnectionState.CONNECTING:
            return
        self._is_connected = True
        self._transition(ConnectionState.OPEN)

    async def _handle_message(self, session: int, data: str) -> None:
        if not self._is_current(session) or not self._is_subscribed:
            return

        try:
            batch = json_loads(data)
        except SerializationError as e:
            error = TransportError(f"Received a message that is not JSON: {e}")
            logger.error("Dropping message", extra={"session": session, "error": str(error)})
            return

        if not isinstance(batch, list):
            error = TransportError(
                f"Expected an event batch (JSON array), got {type(batch).__name__}"
            )
            logger.error("Dropping message", extra={"session": session, "error": str(error)})
            return

        if not batch:
            logger.debug("Received heartbeat", extra={"session": session})
            return

        with self._tracer.span(
            "exoquic.subscriber.deliver",
            {ATTR_SESSION: session, ATTR_BATCH_SIZE: len(batch)},
            kind=SpanKindEnum.CONSUMER,
        ):
            if await self._deliver(batch):
                await self._delivered(batch)

    async def _handle_error(self, session: int, error: Exception) -> None:
        if not self._is_current(session):
            return
        logger.error(
            "Subscription transport error",
            extra={"session": session, "error": str(error)},
        )

    async def _handle_close(self, session: int, code: int | None, reason: str) -> None:
        if not self._is_current(session):
            return

        self._is_connected = False
        self._transport = None
        self._transition(ConnectionState.CLOSED)

        clean = code == NORMAL_CLOSURE
        logger.info(
            "Subscriber connection closed",
            extra={"session": session, "code": code, "reason": reason, "clean": clean},
        )

        if self._is_subscribed and not clean and self._settings.should_reconnect:
            self._schedule_reconnect()
            return

        self._is_subscribed = False
        self._finish_session()

    async def _deliver(self, batch: EventBatch) -> bool:
        callback = self._callback
        if callback is None:
            return False
        try:
            result = callback(batch)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "Event batch callback failed",
                extra={"batch_size": len(batch), "error": str(e)},
                exc_info=True,
            )
            return False
        return True


class PlainSubscriber(Subscriber):
    """Subscriber without a replay cache: only live batches are delivered."""

    pass


class CachingSubscriber(Subscriber):
    """
    Subscriber backed by a replay cache partition.

    At the start of every session the partition is read once and each
    cached batch is delivered, oldest first, before any live batch of
    that session. Every live batch the callback accepts is appended.
    Cache failures are logged and never stop delivery.
    """

    def __init__(
        self,
        token: str,
        settings: ConnectionSettings,
        replay_cache: ReplayCache,
        partition: str,
        *,
        claims: TokenClaims | None = None,
        transport_factory: TransportFactory | None = None,
        sleep: SleepFunction = asyncio.sleep,
        activity_hook: ActivityHook | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the caching subscriber.

        Args:
            token: Authorization token, sent as the only sub-protocol
            settings: Connection and reconnection settings
            replay_cache: Cache holding this subscriber's batches
            partition: Name of this subscriber's partition in the cache
            claims: Decoded claims of the token, if known
            transport_factory: Builds transports (default WebSocketTransport)
            sleep: Awaitable used to wait out reconnect delays
            activity_hook: Notified when the subscription starts and finishes
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        super().__init__(
            token,
            settings,
            claims=claims,
            transport_factory=transport_factory,
            sleep=sleep,
            activity_hook=activity_hook,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )
        self._replay_cache = replay_cache
        self._partition = partition

    @property
    def caching_enabled(self) -> bool:
        return True

    @property
    def replay_cache(self) -> ReplayCache:
        return self._replay_cache

    @property
    def partition(self) -> str:
        return self._partition

    async def _replay(self, session: int) -> None:
        try:
            batches = await self._replay_cache.get_all(self._partition)
        except StoreError as e:
            logger.warning(
                "Could not read replay cache, continuing with live batches",
                extra={"partition": self._partition, "error": str(e)},
            )
            return

        with self._tracer.span(
            "exoquic.subscriber.replay",
            {
                ATTR_PARTITION: self._partition,
                ATTR_SESSION: session,
                ATTR_BATCH_COUNT: len(batches),
            },
        ):
            for batch in batches:
                if not self._is_current(session) or not self._is_subscribed:
                    return
                await self._deliver(batch)

        logger.debug(
            "Replayed cached batches",
            extra={"partition": self._partition, "batches": len(batches)},
        )

    async def _delivered(self, batch: EventBatch) -> None:
        try:
            await self._replay_cache.append(self._partition, batch)
        except StoreError as e:
            logger.warning(
                "Could not cache event batch",
                extra={"partition": self._partition, "error": str(e)},
            )


__all__ = [
    "ActivityHook",
    "BatchCallback",
    "CachingSubscriber",
    "PlainSubscriber",
    "Subscriber",
]
