"""
WebSocket transport built on the ``websockets`` library.

The authorization token travels as the only requested sub-protocol rather
than as a header, because the subscribe endpoint also serves browser
clients, which cannot set custom headers on a WebSocket handshake.

Example:
    >>> transport = WebSocketTransport(
    ...     "wss://dev.exoquic.com/subscribe",
    ...     [token],
    ...     listener,
    ... )
    >>> await transport.start()
    >>> ...
    >>> await transport.close(1000, "unsubscribe")
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Sequence

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed
from websockets.typing import Subprotocol

from exoquic.config import ABNORMAL_CLOSURE
from exoquic.exceptions import TransportError
from exoquic.transport.interface import Transport, TransportListener

logger = logging.getLogger(__name__)


class WebSocketTransport(Transport):
    """
    Client WebSocket connection that reports events to a listener.

    One background task owns the connection: it connects, emits
    ``on_open``, feeds every frame to ``on_message`` and finally emits
    ``on_close``. Failures to connect are reported as ``on_error`` followed
    by ``on_close`` with code 1006.

    Attributes:
        url: Server URL
        subprotocols: Sub-protocols offered in the handshake
    """

    def __init__(
        self,
        url: str,
        subprotocols: Sequence[str],
        listener: TransportListener,
        *,
        open_timeout: float | None = 10.0,
        ping_interval: float | None = 20.0,
        ping_timeout: float | None = 20.0,
        close_timeout: float | None = 5.0,
    ) -> None:
        """
        Initialize the transport. Nothing happens until ``start()``.

        Args:
            url: ws:// or wss:// URL to connect to
            subprotocols: Sub-protocols to offer (the authorization token)
            listener: Receiver of lifecycle events
            open_timeout: Handshake timeout in seconds
            ping_interval: Keepalive ping interval in seconds (None disables)
            ping_timeout: Keepalive pong timeout in seconds
            close_timeout: Closing handshake timeout in seconds
        """
        self.url = url
        self.subprotocols = list(subprotocols)
        self._listener = listener
        self._open_timeout = open_timeout
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._close_timeout = close_timeout

        self._connection: ClientConnection | None = None
        self._task: asyncio.Task[None] | None = None
        self._close_requested: tuple[int, str] | None = None
        self._close_reported = False

    @property
    def is_open(self) -> bool:
        """True while the handshake has completed and no close was reported."""
        return self._connection is not None and not self._close_reported

    async def start(self) -> None:
        if self._task is not None or self._close_reported:
            return
        self._task = asyncio.create_task(self._run(), name=f"exoquic-transport:{self.url}")

    async def _run(self) -> None:
        try:
            connection = await connect(
                self.url,
                subprotocols=[Subprotocol(p) for p in self.subprotocols],
                open_timeout=self._open_timeout,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_timeout,
                close_timeout=self._close_timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._listener.on_error(
                TransportError(f"Could not connect to {self.url}: {type(e).__name__}: {e}")
            )
            await self._report_close(ABNORMAL_CLOSURE, str(e))
            return

        self._connection = connection

        if self._close_requested is not None:
            code, reason = self._close_requested
            await connection.close(code, reason)
        else:
            await self._listener.on_open()

        try:
            async for message in connection:
                if isinstance(message, bytes):
                    try:
                        message = message.decode("utf-8")
                    except UnicodeDecodeError as e:
                        await self._listener.on_error(
                            TransportError(f"Received a binary frame that is not UTF-8: {e}")
                        )
                        continue
                await self._listener.on_message(message)
        except ConnectionClosed as e:
            logger.debug(
                "WebSocket connection closed with error",
                extra={"url": self.url, "error": str(e)},
            )

        await self._report_close(connection.close_code, connection.close_reason or "")

    async def _report_close(self, code: int | None, reason: str) -> None:
        if self._close_reported:
            return
        self._close_reported = True
        await self._listener.on_close(code, reason)

    async def close(self, code: int, reason: str) -> None:
        if self._close_reported:
            return

        self._close_requested = (code, reason)
        task = self._task
        in_reader = task is asyncio.current_task()

        if self._connection is not None:
            await self._connection.close(code, reason)
            if task is not None and not in_reader:
                await task
            return

        if task is not None and not in_reader:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self._report_close(code, reason)


__all__ = ["WebSocketTransport"]
