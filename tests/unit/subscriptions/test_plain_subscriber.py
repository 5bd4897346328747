"""
Unit tests for the subscriber connection state machine.

Tests for:
- subscribe() idempotence and transport setup
- Live delivery, heartbeats and bad payloads
- Clean close vs reconnect with exponential backoff
- unsubscribe() and pending reconnects
- Stale transport events
"""

from __future__ import annotations

import logging
from typing import Any

import pytest

from exoquic.config import ConnectionSettings
from exoquic.subscriptions import ConnectionState, PlainSubscriber
from tests.fixtures import (
    TEST_SERVER_URL,
    FakeTransportFactory,
    GatedSleep,
    RecordingSleep,
    make_token,
    settle,
)


class BatchRecorder:
    """Callback recording every delivered batch."""

    def __init__(self) -> None:
        self.batches: list[list[Any]] = []

    def __call__(self, batch: list[Any]) -> None:
        self.batches.append(batch)


@pytest.fixture
def received() -> BatchRecorder:
    return BatchRecorder()


@pytest.fixture
def subscriber(
    settings: ConnectionSettings,
    transport_factory: FakeTransportFactory,
    recording_sleep: RecordingSleep,
    token: str,
) -> PlainSubscriber:
    return PlainSubscriber(
        token,
        settings,
        transport_factory=transport_factory,
        sleep=recording_sleep,
        enable_tracing=False,
    )


class TestSubscribe:
    """Tests for subscribe()."""

    def test_initial_state(self, subscriber: PlainSubscriber):
        """A new subscriber is idle and not connected."""
        assert subscriber.state is ConnectionState.IDLE
        assert subscriber.is_subscribed is False
        assert subscriber.is_connected is False
        assert subscriber.session == 0
        assert subscriber.caching_enabled is False

    async def test_opens_transport_with_token_subprotocol(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
        token: str,
    ):
        """The token is the only sub-protocol offered to the server."""
        result = await subscriber.subscribe(received)

        assert result is subscriber
        assert len(transport_factory.transports) == 1
        transport = transport_factory.latest
        assert transport.url == TEST_SERVER_URL
        assert transport.subprotocols == [token]
        assert transport.started is True
        assert subscriber.state is ConnectionState.CONNECTING
        assert subscriber.is_subscribed is True
        assert subscriber.is_connected is False

    async def test_double_subscribe_opens_one_transport(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
    ):
        """subscribe() while subscribed is a no-op."""
        await subscriber.subscribe(received)
        await subscriber.subscribe(received)

        assert len(transport_factory.transports) == 1

    async def test_open_event(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
    ):
        """The open event marks the subscriber connected."""
        await subscriber.subscribe(received)
        await transport_factory.latest.emit_open()

        assert subscriber.state is ConnectionState.OPEN
        assert subscriber.is_connected is True


class TestDelivery:
    """Tests for live message handling."""

    async def test_batches_delivered_in_arrival_order(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
    ):
        await subscriber.subscribe(received)
        transport = transport_factory.latest
        await transport.emit_open()

        await transport.emit_message([{"id": 1}])
        await transport.emit_message([{"id": 2}, {"id": 3}])

        assert received.batches == [[{"id": 1}], [{"id": 2}, {"id": 3}]]

    async def test_empty_batch_is_heartbeat(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
    ):
        """An empty batch never reaches the callback."""
        await subscriber.subscribe(received)
        await transport_factory.latest.emit_message([])

        assert received.batches == []

    async def test_bad_payloads_are_dropped(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
        caplog: pytest.LogCaptureFixture,
    ):
        """Non-JSON and non-array payloads are logged and skipped."""
        await subscriber.subscribe(received)
        transport = transport_factory.latest

        with caplog.at_level(logging.ERROR, logger="exoquic.subscriptions.subscriber"):
            await transport.emit_message("{not json")
            await transport.emit_message({"id": 1})
            await transport.emit_message([{"id": 2}])

        assert received.batches == [[{"id": 2}]]
        assert [r.getMessage() for r in caplog.records].count("Dropping message") == 2

    async def test_async_callback(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
    ):
        """Coroutine callbacks are awaited."""
        batches = []

        async def on_batch(batch):
            batches.append(batch)

        await subscriber.subscribe(on_batch)
        await transport_factory.latest.emit_message([1])

        assert batches == [[1]]

    async def test_failing_callback_does_not_stop_delivery(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        caplog: pytest.LogCaptureFixture,
    ):
        """A callback exception is logged and later batches still arrive."""
        batches = []

        def on_batch(batch):
            if batch == ["boom"]:
                raise RuntimeError("callback failed")
            batches.append(batch)

        await subscriber.subscribe(on_batch)
        transport = transport_factory.latest

        with caplog.at_level(logging.ERROR, logger="exoquic.subscriptions.subscriber"):
            await transport.emit_message(["boom"])
            await transport.emit_message(["ok"])

        assert batches == [["ok"]]
        assert "Event batch callback failed" in caplog.text

    async def test_error_event_is_logged_without_state_change(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
        caplog: pytest.LogCaptureFixture,
    ):
        await subscriber.subscribe(received)
        transport = transport_factory.latest
        await transport.emit_open()

        with caplog.at_level(logging.ERROR, logger="exoquic.subscriptions.subscriber"):
            await transport.emit_error(ConnectionResetError("reset by peer"))

        assert subscriber.state is ConnectionState.OPEN
        assert "Subscription transport error" in caplog.text


class TestClose:
    """Tests for close events and reconnection."""

    async def test_clean_close_never_reconnects(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        recording_sleep: RecordingSleep,
        received: BatchRecorder,
    ):
        """Code 1000 ends the subscription."""
        await subscriber.subscribe(received)
        await transport_factory.latest.emit_open()

        await transport_factory.latest.emit_close(1000, "bye")
        await settle()

        assert len(transport_factory.transports) == 1
        assert recording_sleep.delays == []
        assert subscriber.state is ConnectionState.CLOSED
        assert subscriber.is_subscribed is False
        assert subscriber.is_connected is False
        await subscriber.wait_closed()

    @pytest.mark.parametrize("code", [1001, 1006, 1011, 4000, None])
    async def test_other_codes_reconnect(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        recording_sleep: RecordingSleep,
        received: BatchRecorder,
        token: str,
        code: int | None,
    ):
        """Any code other than 1000 opens a new session after the delay."""
        await subscriber.subscribe(received)
        await transport_factory.latest.emit_open()

        await transport_factory.latest.emit_close(code)
        await settle()

        assert recording_sleep.delays == [1.0]
        assert len(transport_factory.transports) == 2
        assert transport_factory.latest.subprotocols == [token]
        assert subscriber.state is ConnectionState.CONNECTING
        assert subscriber.is_subscribed is True
        assert subscriber.session == 2

    async def test_backoff_sequence(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        recording_sleep: RecordingSleep,
        received: BatchRecorder,
    ):
        """Delays grow x1.5 from 1 second and are capped at 10 seconds."""
        await subscriber.subscribe(received)

        for _ in range(8):
            await transport_factory.latest.emit_close(1006)
            await settle()

        assert recording_sleep.delays == pytest.approx(
            [1.0, 1.5, 2.25, 3.375, 5.0625, 7.59375, 10.0, 10.0]
        )
        assert subscriber.reconnect_delay == 10.0
        assert subscriber.reconnect_attempts == 8

    async def test_successful_reconnect_keeps_backoff(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        recording_sleep: RecordingSleep,
        received: BatchRecorder,
    ):
        """An open after a reconnect does not reset the delay."""
        await subscriber.subscribe(received)
        await transport_factory.latest.emit_open()
        await transport_factory.latest.emit_close(1006)
        await settle()

        await transport_factory.latest.emit_open()
        await transport_factory.latest.emit_close(1006)
        await settle()

        assert recording_sleep.delays == [1.0, 1.5]

    async def test_new_subscribe_resets_backoff(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        recording_sleep: RecordingSleep,
        received: BatchRecorder,
    ):
        """The delay starts over when a new subscribe session starts."""
        await subscriber.subscribe(received)
        for _ in range(3):
            await transport_factory.latest.emit_close(1006)
            await settle()
        assert subscriber.reconnect_delay == pytest.approx(3.375)

        await subscriber.unsubscribe()
        await subscriber.subscribe(received)
        assert subscriber.reconnect_delay == 1.0

        await transport_factory.latest.emit_close(1006)
        await settle()

        assert recording_sleep.delays[-1] == 1.0

    async def test_reconnect_disabled(
        self,
        transport_factory: FakeTransportFactory,
        recording_sleep: RecordingSleep,
        received: BatchRecorder,
        token: str,
    ):
        """With should_reconnect=False any close ends the subscription."""
        settings = ConnectionSettings(server_url=TEST_SERVER_URL, should_reconnect=False)
        subscriber = PlainSubscriber(
            token,
            settings,
            transport_factory=transport_factory,
            sleep=recording_sleep,
            enable_tracing=False,
        )
        await subscriber.subscribe(received)

        await transport_factory.latest.emit_close(1006)
        await settle()

        assert len(transport_factory.transports) == 1
        assert recording_sleep.delays == []
        assert subscriber.is_subscribed is False

    async def test_subscribe_again_after_clean_close(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
    ):
        """A terminally closed subscriber can subscribe again."""
        await subscriber.subscribe(received)
        await transport_factory.latest.emit_close(1000)

        await subscriber.subscribe(received)

        assert len(transport_factory.transports) == 2
        assert subscriber.state is ConnectionState.CONNECTING

    async def test_events_from_stale_transport_are_ignored(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
    ):
        """Only the current session's transport is listened to."""
        await subscriber.subscribe(received)
        first = transport_factory.latest
        await first.emit_close(1006)
        await settle()

        await first.emit_message(["stale"])
        await transport_factory.latest.emit_message(["fresh"])

        assert received.batches == [["fresh"]]


class TestUnsubscribe:
    """Tests for unsubscribe()."""

    async def test_closes_transport_with_normal_closure(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
    ):
        await subscriber.subscribe(received)
        await transport_factory.latest.emit_open()

        await subscriber.unsubscribe()

        assert transport_factory.latest.close_calls == [(1000, "unsubscribe")]
        assert subscriber.state is ConnectionState.CLOSED
        assert subscriber.is_subscribed is False
        assert subscriber.is_connected is False
        await subscriber.wait_closed()

    async def test_second_unsubscribe_is_noop(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
    ):
        await subscriber.subscribe(received)
        await subscriber.unsubscribe()
        await subscriber.unsubscribe()

        assert transport_factory.latest.close_calls == [(1000, "unsubscribe")]

    async def test_unsubscribe_before_subscribe_is_noop(self, subscriber: PlainSubscriber):
        await subscriber.unsubscribe()
        assert subscriber.state is ConnectionState.IDLE

    async def test_unsubscribe_while_connecting(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
    ):
        """Unsubscribing before the handshake completes still closes cleanly."""
        await subscriber.subscribe(received)

        await subscriber.unsubscribe()

        assert subscriber.state is ConnectionState.CLOSED
        assert transport_factory.latest.close_calls == [(1000, "unsubscribe")]

    async def test_pending_reconnect_is_cancelled(
        self,
        settings: ConnectionSettings,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
        token: str,
    ):
        """unsubscribe() before the reconnect fires prevents the new transport."""
        sleep = GatedSleep()
        subscriber = PlainSubscriber(
            token,
            settings,
            transport_factory=transport_factory,
            sleep=sleep,
            enable_tracing=False,
        )
        await subscriber.subscribe(received)
        await transport_factory.latest.emit_close(1006)
        await settle()
        assert subscriber.state is ConnectionState.RECONNECTING
        assert sleep.delays == [1.0]

        await subscriber.unsubscribe()
        sleep.release()
        await settle()

        assert len(transport_factory.transports) == 1
        assert subscriber.state is ConnectionState.CLOSED
        assert subscriber.is_subscribed is False
        await subscriber.wait_closed()

    async def test_messages_after_unsubscribe_are_dropped(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
    ):
        await subscriber.subscribe(received)
        transport = transport_factory.latest

        await subscriber.unsubscribe()
        await transport.emit_message(["late"])

        assert received.batches == []

    async def test_context_manager_unsubscribes(
        self,
        subscriber: PlainSubscriber,
        transport_factory: FakeTransportFactory,
        received: BatchRecorder,
    ):
        async with subscriber as entered:
            await entered.subscribe(received)
            assert entered.is_subscribed is True

        assert subscriber.is_subscribed is False
        assert transport_factory.latest.close_calls == [(1000, "unsubscribe")]


class TestSubscriberProperties:
    """Tests for read-only properties."""

    def test_exposes_token_claims_and_settings(
        self, settings: ConnectionSettings, transport_factory: FakeTransportFactory
    ):
        from exoquic.auth import decode_token

        token = make_token(topic="invoices")
        subscriber = PlainSubscriber(
            token,
            settings,
            claims=decode_token(token),
            transport_factory=transport_factory,
            enable_tracing=False,
        )

        assert subscriber.authorization_token == token
        assert subscriber.claims is not None
        assert subscriber.claims.topic == "invoices"
        assert subscriber.settings is settings
        assert subscriber.reconnect_delay == 1.0
