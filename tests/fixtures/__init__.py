"""
Shared test fixtures for the exoquic library.

This module provides reusable test helpers including:
- Token factory and fake clock
- A recording token fetcher
- A fake transport driven by the test
- Sleep replacements for reconnect tests

Usage:
    from tests.fixtures import (
        FakeClock,
        FakeTransportFactory,
        RecordingFetcher,
        RecordingSleep,
        make_token,
        settle,
    )
"""

from tests.fixtures.tokens import (
    FIXED_NOW,
    TEST_SERVER_URL,
    FakeClock,
    RecordingFetcher,
    make_token,
)
from tests.fixtures.transport import (
    FakeTransport,
    FakeTransportFactory,
    GatedSleep,
    RecordingSleep,
    settle,
)

__all__ = [
    # Tokens
    "FIXED_NOW",
    "TEST_SERVER_URL",
    "FakeClock",
    "RecordingFetcher",
    "make_token",
    # Transport
    "FakeTransport",
    "FakeTransportFactory",
    "GatedSleep",
    "RecordingSleep",
    "settle",
]
