"""
Shared pytest fixtures for the exoquic library tests.

This module provides:
- Store fixtures (in_memory_store, sqlite_store)
- Replay cache fixture
- Transport fixtures (transport_factory, recording_sleep)
- Token fixtures (clock, fetcher)
- Connection settings fixture

Every component is created with ``enable_tracing=False`` so tests do not
depend on OpenTelemetry being installed.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from exoquic.config import ConnectionSettings
from exoquic.stores.in_memory import InMemoryStore
from exoquic.stores.sqlite import SQLiteStore
from exoquic.subscriptions.replay import ReplayCache
from tests.fixtures import (
    FakeClock,
    FakeTransportFactory,
    RecordingFetcher,
    RecordingSleep,
    TEST_SERVER_URL,
    make_token,
)


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for tests."""
    config.addinivalue_line("markers", "sqlite: marks tests that use the SQLite store")
    config.addinivalue_line("markers", "integration: marks tests that open real sockets")


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def in_memory_store() -> InMemoryStore:
    """Provide a fresh in-memory store."""
    return InMemoryStore(enable_tracing=False)


@pytest_asyncio.fixture
async def sqlite_store(tmp_path: Path) -> AsyncGenerator[SQLiteStore, None]:
    """
    Provide a SQLite store backed by a temporary file.

    The store is closed after the test.
    """
    store = SQLiteStore(str(tmp_path / "exoquic.db"), enable_tracing=False)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def replay_cache(in_memory_store: InMemoryStore) -> ReplayCache:
    """Provide a replay cache over the in-memory store."""
    return ReplayCache(in_memory_store, namespace="test", enable_tracing=False)


# =============================================================================
# Connection Fixtures
# =============================================================================


@pytest.fixture
def settings() -> ConnectionSettings:
    """Provide connection settings with the default backoff."""
    return ConnectionSettings(server_url=TEST_SERVER_URL)


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    """Provide a transport factory recording fake transports."""
    return FakeTransportFactory()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    """Provide a sleep replacement that records reconnect delays."""
    return RecordingSleep()


# =============================================================================
# Token Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Provide a clock fixed at FIXED_NOW."""
    return FakeClock()


@pytest.fixture
def token() -> str:
    """Provide an unexpired token for orders/eu/sub-1."""
    return make_token()


@pytest.fixture
def fetcher(token: str) -> RecordingFetcher:
    """Provide a fetcher that always returns the ``token`` fixture."""
    return RecordingFetcher(token)
