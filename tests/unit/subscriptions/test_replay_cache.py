"""
Unit tests for ReplayCache.

Tests for:
- Ordered append/get_all
- Lazy partitions and empty reads
- Clearing one partition and purging a namespace
- Partition registry metadata
- Namespacing across managers sharing a store
"""

from __future__ import annotations

from exoquic.auth import decode_token
from exoquic.observability import ATTR_PARTITION, MockTracer
from exoquic.stores.in_memory import InMemoryStore
from exoquic.subscriptions import ReplayCache
from tests.fixtures import make_token


class TestReplayCacheLog:
    """Tests for append/get_all/clear."""

    async def test_missing_partition_reads_empty(self, replay_cache: ReplayCache):
        """A partition that was never written reads as []."""
        assert await replay_cache.get_all("orders/eu/sub-1") == []

    async def test_batches_come_back_in_order(self, replay_cache: ReplayCache):
        """Batches are returned oldest first."""
        await replay_cache.append("p", [{"id": "A"}])
        await replay_cache.append("p", [{"id": "B"}, {"id": "C"}])

        assert await replay_cache.get_all("p") == [[{"id": "A"}], [{"id": "B"}, {"id": "C"}]]

    async def test_clear_empties_partition(self, replay_cache: ReplayCache):
        """clear removes every batch of the partition and nothing else."""
        await replay_cache.append("p", [1])
        await replay_cache.append("q", [2])

        await replay_cache.clear("p")

        assert await replay_cache.get_all("p") == []
        assert await replay_cache.get_all("q") == [[2]]

    async def test_partitions_are_namespaced(self, in_memory_store: InMemoryStore):
        """Two caches on one store do not see each other's batches."""
        first = ReplayCache(in_memory_store, namespace="one", enable_tracing=False)
        second = ReplayCache(in_memory_store, namespace="two", enable_tracing=False)

        await first.append("p", [1])

        assert await second.get_all("p") == []
        assert await in_memory_store.list_partitions() == ["one/replay/p"]

    async def test_undecodable_entries_are_skipped(
        self, replay_cache: ReplayCache, in_memory_store: InMemoryStore
    ):
        """Corrupt entries do not prevent replay of the others."""
        await replay_cache.append("p", [1])
        await in_memory_store.append("test/replay/p", "{not json")
        await replay_cache.append("p", [2])

        assert await replay_cache.get_all("p") == [[1], [2]]


class TestReplayCacheRegistry:
    """Tests for ensure_partition/partitions/purge_all."""

    async def test_ensure_partition_registers_metadata(self, replay_cache: ReplayCache):
        """Registration records the request key and claims."""
        claims = decode_token(make_token(topic="orders", channel="eu", subscription_id="s-1"))

        name = await replay_cache.ensure_partition(
            "orders/eu/s-1",
            subscription_key='{"topic":"orders"}',
            claims=claims,
        )

        assert name == "orders/eu/s-1"
        metadata = await replay_cache.metadata("orders/eu/s-1")
        assert metadata is not None
        assert metadata["subscription_key"] == '{"topic":"orders"}'
        assert (metadata["topic"], metadata["channel"], metadata["subscription_id"]) == (
            "orders",
            "eu",
            "s-1",
        )
        assert "created_at" in metadata

    async def test_ensure_partition_is_idempotent(self, replay_cache: ReplayCache):
        """Registering twice keeps the first metadata."""
        await replay_cache.ensure_partition("p", subscription_key="first")
        await replay_cache.ensure_partition("p", subscription_key="second")

        assert await replay_cache.partitions() == ["p"]
        metadata = await replay_cache.metadata("p")
        assert metadata is not None
        assert metadata["subscription_key"] == "first"

    async def test_ensure_partition_does_not_create_storage(
        self, replay_cache: ReplayCache, in_memory_store: InMemoryStore
    ):
        """Only the registry is written; the log appears on first append."""
        await replay_cache.ensure_partition("p")

        assert await in_memory_store.list_partitions() == ["test/subscribers"]

    async def test_unknown_metadata_is_none(self, replay_cache: ReplayCache):
        assert await replay_cache.metadata("nope") is None

    async def test_partitions_for_key(self, replay_cache: ReplayCache):
        """Partitions can be looked up by subscription key."""
        await replay_cache.ensure_partition("a", subscription_key="k1")
        await replay_cache.ensure_partition("b", subscription_key="k2")
        await replay_cache.ensure_partition("c", subscription_key="k1")

        assert await replay_cache.partitions_for_key("k1") == ["a", "c"]

    async def test_purge_all(self, replay_cache: ReplayCache, in_memory_store: InMemoryStore):
        """purge_all removes every registered partition and the registry."""
        await in_memory_store.put("other/subscribers", "x", "{}")
        for name in ("a", "b"):
            await replay_cache.ensure_partition(name)
            await replay_cache.append(name, [name])

        await replay_cache.purge_all()

        assert await replay_cache.partitions() == []
        assert await in_memory_store.list_partitions() == ["other/subscribers"]


class TestReplayCacheTracing:
    """Tests for span creation."""

    async def test_spans(self, in_memory_store: InMemoryStore):
        tracer = MockTracer()
        cache = ReplayCache(in_memory_store, namespace="test", tracer=tracer)

        await cache.append("p", [1])
        await cache.get_all("p")
        await cache.clear("p")

        assert tracer.span_names == [
            "exoquic.replay_cache.append",
            "exoquic.replay_cache.get_all",
            "exoquic.replay_cache.clear",
        ]
        assert tracer.spans[0][1] == {ATTR_PARTITION: "p"}
