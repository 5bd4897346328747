"""
In-memory partitioned store.

Useful for testing and for clients that only need replay across reconnects
within one process. Everything is lost when the process terminates.
"""

import asyncio

from exoquic.observability import ATTR_DB_OPERATION, ATTR_PARTITION, Tracer, create_tracer
from exoquic.stores.interface import PartitionedStore


class InMemoryStore(PartitionedStore):
    """
    In-memory implementation of the partitioned store.

    Partitions are insertion-ordered dictionaries, so overwriting a key
    keeps its position and ``get_all`` reflects first-write order. Keyed
    entries use their string key; appended entries use their integer
    sequence, so the two never collide.

    Example:
        >>> store = InMemoryStore()
        >>> await store.put("tokens", "key", "value")
        >>> await store.get("tokens", "key")
        'value'
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize an empty in-memory store.

        Args:
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces.
                          Ignored if tracer is explicitly provided.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._partitions: dict[str, dict[str | int, str]] = {}
        self._sequences: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def get(self, partition: str, key: str) -> str | None:
        async with self._lock:
            return self._partitions.get(partition, {}).get(key)

    async def put(self, partition: str, key: str, value: str) -> None:
        async with self._lock:
            self._partitions.setdefault(partition, {})[key] = value

    async def delete(self, partition: str, key: str) -> None:
        async with self._lock:
            entries = self._partitions.get(partition)
            if entries is None:
                return
            entries.pop(key, None)
            if not entries:
                del self._partitions[partition]

    async def append(self, partition: str, value: str) -> int:
        with self._tracer.span(
            "exoquic.store.append",
            {ATTR_PARTITION: partition, ATTR_DB_OPERATION: "append"},
        ):
            async with self._lock:
                sequence = self._sequences.get(partition, 0) + 1
                self._sequences[partition] = sequence
                self._partitions.setdefault(partition, {})[sequence] = value
                return sequence

    async def get_all(self, partition: str) -> list[str]:
        with self._tracer.span(
            "exoquic.store.get_all",
            {ATTR_PARTITION: partition, ATTR_DB_OPERATION: "get_all"},
        ):
            async with self._lock:
                return list(self._partitions.get(partition, {}).values())

    async def list_partitions(self) -> list[str]:
        async with self._lock:
            return sorted(self._partitions)

    async def delete_partition(self, partition: str) -> None:
        with self._tracer.span(
            "exoquic.store.delete_partition",
            {ATTR_PARTITION: partition, ATTR_DB_OPERATION: "delete_partition"},
        ):
            async with self._lock:
                self._partitions.pop(partition, None)
                self._sequences.pop(partition, None)

    async def clear(self) -> None:
        """Remove every partition. Useful in tests."""
        async with self._lock:
            self._partitions.clear()
            self._sequences.clear()


__all__ = ["InMemoryStore"]
