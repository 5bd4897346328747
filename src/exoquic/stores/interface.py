"""
Persistent store interface.

A store is a string key-value space split into named partitions. The
token authority keeps cached tokens in one partition, and the replay cache
keeps each subscriber's event batches in a partition of its own.

Partitions are created lazily on first write and are ordered: ``get_all``
returns values in the order they were first written, which is what lets
the replay cache hand batches back oldest first.
"""

from abc import ABC, abstractmethod
from types import TracebackType
from typing import Self


class PartitionedStore(ABC):
    """
    Abstract base class for partitioned key-value stores.

    Values are opaque strings; callers serialize to JSON before writing.

    Implementations:
    - InMemoryStore: process-local, for tests and ephemeral clients
    - SQLiteStore: file-backed via aiosqlite, survives restarts
    """

    @abstractmethod
    async def get(self, partition: str, key: str) -> str | None:
        """
        Get a value by key.

        Args:
            partition: Partition name
            key: Key within the partition

        Returns:
            The stored value, or None if the partition or key is missing
        """
        pass

    @abstractmethod
    async def put(self, partition: str, key: str, value: str) -> None:
        """
        Insert or overwrite a value. Creates the partition if needed.

        Overwriting keeps the entry's original position in ``get_all``.
        """
        pass

    @abstractmethod
    async def delete(self, partition: str, key: str) -> None:
        """Delete a key. Missing partitions and keys are ignored."""
        pass

    @abstractmethod
    async def append(self, partition: str, value: str) -> int:
        """
        Append a value under a store-assigned, increasing sequence number.

        Args:
            partition: Partition name (created if needed)
            value: Value to append

        Returns:
            The sequence number assigned to the value
        """
        pass

    @abstractmethod
    async def get_all(self, partition: str) -> list[str]:
        """
        Get every value of a partition in insertion order.

        Returns:
            Values oldest first; an empty list if the partition does not exist
        """
        pass

    @abstractmethod
    async def list_partitions(self) -> list[str]:
        """List the names of all non-empty partitions, sorted."""
        pass

    @abstractmethod
    async def delete_partition(self, partition: str) -> None:
        """Delete a partition and all of its entries. Missing partitions are ignored."""
        pass

    async def close(self) -> None:
        """Release backend resources. The default implementation does nothing."""
        return None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


__all__ = ["PartitionedStore"]
