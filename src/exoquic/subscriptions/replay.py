"""
Replay cache for received event batches.

Every batch a caching subscriber delivers is appended to that subscriber's
partition. When the subscriber (re)connects, the partition is read once and
replayed to the application before any live batch, so state rebuilt from
the callback survives reconnects and cold starts.

Partition names are namespaced by the owning manager so several managers
can share one store::

    {namespace}/replay/{partition}     ordered event batches
    {namespace}/subscribers            partition -> metadata (JSON)
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from exoquic.exceptions import SerializationError
from exoquic.observability import (
    ATTR_BATCH_COUNT,
    ATTR_PARTITION,
    Tracer,
    create_tracer,
)
from exoquic.serialization import json_dumps, json_loads
from exoquic.stores.interface import PartitionedStore

if TYPE_CHECKING:
    from exoquic.auth.tokens import TokenClaims

logger = logging.getLogger(__name__)

EventBatch = list[Any]
"""One message from the server: a JSON array of events."""


class ReplayCache:
    """
    Per-subscriber persistent log of event batches.

    Caching is best effort for readers: a partition that was never written
    reads as empty. Store failures surface as StoreError and the subscriber
    decides how to degrade.

    Example:
        >>> cache = ReplayCache(InMemoryStore(), namespace="default")
        >>> await cache.append("orders/eu/sub-1", [{"id": 1}])
        >>> await cache.get_all("orders/eu/sub-1")
        [[{'id': 1}]]
    """

    def __init__(
        self,
        store: PartitionedStore,
        *,
        namespace: str = "default",
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the replay cache.

        Args:
            store: Backing partitioned store (may be shared)
            namespace: Prefix isolating this cache's partitions in the store
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._store = store
        self._namespace = namespace
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def store(self) -> PartitionedStore:
        """The backing store."""
        return self._store

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def _registry_partition(self) -> str:
        return f"{self._namespace}/subscribers"

    def _store_partition(self, name: str) -> str:
        return f"{self._namespace}/replay/{name}"

    async def ensure_partition(
        self,
        name: str,
        *,
        subscription_key: str | None = None,
        claims: TokenClaims | None = None,
    ) -> str:
        """
        Register a partition in the subscriber registry.

        The partition's storage is still created lazily by the first append.
        Registering an already known partition keeps its original metadata.

        Args:
            name: Partition name
            subscription_key: Key of the request the partition belongs to
            claims: Claims of the token the partition was created for

        Returns:
            The partition name
        """
        existing = await self._store.get(self._registry_partition, name)
        if existing is not None:
            return name

        metadata: dict[str, Any] = {
            "name": name,
            "subscription_key": subscription_key,
            "created_at": datetime.now(UTC),
        }
        if claims is not None:
            metadata["topic"] = claims.topic
            metadata["channel"] = claims.channel
            metadata["subscription_id"] = claims.subscription_id

        await self._store.put(self._registry_partition, name, json_dumps(metadata))
        logger.debug(
            "Registered replay partition",
            extra={"partition": name, "subscription_key": subscription_key},
        )
        return name

    async def metadata(self, name: str) -> dict[str, Any] | None:
        """Get the registry entry of a partition, or None if unknown."""
        raw = await self._store.get(self._registry_partition, name)
        return json_loads(raw) if raw is not None else None

    async def partitions(self) -> list[str]:
        """List every registered partition, in registration order."""
        entries = await self._store.get_all(self._registry_partition)
        return [json_loads(entry)["name"] for entry in entries]

    async def get_all(self, name: str) -> list[EventBatch]:
        """
        Read every cached batch of a partition, oldest first.

        Entries that cannot be decoded are skipped with a warning.

        Returns:
            Cached batches; empty if the partition does not exist
        """
        with self._tracer.span(
            "exoquic.replay_cache.get_all",
            {ATTR_PARTITION: name},
        ):
            raw_batches = await self._store.get_all(self._store_partition(name))

            batches: list[EventBatch] = []
            for raw in raw_batches:
                try:
                    batch = json_loads(raw)
                except SerializationError as e:
                    logger.warning(
                        "Skipping undecodable cached batch",
                        extra={"partition": name, "error": str(e)},
                    )
                    continue
                batches.append(batch)

            logger.debug(
                "Loaded cached batches",
                extra={"partition": name, ATTR_BATCH_COUNT: len(batches)},
            )
            return batches

    async def append(self, name: str, batch: EventBatch) -> None:
        """Append one batch to the end of a partition."""
        with self._tracer.span(
            "exoquic.replay_cache.append",
            {ATTR_PARTITION: name},
        ):
            await self._store.append(self._store_partition(name), json_dumps(batch))

    async def clear(self, name: str) -> None:
        """
        Remove every batch of a partition.

        The partition stays registered; only its contents are deleted.
        """
        with self._tracer.span(
            "exoquic.replay_cache.clear",
            {ATTR_PARTITION: name},
        ):
            await self._store.delete_partition(self._store_partition(name))
            logger.info("Cleared replay partition", extra={"partition": name})

    async def purge_all(self) -> None:
        """Delete every partition of this namespace and the registry itself."""
        names = await self.partitions()
        for name in names:
            await self._store.delete_partition(self._store_partition(name))
        await self._store.delete_partition(self._registry_partition)
        logger.info(
            "Purged replay cache",
            extra={"namespace": self._namespace, "partitions": len(names)},
        )

    async def partitions_for_key(self, subscription_key: str) -> list[str]:
        """List the partitions registered for one subscription request."""
        entries = await self._store.get_all(self._registry_partition)
        names = []
        for entry in entries:
            metadata = json_loads(entry)
            if metadata.get("subscription_key") == subscription_key:
                names.append(metadata["name"])
        return names


__all__ = [
    "EventBatch",
    "ReplayCache",
]
