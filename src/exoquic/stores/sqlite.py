"""
SQLite partitioned store implementation.

File-backed store using aiosqlite, so cached tokens and replay batches
survive process restarts.

All partitions live in one table; ``seq`` is an auto-increment primary key
that gives every partition a stable insertion order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager

import aiosqlite

from exoquic.exceptions import StoreError
from exoquic.observability import (
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_PARTITION,
    Tracer,
    create_tracer,
)
from exoquic.stores.interface import PartitionedStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS exoquic_entries (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    partition TEXT NOT NULL,
    entry_key TEXT,
    value TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_exoquic_entries_key
    ON exoquic_entries (partition, entry_key);
CREATE INDEX IF NOT EXISTS idx_exoquic_entries_partition
    ON exoquic_entries (partition, seq);
"""


class SQLiteStore(PartitionedStore):
    """
    SQLite implementation of the partitioned store.

    The connection is opened and the schema created lazily on first use,
    so the store can be handed to a SubscriptionManager without an explicit
    setup step. Use ``async with`` or ``close()`` to release the connection.

    SQLite-specific adaptations:
    - Keyed entries use a unique (partition, entry_key) index with UPSERT
    - Appended entries have a NULL key and are addressed by ``seq`` only

    Example:
        >>> async with SQLiteStore("exoquic.db") as store:
        ...     await store.put("tokens", "key", "value")
        ...     await store.get("tokens", "key")
        'value'
    """

    def __init__(
        self,
        database: str,
        *,
        wal_mode: bool = True,
        busy_timeout: int = 5000,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the SQLite store.

        Args:
            database: Path to SQLite database file or ':memory:' for in-memory
            wal_mode: If True, enable WAL mode for better concurrency (default: True)
            busy_timeout: Timeout in milliseconds when database is locked (default: 5000)
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces.
                          Ignored if tracer is explicitly provided.
        """
        self._database = database
        self._wal_mode = wal_mode
        self._busy_timeout = busy_timeout
        self._connection: aiosqlite.Connection | None = None
        self._connect_lock = asyncio.Lock()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def database(self) -> str:
        """Path of the underlying database."""
        return self._database

    @property
    def is_connected(self) -> bool:
        """True while a connection is open."""
        return self._connection is not None

    async def __aenter__(self) -> SQLiteStore:
        await self.initialize()
        return self

    async def initialize(self) -> None:
        """
        Open the connection and create the schema.

        Idempotent; called automatically before the first operation.

        Raises:
            StoreError: If the database cannot be opened
        """
        await self._ensure_connection()

    async def _ensure_connection(self) -> aiosqlite.Connection:
        if self._connection is not None:
            return self._connection

        async with self._connect_lock:
            if self._connection is not None:
                return self._connection

            with self._translate_errors("connect"):
                connection = await aiosqlite.connect(self._database)
                try:
                    await connection.execute(f"PRAGMA busy_timeout = {self._busy_timeout}")
                    if self._wal_mode:
                        await connection.execute("PRAGMA journal_mode = WAL")
                    await connection.executescript(SCHEMA)
                    await connection.commit()
                except aiosqlite.Error:
                    await connection.close()
                    raise

            self._connection = connection
            logger.debug(
                "Connected to SQLite store: %s (wal_mode=%s, busy_timeout=%d)",
                self._database,
                self._wal_mode,
                self._busy_timeout,
            )
            return connection

    async def close(self) -> None:
        """
        Close the database connection.

        Safe to call multiple times. A later operation reconnects.
        """
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("Closed SQLite store: %s", self._database)

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except aiosqlite.Error as e:
            raise StoreError(f"SQLite {operation} failed on {self._database}: {e}") from e

    def _span_attributes(self, partition: str | None, operation: str) -> dict[str, str]:
        attributes = {
            ATTR_DB_SYSTEM: "sqlite",
            ATTR_DB_NAME: self._database,
            ATTR_DB_OPERATION: operation,
        }
        if partition is not None:
            attributes[ATTR_PARTITION] = partition
        return attributes

    async def get(self, partition: str, key: str) -> str | None:
        connection = await self._ensure_connection()
        with self._translate_errors("get"):
            cursor = await connection.execute(
                """
                SELECT value
                FROM exoquic_entries
                WHERE partition = ? AND entry_key = ?
                """,
                (partition, key),
            )
            row = await cursor.fetchone()
        return row[0] if row else None

    async def put(self, partition: str, key: str, value: str) -> None:
        connection = await self._ensure_connection()
        with (
            self._tracer.span("exoquic.store.put", self._span_attributes(partition, "UPSERT")),
            self._translate_errors("put"),
        ):
            await connection.execute(
                """
                INSERT INTO exoquic_entries (partition, entry_key, value)
                VALUES (?, ?, ?)
                ON CONFLICT (partition, entry_key) DO UPDATE
                SET value = excluded.value
                """,
                (partition, key, value),
            )
            await connection.commit()

    async def delete(self, partition: str, key: str) -> None:
        connection = await self._ensure_connection()
        with self._translate_errors("delete"):
            await connection.execute(
                "DELETE FROM exoquic_entries WHERE partition = ? AND entry_key = ?",
                (partition, key),
            )
            await connection.commit()

    async def append(self, partition: str, value: str) -> int:
        connection = await self._ensure_connection()
        with (
            self._tracer.span("exoquic.store.append", self._span_attributes(partition, "INSERT")),
            self._translate_errors("append"),
        ):
            cursor = await connection.execute(
                "INSERT INTO exoquic_entries (partition, entry_key, value) VALUES (?, NULL, ?)",
                (partition, value),
            )
            await connection.commit()
        assert cursor.lastrowid is not None
        return cursor.lastrowid

    async def get_all(self, partition: str) -> list[str]:
        connection = await self._ensure_connection()
        with (
            self._tracer.span("exoquic.store.get_all", self._span_attributes(partition, "SELECT")),
            self._translate_errors("get_all"),
        ):
            cursor = await connection.execute(
                """
                SELECT value
                FROM exoquic_entries
                WHERE partition = ?
                ORDER BY seq ASC
                """,
                (partition,),
            )
            rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def list_partitions(self) -> list[str]:
        connection = await self._ensure_connection()
        with self._translate_errors("list_partitions"):
            cursor = await connection.execute(
                "SELECT DISTINCT partition FROM exoquic_entries ORDER BY partition"
            )
            rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def delete_partition(self, partition: str) -> None:
        connection = await self._ensure_connection()
        with (
            self._tracer.span(
                "exoquic.store.delete_partition", self._span_attributes(partition, "DELETE")
            ),
            self._translate_errors("delete_partition"),
        ):
            await connection.execute(
                "DELETE FROM exoquic_entries WHERE partition = ?",
                (partition,),
            )
            await connection.commit()


__all__ = ["SQLiteStore", "SCHEMA"]
