"""Persistent store implementations for the exoquic library."""

from exoquic.stores.in_memory import InMemoryStore
from exoquic.stores.interface import PartitionedStore
from exoquic.stores.sqlite import SQLiteStore

__all__ = [
    # Abstract base class
    "PartitionedStore",
    # Concrete implementations
    "InMemoryStore",
    "SQLiteStore",
]
