"""
Key-value store module for URL shortener.
Implements Strategy Pattern for flexible store backends.
"""

from .strategies import (
    KeyValueStore,
    KvEntry,
    CommitResult,
    AtomicOperation,
    WatchSubscription,
    InMemoryKeyValueStore,
    SQLAlchemyKeyValueStore,
    RedisKeyValueStore,
)
from .factory import StoreFactory, StoreBackend

__all__ = [
    "KeyValueStore",
    "KvEntry",
    "CommitResult",
    "AtomicOperation",
    "WatchSubscription",
    "InMemoryKeyValueStore",
    "SQLAlchemyKeyValueStore",
    "RedisKeyValueStore",
    "StoreFactory",
    "StoreBackend",
]
