"""
Storage backends for the sync engine.

Provides the injectable key-value interface used for cached
result sets and warm-start snapshots.
"""

from .kv_store import KeyValueStore, InMemoryKeyValueStore
from .redis import RedisKeyValueStore, RedisConfig

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    "RedisConfig",
]
