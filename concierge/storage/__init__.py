from .base import KeyValueStore, WindowCount
from .memory_store import MemoryKeyValueStore
from .redis_store import RedisKeyValueStore

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "RedisKeyValueStore",
    "WindowCount",
]
