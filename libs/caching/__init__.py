"""
Caching utilities for the Pepper chat service.

- Redis client management
- Key/value stores (process memory or Redis)
- Thread message cache and thread ownership registry
"""

from libs.caching.kv_store import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore, create_key_value_store
from libs.caching.ownership import ThreadOwnershipError, ThreadOwnershipRegistry, owner_key
from libs.caching.redis_client import get_redis_client
from libs.caching.thread_cache import ThreadMessageCache

__all__ = [
    "get_redis_client",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "RedisKeyValueStore",
    "create_key_value_store",
    "ThreadMessageCache",
    "ThreadOwnershipRegistry",
    "ThreadOwnershipError",
    "owner_key",
]
