"""
Single-slot chart data cache with schedule-driven expiration and stale fallback.
"""
from .core import CacheSlot, Freshness, RefreshResult, ServedResponse
from .coalescer import RequestCoalescer
from .gateway import CacheGateway
from .persistent import PersistentCacheGateway
from .storage import InMemoryKeyValueStore, KeyValueStore, SQLiteKeyValueStore

__all__ = [
    # Core types
    "CacheSlot",
    "Freshness",
    "RefreshResult",
    "ServedResponse",
    # Coalescing
    "RequestCoalescer",
    # Gateways
    "CacheGateway",
    "PersistentCacheGateway",
    # Stores
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "SQLiteKeyValueStore",
]
