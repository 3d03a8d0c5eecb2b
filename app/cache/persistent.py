"""
Cache gateway variant that keeps its slot in a key/value store.
"""
import json
import logging
from typing import Optional

from app.errors import StorageError, StorageReadError
from .core import CacheSlot
from .gateway import CacheGateway
from .storage import KeyValueStore

logger = logging.getLogger("cache.persistent")

CACHE_KEY = "timesup_chart_data"
CACHE_TIMESTAMP_KEY = "timesup_chart_data_timestamp"
CACHE_EXPIRATION_KEY = "timesup_chart_data_expiration"
CACHE_VERSION_KEY = "timesup_chart_data_version"


class PersistentCacheGateway(CacheGateway):
    """
    CacheGateway whose slot is stored as three string entries (payload,
    fetch timestamp, expiration) plus a deploy version marker.

    An entry written under a different deploy version is ignored. Corrupt or
    unreadable entries count as a cache miss; failed writes are logged and
    the request carries on with the freshly fetched payload.
    """

    def __init__(self, store: KeyValueStore, deploy_version: str = "1", **kwargs):
        super().__init__(**kwargs)
        self._store = store
        self.deploy_version = deploy_version

    def _read_slot(self) -> Optional[CacheSlot]:
        try:
            return self._load_slot()
        except StorageError as e:
            logger.warning(f"Ignoring unreadable cached chart data: {e}")
            return None

    def _load_slot(self) -> Optional[CacheSlot]:
        with self._slot_lock:
            version = self._store.get(CACHE_VERSION_KEY)
            raw_value = self._store.get(CACHE_KEY)
            raw_fetched_at = self._store.get(CACHE_TIMESTAMP_KEY)
            raw_expires_at = self._store.get(CACHE_EXPIRATION_KEY)

        if raw_value is None or raw_fetched_at is None or raw_expires_at is None:
            return None

        if version != self.deploy_version:
            logger.info(
                f"Ignoring cached chart data from deploy {version!r} "
                f"(current {self.deploy_version!r})"
            )
            return None

        try:
            return CacheSlot(
                value=json.loads(raw_value),
                expires_at=int(raw_expires_at),
                fetched_at=int(raw_fetched_at),
            )
        except ValueError as e:
            raise StorageReadError(f"Corrupt cache entry: {e}") from e

    def _write_slot(self, slot: CacheSlot) -> None:
        try:
            with self._slot_lock:
                # Expiration goes last so a half-written entry reads as absent
                self._store.remove(CACHE_EXPIRATION_KEY)
                self._store.set(CACHE_VERSION_KEY, self.deploy_version)
                self._store.set(CACHE_KEY, json.dumps(slot.value))
                self._store.set(CACHE_TIMESTAMP_KEY, str(slot.fetched_at))
                self._store.set(CACHE_EXPIRATION_KEY, str(slot.expires_at))
        except StorageError as e:
            logger.error(f"Failed to cache chart data: {e}")

    def clear(self) -> None:
        """Remove the persisted payload, timestamp and expiration."""
        try:
            with self._slot_lock:
                for key in (CACHE_KEY, CACHE_TIMESTAMP_KEY, CACHE_EXPIRATION_KEY):
                    self._store.remove(key)
        except StorageError as e:
            logger.error(f"Failed to clear cached chart data: {e}")
            return
        logger.info("Cleared persisted chart data cache")
