import fnmatch
import logging
import math
import time
import typing as tp

from read_through_cache.serializers import BaseSerializer, StoredResponse
from read_through_cache.types import Metadata

from .base_storage import BaseStorage

logger = logging.getLogger(__name__)

Clock = tp.Callable[[], float]


class InMemoryStorage(BaseStorage):
    """Process-local cache storage with TTL expiry.

    Expired entries are dropped lazily on read and by a periodic sweep on
    write. There is no size bound and no LRU eviction.

    Args:
        serializer: Not used, entries are kept as (body, metadata) tuples
        ttl: Default lifetime in seconds. None for permanent storage
        clock: Source of the current time in seconds, ``time.monotonic`` by default
    """

    def __init__(
        self,
        serializer: tp.Optional[BaseSerializer] = None,
        ttl: tp.Optional[tp.Union[int, float]] = None,
        clock: tp.Optional[Clock] = None,
    ) -> None:
        super().__init__(serializer=serializer, ttl=ttl)

        self._clock = clock or time.monotonic
        self._storage: tp.Dict[str, StoredResponse] = {}
        # Separate expiry times for a fast TTL check
        self._expiry_times: tp.Dict[str, float] = {}
        self._last_expiry_check_time: float = self._clock()
        self._expiry_check_interval: float = 60

    async def set(self, key: str, content: bytes, metadata: Metadata) -> None:
        current_time = self._clock()
        data_ttl = self._entry_ttl(metadata)

        metadata = metadata.copy()
        metadata["write_time"] = current_time

        self._pop_item(key)
        self._storage[key] = (content, metadata)

        if data_ttl is not None:
            self._expiry_times[key] = current_time + data_ttl

        self._remove_expired_items()

    async def get(self, key: str) -> tp.Optional[StoredResponse]:
        if key not in self._storage:
            return None

        if self._is_expired(key):
            self._pop_item(key)
            logger.debug("Entry %s removed from cache - TTL expired", key)
            return None

        return self._storage[key]

    async def delete(self, key: str) -> bool:
        return self._pop_item(key) is not None

    async def delete_pattern(self, pattern: str) -> int:
        keys_to_remove = [key for key in self._storage if fnmatch.fnmatchcase(key, pattern)]
        for key in keys_to_remove:
            self._pop_item(key)

        logger.debug("Removed %d entries matching %s", len(keys_to_remove), pattern)
        return len(keys_to_remove)

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

    async def ttl(self, key: str) -> int:
        if await self.get(key) is None:
            return -2
        expiry_time = self._expiry_times.get(key)
        if expiry_time is None:
            return -1
        return max(0, math.ceil(expiry_time - self._clock()))

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._storage.clear()
        self._expiry_times.clear()
        logger.debug("Cache storage cleared")

    def __len__(self) -> int:
        return len(self._storage)

    def _pop_item(self, key: str) -> tp.Optional[StoredResponse]:
        self._expiry_times.pop(key, None)
        return self._storage.pop(key, None)

    def _is_expired(self, key: str) -> bool:
        """An entry is gone at its expiry instant, not one tick later."""
        try:
            return self._clock() >= self._expiry_times[key]
        except KeyError:
            return False

    def _remove_expired_items(self) -> None:
        current_time = self._clock()

        if current_time - self._last_expiry_check_time < self._expiry_check_interval:
            return

        self._last_expiry_check_time = current_time

        expired_keys = [
            key
            for key, expiry_time in self._expiry_times.items()
            if current_time >= expiry_time
        ]
        for key in expired_keys:
            self._pop_item(key)

        if expired_keys:
            logger.debug("Removed %d expired entries from cache", len(expired_keys))
