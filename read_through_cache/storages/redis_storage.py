import contextlib
import logging
import math
import time
import typing as tp

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from read_through_cache.exceptions import StorageError, StorageUnavailableError
from read_through_cache.serializers import BaseSerializer, StoredResponse
from read_through_cache.types import Metadata

from .base_storage import BaseStorage

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def _translate_errors(operation: str, key: str) -> tp.Iterator[None]:
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError, OSError) as exc:
        raise StorageUnavailableError(
            f"Redis unavailable during {operation} {key}: {exc}"
        ) from exc
    except RedisError as exc:
        raise StorageError(f"Redis {operation} {key} failed: {exc}") from exc


class RedisStorage(BaseStorage):
    """Cache storage backed by Redis; expiry is delegated to Redis ``EX``.

    Keys are used as given: they already carry the cache namespace.
    Connection failures and timeouts raise ``StorageUnavailableError``,
    every other Redis failure raises ``StorageError``.
    """

    def __init__(
        self,
        redis_client: Redis,
        serializer: tp.Optional[BaseSerializer] = None,
        ttl: tp.Optional[tp.Union[int, float]] = None,
    ) -> None:
        super().__init__(serializer, ttl)
        self._storage = redis_client

    async def set(self, key: str, content: bytes, metadata: Metadata) -> None:
        ttl = self._entry_ttl(metadata)

        metadata = metadata.copy()
        metadata["write_time"] = time.time()
        value = self._serializer.dumps(content, metadata)

        # Redis EX takes whole seconds
        ex = math.ceil(ttl) if ttl is not None else None
        with _translate_errors("set", key):
            await self._storage.set(key, value, ex=ex)
        logger.debug("Data written to Redis: %s (TTL: %s)", key, ex)

    async def get(self, key: str) -> tp.Optional[StoredResponse]:
        with _translate_errors("get", key):
            raw_data = await self._storage.get(key)

        if raw_data is None:
            return None
        return self._serializer.loads(raw_data)

    async def delete(self, key: str) -> bool:
        with _translate_errors("delete", key):
            return bool(await self._storage.delete(key))

    async def delete_pattern(self, pattern: str) -> int:
        removed = 0
        with _translate_errors("delete_pattern", pattern):
            async for key in self._storage.scan_iter(match=pattern):
                removed += await self._storage.delete(key)

        logger.info("Removed %d keys matching %s", removed, pattern)
        return removed

    async def exists(self, key: str) -> bool:
        with _translate_errors("exists", key):
            return await self._storage.exists(key) == 1

    async def ttl(self, key: str) -> int:
        with _translate_errors("ttl", key):
            return int(await self._storage.ttl(key))

    async def ping(self) -> bool:
        try:
            return bool(await self._storage.ping())
        except RedisError as exc:
            logger.warning("Redis ping failed: %s", exc)
            return False

    async def close(self) -> None:
        await self._storage.aclose()
        logger.info("Redis connection closed")

