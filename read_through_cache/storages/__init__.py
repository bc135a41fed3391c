import logging

from redis.asyncio import Redis

from read_through_cache.config import CacheSettings

from .base_storage import BaseStorage
from .memory_storage import InMemoryStorage
from .redis_storage import RedisStorage

logger = logging.getLogger(__name__)

__all__ = [
    "BaseStorage",
    "InMemoryStorage",
    "RedisStorage",
    "create_storage",
]


def create_storage(settings: CacheSettings) -> BaseStorage:
    """Builds the storage configured by ``settings``.

    Uses Redis when ``redis_url`` is set, otherwise a process-local store.
    The Redis client connects lazily: an unreachable server surfaces on the
    first request as ``StorageUnavailableError`` and is bypassed there.
    """
    if not settings.redis_url:
        logger.info("Using in-memory cache storage")
        return InMemoryStorage()

    client = Redis.from_url(
        settings.redis_url,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
    )
    logger.info("Using Redis cache storage")
    return RedisStorage(redis_client=client)
