import typing as tp

from read_through_cache.exceptions import StorageError
from read_through_cache.serializers import BaseSerializer, JSONSerializer, StoredResponse
from read_through_cache.types import Metadata


class BaseStorage:
    """Base class for cache storage.

    Entries expire by TTL only; storages never evict on size. Single ``get``
    and ``set`` calls must be atomic, nothing more is required.

    Args:
        serializer: Serializer for converting cached bodies to string/bytes
        ttl: Default lifetime in seconds, used when ``metadata`` has no ``ttl``.
            None for permanent storage
    """

    def __init__(
        self,
        serializer: tp.Optional[BaseSerializer] = None,
        ttl: tp.Optional[tp.Union[int, float]] = None,
    ) -> None:
        self._serializer = serializer or JSONSerializer()

        if ttl is not None and ttl <= 0:
            raise StorageError("TTL must be positive")

        self._ttl = ttl

    def _entry_ttl(self, metadata: Metadata) -> tp.Optional[tp.Union[int, float]]:
        ttl = metadata.get("ttl")
        if ttl is None:
            return self._ttl
        if ttl <= 0:
            raise StorageError("TTL must be positive")
        return ttl

    async def set(self, key: str, content: bytes, metadata: Metadata) -> None:
        raise NotImplementedError()

    async def get(self, key: str) -> tp.Optional[StoredResponse]:
        raise NotImplementedError()

    async def delete(self, key: str) -> bool:
        raise NotImplementedError()

    async def delete_pattern(self, pattern: str) -> int:
        """Removes every key matching a glob pattern such as ``quran:master:*``."""
        raise NotImplementedError()

    async def exists(self, key: str) -> bool:
        raise NotImplementedError()

    async def ttl(self, key: str) -> int:
        """Seconds left to live: -1 for entries without expiry, -2 for missing keys."""
        raise NotImplementedError()

    async def ping(self) -> bool:
        raise NotImplementedError()

    async def close(self) -> None:
        raise NotImplementedError()
