import json
import typing as tp
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from read_through_cache.config import CacheSettings
from read_through_cache.exceptions import StorageError, StorageUnavailableError
from read_through_cache.serializers import JSONSerializer
from read_through_cache.storages import (
    InMemoryStorage,
    RedisStorage,
    create_storage,
)
from read_through_cache.types import Metadata


@pytest.fixture
def mock_redis() -> AsyncMock:
    # Redis command methods are plain functions returning awaitables
    mock = AsyncMock(spec=AsyncRedis)
    mock.get = AsyncMock()
    mock.set = AsyncMock()
    mock.delete = AsyncMock()
    mock.exists = AsyncMock()
    mock.ttl = AsyncMock()
    mock.ping = AsyncMock()
    mock.aclose = AsyncMock()
    return mock


@pytest.mark.parametrize(
    "ttl, expect_error",
    [
        (60.0, None),
        (None, None),
        (-1, StorageError),
        (0, StorageError),
    ],
)
def test_redis_storage_init_validation(
    mock_redis: AsyncMock,
    ttl: tp.Optional[float],
    expect_error: tp.Optional[tp.Type[BaseException]],
) -> None:
    if expect_error:
        with pytest.raises(expect_error):
            RedisStorage(redis_client=mock_redis, ttl=ttl)
    else:
        storage = RedisStorage(redis_client=mock_redis, ttl=ttl)
        assert storage._ttl == ttl
        assert isinstance(storage._serializer, JSONSerializer)


@pytest.mark.asyncio
async def test_set_writes_envelope_with_expiry(
    mock_redis: AsyncMock, body: bytes, metadata: Metadata
) -> None:
    storage = RedisStorage(redis_client=mock_redis)

    await storage.set("quran:participants:v1", body, metadata)

    mock_redis.set.assert_awaited_once()
    args, kwargs = mock_redis.set.call_args
    assert args[0] == "quran:participants:v1"
    assert kwargs["ex"] == 300

    stored = json.loads(args[1])
    assert stored["content"] == body.decode()
    assert stored["metadata"]["status_code"] == 200
    assert "write_time" in stored["metadata"]


@pytest.mark.asyncio
async def test_fractional_ttl_rounds_up(mock_redis: AsyncMock, body: bytes) -> None:
    storage = RedisStorage(redis_client=mock_redis)

    await storage.set("quran:key:v1", body, {"ttl": 0.4})

    assert mock_redis.set.call_args.kwargs["ex"] == 1


@pytest.mark.asyncio
async def test_set_without_any_ttl_is_permanent(mock_redis: AsyncMock, body: bytes) -> None:
    storage = RedisStorage(redis_client=mock_redis)

    await storage.set("quran:key:v1", body, {})

    assert mock_redis.set.call_args.kwargs["ex"] is None


@pytest.mark.asyncio
async def test_get_returns_stored_response(
    mock_redis: AsyncMock, body: bytes, metadata: Metadata
) -> None:
    mock_redis.get.return_value = JSONSerializer().dumps(body, metadata).encode()
    storage = RedisStorage(redis_client=mock_redis)

    result = await storage.get("quran:participants:v1")

    assert result == (body, metadata)
    mock_redis.get.assert_awaited_once_with("quran:participants:v1")


@pytest.mark.asyncio
async def test_get_missing_key(mock_redis: AsyncMock) -> None:
    mock_redis.get.return_value = None
    storage = RedisStorage(redis_client=mock_redis)

    assert await storage.get("quran:missing:v1") is None


@pytest.mark.asyncio
async def test_get_malformed_entry_raises(mock_redis: AsyncMock) -> None:
    mock_redis.get.return_value = b"garbage"
    storage = RedisStorage(redis_client=mock_redis)

    with pytest.raises(StorageError):
        await storage.get("quran:key:v1")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, expected",
    [
        (RedisConnectionError("refused"), StorageUnavailableError),
        (RedisTimeoutError("timed out"), StorageUnavailableError),
        (ConnectionRefusedError("refused"), StorageUnavailableError),
        (ResponseError("WRONGTYPE"), StorageError),
    ],
)
async def test_redis_errors_are_translated(
    mock_redis: AsyncMock,
    body: bytes,
    error: Exception,
    expected: tp.Type[StorageError],
) -> None:
    mock_redis.get.side_effect = error
    mock_redis.set.side_effect = error
    storage = RedisStorage(redis_client=mock_redis)

    with pytest.raises(expected) as get_error:
        await storage.get("quran:key:v1")
    with pytest.raises(expected):
        await storage.set("quran:key:v1", body, {"ttl": 60})

    assert get_error.value.__cause__ is error


@pytest.mark.asyncio
async def test_delete_and_exists(mock_redis: AsyncMock) -> None:
    mock_redis.delete.return_value = 1
    mock_redis.exists.return_value = 0
    storage = RedisStorage(redis_client=mock_redis)

    assert await storage.delete("quran:key:v1") is True
    assert await storage.exists("quran:key:v1") is False
    mock_redis.delete.assert_awaited_once_with("quran:key:v1")


@pytest.mark.asyncio
async def test_delete_pattern_scans_matching_keys(mock_redis: AsyncMock) -> None:
    async def scan_iter(match: str) -> tp.AsyncIterator[bytes]:
        for key in (b"quran:master:provinces:v1", b"quran:master:cities:v1"):
            yield key

    mock_redis.scan_iter = MagicMock(side_effect=scan_iter)
    mock_redis.delete.return_value = 1
    storage = RedisStorage(redis_client=mock_redis)

    removed = await storage.delete_pattern("quran:master:*")

    assert removed == 2
    mock_redis.scan_iter.assert_called_once_with(match="quran:master:*")
    assert mock_redis.delete.await_count == 2


@pytest.mark.asyncio
async def test_ttl(mock_redis: AsyncMock) -> None:
    mock_redis.ttl.return_value = 120
    storage = RedisStorage(redis_client=mock_redis)

    assert await storage.ttl("quran:key:v1") == 120


@pytest.mark.asyncio
async def test_ping(mock_redis: AsyncMock) -> None:
    storage = RedisStorage(redis_client=mock_redis)

    mock_redis.ping.return_value = True
    assert await storage.ping() is True

    mock_redis.ping.side_effect = RedisConnectionError("down")
    assert await storage.ping() is False


@pytest.mark.asyncio
async def test_close_does_not_flush(mock_redis: AsyncMock) -> None:
    storage = RedisStorage(redis_client=mock_redis)

    await storage.close()

    mock_redis.aclose.assert_awaited_once()
    mock_redis.flushdb.assert_not_called()


def test_create_storage_without_url_is_in_memory() -> None:
    storage = create_storage(CacheSettings(_env_file=None))

    assert isinstance(storage, InMemoryStorage)


def test_create_storage_with_url_is_redis() -> None:
    storage = create_storage(
        CacheSettings(_env_file=None, redis_url="redis://localhost:6379/0")
    )

    assert isinstance(storage, RedisStorage)
