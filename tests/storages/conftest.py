import pytest

from read_through_cache.types import Metadata


@pytest.fixture
def body() -> bytes:
    return b'{"data": [{"id": 1}]}'


@pytest.fixture
def metadata() -> Metadata:
    return {"ttl": 300, "status_code": 200, "content_type": "application/json"}
