import typing as tp

import pytest
from fastapi import FastAPI
from starlette.requests import Request
from starlette.testclient import TestClient

from examples.participants_api import InMemoryDataSource, PARTICIPANTS, create_app
from read_through_cache import CacheSettings, InMemoryStorage, ReadThroughMiddleware


class FakeClock:
    """Test clock advanced by hand, in seconds."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_request(
    path: str = "/api/participants",
    query_string: bytes = b"",
    method: str = "GET",
    headers: tp.Optional[tp.List[tp.Tuple[bytes, bytes]]] = None,
    user: tp.Any = None,
) -> Request:
    scope: tp.Dict[str, tp.Any] = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": query_string,
        "headers": headers or [],
    }
    if user is not None:
        scope["user"] = user
    return Request(scope=scope)


@pytest.fixture
def make_request() -> tp.Callable[..., Request]:
    return _make_request


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> CacheSettings:
    return CacheSettings(_env_file=None)


@pytest.fixture
def storage(clock: FakeClock) -> InMemoryStorage:
    return InMemoryStorage(clock=clock)


@pytest.fixture
def read_through(settings: CacheSettings, storage: InMemoryStorage) -> ReadThroughMiddleware:
    return ReadThroughMiddleware(
        storage=storage,
        settings=settings,
        identity_func=lambda request: request.headers.get("x-user-id"),
    )


@pytest.fixture
def participants() -> InMemoryDataSource:
    return InMemoryDataSource(
        [dict(row) for row in PARTICIPANTS], search_fields=("nama", "jenjang")
    )


@pytest.fixture
def app(read_through: ReadThroughMiddleware, participants: InMemoryDataSource) -> FastAPI:
    return create_app(middleware=read_through, participants=participants)


@pytest.fixture
def client(app: FastAPI) -> tp.Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client
