"""End-to-end behaviour of cached routes of the participants API."""

import json
import typing as tp

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from examples.participants_api import InMemoryDataSource, create_app
from read_through_cache import (
    CacheAPIRouter,
    CacheConfig,
    CacheSettings,
    InMemoryStorage,
    ReadThroughMiddleware,
)
from read_through_cache.route import get_read_through


def test_list_is_served_from_cache(
    client: TestClient, participants: InMemoryDataSource
) -> None:
    response1 = client.get("/api/participants", params={"status": "SUDAH", "page": 1})
    response2 = client.get("/api/participants", params={"page": 1, "status": "SUDAH"})

    assert response1.status_code == 200
    assert response1.headers["X-Cache"] == "MISS"
    assert response2.headers["X-Cache"] == "HIT"
    assert response1.headers["X-Cache-Key"] == response2.headers["X-Cache-Key"]
    assert response1.json() == response2.json()
    assert participants.calls == 1


def test_different_queries_are_cached_separately(
    client: TestClient, participants: InMemoryDataSource
) -> None:
    page1 = client.get("/api/participants", params={"page": 1, "limit": 2})
    page2 = client.get("/api/participants", params={"page": 2, "limit": 2})

    assert page2.headers["X-Cache"] == "MISS"
    assert page1.json()["data"] != page2.json()["data"]
    assert participants.calls == 2


def test_colons_in_values_do_not_share_an_entry(
    client: TestClient, participants: InMemoryDataSource
) -> None:
    filters = json.dumps([{"field": "nama", "op": "ilike", "value": "a"}])

    first = client.get("/api/participants", params={"filters": filters + ":search:x", "search": "y"})
    second = client.get("/api/participants", params={"filters": filters, "search": "x:search:y"})

    assert first.headers["X-Cache"] == "MISS"
    assert second.headers["X-Cache"] == "MISS"
    assert first.headers["X-Cache-Key"] != second.headers["X-Cache-Key"]
    assert participants.calls == 2


def test_excluded_path_is_never_cached(
    client: TestClient, storage: InMemoryStorage, participants: InMemoryDataSource
) -> None:
    for _ in range(2):
        response = client.get("/api/participants/not-assessed")
        assert response.status_code == 200
        assert response.headers["X-Cache"] == "DISABLED"

    assert response.json()["total"] == 1
    assert participants.calls == 2
    assert len(storage) == 0


def test_excluded_status_value_is_never_cached(
    client: TestClient, storage: InMemoryStorage, participants: InMemoryDataSource
) -> None:
    belum1 = client.get("/api/participants", params={"status": "BELUM"})
    belum2 = client.get("/api/participants", params={"status": "BELUM"})

    assert belum1.headers["X-Cache"] == "DISABLED"
    assert belum2.headers["X-Cache"] == "DISABLED"
    assert len(storage) == 0

    sudah1 = client.get("/api/participants", params={"status": "SUDAH"})
    sudah2 = client.get("/api/participants", params={"status": "SUDAH"})

    assert sudah1.headers["X-Cache"] == "MISS"
    assert sudah2.headers["X-Cache"] == "HIT"
    assert len(storage) == 1
    assert participants.calls == 3


def test_filters_reach_the_data_source(client: TestClient) -> None:
    filters = json.dumps([{"field": "jenjang", "op": "in", "value": ["SD", "SMA"]}])

    body = client.get(
        "/api/participants", params={"filters": filters, "sortBy": "usia", "sortOrder": "ASC"}
    ).json()

    assert [row["id"] for row in body["data"]] == [3, 1, 4]
    assert body["pagination"] == {
        "current_page": 1,
        "per_page": 10,
        "total": 3,
        "total_pages": 1,
    }


def test_out_of_range_paging_is_clamped(client: TestClient) -> None:
    body = client.get("/api/participants", params={"page": -5, "limit": 100000}).json()

    assert body["pagination"]["current_page"] == 1
    assert body["pagination"]["per_page"] == 100
    assert len(body["data"]) == 4


def test_unparsable_filters_are_ignored(client: TestClient) -> None:
    body = client.get("/api/participants", params={"filters": "{bad json"}).json()

    assert body["pagination"]["total"] == 4


def test_invalid_filter_answers_400(client: TestClient, storage: InMemoryStorage) -> None:
    filters = json.dumps([{"field": "usia", "op": "between", "value": 30}])

    response = client.get("/api/participants", params={"filters": filters})

    assert response.status_code == 400
    assert response.json()["detail"] == {
        "message": "Value must be a two-element array",
        "index": 0,
        "field": "usia",
        "op": "between",
    }
    assert len(storage) == 0


def test_no_cache_route_is_marked_disabled(
    client: TestClient, participants: InMemoryDataSource
) -> None:
    response1 = client.get("/api/participants/1/assessments")
    response2 = client.get("/api/participants/1/assessments")
    missing = client.get("/api/participants/99/assessments")

    assert response1.headers["X-Cache"] == "DISABLED"
    assert response2.headers["X-Cache"] == "DISABLED"
    assert missing.status_code == 404
    assert participants.calls == 3


def test_reference_data_outlives_default_tier(client: TestClient, clock: tp.Any) -> None:
    client.get("/api/master/provinces")
    client.get("/api/participants")

    clock.advance(301)

    assert client.get("/api/master/provinces").headers["X-Cache"] == "HIT"
    assert client.get("/api/participants").headers["X-Cache"] == "MISS"

    clock.advance(3600)

    assert client.get("/api/master/provinces").headers["X-Cache"] == "MISS"


def test_user_scoped_route_caches_per_caller(client: TestClient) -> None:
    first = client.get("/api/participants/profile", headers={"x-user-id": "7"})
    again = client.get("/api/participants/profile", headers={"x-user-id": "7"})
    other = client.get("/api/participants/profile", headers={"x-user-id": "8"})

    assert "user:7" in first.headers["X-Cache-Key"]
    assert again.headers["X-Cache"] == "HIT"
    assert again.json() == first.json()
    assert other.headers["X-Cache"] == "MISS"
    assert "user:8" in other.headers["X-Cache-Key"]


def test_client_no_cache_header_bypasses(
    client: TestClient, participants: InMemoryDataSource
) -> None:
    client.get("/api/participants")

    response = client.get("/api/participants", headers={"Cache-Control": "no-cache"})

    assert response.headers["X-Cache"] == "DISABLED"
    assert participants.calls == 2


def test_kill_switch_disables_every_route(
    storage: InMemoryStorage, participants: InMemoryDataSource
) -> None:
    settings = CacheSettings(_env_file=None, enabled=False)
    app = create_app(
        middleware=ReadThroughMiddleware(storage=storage, settings=settings),
        participants=participants,
    )

    with TestClient(app) as client:
        for _ in range(2):
            assert client.get("/api/master/provinces").headers["X-Cache"] == "DISABLED"

    assert len(storage) == 0


def test_uncached_route_is_untouched() -> None:
    app = FastAPI()
    router = CacheAPIRouter()

    @router.get("/health")
    async def health() -> tp.Dict[str, str]:
        return {"status": "ok"}

    app.include_router(router)

    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert "X-Cache" not in response.headers


def test_cached_route_requires_installed_middleware() -> None:
    app = FastAPI()
    router = CacheAPIRouter()

    @router.get("/items", dependencies=[Depends(CacheConfig())])
    async def items() -> tp.List[int]:
        return [1]

    app.include_router(router)

    with pytest.raises(RuntimeError, match="install_read_through"):
        get_read_through(app)

    with TestClient(app, raise_server_exceptions=False) as client:
        assert client.get("/items").status_code == 500


def test_openapi_schema_is_generated(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    assert "/api/participants" in schema["paths"]
    parameters = schema["paths"]["/api/participants"]["get"].get("parameters", [])
    assert all(parameter["name"] != "request" for parameter in parameters)
