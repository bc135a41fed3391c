"""Participants API served through the read-through cache.

Demonstrates:
1. Uniform list parameters (filters, sort, pagination) on a list endpoint;
2. Caching of list and reference-data routes with two TTL tiers;
3. Staleness-sensitive routes that are never cached;
4. Per-caller caching for profile routes.

Run with ``uvicorn examples.participants_api:app``. Set ``CACHE_REDIS_URL``
to cache in Redis instead of process memory.
"""

import datetime as dt
import fnmatch
import operator
import typing as tp

from fastapi import Depends, FastAPI, HTTPException

from read_through_cache import (
    CacheAPIRouter,
    CacheConfig,
    CacheSettings,
    FieldType,
    FilterClause,
    FilterOperator,
    FilterTranslator,
    ListQuery,
    ListQuerySpec,
    NoCache,
    QueryDataSource,
    QueryDescriptor,
    ReadThroughMiddleware,
    SortDirection,
    TTLTier,
    build_pagination,
    install_read_through,
)

Row = tp.Dict[str, tp.Any]

_COMPARISONS: tp.Dict[FilterOperator, tp.Callable[[tp.Any, tp.Any], bool]] = {
    FilterOperator.EQ: operator.eq,
    FilterOperator.NE: operator.ne,
    FilterOperator.GT: operator.gt,
    FilterOperator.GTE: operator.ge,
    FilterOperator.LT: operator.lt,
    FilterOperator.LTE: operator.le,
}


def _like(value: tp.Any, pattern: str, case_sensitive: bool) -> bool:
    if not isinstance(value, str):
        return False
    glob = pattern.replace("*", "[*]").replace("?", "[?]").replace("%", "*").replace("_", "?")
    if case_sensitive:
        return fnmatch.fnmatchcase(value, glob)
    return fnmatch.fnmatchcase(value.lower(), glob.lower())


def matches(row: Row, clause: FilterClause) -> bool:
    value = row.get(clause.field)
    op = clause.op

    if op is FilterOperator.ISNULL:
        return value is None
    if op is FilterOperator.ISNOTNULL:
        return value is not None
    if value is None:
        return False
    if op in _COMPARISONS:
        return _COMPARISONS[op](value, clause.value)
    if op is FilterOperator.LIKE:
        return _like(value, clause.value, case_sensitive=True)
    if op is FilterOperator.ILIKE:
        return _like(value, clause.value, case_sensitive=False)
    if op is FilterOperator.IN:
        return value in clause.value
    if op is FilterOperator.NOTIN:
        return value not in clause.value
    low, high = clause.value
    inside = low <= value <= high
    return inside if op is FilterOperator.BETWEEN else not inside


class InMemoryDataSource:
    """Executes query descriptors over a list of rows."""

    def __init__(self, rows: tp.List[Row], search_fields: tp.Sequence[str] = ()) -> None:
        self.rows = rows
        self.search_fields = search_fields
        self.calls = 0

    async def fetch(self, descriptor: QueryDescriptor) -> tp.Tuple[tp.List[Row], int]:
        self.calls += 1

        selected = [
            row
            for row in self.rows
            if all(matches(row, clause) for clause in descriptor.filters)
            and self._matches_search(row, descriptor.search)
        ]
        selected.sort(
            key=lambda row: (row.get(descriptor.sort_field) is None, row.get(descriptor.sort_field)),
            reverse=descriptor.sort_direction is SortDirection.DESC,
        )

        total = len(selected)
        if descriptor.paginate:
            selected = selected[descriptor.offset : descriptor.offset + descriptor.page_size]
        return selected, total

    def _matches_search(self, row: Row, search: tp.Optional[str]) -> bool:
        if not search:
            return True
        needle = search.lower()
        return any(needle in str(row.get(field) or "").lower() for field in self.search_fields)


PARTICIPANTS: tp.List[Row] = [
    {"id": 1, "nama": "Ahmad Fauzi", "status": "SUDAH", "jenjang": "SD", "usia": 34,
     "asesor_id": 10, "createdAt": "2024-11-01T08:00:00"},
    {"id": 2, "nama": "Siti Aminah", "status": "BELUM", "jenjang": "SMP", "usia": 41,
     "asesor_id": None, "createdAt": "2024-11-02T08:00:00"},
    {"id": 3, "nama": "Budi Santoso", "status": "SUDAH", "jenjang": "SMA", "usia": 29,
     "asesor_id": 11, "createdAt": "2024-11-03T08:00:00"},
    {"id": 4, "nama": "Dewi Lestari", "status": "BELUM", "jenjang": "SD", "usia": 52,
     "asesor_id": 10, "createdAt": "2024-11-04T08:00:00"},
]

PROVINCES: tp.List[Row] = [
    {"id": 11, "name": "ACEH"},
    {"id": 12, "name": "SUMATERA UTARA"},
    {"id": 31, "name": "DKI JAKARTA"},
]

PARTICIPANT_QUERY = ListQuerySpec(
    filterable_fields={
        "id": FieldType.NUMBER,
        "status": FieldType.TEXT,
        "jenjang": FieldType.TEXT,
        "nama": FieldType.TEXT,
        "usia": FieldType.NUMBER,
        "asesor_id": FieldType.NUMBER,
        "createdAt": FieldType.DATE,
    },
    sortable_fields=frozenset({"createdAt", "nama", "usia", "status", "jenjang"}),
    default_sort_field="createdAt",
    max_page_size=100,
)


def create_app(
    settings: tp.Optional[CacheSettings] = None,
    middleware: tp.Optional[ReadThroughMiddleware] = None,
    participants: tp.Optional[InMemoryDataSource] = None,
) -> FastAPI:
    app = FastAPI(title="Participants API with read-through cache")
    install_read_through(app, middleware or ReadThroughMiddleware(settings=settings))

    source: QueryDataSource = participants or InMemoryDataSource(
        [dict(row) for row in PARTICIPANTS], search_fields=("nama", "jenjang")
    )
    app.state.participants = source

    router = CacheAPIRouter(prefix="/api")

    @router.get("/participants", dependencies=[Depends(CacheConfig())])
    async def list_participants(
        descriptor: QueryDescriptor = Depends(ListQuery(PARTICIPANT_QUERY)),
    ) -> tp.Dict[str, tp.Any]:
        rows, total = await source.fetch(descriptor)
        return {"data": rows, "pagination": build_pagination(descriptor, total)}

    @router.get("/participants/not-assessed", dependencies=[Depends(CacheConfig())])
    async def not_assessed() -> tp.Dict[str, tp.Any]:
        descriptor = QueryDescriptor(
            filters=(FilterClause(field="asesor_id", op=FilterOperator.ISNULL),),
            page=None,
            page_size=None,
            paginate=False,
        )
        rows, total = await source.fetch(descriptor)
        return {"data": rows, "total": total}

    @router.get("/participants/{participant_id}/assessments", dependencies=[Depends(NoCache())])
    async def participant_assessments(participant_id: int) -> tp.Dict[str, tp.Any]:
        descriptor = FilterTranslator(PARTICIPANT_QUERY).translate(
            filters=[{"field": "id", "op": "eq", "value": participant_id}], paginate=False
        )
        rows, _ = await source.fetch(descriptor)
        if not rows:
            raise HTTPException(status_code=404, detail="Participant not found")
        return {"participant_id": participant_id, "assessments": rows}

    @router.get("/participants/profile", dependencies=[Depends(CacheConfig(user_specific=True))])
    async def profile() -> tp.Dict[str, tp.Any]:
        return {"generated_at": dt.datetime.now(dt.timezone.utc).isoformat()}

    @router.get("/master/provinces", dependencies=[Depends(CacheConfig(tier=TTLTier.REFERENCE))])
    async def provinces() -> tp.List[Row]:
        return PROVINCES

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
