import typing as tp

from fastapi import HTTPException, status
from starlette.requests import Request

from .exceptions import QueryValidationError
from .filters import FilterTranslator, ListQuerySpec, QueryDescriptor
from .types import TTLTier


class BaseCacheConfigDepends:
    """Base class for route cache configuration.

    Instances are attached to a route with ``Depends(...)``; ``CacheAPIRoute``
    finds them among the route dependencies. Calling one stores it in the
    ASGI scope extensions so handlers can inspect the active configuration.
    """

    def __call__(self, request: Request) -> None:
        extensions = request.scope.setdefault("extensions", {})
        extensions.setdefault("read_through_cache", {})["config"] = self


class CacheConfig(BaseCacheConfigDepends):
    """Caching configuration for a read route.

    Args:
        tier: TTL tier; ``TTLTier.REFERENCE`` for near-static reference data
        ttl: Lifetime in seconds, overrides the tier
        user_specific: Cache per authenticated caller
    """

    def __init__(
        self,
        tier: TTLTier = TTLTier.DEFAULT,
        ttl: tp.Optional[int] = None,
        user_specific: bool = False,
    ) -> None:
        if ttl is not None and ttl <= 0:
            raise ValueError("ttl must be positive")

        self.tier = TTLTier(tier)
        self.ttl = ttl
        self.user_specific = user_specific


class NoCache(BaseCacheConfigDepends):
    """Marks a route as explicitly uncached; responses carry ``X-Cache: DISABLED``."""


class ListQuery:
    """Dependency that turns list query parameters into a ``QueryDescriptor``.

    A well-formed but invalid filter answers 400 with a detail naming the
    offending clause.

    Args:
        spec: Allow-lists and defaults of the endpoint
        paginate: ``False`` for call sites that need every matching row
    """

    def __init__(self, spec: ListQuerySpec, paginate: bool = True) -> None:
        self.translator = FilterTranslator(spec)
        self.paginate = paginate

    def __call__(self, request: Request) -> QueryDescriptor:
        try:
            return self.translator.from_query_params(
                request.query_params, paginate=self.paginate
            )
        except QueryValidationError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=exc.as_detail()
            ) from exc
