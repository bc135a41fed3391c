"""
Cache-aware APIRoute.

Routes declared with ``Depends(CacheConfig(...))`` are wrapped with the
``ReadThroughMiddleware`` installed on the application; routes declared
with ``Depends(NoCache())`` answer ``X-Cache: DISABLED``. Other routes are
left untouched.

Authentication must run as ASGI middleware (e.g. Starlette's
``AuthenticationMiddleware``): on a cache hit the route's own dependencies
are not solved.
"""
import typing as tp

from fastapi import APIRouter, FastAPI
from fastapi.routing import APIRoute
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from .depends import BaseCacheConfigDepends, CacheConfig, NoCache
from .middleware import ReadThroughMiddleware, annotate
from .types import CacheStatus

STATE_ATTRIBUTE = "read_through_cache"


def install_read_through(app: FastAPI, middleware: ReadThroughMiddleware) -> None:
    """Makes ``middleware`` the cache of every CacheAPIRoute served by ``app``."""
    setattr(app.state, STATE_ATTRIBUTE, middleware)


def get_read_through(app: ASGIApp) -> ReadThroughMiddleware:
    middleware = getattr(getattr(app, "state", None), STATE_ATTRIBUTE, None)
    if middleware is None:
        raise RuntimeError(
            "No ReadThroughMiddleware installed, call install_read_through(app, ...)"
        )
    return middleware


class CacheAPIRoute(APIRoute):
    """APIRoute that routes its handler through the read-through cache."""

    def _extract_cache_config(self) -> tp.Optional[BaseCacheConfigDepends]:
        """Finds CacheConfig or NoCache among the route dependencies."""
        for dependency in self.dependencies:
            if isinstance(dependency.dependency, BaseCacheConfigDepends):
                return dependency.dependency
        return None

    def get_route_handler(self) -> tp.Callable[[Request], tp.Coroutine[tp.Any, tp.Any, Response]]:
        original_route_handler = super().get_route_handler()
        config = self._extract_cache_config()

        if config is None:
            return original_route_handler

        if isinstance(config, NoCache):

            async def uncached_route_handler(request: Request) -> Response:
                response = await original_route_handler(request)
                return annotate(response, CacheStatus.DISABLED)

            return uncached_route_handler

        cache_config = tp.cast(CacheConfig, config)

        async def cached_route_handler(request: Request) -> Response:
            middleware = get_read_through(request.app)
            return await middleware.handle(
                request, lambda: original_route_handler(request), cache_config
            )

        return cached_route_handler


class CacheAPIRouter(APIRouter):
    """APIRouter whose routes are CacheAPIRoute."""

    def __init__(self, *args: tp.Any, **kwargs: tp.Any) -> None:
        kwargs["route_class"] = CacheAPIRoute
        super().__init__(*args, **kwargs)
