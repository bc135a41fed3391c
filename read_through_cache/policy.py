import http
import logging
import typing as tp

from pydantic import BaseModel, ConfigDict
from starlette.datastructures import Headers
from starlette.requests import Request

from .config import CacheSettings
from .keys import KeyCodec, query_params_of
from .types import QueryParams, TTLTier

logger = logging.getLogger(__name__)

KNOWN_HTTP_METHODS = [method.value for method in http.HTTPMethod]


class CachePolicyDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    cacheable: bool
    ttl: int = 0
    tier: TTLTier = TTLTier.DEFAULT
    user_scoped: bool = False
    reason: tp.Optional[str] = None


class CachePolicy:
    """Decides whether a request may be served from or written to the cache.

    Rules, checked in order:
    1. Caching is enabled for the process
    2. Only idempotent read methods (GET) are cached
    3. Staleness-sensitive paths are never cached
    4. Requests carrying an excluded query value (``status=BELUM``) are never cached
    5. Requests sent with ``Cache-Control: no-cache``/``no-store`` bypass the cache

    A decision is computed for every request; nothing is remembered between
    requests.

    Args:
        settings: Cache settings of the process
    """

    def __init__(self, settings: tp.Optional[CacheSettings] = None) -> None:
        self.settings = settings or CacheSettings()

        for method in self.settings.cacheable_methods:
            if method not in KNOWN_HTTP_METHODS:
                raise ValueError(f"Invalid HTTP method: {method}")

        # Paths are compared the way keys see them: prefix stripped, empty segments dropped
        self._paths = KeyCodec(path_prefix=self.settings.path_prefix)
        self._excluded_paths = frozenset(
            self._paths.normalize_path(path) for path in self.settings.excluded_paths
        )
        self._excluded_values = {
            name: frozenset(values)
            for name, values in self.settings.excluded_query_values.items()
        }

    def decide(
        self,
        method: str,
        path: str,
        query: tp.Optional[QueryParams] = None,
        headers: tp.Optional[tp.Mapping[str, str]] = None,
        tier: TTLTier = TTLTier.DEFAULT,
        ttl: tp.Optional[int] = None,
        user_scoped: bool = False,
    ) -> CachePolicyDecision:
        """Computes the caching decision for one request.

        Args:
            method: HTTP method
            path: Request path, including the module prefix
            query: Query parameters
            headers: Request headers
            tier: TTL tier of the route
            ttl: Explicit lifetime of the route, overrides the tier
            user_scoped: Whether the route caches per caller

        Returns:
            CachePolicyDecision: Cacheability, lifetime and scoping
        """
        reason = self._refusal(method, path, query or {}, headers or {})
        if reason is not None:
            return CachePolicyDecision(cacheable=False, tier=tier, reason=reason)

        return CachePolicyDecision(
            cacheable=True,
            ttl=ttl if ttl is not None else self.settings.ttl_for(tier),
            tier=tier,
            user_scoped=user_scoped,
        )

    def decide_for_request(
        self,
        request: Request,
        tier: TTLTier = TTLTier.DEFAULT,
        ttl: tp.Optional[int] = None,
        user_scoped: bool = False,
    ) -> CachePolicyDecision:
        return self.decide(
            request.method,
            request.url.path,
            query_params_of(request),
            request.headers,
            tier=tier,
            ttl=ttl,
            user_scoped=user_scoped,
        )

    def is_cacheable_response(
        self, status_code: int, headers: tp.Mapping[str, str], body: bytes
    ) -> bool:
        """Determines whether a handler's response may be written to the cache."""
        if status_code not in self.settings.cacheable_status_codes:
            return False

        cache_control = Headers(headers=dict(headers)).get("cache-control", "").lower()
        if (
            "no-cache" in cache_control
            or "no-store" in cache_control
            or "private" in cache_control
        ):
            return False

        if len(body) > self.settings.max_body_size:
            return False

        return True

    def _refusal(
        self,
        method: str,
        path: str,
        query: QueryParams,
        headers: tp.Mapping[str, str],
    ) -> tp.Optional[str]:
        if not self.settings.enabled:
            return "caching disabled"

        if method.upper() not in self.settings.cacheable_methods:
            return f"method {method.upper()} is not cacheable"

        if self._paths.normalize_path(path) in self._excluded_paths:
            return f"path {path} is excluded"

        for name, excluded in self._excluded_values.items():
            value = query.get(name)
            values = [value] if isinstance(value, str) else list(value or [])
            if excluded.intersection(values):
                return f"query {name} carries an excluded value"

        if self.settings.respect_client_no_cache:
            cache_control = Headers(headers=dict(headers)).get("cache-control", "")
            cache_control = cache_control.lower()
            if "no-cache" in cache_control or "no-store" in cache_control:
                return "client sent Cache-Control: no-cache"

        return None
