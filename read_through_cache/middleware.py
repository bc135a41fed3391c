import logging
import typing as tp

from starlette.background import BackgroundTask, BackgroundTasks
from starlette.requests import Request
from starlette.responses import Response

from .config import CacheSettings
from .depends import CacheConfig
from .exceptions import StorageError
from .keys import KeyCodec
from .policy import CachePolicy
from .storages import BaseStorage, create_storage
from .types import (
    CACHE_KEY_HEADER,
    CACHE_STATUS_HEADER,
    CacheStatus,
    IdentityFunc,
    Metadata,
)

logger = logging.getLogger(__name__)

Handler = tp.Callable[[], tp.Awaitable[Response]]


def request_identity(request: Request) -> tp.Optional[str]:
    """Caller id set by Starlette's ``AuthenticationMiddleware``, if authenticated."""
    if "user" not in request.scope:
        return None

    user = request.scope["user"]
    if not getattr(user, "is_authenticated", False):
        return None

    # starlette's SimpleUser only implements display_name
    try:
        identity = user.identity
    except (AttributeError, NotImplementedError):
        identity = getattr(user, "display_name", None)
    if identity is None or identity == "":
        return None
    return str(identity)


def annotate(
    response: Response, cache_status: CacheStatus, key: tp.Optional[str] = None
) -> Response:
    response.headers[CACHE_STATUS_HEADER] = cache_status.value
    if key is not None:
        response.headers[CACHE_KEY_HEADER] = key
    return response


class ReadThroughMiddleware:
    """Read-through response cache around a route handler.

    The handler returns its response; the middleware decides whether it is
    served from or written to the cache:

    1. The policy refuses the request: the handler runs, ``X-Cache: DISABLED``
    2. The key is found in storage: the stored body is returned with
       ``X-Cache: HIT`` and the handler does not run
    3. Otherwise the handler runs once, the response goes out with
       ``X-Cache: MISS`` and is written to storage in a background task
       after it has been sent

    A storage that cannot be read makes the request behave as uncacheable.
    A failed write is logged and never changes the response. Concurrent
    misses on one key are not coalesced.

    Args:
        storage: Cache storage (built from ``settings`` by default)
        policy: Caching rules (built from ``settings`` by default)
        codec: Key codec (built from ``settings`` by default)
        settings: Cache settings
        identity_func: Resolves the caller id of a request
    """

    def __init__(
        self,
        storage: tp.Optional[BaseStorage] = None,
        policy: tp.Optional[CachePolicy] = None,
        codec: tp.Optional[KeyCodec] = None,
        settings: tp.Optional[CacheSettings] = None,
        identity_func: tp.Optional[IdentityFunc] = None,
    ) -> None:
        self.settings = settings or CacheSettings()
        # An empty InMemoryStorage is falsy
        self.storage = storage if storage is not None else create_storage(self.settings)
        self.policy = policy if policy is not None else CachePolicy(self.settings)
        self.codec = codec if codec is not None else KeyCodec(
            namespace=self.settings.namespace,
            version=self.settings.key_version,
            path_prefix=self.settings.path_prefix,
        )
        self.identity_func = identity_func or request_identity

    async def handle(
        self,
        request: Request,
        handler: Handler,
        cache_config: tp.Optional[CacheConfig] = None,
    ) -> Response:
        cache_config = cache_config or CacheConfig()

        decision = self.policy.decide_for_request(
            request,
            tier=cache_config.tier,
            ttl=cache_config.ttl,
            user_scoped=cache_config.user_specific,
        )
        if not decision.cacheable:
            logger.debug("Cache bypass for %s: %s", request.url.path, decision.reason)
            return annotate(await handler(), CacheStatus.DISABLED)

        # Identity lookup and key derivation fail closed
        try:
            caller_id = self.identity_func(request) if decision.user_scoped else None
            cache_key = self.codec.derive_from_request(
                request, caller_id=caller_id, user_scoped=decision.user_scoped
            )
        except Exception as exc:
            logger.warning("Cannot derive cache key for %s: %s", request.url.path, exc)
            return annotate(await handler(), CacheStatus.DISABLED)

        try:
            cached = await self.storage.get(cache_key)
        except StorageError as exc:
            logger.warning("Cache lookup failed for %s, bypassing cache: %s", cache_key, exc)
            return annotate(await handler(), CacheStatus.DISABLED)

        if cached is not None:
            logger.debug("Cache HIT %s", cache_key)
            content, metadata = cached
            return annotate(self._restore(content, metadata), CacheStatus.HIT, cache_key)

        logger.debug("Cache MISS %s", cache_key)
        response = await handler()
        annotate(response, CacheStatus.MISS, cache_key)

        body = getattr(response, "body", None)
        if body is None or not self.policy.is_cacheable_response(
            response.status_code, response.headers, body
        ):
            logger.debug("Skip caching for response: %s", response.status_code)
            return response

        metadata: Metadata = {
            "ttl": decision.ttl,
            "status_code": response.status_code,
            "content_type": response.headers.get("content-type"),
        }
        write = BackgroundTask(self.write_back, cache_key, body, metadata)
        if response.background is None:
            response.background = write
        else:
            response.background = BackgroundTasks([write, response.background])
        return response

    async def write_back(self, cache_key: str, content: bytes, metadata: Metadata) -> None:
        """Stores a handler's response; storage failures are reported, not raised."""
        try:
            await self.storage.set(cache_key, content, metadata)
        except StorageError as exc:
            logger.warning("Failed to cache response for %s: %s", cache_key, exc)
            return
        logger.debug("Cache SET %s (TTL: %ss)", cache_key, metadata.get("ttl"))

    @staticmethod
    def _restore(content: bytes, metadata: Metadata) -> Response:
        headers = {}
        if metadata.get("content_type"):
            headers["content-type"] = metadata["content_type"]
        return Response(
            content=content,
            status_code=metadata.get("status_code", 200),
            headers=headers,
        )
