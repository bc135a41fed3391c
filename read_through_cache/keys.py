import logging
import typing as tp

from starlette.requests import Request

from .exceptions import KeyDerivationError
from .types import QueryParams

logger = logging.getLogger(__name__)

KEY_SEP = ":"
VALUE_SEP = ","

# Percent-encoding of the characters that delimit key components; "%" first
_ESCAPES = (("%", "%25"), (KEY_SEP, "%3A"), (VALUE_SEP, "%2C"))


def escape_component(component: str) -> str:
    for char, escaped in _ESCAPES:
        component = component.replace(char, escaped)
    return component


def query_params_of(request: Request) -> tp.Dict[str, tp.List[str]]:
    """Collects every query parameter of the request, keeping repeated values."""
    params: tp.Dict[str, tp.List[str]] = {}
    for name, value in request.query_params.multi_items():
        params.setdefault(name, []).append(value)
    return params


class KeyCodec:
    """Derives cache keys from requests.

    Key layout::

        <namespace>:<path segments>[:user:<id>][:<name>:<value>...]:<version>

    Query parameters are sorted by name so that ``?a=1&b=2`` and
    ``?b=2&a=1`` share one entry. Components are taken as sent, with ``%``,
    ``:`` and ``,`` percent-encoded so that distinct queries never share a
    key: ``?a=1,2`` and ``?a=1&a=2`` are different entries.

    Args:
        namespace: First key segment
        version: Last key segment, bumped when the cached payload shape changes
        path_prefix: Module prefix stripped from request paths (e.g. ``/api``)
    """

    def __init__(
        self, namespace: str = "quran", version: str = "v1", path_prefix: str = "/api"
    ) -> None:
        self.namespace = namespace
        self.version = version
        self.path_prefix = path_prefix.rstrip("/")

    def normalize_path(self, path: str) -> str:
        if not isinstance(path, str):
            raise KeyDerivationError(f"Path must be a string, got {type(path).__name__}")

        if self.path_prefix and (
            path == self.path_prefix or path.startswith(self.path_prefix + "/")
        ):
            path = path[len(self.path_prefix) :]

        return KEY_SEP.join(
            escape_component(segment) for segment in path.split("/") if segment
        )

    def derive(
        self,
        path: str,
        query: tp.Optional[QueryParams] = None,
        caller_id: tp.Optional[str] = None,
        user_scoped: bool = False,
    ) -> str:
        """Builds the cache key for a read request.

        Args:
            path: Request path, with or without the module prefix
            query: Query parameters; a parameter repeated in the query string
                maps to the list of its values
            caller_id: Identifier of the authenticated caller, if any
            user_scoped: Whether the key is private to the caller

        Returns:
            str: Cache key

        Raises:
            KeyDerivationError: If the input cannot be turned into a key
        """
        parts = [self.namespace]

        normalized = self.normalize_path(path)
        if normalized:
            parts.append(normalized)

        if user_scoped and caller_id is not None and caller_id != "":
            parts.append(f"user{KEY_SEP}{escape_component(str(caller_id))}")

        if query:
            for name in sorted(query):
                parts.append(
                    f"{escape_component(name)}{KEY_SEP}{self._encode_value(name, query[name])}"
                )

        parts.append(self.version)
        return KEY_SEP.join(parts)

    def derive_from_request(
        self,
        request: Request,
        caller_id: tp.Optional[str] = None,
        user_scoped: bool = False,
    ) -> str:
        return self.derive(
            request.url.path,
            query_params_of(request),
            caller_id=caller_id,
            user_scoped=user_scoped,
        )

    def simple_key(self, *components: tp.Union[str, int]) -> str:
        """Key for data that does not come from a request, e.g. ``quran:master:provinces:v1``."""
        escaped = [escape_component(str(component)) for component in components]
        return KEY_SEP.join([self.namespace, *escaped, self.version])

    @staticmethod
    def _encode_value(name: str, value: tp.Any) -> str:
        if isinstance(value, str):
            return escape_component(value)
        if isinstance(value, (list, tuple)):
            if not all(isinstance(item, str) for item in value):
                raise KeyDerivationError(f"Query parameter {name!r} has non-string values")
            return VALUE_SEP.join(escape_component(item) for item in value)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return escape_component(str(value))
        raise KeyDerivationError(
            f"Query parameter {name!r} has unsupported type {type(value).__name__}"
        )
