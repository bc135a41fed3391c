"""
Types and protocols shared across read_through_cache.
"""
import typing as tp
from enum import Enum

from starlette.requests import Request
from typing_extensions import TypeAlias

if tp.TYPE_CHECKING:
    from .filters import QueryDescriptor


class CacheStatus(str, Enum):
    """Value of the X-Cache response header."""

    HIT = "HIT"
    MISS = "MISS"
    DISABLED = "DISABLED"


class TTLTier(str, Enum):
    """Lifetime class of a cached response."""

    DEFAULT = "default"
    REFERENCE = "reference"


class StalenessSensitivePath(str, Enum):
    """Endpoints that read mutable assignment state and must never be cached."""

    PARTICIPANTS_NOT_ASSESSED = "/api/participants/not-assessed"
    PARTICIPANTS_READY_TO_ASSESS = "/api/participants/ready-to-assess"


CACHE_STATUS_HEADER = "X-Cache"
CACHE_KEY_HEADER = "X-Cache-Key"

# A query parameter is either a single value or every value it was repeated with.
QueryValue = tp.Union[str, tp.Sequence[str]]
QueryParams = tp.Mapping[str, QueryValue]

IdentityFunc = tp.Callable[[Request], tp.Optional[str]]
Metadata: TypeAlias = tp.Dict[str, tp.Any]


class QueryDataSource(tp.Protocol):
    """
    Anything list endpoints can hand a QueryDescriptor to.

    Returns the rows of the requested page together with the total number
    of rows matching the filters.
    """

    async def fetch(
        self, descriptor: "QueryDescriptor"
    ) -> tp.Tuple[tp.List[tp.Any], int]:
        ...
