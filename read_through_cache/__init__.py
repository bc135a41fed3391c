"""read_through_cache - read-through response cache and list-query translation.

- Deterministic cache keys derived from path, sorted query and caller
- Read-through caching of FastAPI read routes with exclusion rules
- Uniform filter / sort / pagination parameters for list endpoints
"""

from .config import CacheSettings
from .depends import CacheConfig, ListQuery, NoCache
from .exceptions import (
    KeyDerivationError,
    QueryValidationError,
    ReadThroughCacheError,
    StorageError,
    StorageUnavailableError,
)
from .filters import (
    FieldType,
    FilterClause,
    FilterOperator,
    FilterTranslator,
    ListQuerySpec,
    QueryDescriptor,
    SortDirection,
    build_pagination,
)
from .keys import KeyCodec
from .middleware import ReadThroughMiddleware
from .policy import CachePolicy, CachePolicyDecision
from .route import CacheAPIRoute, CacheAPIRouter, install_read_through
from .storages import BaseStorage, InMemoryStorage, RedisStorage, create_storage
from .types import CacheStatus, QueryDataSource, StalenessSensitivePath, TTLTier

__version__ = "1.0.0"

__all__ = [
    # Caching
    "ReadThroughMiddleware",
    "CachePolicy",
    "CachePolicyDecision",
    "KeyCodec",
    "CacheStatus",
    "TTLTier",
    "StalenessSensitivePath",
    # Configuration
    "CacheSettings",
    "CacheConfig",
    "NoCache",
    # FastAPI integration
    "CacheAPIRoute",
    "CacheAPIRouter",
    "install_read_through",
    "ListQuery",
    # List queries
    "FilterTranslator",
    "FilterOperator",
    "FilterClause",
    "FieldType",
    "ListQuerySpec",
    "QueryDescriptor",
    "QueryDataSource",
    "SortDirection",
    "build_pagination",
    # Storages
    "BaseStorage",
    "InMemoryStorage",
    "RedisStorage",
    "create_storage",
    # Errors
    "ReadThroughCacheError",
    "StorageError",
    "StorageUnavailableError",
    "KeyDerivationError",
    "QueryValidationError",
]
