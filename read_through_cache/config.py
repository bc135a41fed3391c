"""
Process-level settings for the response cache.

Loaded from the environment (prefix ``CACHE_``) and an optional ``.env``
file. Construct one instance at startup and pass it to the policy and the
storage factory.
"""
import typing as tp

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .types import StalenessSensitivePath, TTLTier


class CacheSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        extra="ignore",
    )

    enabled: bool = True
    default_ttl: int = Field(default=300, gt=0, description="Seconds, volatile lists")
    reference_ttl: int = Field(
        default=3600, gt=0, description="Seconds, near-static reference data"
    )

    namespace: str = "quran"
    key_version: str = "v1"
    path_prefix: str = "/api"

    excluded_paths: tp.List[str] = Field(
        default_factory=lambda: [path.value for path in StalenessSensitivePath]
    )
    excluded_query_values: tp.Dict[str, tp.List[str]] = Field(
        default_factory=lambda: {"status": ["BELUM"]}
    )

    cacheable_methods: tp.List[str] = Field(default_factory=lambda: ["GET"])
    cacheable_status_codes: tp.List[int] = Field(default_factory=lambda: [200])
    max_body_size: int = Field(default=1024 * 1024, gt=0)
    respect_client_no_cache: bool = True

    redis_url: tp.Optional[str] = None
    redis_socket_timeout: float = Field(default=2.0, gt=0)

    @field_validator("cacheable_methods")
    @classmethod
    def upper_methods(cls, methods: tp.List[str]) -> tp.List[str]:
        return [method.upper() for method in methods]

    @field_validator("excluded_paths")
    @classmethod
    def strip_trailing_slash(cls, paths: tp.List[str]) -> tp.List[str]:
        return [path.rstrip("/") or "/" for path in paths]

    def ttl_for(self, tier: TTLTier) -> int:
        if tier is TTLTier.REFERENCE:
            return self.reference_ttl
        return self.default_ttl
