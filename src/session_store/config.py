"""Session store configuration (Pydantic Settings)."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SessionStoreConfig(BaseSettings):
    """Environment-driven adapter settings.

    Optional fields read the literal ``null`` from the environment as ``None``,
    e.g. ``SESSION_STORE_TTL_SECONDS=null`` disables the fallback TTL.
    """

    model_config = SettingsConfigDict(
        env_prefix="SESSION_STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_parse_none_str="null",
        extra="ignore",
    )

    redis_url: str = Field(
        default="redis://localhost:6379", description="Redis connection URL"
    )
    prefix: str = Field(
        default="sessions:", description="Namespace prepended to every session id"
    )
    scan_count: int = Field(
        default=100, ge=1, description="COUNT hint for each SCAN call"
    )
    ttl_seconds: int | None = Field(
        default=86400,
        ge=0,
        description=(
            "Fallback TTL when a session has no cookie expiry; "
            "None rejects such sessions"
        ),
    )
    concurrency_grace_seconds: int = Field(
        default=300,
        ge=1,
        description="How long a tombstone blocks writes to a destroyed session",
    )
    max_concurrent_batches: int | None = Field(
        default=None,
        ge=1,
        description=(
            "Bound on scan batches processed at once by bulk operations; "
            "None is unbounded"
        ),
    )
