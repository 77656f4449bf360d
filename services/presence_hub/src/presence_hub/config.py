"""Configuration for Presence Hub service."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment configuration."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    api_version: str = Field("1.0.0", description="Semantic version returned by health endpoints.")
    data_dir: str = Field(
        "data",
        alias="DATA_DIR",
        description="Directory holding messages.json and knownUsers.json.",
    )
    storage_url: str | None = Field(
        default=None,
        alias="STORAGE_URL",
        description="Optional Redis URL; when set, snapshots are stored in Redis instead of files.",
    )
    storage_key_prefix: str = Field(
        "presence_hub",
        alias="STORAGE_KEY_PREFIX",
        description="Key prefix for the Redis storage backend.",
    )
    host: str = Field("0.0.0.0", alias="HOST", description="Bind address for `presence-hub serve`.")
    port: int = Field(4000, ge=1, le=65535, alias="PORT", description="Listen port for `presence-hub serve`.")
    outbound_queue_size: int = Field(
        1000,
        ge=1,
        alias="OUTBOUND_QUEUE_SIZE",
        description="Per-connection outbound buffer; a connection with a full buffer is dropped.",
    )

    @property
    def storage_label(self) -> str:
        if self.storage_url:
            return "redis"
        return "file"


class HealthPayload(BaseModel):
    """Health-check response payload."""

    status: Literal["ok"]
    api_version: str


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance.

    Returns:
        Settings: Loaded environment settings.
    """

    return Settings()
