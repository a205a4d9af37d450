"""Settings for configspine.

Environment-driven configuration in the ``SpineBaseSettings`` style: pydantic
validation at startup, ``CONFIGSPINE_`` prefix, ``__`` for nested sections and
``.env`` file support.

Examples:
    CONFIGSPINE_ASSET_KEY=billing/config.json
    CONFIGSPINE_NETWORK__REPO=acme/app-config
    CONFIGSPINE_NETWORK__TOKEN=ghp_...
    CONFIGSPINE_DATABASE__URL=postgresql+asyncpg://cfg:cfg@db:5432/cfg

    >>> from configspine.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.network.branch
    'main'
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
SourceType = Literal["network", "database"]


class NetworkSettings(BaseModel):
    """Remote asset API and its cache/retry tuning."""

    repo: str | None = Field(default=None, description="Repository as owner/repo")
    token: SecretStr | None = None
    branch: str = "main"
    base_url: str = "https://api.github.com"
    timeout_seconds: float = Field(default=30.0, gt=0)

    # ── Cache ────────────────────────────────────────────────────
    cache_enabled: bool = True
    cache_ttl_seconds: float = Field(default=300.0, gt=0)
    cache_max_size: int = Field(default=500, gt=0)

    # ── Retry ────────────────────────────────────────────────────
    max_retries: int = Field(default=3, ge=0)
    min_delay_seconds: float = Field(default=1.0, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1)
    max_delay_seconds: float = Field(default=60.0, ge=0)
    retry_not_found: bool = Field(
        default=False,
        description="Retry 404s (eventual-consistency windows) instead of failing fast",
    )

    @field_validator("repo")
    @classmethod
    def _check_repo(cls, value: str | None) -> str | None:
        if value is None:
            return value
        owner, _, name = value.partition("/")
        if not owner or not name or "/" in name:
            raise ValueError("repo must look like 'owner/repo'")
        return value

    @property
    def configured(self) -> bool:
        return self.repo is not None and self.token is not None


class DatabaseSettings(BaseModel):
    """Durable asset store connection and ownership scope."""

    url: str | None = Field(
        default="sqlite+aiosqlite:///./configspine.db",
        description="SQLAlchemy async URL; None disables the durable source",
    )
    owner_category: str = "application"
    owner_key: str = "configspine"
    pool_size: int | None = Field(default=None, gt=0)
    echo: bool = False


class SourceSettings(BaseModel):
    """One entry of the resolver's source list."""

    type: SourceType
    priority: int
    asset_key: str | None = Field(
        default=None, description="Overrides the top-level asset_key for this source"
    )
    category: str | None = None


class ConfigSpineSettings(BaseSettings):
    """Root settings.

    Fields
    ──────
    asset_key : Key of the configuration asset (network path / durable key)
    category  : Durable asset category used for reads and write-through
    sources   : Ordered source list; defaults to network(1) → database(2)
    verbose   : Extra diagnostic logging (diffs, queries); never changes behaviour
    log_level : Structlog log level
    json_logs : Force JSON (True) or console (False) output; None auto-detects
    """

    model_config = SettingsConfigDict(
        env_prefix="CONFIGSPINE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    asset_key: str = "config.json"
    category: str = "config"

    network: NetworkSettings = Field(default_factory=NetworkSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    sources: list[SourceSettings] = Field(
        default_factory=lambda: [
            SourceSettings(type="network", priority=1),
            SourceSettings(type="database", priority=2),
        ]
    )

    # ── Observability ────────────────────────────────────────────
    verbose: bool = False
    log_level: LogLevel = "INFO"
    json_logs: bool | None = None

    @model_validator(mode="after")
    def _check_priorities(self) -> ConfigSpineSettings:
        priorities = [source.priority for source in self.sources]
        if len(priorities) != len(set(priorities)):
            raise ValueError(f"source priorities must be distinct, got {priorities}")
        return self


@lru_cache(maxsize=1)
def get_settings() -> ConfigSpineSettings:
    """Get the process-wide settings instance.

    Cached for the lifetime of the process; call ``reload_settings()`` to
    re-read the environment.
    """
    return ConfigSpineSettings()


def reload_settings() -> ConfigSpineSettings:
    """Clear the settings cache and reload configuration."""
    get_settings.cache_clear()
    return get_settings()


__all__ = [
    "ConfigSpineSettings",
    "NetworkSettings",
    "DatabaseSettings",
    "SourceSettings",
    "get_settings",
    "reload_settings",
]
