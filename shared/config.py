"""
Shared configuration management for the Ability Layer.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import DEFAULT_DENIED_MESSAGE


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ABILITY_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class AbilityConfig(BaseConfig):
    """Settings consumed by the ability core and its collaborators."""

    # Message used by AccessDenied when authorize() is not given one
    access_denied_message: str = Field(default=DEFAULT_DENIED_MESSAGE)

    # Emit a debug event for every can() decision
    log_decisions: bool = Field(default=True)

    # accessible_by falls back to scan + per-instance check for block rules
    bulk_fallback: bool = Field(default=False)


@lru_cache
def get_config() -> AbilityConfig:
    """Get the process configuration."""
    return AbilityConfig()
