"""Configuration management.

Uses pydantic-settings for type-safe configuration from environment variables.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Agent settings.

    All settings can be overridden via environment variables.
    Prefix: METRICGRAPH_
    """

    model_config = SettingsConfigDict(
        env_prefix="METRICGRAPH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Control plane
    project_key: str | None = Field(
        default=None,
        description="Bearer token presented to the control plane. The agent stays idle without it.",
    )
    uri: str | None = Field(
        default=None,
        description="Control plane endpoint",
    )

    # Application store (SQLAlchemy)
    database_url: str = Field(
        default="sqlite:///./app.db",
        description="SQLAlchemy database URL of the application being introspected",
    )
    models: str | None = Field(
        default=None,
        description="Import path of the declarative base or registry, e.g. 'myapp.models:Base'",
    )

    # Query execution
    statement_timeout_ms: int = Field(
        default=100,
        ge=1,
        description="Upper bound on the duration of every metric query",
    )

    # Logging
    debug: bool = Field(default=False)
    log_level: str = Field(default="WARNING")
    log_format: str = Field(default="console")  # 'json' or 'console'

    @property
    def effective_log_level(self) -> str:
        """DEBUG when the debug flag is set, the configured level otherwise."""
        return "DEBUG" if self.debug else self.log_level


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
