"""Application configuration using Pydantic Settings.

Loads configuration from environment variables and .env files.
Client, search, and server settings share one aggregate so the CLI
and the API service read the same environment.
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PROXY = "https://proxy.golang.org"


class ClientSettings(BaseSettings):
    """Connection settings for talking to a Perseus server."""

    model_config = SettingsConfigDict(env_prefix="PERSEUS_SERVER_")

    addr: str = ""
    no_tls: bool = False
    timeout_seconds: float = Field(default=10.0, ge=0.1, le=300.0)

    @property
    def base_url(self) -> str:
        """Construct the HTTP base URL for the configured server address."""
        addr = self.addr.rstrip("/")
        if addr.startswith(("http://", "https://")):
            return addr
        scheme = "http" if self.no_tls else "https"
        return f"{scheme}://{addr}"


class SearchSettings(BaseSettings):
    """Graph traversal and path search configuration."""

    model_config = SettingsConfigDict(env_prefix="PERSEUS_SEARCH_")

    max_depth: int = Field(default=4, ge=1, le=64)
    parallelism: int = Field(default_factory=lambda: os.cpu_count() or 1, ge=1, le=1024)
    page_size: int | None = Field(default=None, ge=1, le=10000)


class RetrySettings(BaseSettings):
    """Retry policy for transiently unavailable queries."""

    model_config = SettingsConfigDict(env_prefix="PERSEUS_RETRY_")

    # Fibonacci-ish growth, one entry per retry
    delays_ms: list[int] = Field(default_factory=lambda: [100, 200, 300, 500, 800])
    jitter: float = Field(default=0.2, ge=0.0, le=1.0)

    @field_validator("delays_ms")
    @classmethod
    def validate_delays(cls, v: list[int]) -> list[int]:
        """Reject negative delays."""
        if any(d < 0 for d in v):
            raise ValueError("retry delays must not be negative")
        return v

    @property
    def delays(self) -> list[float]:
        """Retry delays in seconds."""
        return [d / 1000 for d in self.delays_ms]


class DatabaseSettings(BaseSettings):
    """PostgreSQL database configuration."""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: SecretStr = SecretStr("postgres")
    database: str = "perseus"

    # Connection pool settings
    pool_size: int = Field(default=10, ge=1, le=100)
    max_overflow: int = Field(default=5, ge=0, le=50)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = Field(default=1800, ge=60)

    echo: bool = False

    @property
    def async_url(self) -> str:
        """Construct async PostgreSQL connection URL."""
        password = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{password}@{self.host}:{self.port}/{self.database}"


class APISettings(BaseSettings):
    """REST API service configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "localhost"
    port: int = Field(default=31138, ge=1, le=65535)
    workers: int = Field(default=1, ge=1, le=32)
    reload: bool = False

    # Pagination
    default_page_size: int = Field(default=100, ge=1, le=1000)
    max_page_size: int = Field(default=1000, ge=1, le=10000)


class ModuleProxySettings(BaseSettings):
    """Go module proxy configuration."""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    goproxy: str = Field(default="", alias="GOPROXY")
    timeout_seconds: float = Field(default=30.0, ge=0.1, alias="GOPROXY_TIMEOUT")

    @property
    def urls(self) -> list[str]:
        """Parse GOPROXY into a list of proxy base URLs.

        "direct" and "off" are skipped since only proxies are queried.
        """
        if not self.goproxy:
            return [DEFAULT_PROXY]
        urls = []
        for entry in self.goproxy.replace("|", ",").split(","):
            entry = entry.strip().rstrip("/")
            if entry and entry not in ("direct", "off"):
                urls.append(entry)
        return urls or [DEFAULT_PROXY]


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "console"
    include_timestamp: bool = True
    include_caller: bool = False


class Settings(BaseSettings):
    """Main application settings aggregating all configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application info
    app_name: str = "Perseus"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # Sub-configurations
    client: ClientSettings = Field(default_factory=ClientSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    api: APISettings = Field(default_factory=APISettings)
    proxy: ModuleProxySettings = Field(default_factory=ModuleProxySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
