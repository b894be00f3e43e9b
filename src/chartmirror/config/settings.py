"""Application settings loaded from environment variables.

Hey future me - every setting can be overridden via env vars with the
CHARTMIRROR_ prefix. Nested groups use a double underscore:

    CHARTMIRROR_LOG_LEVEL=DEBUG
    CHARTMIRROR_CATALOG__PER_PAGE=100
    CHARTMIRROR_SYNC__INTERVAL_SECONDS=1800
    CHARTMIRROR_DATABASE__URL=sqlite+aiosqlite:////data/chartmirror.db

A .env file in the working directory is read too (env vars win).
"""

from functools import lru_cache

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CatalogSettings(BaseModel):
    """Remote chart catalog (Encore search API) configuration."""

    base_url: str = Field(
        default="https://api.enchor.us",
        description="Base URL of the catalog search API",
    )
    search_path: str = Field(
        default="/search/advanced",
        description="Path of the advanced search endpoint",
    )
    per_page: int = Field(
        default=250,
        ge=1,
        le=250,
        description="Records requested per page (API maximum is 250)",
    )
    timeout_seconds: float = Field(default=30.0, gt=0)
    # Hey future me - 429 handling is BOUNDED! After max_retries consecutive
    # 429s for the same page we give up with RateLimitExceededError instead of
    # hanging forever on a service that keeps throttling us.
    max_retries: int = Field(default=5, ge=0)
    initial_backoff_seconds: float = Field(default=1.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    max_backoff_seconds: float = Field(default=60.0, ge=0)
    requests_per_second: float = Field(
        default=2.0, gt=0, description="Sustained request rate (token refill)"
    )
    burst: int = Field(default=5, ge=1, description="Token bucket capacity")
    user_agent: str = Field(default="ChartMirror/1.0")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """Normalize base URL so path joins stay predictable."""
        return value.rstrip("/")

    @property
    def search_url(self) -> str:
        """Full URL of the search endpoint."""
        return f"{self.base_url}{self.search_path}"


class SyncSettings(BaseModel):
    """Background catalog sync configuration."""

    enabled: bool = Field(default=True, description="Run the periodic sync worker")
    interval_seconds: int = Field(
        default=3600, ge=60, description="Seconds between periodic sync runs"
    )
    run_on_startup: bool = Field(
        default=False, description="Start a sync right after the worker starts"
    )
    # Development safety valve only. The engine stops on its own once a page
    # brings no new songs; leave this unset for full runs.
    max_iterations: int | None = Field(default=None, ge=1)


class DatabaseSettings(BaseModel):
    """Local mirror database configuration."""

    url: str = Field(default="sqlite+aiosqlite:///./chartmirror.db")
    echo: bool = Field(default=False, description="Log every SQL statement")


class ObservabilitySettings(BaseModel):
    """Logging output configuration."""

    log_json_format: bool = Field(
        default=False, description="Emit JSON logs (recommended for production)"
    )


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="CHARTMIRROR_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = Field(default="chartmirror")
    log_level: str = Field(default="INFO")

    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Accept only the standard logging level names."""
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level


# Yo, cached so every caller shares ONE Settings instance. Tests that need
# different values should build Settings(...) directly instead of calling this.
@lru_cache
def get_settings() -> Settings:
    """Get the cached application settings."""
    return Settings()
