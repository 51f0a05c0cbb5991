"""Application configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_name: str = "aspos-sync"
    app_env: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # API Settings
    # -------------------------------------------------------------------------
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 1
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    # -------------------------------------------------------------------------
    # ASPOS API Integration
    # -------------------------------------------------------------------------
    aspos_client_id: str = ""
    aspos_client_secret: str = ""
    aspos_token_url: str = "https://auth.aspos.nl/connect/token"
    aspos_api_base_url: str = "https://api.aspos.nl"
    aspos_api_timeout: float = 300.0  # upstream can be very slow on large stores
    aspos_page_size: int = 100
    aspos_token_cache_ttl_seconds: int = 0  # 0 = fetch a fresh token per stage

    @field_validator("aspos_token_url", "aspos_api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def aspos_configured(self) -> bool:
        """True when every credential field has a value."""
        return all(
            (
                self.aspos_client_id,
                self.aspos_client_secret,
                self.aspos_token_url,
                self.aspos_api_base_url,
            )
        )

    # -------------------------------------------------------------------------
    # PostgreSQL Database
    # -------------------------------------------------------------------------
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "aspos"
    postgres_password: str = ""
    postgres_db: str = "aspos_sync"
    database_url_override: str = ""
    db_pool_size: int = 5
    db_max_overflow: int = 5
    db_pool_recycle: int = 1800

    @property
    def database_url(self) -> str:
        """Construct async database connection URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def database_url_sync(self) -> str:
        """Construct synchronous connection URL (for Alembic), honouring the override."""
        if self.database_url_override:
            return self.database_url_override.replace("+asyncpg", "").replace("+aiosqlite", "")
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # -------------------------------------------------------------------------
    # Redis
    # -------------------------------------------------------------------------
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0

    @property
    def redis_url(self) -> str:
        """Construct Redis connection URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # -------------------------------------------------------------------------
    # Celery
    # -------------------------------------------------------------------------
    celery_broker_url: str = ""
    celery_result_backend: str = ""

    @property
    def celery_broker(self) -> str:
        """Get Celery broker URL, defaulting to Redis URL."""
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        """Get Celery result backend URL, defaulting to Redis URL."""
        return self.celery_result_backend or self.redis_url

    # -------------------------------------------------------------------------
    # Work Queue
    # -------------------------------------------------------------------------
    queue_initial_delay_seconds: int = 30
    queue_continue_delay_seconds: int = 60
    queue_lease_ttl_seconds: int = 900

    @property
    def queue_lease_ttl(self) -> int:
        """Lease expiry, never shorter than the worker hard time limit."""
        return max(self.queue_lease_ttl_seconds, self.worker_task_time_limit)

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------
    worker_task_time_limit: int = 3600  # large stores are slow upstream
    worker_task_soft_time_limit: int = 3300

    # -------------------------------------------------------------------------
    # Scheduler Hooks
    # -------------------------------------------------------------------------
    hourly_sync_minute: int = 0
    daily_sync_hour: int = 3
    hook_max_retries: int = 3
    hook_retry_delay_seconds: int = 60

    # -------------------------------------------------------------------------
    # Debug Log / Exports
    # -------------------------------------------------------------------------
    debug_log_path: str = "var/aspos-sync-debug.log"
    debug_log_max_bytes: int = 5 * 1024 * 1024
    price_export_dir: str = "var/exports"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
