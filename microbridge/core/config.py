from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "microbridge-reviews-api"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    review_window_days: int = Field(default=14, ge=1)
    edit_window_hours: int = Field(default=24, ge=1)
    comment_min_length: int = Field(default=10, ge=1)
    comment_max_length: int = Field(default=1000, ge=1)
    sweep_batch_size: int = Field(default=100, ge=1, le=1000)
    sweep_module_id: str = "review-sweeper"
    sweep_api_key_sha256: str | None = None
    notification_webhook_url: str | None = None
    notification_timeout_seconds: float = 5.0
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    auth_timeout_seconds: float = 5.0
    otel_enabled: bool = True
    otel_service_name: str = "microbridge-reviews-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="MB_", extra="ignore")

    @model_validator(mode="after")
    def _check_comment_bounds(self) -> "Settings":
        if self.comment_max_length < self.comment_min_length:
            raise ValueError("comment_max_length must not be below comment_min_length")
        return self


class WorkerSettings(BaseSettings):
    environment: str = "dev"
    api_base_url: str = "http://localhost:8000"
    module_id: str = "review-sweeper"
    api_key: str = "local-sweeper-key"
    sweep_interval_seconds: float = Field(default=60.0, gt=0)
    sweep_batch_size: int = Field(default=100, ge=1, le=1000)
    max_backoff_seconds: float = 300.0
    otel_enabled: bool = True
    otel_service_name: str = "microbridge-reviews-sweeper"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="MB_WORKER_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()


@lru_cache
def get_worker_settings() -> WorkerSettings:
    return WorkerSettings()
