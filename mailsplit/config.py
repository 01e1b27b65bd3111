"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"
    log_level: str = "INFO"

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis (per-test locks + worker heartbeat)
    redis_url: str = "redis://localhost:6379/0"

    # Sentry
    sentry_dsn: str = ""

    # A/B test engine worker (toggle without code deploys)
    ab_engine_enabled: bool = True
    ab_engine_poll_seconds: int = 3600
    ab_engine_startup_delay_seconds: int = 60
    ab_auto_promote: bool = True
    ab_snapshot_interval_hours: int = 24

    # Per-test lock tuning
    ab_lock_ttl_seconds: int = 30
    ab_lock_wait_seconds: float = 5.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
