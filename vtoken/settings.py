from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    app_env: str = "dev"
    log_level: str = "INFO"

    # Infra
    database_url: str = "postgresql://app:app@db:5432/app"
    redis_url: str = "redis://redis:6379/0"
    text_gateway_base_url: str = "http://text-gateway-mock:8025"
    db_statement_timeout_ms: int = 5000
    db_read_retries: int = 1

    # Security / policies
    code_hash_rounds: int = 10
    token_ttl_seconds: int = 900
    min_token_ttl_seconds: int = 60
    code_attempts: int = 5
    resend_throttle_seconds: int = 60
    signing_secret: str = "change-me-change-me-change-me-change-me"
    link_base_url: str = "http://localhost:8000/verify"
    session_ttl_seconds: int = 30 * 86400
    session_extension_seconds: int = 30 * 86400
    # Never enable outside local development: echoes codes and links in responses.
    expose_dev_codes: bool = False

    # Worker
    outbox_poll_interval_ms: int = 500

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
