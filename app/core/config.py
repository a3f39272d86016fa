from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_JWT_SECRET = "replace-me"
_DEFAULT_JWT_REFRESH_SECRET = "replace-me-refresh"


class Settings(BaseSettings):
    app_name: str = "Mini CRM API"
    app_env: str = "local"
    app_debug: bool = True
    api_port: int = 8000
    database_url: str = "sqlite:///./crm.db"
    db_auto_create: bool = True
    redis_url: str = "redis://redis:6379/0"
    jwt_secret: str = _DEFAULT_JWT_SECRET
    jwt_refresh_secret: str = _DEFAULT_JWT_REFRESH_SECRET
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    password_hash_iterations: int = 600_000
    max_login_attempts: int = 5
    lock_time_minutes: int = 30
    activity_retention_days: int = 90
    metrics_enabled: bool = False
    log_level: str = "INFO"
    otel_enabled: bool = False
    otel_service_name: str = "crm-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_console_exporter: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in {"prod", "production"}

    @model_validator(mode="after")
    def _require_secrets_in_production(self) -> "Settings":
        if self.is_production:
            if self.jwt_secret == _DEFAULT_JWT_SECRET or self.jwt_refresh_secret == _DEFAULT_JWT_REFRESH_SECRET:
                raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must be set in production")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
