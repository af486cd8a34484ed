from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str
    app_public_base_url: str

    jwt_secret: str | None = None
    jwt_issuer: str = "cecms-system"
    jwt_audience: str = "cecms-users"
    data_protection_key: str | None = None

    sa_email: str = "system@example.com"
    sa_name: str = "System Administrator"

    email_verification_expiry_hours: int = 24
    resend_api_key: str | None = None
    email_from: str = "noreply@example.com"
    email_http_timeout_seconds: float = 10.0

    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout_seconds: int = 30
    db_echo_sql: bool = False

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator("app_public_base_url")
    @classmethod
    def validate_public_base_url(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("APP_PUBLIC_BASE_URL must be provided")
        return value.rstrip("/")

    def engine_options(self) -> dict[str, object]:
        if self.database_url.startswith("sqlite"):
            return {"echo": self.db_echo_sql}
        return {
            "pool_size": self.db_pool_size,
            "max_overflow": self.db_max_overflow,
            "pool_timeout": self.db_pool_timeout_seconds,
            "echo": self.db_echo_sql,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
