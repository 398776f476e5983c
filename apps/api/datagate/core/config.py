"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_MIB = 1024 * 1024


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    auth_provider: Literal["mock", "jwt"] = "jwt"
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expiry_minutes: int = 7 * 24 * 60
    cookie_name: str = "token"
    cookie_secure: bool = False

    worker_base_url: str = "http://127.0.0.1:8000"
    worker_timeout_seconds: float = 600.0

    upload_dir: str = "uploads"
    large_file_threshold_bytes: int = 50 * _MIB

    audit_database_url: str = "sqlite:///./datagate_audit.db"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="DATAGATE_", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
