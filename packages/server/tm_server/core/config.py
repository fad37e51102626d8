"""
Application configuration loaded from environment variables.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Task manager server configuration."""

    model_config = SettingsConfigDict(env_prefix="TM_", env_file=".env", extra="ignore")

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/taskmanager.db"

    # Redis (refresh token revocation list)
    redis_url: str = "redis://localhost:6379/0"

    # Security
    secret_key: str = "CHANGE_ME_IN_PRODUCTION"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    bcrypt_rounds: int = 12

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False

    # CORS
    cors_origins: list[str] = ["http://localhost:4200"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
