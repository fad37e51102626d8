"""
Configuration loading and validation.

Loads client configuration from a YAML file. Credentials are never part of
the configuration; they live in the token storage.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field


class EndpointPaths(BaseModel):
    # "register" is a BaseModel attribute, so the field is aliased
    model_config = ConfigDict(populate_by_name=True)

    login: str = "/api/auth/login"
    register_path: str = Field(default="/api/auth/register", alias="register")
    refresh: str = "/api/auth/refresh"
    me: str = "/api/auth/me"

    @property
    def exempt(self) -> tuple[str, ...]:
        """Endpoints that never carry a bearer credential nor trigger a refresh."""
        return (self.login, self.register_path, self.refresh)


class ApiConfig(BaseModel):
    url: str = "http://localhost:3000"
    verify_tls: bool = True
    request_timeout_seconds: float = 30
    paths: EndpointPaths = Field(default_factory=EndpointPaths)


class StorageConfig(BaseModel):
    backend: Literal["memory", "sqlite"] = "sqlite"
    db_path: str = "./data/credentials.db"


class SessionConfig(BaseModel):
    expiry_margin_ms: int = Field(default=5000, ge=0)
    login_path: str = "/auth/login"


class LoggingConfig(BaseModel):
    level: str = "info"
    format: Literal["json", "text"] = "json"


class ClientConfig(BaseModel):
    api: ApiConfig = Field(default_factory=ApiConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: str | Path) -> ClientConfig:
    """Load and validate client configuration from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return ClientConfig.model_validate(raw)
