"""Application configuration utilities."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

_ENV_PREFIX = "RESCHOOL_"


class AppConfig(BaseModel):
    """Strongly typed configuration loaded from config.json and RESCHOOL_* variables."""

    database_path: str = Field(default="./data/reschool.db")
    app_url: str = Field(default="http://localhost:3000")
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )
    invitation_ttl_days: int = Field(default=7, ge=1)

    stack_project_id: Optional[str] = None
    stack_api_url: str = Field(default="https://api.stack-auth.com")
    stack_jwks_url: Optional[str] = None
    stack_secret_server_key: Optional[str] = None
    stack_jwt_secret: Optional[str] = Field(
        default=None,
        description="Shared HS256 secret accepted for locally minted tokens.",
    )
    stack_jwt_audience: Optional[str] = None
    webhook_secret: Optional[str] = None

    novu_api_url: str = Field(default="https://eu.api.novu.co")
    novu_secret_key: Optional[str] = None
    resend_api_key: Optional[str] = None
    email_from: str = Field(default="ReSchool <noreply@reschool.dk>")

    @property
    def resolved_database_path(self) -> Path:
        """Return the absolute path for the SQLite database file."""
        path = Path(self.database_path)
        if path.is_absolute():
            return path
        return (Path(__file__).resolve().parents[1] / path).resolve()

    @property
    def resolved_jwks_url(self) -> Optional[str]:
        if self.stack_jwks_url:
            return self.stack_jwks_url
        if not self.stack_project_id:
            return None
        base = self.stack_api_url.rstrip("/")
        return f"{base}/api/v1/projects/{self.stack_project_id}/.well-known/jwks.json"


def _config_path() -> Path:
    return Path(__file__).resolve().parents[1] / "config.json"


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for name in AppConfig.model_fields:
        raw = os.getenv(f"{_ENV_PREFIX}{name.upper()}")
        if raw is None or raw == "":
            continue
        if name == "cors_origins":
            overrides[name] = [origin.strip() for origin in raw.split(",") if origin.strip()]
        else:
            overrides[name] = raw
    return overrides


def load_config() -> AppConfig:
    """Load configuration from config.json (optional) with environment overrides."""

    contents: Dict[str, Any] = {}
    config_file = _config_path()
    if config_file.exists():
        contents = json.loads(config_file.read_text())
    contents.update(_env_overrides())
    return AppConfig(**contents)


CONFIG = load_config()
