"""
settings.py

Application settings for the Project Portal.

Configuration precedence (highest to lowest):
1. Environment variables prefixed with PORTAL_ (e.g. PORTAL_STORAGE_PATH)
2. .env file in the working directory
3. Defaults below
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PORTAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Project Portal"
    api_version: str = "1.0.0"

    # JSON file that plays the role of browser-local storage.
    # Unset → in-memory storage, lost on restart.
    storage_path: Optional[Path] = Field(default=Path("data/portal-storage.json"))

    log_level: str = "INFO"
    log_file: Optional[str] = None

    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)

    # Used for new profiles when the client does not send its own zone.
    default_timezone: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"log_level must be one of: {sorted(valid)}")
        return v.upper()

    @field_validator("storage_path", mode="before")
    @classmethod
    def empty_path_means_memory(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


@lru_cache
def get_settings() -> Settings:
    """Settings are read once per process; environment changes after that are ignored."""
    return Settings()
