"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Story folders application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False
    expose_docs: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///data/db/storyfolders.db"

    # Paths
    root_dir: Path | None = None
    fallback_root_dir: Path | None = None
    defaults_path: Path = Path("./data/defaults.toml")
    shared_dir: Path = Path("./data/shared")
    shared_defaults_path: Path = Path("./data/shared-defaults.toml")

    # Default site, created on first startup when no site exists
    site_title: str = "My Site"
    site_url: str = "https://example.com"

    # Server
    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)

    # Reconciliation
    reconcile_on_startup: bool = True
