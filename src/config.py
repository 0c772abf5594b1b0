from __future__ import annotations

import os
import sys
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

CACHE_FILE_NAME = "cache-v3.json"


def default_cache_path() -> Path:
    """Return the platform-specific location of Granola's cache file."""
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "Granola" / CACHE_FILE_NAME
    if sys.platform == "win32":
        return Path(os.getenv("APPDATA", "")) / "Granola" / CACHE_FILE_NAME
    return Path.home() / ".config" / "Granola" / CACHE_FILE_NAME


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    anthropic_api_key: str = ""
    linear_api_key: str = ""

    # Linear
    linear_team_id: str | None = None
    linear_api_url: str = "https://api.linear.app/graphql"

    # Extraction
    llm_model: str = "claude-sonnet-4-20250514"
    extraction_max_tokens: int = 4096

    # Granola cache + local state
    granola_cache_path: Path = Field(default_factory=default_cache_path)
    data_dir: Path = Field(default_factory=lambda: Path.cwd() / "data")

    # Trigger sources (seconds)
    poll_interval: float = 30.0
    startup_delay: float = 1.0
    watch_settle_delay: float = 2.0
    watch_enabled: bool = True

    # App config
    api_host: str = "127.0.0.1"
    api_port: int = 3847
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def store_path(self) -> Path:
        return self.data_dir / "store.json"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
