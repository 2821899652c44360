"""Environment-driven settings for the skills API."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_OBJECT_KEY = "skills-data.json"
DEFAULT_REFRESH_INTERVAL_MINUTES = 30
DEFAULT_REFRESH_TIMEOUT_SECONDS = 600.0
DEFAULT_PORT = 3456
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


@dataclass(frozen=True)
class Settings:
    github_token: str | None = None
    supabase_url: str | None = None
    supabase_key: str | None = None
    skills_bucket: str | None = None
    object_key: str = DEFAULT_OBJECT_KEY
    data_dir: Path | None = None
    auto_refresh: bool = False
    refresh_interval_minutes: int = DEFAULT_REFRESH_INTERVAL_MINUTES
    refresh_timeout_seconds: float = DEFAULT_REFRESH_TIMEOUT_SECONDS
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    cors_origin: str = "*"
    log_level: str = "INFO"

    @property
    def object_store_configured(self) -> bool:
        return bool(self.skills_bucket and self.supabase_url and self.supabase_key)


def _env(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    """Read settings from the process environment (and a local .env file)."""
    load_dotenv()
    data_dir = _env("SKILLS_DATA_DIR")
    return Settings(
        github_token=_env("GITHUB_TOKEN"),
        supabase_url=_env("SUPABASE_URL"),
        supabase_key=_env("SUPABASE_KEY"),
        skills_bucket=_env("SKILLS_BUCKET"),
        object_key=_env("SKILLS_OBJECT_KEY") or DEFAULT_OBJECT_KEY,
        data_dir=Path(data_dir).expanduser() if data_dir else None,
        auto_refresh=(_env("AUTO_REFRESH") or "").lower() in {"true", "1"},
        refresh_interval_minutes=_env_int("REFRESH_INTERVAL", DEFAULT_REFRESH_INTERVAL_MINUTES),
        refresh_timeout_seconds=_env_float("REFRESH_TIMEOUT", DEFAULT_REFRESH_TIMEOUT_SECONDS),
        host=_env("HOST") or "0.0.0.0",
        port=_env_int("PORT", DEFAULT_PORT),
        cors_origin=_env("CORS_ORIGIN") or "*",
        log_level=(_env("LOG_LEVEL") or "INFO").upper(),
    )
