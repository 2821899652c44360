from __future__ import annotations

from pathlib import Path

from skills_api.core.config import DEFAULT_PORT, load_settings

ENV_VARS = (
    "GITHUB_TOKEN",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "SKILLS_BUCKET",
    "SKILLS_OBJECT_KEY",
    "SKILLS_DATA_DIR",
    "AUTO_REFRESH",
    "REFRESH_INTERVAL",
    "REFRESH_TIMEOUT",
    "HOST",
    "PORT",
    "CORS_ORIGIN",
    "LOG_LEVEL",
)


def _clear(monkeypatch) -> None:  # type: ignore[no-untyped-def]
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch, tmp_path) -> None:  # type: ignore[no-untyped-def]
    _clear(monkeypatch)
    monkeypatch.chdir(tmp_path)

    settings = load_settings()

    assert settings.github_token is None
    assert not settings.object_store_configured
    assert settings.object_key == "skills-data.json"
    assert settings.data_dir is None
    assert settings.auto_refresh is False
    assert settings.refresh_interval_minutes == 30
    assert settings.refresh_timeout_seconds == 600.0
    assert settings.port == DEFAULT_PORT
    assert settings.cors_origin == "*"
    assert settings.log_level == "INFO"


def test_env_overrides(monkeypatch, tmp_path) -> None:  # type: ignore[no-untyped-def]
    _clear(monkeypatch)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "service-key")
    monkeypatch.setenv("SKILLS_BUCKET", "skills")
    monkeypatch.setenv("SKILLS_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("AUTO_REFRESH", "1")
    monkeypatch.setenv("REFRESH_INTERVAL", "15")
    monkeypatch.setenv("PORT", "not-a-number")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.object_store_configured
    assert settings.data_dir == Path(tmp_path / "data")
    assert settings.auto_refresh is True
    assert settings.refresh_interval_minutes == 15
    assert settings.port == DEFAULT_PORT
    assert settings.log_level == "DEBUG"


def test_bucket_without_credentials_is_not_configured(monkeypatch, tmp_path) -> None:  # type: ignore[no-untyped-def]
    _clear(monkeypatch)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SKILLS_BUCKET", "skills")

    assert not load_settings().object_store_configured
