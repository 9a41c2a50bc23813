"""Tests for environment-driven settings."""
from pathlib import Path

import pytest

from nowandlater.auth.session import FileSessionStore
from nowandlater.config import DEFAULT_API_BASE_URL, DEFAULT_SESSION_PATH, ConfigError, Settings, load_settings

from conftest import make_session

ENV_VARS = (
    "NAL_LEGACY_URL",
    "NAL_API_BASE_URL",
    "NAL_USE_MODERN",
    "NAL_ENABLE_FALLBACK",
    "NAL_REQUEST_TIMEOUT_SECONDS",
    "NAL_SESSION_PATH",
    "NAL_ENV",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        # setenv first so monkeypatch also removes values load_dotenv writes.
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    # Keep load_dotenv from picking up a developer's .env file.
    monkeypatch.chdir(tmp_path)


class TestLoadSettings:
    """Tests for load_settings()"""

    def test_missing_legacy_url_raises(self, tmp_path):
        with pytest.raises(ConfigError, match="NAL_LEGACY_URL"):
            load_settings(env_file=tmp_path / "missing.env")

    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.setenv("NAL_LEGACY_URL", "https://legacy.test/exec")

        settings = load_settings(env_file=tmp_path / "missing.env")

        assert settings.legacy_url == "https://legacy.test/exec"
        assert settings.api_base_url == DEFAULT_API_BASE_URL
        assert settings.use_modern is False
        assert settings.enable_fallback is True
        assert settings.request_timeout_seconds == 20.0
        assert settings.environment == "local"
        assert settings.session_path == DEFAULT_SESSION_PATH

    def test_flags_and_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("NAL_LEGACY_URL", "https://legacy.test/exec")
        monkeypatch.setenv("NAL_API_BASE_URL", "https://api.test/api/")
        monkeypatch.setenv("NAL_USE_MODERN", "true")
        monkeypatch.setenv("NAL_ENABLE_FALLBACK", "0")
        monkeypatch.setenv("NAL_REQUEST_TIMEOUT_SECONDS", "7.5")
        monkeypatch.setenv("NAL_SESSION_PATH", str(tmp_path / "s.json"))
        monkeypatch.setenv("NAL_ENV", "staging")

        settings = load_settings(env_file=tmp_path / "missing.env")

        assert settings.api_base_url == "https://api.test/api"
        assert settings.use_modern is True
        assert settings.enable_fallback is False
        assert settings.request_timeout_seconds == 7.5
        assert settings.session_path == tmp_path / "s.json"
        assert settings.environment == "staging"

    @pytest.mark.parametrize("raw", ["soon", "0", "-3"])
    def test_bad_timeout_rejected(self, monkeypatch, tmp_path, raw):
        monkeypatch.setenv("NAL_LEGACY_URL", "https://legacy.test/exec")
        monkeypatch.setenv("NAL_REQUEST_TIMEOUT_SECONDS", raw)

        with pytest.raises(ConfigError, match="NAL_REQUEST_TIMEOUT_SECONDS"):
            load_settings(env_file=tmp_path / "missing.env")

    def test_env_file_is_read(self, tmp_path):
        env_file = tmp_path / "app.env"
        env_file.write_text("NAL_LEGACY_URL=https://from-file.test/exec\nNAL_USE_MODERN=yes\n")

        settings = load_settings(env_file=env_file)

        assert settings.legacy_url == "https://from-file.test/exec"
        assert settings.use_modern is True

    def test_custom_legacy_variable(self, monkeypatch, tmp_path):
        monkeypatch.setenv("OTHER_LEGACY", "https://other.test/exec")

        settings = load_settings(legacy_var="OTHER_LEGACY", env_file=tmp_path / "missing.env")

        assert settings.legacy_url == "https://other.test/exec"


class TestSettings:
    """Tests for derived Settings URLs."""

    def test_derived_refresh_url(self):
        settings = Settings(legacy_url="https://legacy.test/exec", api_base_url="https://api.test/api")

        assert settings.refresh_url == "https://api.test/api/auth/manage?action=refresh"
        assert isinstance(settings.session_path, Path)

    def test_session_store_follows_settings_path(self, monkeypatch, tmp_path):
        monkeypatch.setenv("NAL_LEGACY_URL", "https://legacy.test/exec")
        monkeypatch.setenv("NAL_SESSION_PATH", str(tmp_path / "profile" / "session.json"))
        settings = load_settings(env_file=tmp_path / "missing.env")

        FileSessionStore(settings.session_path).save(make_session())

        assert (tmp_path / "profile" / "session.json").exists()
        assert FileSessionStore(settings.session_path).load() == make_session()
