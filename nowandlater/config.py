"""Configuration helpers for the Now & Later access layer."""
from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_API_BASE_URL = "http://localhost:3000/api"
DEFAULT_SESSION_PATH = Path.home() / ".nowandlater" / "session.json"


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or invalid."""


@dataclass(slots=True)
class Settings:
    """Runtime configuration for the access layer."""

    legacy_url: str
    api_base_url: str = DEFAULT_API_BASE_URL
    use_modern: bool = False
    enable_fallback: bool = True
    request_timeout_seconds: float = 20.0
    session_path: Path = DEFAULT_SESSION_PATH
    environment: str = "local"

    @property
    def refresh_url(self) -> str:
        return f"{self.api_base_url}/auth/manage?action=refresh"


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_settings(
    *,
    legacy_var: str = "NAL_LEGACY_URL",
    env_file: Optional[Path] = None,
) -> Settings:
    """Load settings from environment variables.

    Args:
        legacy_var: Env var holding the legacy automation endpoint.
        env_file: Optional .env file to load before reading the environment.

    Returns:
        Settings resolved from the environment.

    Raises:
        ConfigError: if the legacy endpoint is missing or a value is invalid.
    """

    load_dotenv(env_file)

    legacy_url = (os.getenv(legacy_var) or "").strip()
    if not legacy_url:
        raise ConfigError(
            f"Missing legacy backend URL. Export {legacy_var} with the deployed "
            "automation endpoint."
        )

    raw_timeout = os.getenv("NAL_REQUEST_TIMEOUT_SECONDS", "20")
    try:
        timeout = float(raw_timeout)
    except ValueError as exc:
        raise ConfigError(
            f"NAL_REQUEST_TIMEOUT_SECONDS must be a number, got {raw_timeout!r}"
        ) from exc
    if timeout <= 0:
        raise ConfigError("NAL_REQUEST_TIMEOUT_SECONDS must be greater than 0")

    session_path = os.getenv("NAL_SESSION_PATH")

    return Settings(
        legacy_url=legacy_url,
        api_base_url=(os.getenv("NAL_API_BASE_URL") or DEFAULT_API_BASE_URL).rstrip("/"),
        use_modern=_env_flag("NAL_USE_MODERN", False),
        enable_fallback=_env_flag("NAL_ENABLE_FALLBACK", True),
        request_timeout_seconds=timeout,
        session_path=Path(session_path).expanduser() if session_path else DEFAULT_SESSION_PATH,
        environment=os.getenv("NAL_ENV", "local"),
    )
