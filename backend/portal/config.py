"""Application configuration using pydantic-settings."""

import warnings
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


# Sentinel values that indicate unconfigured credentials
_UNCONFIGURED_URL = "https://CHANGE_ME.supabase.co"
_UNCONFIGURED_ANON_KEY = "CHANGE_ME"

# Find .env file: check backend dir first, then project root
_BACKEND_DIR = Path(__file__).parent.parent
_PROJECT_ROOT = _BACKEND_DIR.parent
_ENV_FILE = _BACKEND_DIR / ".env" if (_BACKEND_DIR / ".env").exists() else _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    IMPORTANT: The platform URL and anon key must be explicitly configured via
    environment variables or .env file. Default values use 'CHANGE_ME' sentinel
    to make misconfiguration obvious.
    """

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # External platform (auth, tables, storage)
    supabase_url: str = _UNCONFIGURED_URL
    supabase_anon_key: str = _UNCONFIGURED_ANON_KEY
    platform_timeout_seconds: float = 10.0

    # Storage
    documents_bucket: str = "patient-documents"
    max_upload_bytes: int = 10 * 1024 * 1024

    # Session
    session_store_path: str = ""
    notification_queue_size: int = 64

    # Application
    cors_origins: str = "http://localhost:5173"
    debug: bool = False

    def model_post_init(self, __context) -> None:
        """Warn about unconfigured credentials."""
        if self.supabase_anon_key == _UNCONFIGURED_ANON_KEY:
            warnings.warn(
                "SUPABASE_ANON_KEY not configured! Set SUPABASE_ANON_KEY environment variable.",
                UserWarning,
                stacklevel=2,
            )
        if "CHANGE_ME" in self.supabase_url:
            warnings.warn(
                "SUPABASE_URL not configured! Set SUPABASE_URL environment variable.",
                UserWarning,
                stacklevel=2,
            )


settings = Settings()
