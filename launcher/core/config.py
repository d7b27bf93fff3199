"""
Configuration Management

Centralized configuration using Pydantic Settings.
All settings loaded from environment variables with sensible defaults.
"""
import logging
from datetime import timedelta
from typing import Optional, List

from pydantic import Field, ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Ignore extra environment variables that aren't defined in the model
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================================
    # Remote Service
    # ============================================================
    modrinth_api_url: str = Field(
        "https://api.modrinth.com/",
        description="Base URL of the remote API (session/refresh and user are joined onto it)"
    )
    modrinth_url: str = Field(
        "https://modrinth.com/",
        description="Base URL of the remote site (used for the sign-in page)"
    )

    # ============================================================
    # Storage
    # ============================================================
    launcher_settings_dir: Optional[str] = Field(
        None, description="Directory holding app.db (default: ~/.launcher)"
    )
    database_url: Optional[str] = Field(
        None, description="SQLAlchemy async URL, overrides the settings-dir database"
    )
    database_busy_timeout: float = Field(30.0, description="Seconds to wait on a locked database")

    # Tokens are encrypted at rest when a key is configured
    db_encryption_key: Optional[str] = Field(None, description="Fernet key for stored tokens")
    db_encryption_key_old: str = Field(
        "", description="Comma-separated previous Fernet keys (decryption only)"
    )

    # ============================================================
    # Sessions
    # ============================================================
    session_guard_window_seconds: int = Field(
        3600, description="Refresh remote sessions expiring within this many seconds"
    )
    session_renewal_days: int = Field(14, description="Lifetime of a renewed remote session")
    offline_session_days: int = Field(3650, description="Lifetime of an offline identity")
    session_refresh_attempts: int = Field(
        1, description="Attempts per refresh before discarding (1 = discard on first failure)"
    )
    session_refresh_backoff: float = Field(
        2.0, description="Base delay in seconds between refresh attempts"
    )

    # ============================================================
    # Network
    # ============================================================
    fetch_max_concurrent: int = Field(10, description="Concurrent outbound requests")
    fetch_timeout: float = Field(30.0, description="Request timeout in seconds")

    # ============================================================
    # Logging
    # ============================================================
    log_level: str = Field("INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string"
    )

    @property
    def guard_window(self) -> timedelta:
        return timedelta(seconds=self.session_guard_window_seconds)

    @property
    def renewal_period(self) -> timedelta:
        return timedelta(days=self.session_renewal_days)

    @property
    def offline_validity(self) -> timedelta:
        return timedelta(days=self.offline_session_days)

    @property
    def old_encryption_keys(self) -> List[str]:
        """Parse previous encryption keys into list."""
        return [k.strip() for k in self.db_encryption_key_old.split(",") if k.strip()]


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings (singleton).

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings


def configure_logging(settings: Optional[Settings] = None):
    """Apply the configured level and format to the root logger."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=settings.log_format,
    )
