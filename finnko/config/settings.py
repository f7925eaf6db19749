"""
Configuration Management for Finnko

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The remote backend is optional: when SUPABASE_URL or SUPABASE_ANON_KEY is
missing the application runs in local-only (demo) mode.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SupabaseSettings(BaseSettings):
    """Remote relational store (Supabase / PostgREST) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: Optional[str] = Field(
        default=None,
        description="Project URL, e.g. https://xyz.supabase.co"
    )
    anon_key: Optional[str] = Field(
        default=None,
        description="Public anon API key"
    )
    timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=120,
        description="HTTP timeout for a single request"
    )

    @field_validator('url')
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        """Normalize the project URL so paths can be appended safely."""
        if v is None:
            return v
        v = v.strip().rstrip("/")
        return v or None

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.anon_key)


class LocalStoreSettings(BaseSettings):
    """Local durable store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOCAL_STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    directory: Path = Field(
        default=Path.home() / ".finnko",
        description="Directory holding one JSON document per storage key"
    )
    in_memory: bool = Field(
        default=False,
        description="Keep demo data in process memory only"
    )


class SyncSettings(BaseSettings):
    """Retry policy for remote calls."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a remote call that fails at the transport level"
    )
    retry_min_wait: float = Field(
        default=2.0,
        ge=0,
        description="Minimum backoff between attempts (seconds)"
    )
    retry_max_wait: float = Field(
        default=10.0,
        ge=0,
        description="Maximum backoff between attempts (seconds)"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level"
    )

    # Recurrence horizons
    recurrence_occurrences: int = Field(
        default=24,
        ge=1,
        le=120,
        description="Occurrences generated for daily/weekly/monthly recurrences"
    )
    annual_recurrence_occurrences: int = Field(
        default=5,
        ge=1,
        le=30,
        description="Occurrences generated for annual recurrences"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

    @property
    def local_store(self) -> LocalStoreSettings:
        return LocalStoreSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()

    @property
    def remote_enabled(self) -> bool:
        """True when the remote store can be reached at all."""
        return self.supabase.is_configured


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("supabase", "local_store", "sync", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    results["remote_enabled"] = results["supabase"] and settings.remote_enabled

    return results
