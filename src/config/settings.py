"""
Configuration Management for Album Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: Environment configuration only covers how the process runs
(where device storage lives, endpoints, timeouts, logging). The remote
project credentials a user connects with are NOT environment settings: they
are persisted in device storage by the store itself, so a user can connect
and disconnect without touching the environment.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Device storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ALBUM_TRACKER_",
        extra="ignore"
    )

    data_dir: Path = Field(
        default=Path.home() / ".album-tracker",
        description="Directory holding the device-local key/value files"
    )
    app_id: str = Field(
        default="album-tracker-v2",
        min_length=1,
        description="Key of the local snapshot and remote namespace segment"
    )
    remote_config_key: str = Field(
        default="at_firebase_config",
        min_length=1,
        description="Key under which the remote connection config is saved"
    )

    @field_validator('data_dir')
    @classmethod
    def expand_data_dir(cls, v: Path) -> Path:
        """Allow '~' in the configured directory."""
        return v.expanduser()


class FirebaseSettings(BaseSettings):
    """Remote document store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FIREBASE_",
        extra="ignore"
    )

    identity_url: str = Field(
        default="https://identitytoolkit.googleapis.com/v1",
        description="Base URL of the identity REST API (anonymous sign-in)"
    )
    secure_token_url: str = Field(
        default="https://securetoken.googleapis.com/v1",
        description="Base URL used to refresh ID tokens"
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for authentication requests"
    )
    auth_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Sign-in attempts before giving up on transport errors"
    )
    write_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for a single remote write round-trip"
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
        description="Minimum level for structured logs"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


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

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def firebase(self) -> FirebaseSettings:
        return FirebaseSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


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

    Returns a dict of {setting_name: is_valid}, plus `<name>_error`
    entries describing failures. Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("storage", "firebase", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
