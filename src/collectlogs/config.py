"""
Configuration management for the CollectLogs service.

Uses Pydantic Settings for environment variable handling and validation.
An optional config.yaml provides defaults, environment variables override it.
"""

import os
import yaml
from functools import lru_cache
from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        possible_paths = [
            "config.yaml",
            "../../config.yaml",
        ]

        for path in possible_paths:
            if os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
            return config_data
    return {}


class DatabaseSettings(BaseSettings):
    """Local database holding the configuration and rule tables."""

    model_config = SettingsConfigDict(env_prefix="COLLECTLOGS_DATABASE_")

    url: str = Field(default="sqlite:///./collectlogs.db", description="SQLAlchemy database URL")
    echo: bool = Field(default=False, description="Echo SQL statements")


class RemoteSettings(BaseSettings):
    """Remote rule server configuration."""

    model_config = SettingsConfigDict(env_prefix="COLLECTLOGS_REMOTE_")

    api_base_url: str = Field(default="https://api.thirtybees.com/", description="API server base URL")
    convert_message_path: str = Field(
        default="collectlogs/convert_message.json",
        description="Path of the convert_message endpoint, relative to the base URL"
    )
    timeout_seconds: int = Field(default=30, description="Request timeout")
    verify_ssl: bool = Field(default=True, description="Verify the server certificate")
    sync_interval_seconds: int = Field(default=8 * 60 * 60, description="Minimum time between synchronizations")

    @field_validator("api_base_url")
    def ensure_trailing_slash(cls, v: str) -> str:
        """Relative endpoint paths are joined onto the base, so it must end with a slash."""
        return v if v.endswith("/") else v + "/"

    @property
    def convert_message_url(self) -> str:
        """Full convert_message URL."""
        return f"{self.api_base_url}{self.convert_message_path.lstrip('/')}"


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = SettingsConfigDict(env_prefix="COLLECTLOGS_SECURITY_")

    admin_token: str = Field(default="", description="Bearer token for admin endpoints")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(env_prefix="COLLECTLOGS_", case_sensitive=False)

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")

    # Component settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with config file and env support."""
    config_data = load_config_file()

    # Config file provides defaults, env vars override
    if config_data:
        _set_env_from_config(config_data)

    return Settings()


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    mappings = {
        ("server", "host"): "COLLECTLOGS_HOST",
        ("server", "port"): "COLLECTLOGS_PORT",
        ("server", "debug"): "COLLECTLOGS_DEBUG",
        ("server", "log_level"): "COLLECTLOGS_LOG_LEVEL",
        ("database", "url"): "COLLECTLOGS_DATABASE_URL",
        ("database", "echo"): "COLLECTLOGS_DATABASE_ECHO",
        ("remote", "api_base_url"): "COLLECTLOGS_REMOTE_API_BASE_URL",
        ("remote", "convert_message_path"): "COLLECTLOGS_REMOTE_CONVERT_MESSAGE_PATH",
        ("remote", "timeout_seconds"): "COLLECTLOGS_REMOTE_TIMEOUT_SECONDS",
        ("remote", "verify_ssl"): "COLLECTLOGS_REMOTE_VERIFY_SSL",
        ("remote", "sync_interval_seconds"): "COLLECTLOGS_REMOTE_SYNC_INTERVAL_SECONDS",
        ("security", "admin_token"): "COLLECTLOGS_SECURITY_ADMIN_TOKEN",
    }

    for (section, key), env_var in mappings.items():
        if env_var not in os.environ:
            value = (config_data.get(section) or {}).get(key)
            if value is not None:
                os.environ[env_var] = str(value)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
