"""
Configuration management.

Settings come from environment variables (``REMOTEDB_*``), validated by
pydantic-settings. An optional YAML file fills in whatever the
environment leaves unset.
"""

import json
import os
from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from .core.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


LOG_LEVELS = ("ALL", "ERROR", "NONE")

# Searched in order when REMOTEDB_CONFIG_FILE is not set
CONFIG_SEARCH_PATHS = (
    Path("config.yaml"),
    Path(__file__).resolve().parents[2] / "config.yaml",
)


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Read the YAML config file, or return ``{}`` when there is none."""
    explicit = config_path or os.environ.get("REMOTEDB_CONFIG_FILE")
    candidates = [Path(explicit)] if explicit else list(CONFIG_SEARCH_PATHS)

    for candidate in candidates:
        if candidate.is_file():
            with candidate.open("r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
    return {}


class DatabaseSettings(BaseSettings):
    """MySQL server the keyspaces live on."""

    host: str = Field(default="localhost", description="MySQL host")
    port: int = Field(default=3306, description="MySQL port")
    user: str = Field(default="", description="MySQL user (not root)")
    password: str = Field(default="", description="MySQL password")
    connect_timeout_seconds: int = Field(default=10, description="Connection establishment timeout")
    query_timeout_seconds: float = Field(default=30.0, description="Upper bound for connect + execute")

    class Config:
        env_prefix = "REMOTEDB_DB_"


class SecuritySettings(BaseSettings):
    """API keys and request limits."""

    api_key: str = Field(default="", description="Standard API key (restricted SQL)")
    admin_api_key: str = Field(default="", description="Privileged API key (full SQL); empty disables it")
    max_requests_per_hour: int = Field(default=1000, description="Rate limit per client address")
    max_query_length: int = Field(default=8192, description="Maximum query length in bytes")
    rate_limit_dir: Path = Field(
        default=Path("/tmp/remotedb_rate_limit"),
        description="Directory holding per-client rate limit records",
    )

    @field_validator("api_key", "admin_api_key", mode="before")
    def strip_keys(cls, v: Any) -> Any:
        """Treat whitespace-only keys as unset."""
        if isinstance(v, str):
            return v.strip()
        return v

    class Config:
        env_prefix = "REMOTEDB_SECURITY_"


class LoggingSettings(BaseSettings):
    """Query log files and retention."""

    enable_logging: bool = Field(default=True, description="Write the query log")
    log_level: str = Field(default="ALL", description="ALL, ERROR or NONE")
    api_log_file: str = Field(default="./logs/api_{date}.log", description="API log path template")
    error_log_file: str = Field(default="./logs/errors_{date}.log", description="Error log path template")
    keep_logs_for_days: int = Field(default=30, description="Delete logs older than this (0 = keep forever)")
    auto_cleanup_logs: bool = Field(default=True, description="Run the retention sweep occasionally")
    cleanup_probability: float = Field(default=0.01, ge=0.0, le=1.0, description="Sweep chance per request")

    @field_validator("log_level", mode="before")
    def validate_log_level(cls, v: Any) -> str:
        """Normalize and check the query log level."""
        level = str(v).strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {LOG_LEVELS}")
        return level

    def resolve_path(self, template: str, day: Optional[date] = None) -> Optional[Path]:
        """Expand a log path template for the given day (today by default)."""
        if not template:
            return None
        day = day or date.today()
        return Path(template.format(date=day.strftime("%Y-%m-%d")))

    class Config:
        env_prefix = "REMOTEDB_LOGGING_"


class Settings(BaseSettings):
    """Main application settings."""

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Application log level")

    # Component settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    class Config:
        env_prefix = "REMOTEDB_"
        case_sensitive = False


# YAML section -> env prefix of the settings class it feeds
_SECTION_PREFIXES = {
    "server": "REMOTEDB_",
    "database": "REMOTEDB_DB_",
    "security": "REMOTEDB_SECURITY_",
    "logging": "REMOTEDB_LOGGING_",
}


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Export YAML values as env vars, leaving existing env vars alone."""
    for section, prefix in _SECTION_PREFIXES.items():
        for key, value in (config_data.get(section) or {}).items():
            if value is None:
                continue
            encoded = json.dumps(value) if isinstance(value, (dict, list)) else str(value)
            os.environ.setdefault(f"{prefix}{key.upper()}", encoded)


@lru_cache()
def get_settings() -> Settings:
    """
    Process-wide settings; the YAML file only fills gaps left by the environment.

    Raises ConfigurationError when a value is invalid. Failures are not
    cached, so a corrected environment is picked up on the next call.
    """
    _set_env_from_config(load_config_file())
    try:
        return Settings()
    except ValidationError as e:
        logger.error(
            "Invalid configuration",
            errors=[
                {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
                for error in e.errors()
            ],
        )
        raise ConfigurationError("Server configuration is invalid.") from e


def reload_settings() -> Settings:
    """Drop the cached settings and read them again."""
    get_settings.cache_clear()
    return get_settings()
