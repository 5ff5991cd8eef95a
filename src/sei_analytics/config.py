"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Sei analytics tracker, loading and validating environment variables at
startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class SeiSettings(BaseSettings):
    """Sei network settings for the upstream feed."""

    model_config = SettingsConfigDict(env_prefix="SEI_", extra="ignore")

    event_interval_seconds: float = Field(
        default=5.0,
        alias="SEI_EVENT_INTERVAL_SECONDS",
        gt=0,
        le=3600,
        description="Interval between synthetic transactions emitted by the mock feed",
    )
    seed: int | None = Field(
        default=None,
        alias="SEI_SEED",
        description="Optional seed for the mock feed's event stream",
    )
    max_retries: int = Field(
        default=2,
        alias="SEI_MAX_RETRIES",
        ge=0,
        le=10,
        description="Retries for upstream snapshot fetches",
    )
    retry_base_delay: float = Field(
        default=0.5,
        alias="SEI_RETRY_BASE_DELAY",
        ge=0,
        le=60,
        description="Base delay in seconds (doubles with each retry)",
    )
    reconnect_base_delay: float = Field(
        default=1.0,
        alias="SEI_RECONNECT_BASE_DELAY",
        gt=0,
        le=60,
        description="Initial wait before reconnecting a lost upstream feed",
    )
    reconnect_max_delay: float = Field(
        default=30.0,
        alias="SEI_RECONNECT_MAX_DELAY",
        gt=0,
        le=600,
        description="Upper bound for the reconnect backoff",
    )


class TrackerSettings(BaseSettings):
    """Entity tracking windows and validation rules."""

    model_config = SettingsConfigDict(env_prefix="TRACKER_", extra="ignore")

    wallet_history_size: int = Field(
        default=1000,
        alias="TRACKER_WALLET_HISTORY_SIZE",
        ge=1,
        le=100_000,
        description="Maximum transactions kept per tracked wallet",
    )
    coin_history_size: int = Field(
        default=168,
        alias="TRACKER_COIN_HISTORY_SIZE",
        ge=24,
        le=168,
        description="Maximum flow records kept per tracked coin (168 = one week hourly)",
    )
    nft_history_size: int = Field(
        default=1000,
        alias="TRACKER_NFT_HISTORY_SIZE",
        ge=50,
        le=1000,
        description="Maximum movements kept per tracked NFT",
    )
    whale_refresh_minutes: int = Field(
        default=15,
        alias="TRACKER_WHALE_REFRESH_MINUTES",
        ge=0,
        le=24 * 60,
        description="Minimum interval between whale re-derivations per coin",
    )
    wallet_address_prefix: str = Field(
        default="sei1",
        alias="TRACKER_WALLET_ADDRESS_PREFIX",
        min_length=1,
        description="Required prefix of tracked wallet addresses",
    )
    wallet_address_length: int = Field(
        default=46,
        alias="TRACKER_WALLET_ADDRESS_LENGTH",
        ge=8,
        le=128,
        description="Required total length of tracked wallet addresses",
    )


class RedisSettings(BaseSettings):
    """Optional Redis snapshot cache settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string (snapshot caching disabled when unset)",
    )
    snapshot_ttl_seconds: int = Field(
        default=120,
        alias="REDIS_SNAPSHOT_TTL_SECONDS",
        ge=1,
        le=24 * 3600,
        description="TTL for cached upstream snapshots",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class ServerSettings(BaseSettings):
    """HTTP / WebSocket server settings."""

    model_config = SettingsConfigDict(env_prefix="SERVER_", extra="ignore")

    host: str = Field(
        default="0.0.0.0",
        alias="SERVER_HOST",
        description="Bind address",
    )
    port: int = Field(
        default=3001,
        alias="PORT",
        ge=1,
        le=65535,
        description="HTTP port for the REST and WebSocket surfaces",
    )
    cors_origin: str = Field(
        default="*",
        alias="CORS_ORIGIN",
        description="Allowed CORS origin for the dashboard front end",
    )


class Settings(BaseSettings):
    """Root application settings."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    sei: SeiSettings = Field(
        default_factory=lambda: SeiSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    tracker: TrackerSettings = Field(
        default_factory=lambda: TrackerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    server: ServerSettings = Field(
        default_factory=lambda: ServerSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "sei": {
                "event_interval_seconds": str(self.sei.event_interval_seconds),
                "max_retries": str(self.sei.max_retries),
                "reconnect_max_delay": str(self.sei.reconnect_max_delay),
            },
            "tracker": {
                "wallet_history_size": str(self.tracker.wallet_history_size),
                "coin_history_size": str(self.tracker.coin_history_size),
                "nft_history_size": str(self.tracker.nft_history_size),
                "whale_refresh_minutes": str(self.tracker.whale_refresh_minutes),
            },
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(not set)",
            "server": {
                "host": self.server.host,
                "port": str(self.server.port),
            },
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
