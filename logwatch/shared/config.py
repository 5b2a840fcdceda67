"""
Centralized configuration for logwatch.

Uses pydantic-settings for environment variable management.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LOGWATCH_",
        extra="ignore",
    )

    # ==========================================================================
    # Stream Source Configuration
    # ==========================================================================

    # Docker Engine API socket used by the default stream source
    docker_socket_path: str = "/var/run/docker.sock"
    docker_api_version: str | None = None
    docker_request_timeout: float = 10.0

    # ==========================================================================
    # Reconnection (seconds)
    # ==========================================================================

    reconnect_delay: float = 1.0
    max_reconnect_delay: float = 30.0
    reconnect_attempts: int = 5

    # ==========================================================================
    # Monitor / Correlation
    # ==========================================================================

    buffer_size: int = 1000
    tag_correlation_timeout: float = 5.0
    correlation_cleanup_interval: float = 60.0

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
