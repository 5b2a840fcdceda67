"""Shared utilities and configuration for logwatch."""

from logwatch.shared.config import Settings, get_settings, settings
from logwatch.shared.logger import (
    WatchLogger,
    get_logger,
    log_config_status,
    log_event_table,
    log_startup_banner,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "settings",
    # Logger
    "WatchLogger",
    "get_logger",
    "log_config_status",
    "log_event_table",
    "log_startup_banner",
]
