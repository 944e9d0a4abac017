"""Configuration loading and validation."""

from .models import (
    # Enums
    ClientType,
    WatermarkPolicy,
    # Config models
    AppConfig,
    SourceConfig,
    FormSessionConfig,
    TokenSessionConfig,
    BrowserSessionConfig,
    ColumnMap,
    FilterItem,
    DatabaseConfig,
    LoggingConfig,
    NotifyConfig,
)
from .loader import (
    ConfigError,
    find_source_config,
    load_all_source_configs,
    load_app_config,
    load_source_config,
)

__all__ = [
    # Enums
    "ClientType",
    "WatermarkPolicy",
    # Config models
    "AppConfig",
    "SourceConfig",
    "FormSessionConfig",
    "TokenSessionConfig",
    "BrowserSessionConfig",
    "ColumnMap",
    "FilterItem",
    "DatabaseConfig",
    "LoggingConfig",
    "NotifyConfig",
    # Loaders
    "ConfigError",
    "find_source_config",
    "load_all_source_configs",
    "load_app_config",
    "load_source_config",
]
