"""Configuration loading and validation."""

from .models import SystemConfig, PathsConfig, BackupConfig
from .loader import ConfigLoader, ConfigLoadError, ConfigValidationError

__all__ = [
    "SystemConfig",
    "PathsConfig",
    "BackupConfig",
    "ConfigLoader",
    "ConfigLoadError",
    "ConfigValidationError",
]
