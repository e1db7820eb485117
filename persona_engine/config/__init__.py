"""Configuration loading and validation."""

from .models import (
    EngineConfig,
    ImportConfig,
    ExportConfig,
    PngConfig,
    LoggingConfig,
)
from .loader import ConfigLoader, ConfigLoadError, ConfigValidationError

__all__ = [
    "EngineConfig",
    "ImportConfig",
    "ExportConfig",
    "PngConfig",
    "LoggingConfig",
    "ConfigLoader",
    "ConfigLoadError",
    "ConfigValidationError",
]
