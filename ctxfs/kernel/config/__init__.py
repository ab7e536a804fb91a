"""Configuration loading and management for ctxfs."""

from ctxfs.kernel.config.loader import (
    ConfigLoader,
    clear_config_cache,
    get_default_config,
    load_config,
)
from ctxfs.kernel.config.models import FileSystemConfig, LoggingConfig, WorkerPoolConfig

__all__ = [
    "ConfigLoader",
    "FileSystemConfig",
    "LoggingConfig",
    "WorkerPoolConfig",
    "clear_config_cache",
    "get_default_config",
    "load_config",
]
