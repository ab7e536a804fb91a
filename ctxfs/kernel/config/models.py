"""Configuration data models for ctxfs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from ctxfs.kernel.domain.permissions import PermissionSet
from ctxfs.kernel.exceptions import FileSystemError, ValidationError

DEFAULT_MAX_WORKERS = 8
DEFAULT_THREAD_NAME_PREFIX = "ctxfs-worker"
DEFAULT_READ_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True, slots=True)
class WorkerPoolConfig:
    """Background worker pool configuration.

    Attributes
    ----------
    max_workers : int, default=8
        Number of worker threads; fixed for the lifetime of the pool
    thread_name_prefix : str, default="ctxfs-worker"
        Prefix for worker thread names (visible in logs and debuggers)
    """

    max_workers: int = DEFAULT_MAX_WORKERS
    thread_name_prefix: str = DEFAULT_THREAD_NAME_PREFIX

    def __post_init__(self) -> None:
        if isinstance(self.max_workers, bool) or not isinstance(self.max_workers, int):
            raise ValidationError("max_workers", "must be an integer", self.max_workers)
        if self.max_workers < 1:
            raise ValidationError("max_workers", "must be at least 1", self.max_workers)
        if not self.thread_name_prefix:
            raise ValidationError("thread_name_prefix", "cannot be empty")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Logging configuration for ctxfs.

    Attributes
    ----------
    level : str, default="WARNING"
        Log level (TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL)
    format : str, default="structured"
        Output format (console, json, structured, rich)
    output_file : str | None, default=None
        Optional file path to write logs to
    use_color : bool, default=True
        Use ANSI color codes (auto-disabled for non-TTY)
    include_timestamp : bool, default=True
        Include timestamp in log output
    use_rich : bool, default=False
        Use Rich for console output
    backtrace : bool, default=True
        Enable backtrace for debugging
    diagnose : bool, default=True
        Enable diagnose mode with variable values (disable in production)

    Examples
    --------
    TOML configuration:

    ```toml
    [tool.ctxfs.logging]
    level = "DEBUG"
    format = "rich"
    ```

    Environment variable overrides:

    ```bash
    export CTXFS_LOG_LEVEL=DEBUG
    export CTXFS_LOG_FORMAT=json
    ```
    """

    level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"
    format: Literal["console", "json", "structured", "rich"] = "structured"
    output_file: str | None = None
    use_color: bool = True
    include_timestamp: bool = True
    use_rich: bool = False
    backtrace: bool = True
    diagnose: bool = True


def _validate_perms(field_name: str, perms: str | None) -> None:
    if perms is None:
        return
    try:
        PermissionSet.from_string(perms)
    except FileSystemError as e:
        raise ValidationError(field_name, "must be a 9-character permission string", perms) from e


@dataclass(frozen=True, slots=True)
class FileSystemConfig:
    """Top-level ctxfs configuration.

    Attributes
    ----------
    worker_pool : WorkerPoolConfig
        Background worker pool settings
    logging : LoggingConfig
        Logging settings
    default_file_perms : str | None
        Permissions for files created by ``open``/``create_file`` when the
        call does not pass any (None means ``rw-rw-rw-`` filtered by umask)
    default_dir_perms : str | None
        Permissions for directories created by ``mkdir`` when the call does
        not pass any (None means ``rwxrwxrwx`` filtered by umask)
    read_chunk_size : int
        Chunk size used by read streams
    """

    worker_pool: WorkerPoolConfig = field(default_factory=WorkerPoolConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    default_file_perms: str | None = None
    default_dir_perms: str | None = None
    read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE

    def __post_init__(self) -> None:
        _validate_perms("default_file_perms", self.default_file_perms)
        _validate_perms("default_dir_perms", self.default_dir_perms)
        if self.read_chunk_size < 1:
            raise ValidationError("read_chunk_size", "must be at least 1", self.read_chunk_size)


__all__ = [
    "DEFAULT_MAX_WORKERS",
    "DEFAULT_READ_CHUNK_SIZE",
    "DEFAULT_THREAD_NAME_PREFIX",
    "FileSystemConfig",
    "LoggingConfig",
    "WorkerPoolConfig",
]
