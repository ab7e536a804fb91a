"""Configuration loader for ctxfs.

Supports two config sources:

1. **kind: Config YAML**: loaded via explicit path, the ``CTXFS_CONFIG_PATH``
   env var, or ``ctxfs.yaml``/``ctxfs.yml`` in the working directory.
2. **pyproject.toml [tool.ctxfs]**: auto-discovery fallback (standard Python
   convention).

Example ``ctxfs.yaml``::

    kind: Config
    spec:
      worker_pool:
        max_workers: ${CTXFS_WORKERS:4}
      default_dir_perms: rwxr-x---
      logging:
        level: DEBUG
"""

from __future__ import annotations

import os
import re
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from ctxfs.kernel.config.models import (
    DEFAULT_READ_CHUNK_SIZE,
    FileSystemConfig,
    LoggingConfig,
    WorkerPoolConfig,
)
from ctxfs.kernel.exceptions import ConfigurationError
from ctxfs.kernel.logging import get_logger

logger = get_logger(__name__)

_TRUTHY_VALUES = frozenset({"true", "1", "yes", "on", "enabled"})
_FALSY_VALUES = frozenset({"false", "0", "no", "off", "disabled"})

_YAML_NAMES = ("ctxfs.yaml", "ctxfs.yml")

# CTXFS_LOG_* boolean overrides -> LoggingConfig field
_LOG_BOOL_ENV = {
    "CTXFS_LOG_COLOR": "use_color",
    "CTXFS_LOG_TIMESTAMP": "include_timestamp",
    "CTXFS_LOG_RICH": "use_rich",
    "CTXFS_LOG_BACKTRACE": "backtrace",
    "CTXFS_LOG_DIAGNOSE": "diagnose",
}


def _parse_bool_env(value: str) -> bool:
    """Parse boolean from environment variable value.

    Raises
    ------
    ValueError
        If value is not a recognized boolean string
    """
    normalized = value.lower().strip()
    if normalized in _TRUTHY_VALUES:
        return True
    if normalized in _FALSY_VALUES:
        return False
    expected = sorted(_TRUTHY_VALUES | _FALSY_VALUES)
    raise ValueError(f"Invalid boolean value: {value!r}. Expected one of: {expected}")


@lru_cache(maxsize=32)
def _read_config_cached(path_str: str) -> dict[str, Any]:
    """Cached read of a config file's raw ctxfs section.

    Environment substitution and ``CTXFS_*`` overrides are applied on every
    load, outside the cache.
    """
    return ConfigLoader()._read_config_data(Path(path_str))


class ConfigLoader:
    """Loads and processes ctxfs configuration files."""

    ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")

    def load_config_file(self, path: str | Path | None = None) -> FileSystemConfig:
        """Load configuration from YAML or pyproject.toml.

        Parameters
        ----------
        path : str | Path | None
            Path to config file. If None, searches using discovery order.

        Raises
        ------
        FileNotFoundError
            If no configuration file is found
        """
        config_path = self._find_config_file(path)
        data = _read_config_cached(str(config_path.absolute()))
        return self._parse_config(self._substitute_env_vars(data))

    def _read_config_data(self, config_path: Path) -> dict[str, Any]:
        logger.info("Loading configuration from {path}", path=config_path)

        if config_path.suffix in (".yaml", ".yml"):
            return self._load_yaml_config(config_path)
        return self._load_toml_config(config_path)

    def _load_yaml_config(self, config_path: Path) -> dict[str, Any]:
        """Read the ``spec`` of a ``kind: Config`` YAML file.

        Raises
        ------
        ConfigurationError
            If the YAML file is not a valid kind: Config manifest
        """
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ConfigurationError(
                config_path.name, f"expected a mapping, got {type(data).__name__}"
            )

        kind = data.get("kind")
        if kind != "Config":
            raise ConfigurationError(
                config_path.name, f"must use 'kind: Config' manifest format, got 'kind: {kind}'"
            )

        spec = data.get("spec") or {}
        if not isinstance(spec, dict):
            raise ConfigurationError(config_path.name, "'spec' must be a mapping")

        return spec

    def _load_toml_config(self, config_path: Path) -> dict[str, Any]:
        """Read [tool.ctxfs] from pyproject.toml, or a whole flat TOML file."""
        with config_path.open("rb") as f:
            data = tomllib.load(f)

        if "tool" in data and "ctxfs" in data.get("tool", {}):
            ctxfs_data = data["tool"]["ctxfs"]
        elif config_path.name == "pyproject.toml":
            logger.warning("No [tool.ctxfs] section found in pyproject.toml, using defaults")
            ctxfs_data = {}
        else:
            ctxfs_data = data

        return ctxfs_data

    def _find_config_file(self, path: str | Path | None) -> Path:
        """Find configuration file.

        Discovery order:
        1. Explicit path argument
        2. ``CTXFS_CONFIG_PATH`` env var
        3. ``ctxfs.yaml`` / ``ctxfs.yml`` in CWD
        4. ``pyproject.toml`` with ``[tool.ctxfs]`` in CWD or a parent directory
        """
        if path:
            config_path = Path(path)
            if not config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
            return config_path

        if env_path := os.getenv("CTXFS_CONFIG_PATH"):
            config_path = Path(env_path)
            if config_path.exists():
                logger.debug("Using config from CTXFS_CONFIG_PATH: {}", config_path)
                return config_path
            logger.warning("CTXFS_CONFIG_PATH set but file not found: {}", config_path)

        for name in _YAML_NAMES:
            if Path(name).exists():
                return Path(name)

        current = Path.cwd()
        while True:
            pyproject = current / "pyproject.toml"
            if pyproject.exists():
                with pyproject.open("rb") as f:
                    data = tomllib.load(f)
                if "ctxfs" in data.get("tool", {}):
                    return pyproject
            if current == current.parent:
                break
            current = current.parent

        raise FileNotFoundError(
            "No configuration file found. Provide a kind: Config YAML path, "
            "set CTXFS_CONFIG_PATH, or add [tool.ctxfs] to pyproject.toml"
        )

    def _substitute_env_vars(self, data: Any) -> Any:
        """Recursively substitute ``${VAR}`` and ``${VAR:default}`` placeholders."""
        if isinstance(data, str):

            def replacer(match: re.Match[str]) -> str:
                var_name, default = match.group(1), match.group(2)
                value = os.environ.get(var_name, default)
                if value is None:
                    logger.debug(
                        "Environment variable ${{{var_name}}} not found, keeping placeholder",
                        var_name=var_name,
                    )
                    return match.group(0)
                return value

            return self.ENV_VAR_PATTERN.sub(replacer, data)

        if isinstance(data, dict):
            return {key: self._substitute_env_vars(value) for key, value in data.items()}

        if isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]

        return data

    def _parse_config(self, data: dict[str, Any]) -> FileSystemConfig:
        """Parse raw (format-agnostic) configuration data into FileSystemConfig."""
        return FileSystemConfig(
            worker_pool=self._parse_worker_pool_config(data.get("worker_pool") or {}),
            logging=self._parse_logging_config(data.get("logging") or {}),
            default_file_perms=data.get("default_file_perms"),
            default_dir_perms=data.get("default_dir_perms"),
            read_chunk_size=_as_int(
                "read_chunk_size", data.get("read_chunk_size", DEFAULT_READ_CHUNK_SIZE)
            ),
        )

    def _parse_worker_pool_config(self, pool_data: dict[str, Any]) -> WorkerPoolConfig:
        """Parse worker pool configuration; ``CTXFS_MAX_WORKERS`` takes precedence."""
        defaults = WorkerPoolConfig()
        max_workers = pool_data.get("max_workers", defaults.max_workers)
        if env_workers := os.getenv("CTXFS_MAX_WORKERS"):
            max_workers = env_workers
            logger.debug("Overriding max_workers from env: {}", max_workers)

        return WorkerPoolConfig(
            max_workers=_as_int("worker_pool.max_workers", max_workers),
            thread_name_prefix=pool_data.get("thread_name_prefix", defaults.thread_name_prefix),
        )

    def _parse_logging_config(self, logging_data: dict[str, Any]) -> LoggingConfig:
        """Parse logging configuration with environment variable overrides.

        Environment variables take precedence over config file values:
        - CTXFS_LOG_LEVEL, CTXFS_LOG_FORMAT, CTXFS_LOG_FILE
        - CTXFS_LOG_COLOR, CTXFS_LOG_TIMESTAMP, CTXFS_LOG_RICH,
          CTXFS_LOG_BACKTRACE, CTXFS_LOG_DIAGNOSE (true/false)
        """
        values = {**_dataclass_defaults(LoggingConfig()), **logging_data}

        if env_level := os.getenv("CTXFS_LOG_LEVEL"):
            values["level"] = env_level.upper()
        if env_format := os.getenv("CTXFS_LOG_FORMAT"):
            values["format"] = env_format.lower()
        if env_file := os.getenv("CTXFS_LOG_FILE"):
            values["output_file"] = env_file

        for env_name, field_name in _LOG_BOOL_ENV.items():
            if env_value := os.getenv(env_name):
                try:
                    values[field_name] = _parse_bool_env(env_value)
                except ValueError as e:
                    logger.warning("Invalid {} value: {}", env_name, e)

        unknown = set(values) - set(_dataclass_defaults(LoggingConfig()))
        if unknown:
            raise ConfigurationError("logging", f"unknown keys: {sorted(unknown)}")
        return LoggingConfig(**values)


def _dataclass_defaults(instance: LoggingConfig) -> dict[str, Any]:
    return {name: getattr(instance, name) for name in instance.__slots__}


def _as_int(field: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(field, f"expected an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(field, f"expected an integer, got {value!r}") from None


def load_config(path: str | Path | None = None) -> FileSystemConfig:
    """Load configuration from file, or return defaults if none is found."""
    try:
        return ConfigLoader().load_config_file(path)
    except FileNotFoundError:
        if path:
            raise
        logger.info("No configuration file found, using defaults")
        return get_default_config()


def clear_config_cache() -> None:
    """Clear the configuration cache (after editing config files, or in tests)."""
    _read_config_cached.cache_clear()


def get_default_config() -> FileSystemConfig:
    """Return the default configuration, with ``CTXFS_*`` environment overrides applied."""
    return ConfigLoader()._parse_config({})


__all__ = [
    "ConfigLoader",
    "clear_config_cache",
    "get_default_config",
    "load_config",
]
