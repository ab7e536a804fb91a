"""Tests for the config loader.

Covers kind: Config YAML manifests, pyproject.toml [tool.ctxfs], discovery
order, environment variable substitution and overrides.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from ctxfs.kernel.config.loader import (
    ConfigLoader,
    _parse_bool_env,
    clear_config_cache,
    get_default_config,
    load_config,
)
from ctxfs.kernel.config.models import FileSystemConfig
from ctxfs.kernel.exceptions import ConfigurationError, ValidationError

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Isolate tests from CTXFS_* variables and from config files in the CWD."""
    for name in list(os.environ):
        if name.startswith("CTXFS_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


YAML_CONFIG = """\
kind: Config
metadata:
  name: test
spec:
  worker_pool:
    max_workers: 3
    thread_name_prefix: test-worker
  default_file_perms: rw-r-----
  default_dir_perms: rwxr-x---
  read_chunk_size: 1024
  logging:
    level: DEBUG
    format: json
"""

PYPROJECT_CONFIG = """\
[project]
name = "demo"

[tool.ctxfs]
default_dir_perms = "rwx------"

[tool.ctxfs.worker_pool]
max_workers = 5
"""


class TestParseBoolEnv:
    def test_truthy_values(self) -> None:
        for value in ["true", "True", "1", "yes", "on", "enabled"]:
            assert _parse_bool_env(value) is True

    def test_falsy_values(self) -> None:
        for value in ["false", "FALSE", "0", "no", "off", "disabled"]:
            assert _parse_bool_env(value) is False

    def test_invalid_value_raises_error(self) -> None:
        with pytest.raises(ValueError, match="Invalid boolean value"):
            _parse_bool_env("maybe")


class TestYamlConfig:
    def test_loads_manifest(self, tmp_path: Path) -> None:
        path = tmp_path / "custom.yaml"
        path.write_text(YAML_CONFIG)

        config = load_config(path)

        assert config.worker_pool.max_workers == 3
        assert config.worker_pool.thread_name_prefix == "test-worker"
        assert config.default_file_perms == "rw-r-----"
        assert config.default_dir_perms == "rwxr-x---"
        assert config.read_chunk_size == 1024
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "json"

    def test_rejects_other_kinds(self, tmp_path: Path) -> None:
        path = tmp_path / "pipeline.yaml"
        path.write_text("kind: Pipeline\nspec: {}\n")
        with pytest.raises(ConfigurationError, match="kind: Config"):
            load_config(path)

    def test_rejects_non_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="expected a mapping"):
            load_config(path)

    def test_empty_spec_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("kind: Config\n")
        assert load_config(path) == get_default_config()

    def test_invalid_values_are_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("kind: Config\nspec:\n  worker_pool:\n    max_workers: 0\n")
        with pytest.raises(ValidationError, match="max_workers"):
            load_config(path)

    def test_non_integer_workers(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("kind: Config\nspec:\n  worker_pool:\n    max_workers: many\n")
        with pytest.raises(ConfigurationError, match="expected an integer"):
            load_config(path)

    def test_unknown_logging_key(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("kind: Config\nspec:\n  logging:\n    colour: true\n")
        with pytest.raises(ConfigurationError, match="unknown keys"):
            load_config(path)


class TestTomlConfig:
    def test_loads_tool_section(self, tmp_path: Path) -> None:
        path = tmp_path / "pyproject.toml"
        path.write_text(PYPROJECT_CONFIG)

        config = load_config(path)

        assert config.worker_pool.max_workers == 5
        assert config.default_dir_perms == "rwx------"

    def test_pyproject_without_section_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "pyproject.toml"
        path.write_text('[project]\nname = "demo"\n')
        assert load_config(path) == FileSystemConfig()


class TestDiscovery:
    def test_defaults_when_nothing_found(self) -> None:
        assert load_config() == get_default_config()

    def test_explicit_missing_path_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_env_path(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "elsewhere.yaml"
        path.write_text(YAML_CONFIG)
        monkeypatch.setenv("CTXFS_CONFIG_PATH", str(path))
        assert load_config().worker_pool.max_workers == 3

    def test_yaml_in_cwd(self, tmp_path: Path) -> None:
        (tmp_path / "ctxfs.yaml").write_text(YAML_CONFIG)
        assert load_config().worker_pool.max_workers == 3

    def test_yaml_wins_over_pyproject(self, tmp_path: Path) -> None:
        (tmp_path / "ctxfs.yml").write_text(YAML_CONFIG)
        (tmp_path / "pyproject.toml").write_text(PYPROJECT_CONFIG)
        assert load_config().worker_pool.max_workers == 3

    def test_pyproject_in_parent(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "pyproject.toml").write_text(PYPROJECT_CONFIG)
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        assert load_config().worker_pool.max_workers == 5


class TestEnvironment:
    def test_substitution_with_default(self, tmp_path: Path) -> None:
        path = tmp_path / "ctxfs.yaml"
        path.write_text(
            "kind: Config\nspec:\n  worker_pool:\n    max_workers: ${CTXFS_POOL_SIZE:6}\n"
        )
        assert load_config(path).worker_pool.max_workers == 6

    def test_substitution_from_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CTXFS_TEST_PERMS", "rw-------")
        path = tmp_path / "ctxfs.yaml"
        path.write_text("kind: Config\nspec:\n  default_file_perms: ${CTXFS_TEST_PERMS}\n")
        assert load_config(path).default_file_perms == "rw-------"

    def test_missing_variable_keeps_placeholder(self) -> None:
        loader = ConfigLoader()
        assert loader._substitute_env_vars("${CTXFS_NOT_SET}") == "${CTXFS_NOT_SET}"

    def test_substitution_recurses(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CTXFS_TEST_VALUE", "x")
        loader = ConfigLoader()
        data = {"a": ["${CTXFS_TEST_VALUE}", 1], "b": {"c": "${CTXFS_TEST_VALUE}y"}}
        assert loader._substitute_env_vars(data) == {"a": ["x", 1], "b": {"c": "xy"}}

    def test_overrides(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "ctxfs.yaml"
        path.write_text(YAML_CONFIG)
        monkeypatch.setenv("CTXFS_MAX_WORKERS", "7")
        monkeypatch.setenv("CTXFS_LOG_LEVEL", "error")
        monkeypatch.setenv("CTXFS_LOG_FORMAT", "CONSOLE")
        monkeypatch.setenv("CTXFS_LOG_COLOR", "off")

        config = load_config(path)

        assert config.worker_pool.max_workers == 7
        assert config.logging.level == "ERROR"
        assert config.logging.format == "console"
        assert config.logging.use_color is False

    def test_invalid_bool_override_is_ignored(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "ctxfs.yaml"
        path.write_text(YAML_CONFIG)
        monkeypatch.setenv("CTXFS_LOG_RICH", "sometimes")
        assert load_config(path).logging.use_rich is False


class TestCache:
    def test_results_are_cached_until_cleared(self, tmp_path: Path) -> None:
        path = tmp_path / "ctxfs.yaml"
        path.write_text(YAML_CONFIG)
        first = load_config(path)

        path.write_text(YAML_CONFIG.replace("max_workers: 3", "max_workers: 4"))
        assert load_config(path) == first

        clear_config_cache()
        assert load_config(path).worker_pool.max_workers == 4

    def test_env_overrides_apply_to_cached_files(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Changing CTXFS_* after the first load takes effect without clearing the cache."""
        path = tmp_path / "ctxfs.yaml"
        path.write_text(YAML_CONFIG)
        assert load_config(path).worker_pool.max_workers == 3

        monkeypatch.setenv("CTXFS_MAX_WORKERS", "7")
        monkeypatch.setenv("CTXFS_LOG_LEVEL", "error")
        config = load_config(path)

        assert config.worker_pool.max_workers == 7
        assert config.logging.level == "ERROR"

    def test_defaults_honor_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CTXFS_MAX_WORKERS", "5")
        assert load_config().worker_pool.max_workers == 5
