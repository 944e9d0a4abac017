"""
Configuration loader for YAML files.

Loads and validates configuration from YAML files into Pydantic models.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import AppConfig, SourceConfig


class ConfigError(Exception):
    """Configuration loading or validation error."""

    def __init__(self, message: str, path: Path | None = None, details: str | None = None):
        self.path = path
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        if self.details:
            return f"{message}\n{self.details}"
        return message


# Upper-case names only, so templates such as "Page${page}" pass through
ENV_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dictionary.

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}", path=path)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if data is not None else {}
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML in {path}",
            path=path,
            details=str(e),
        ) from e
    except OSError as e:
        raise ConfigError(
            f"Cannot read {path}",
            path=path,
            details=str(e),
        ) from e


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in string values."""
    if isinstance(data, str):
        def replacer(match: re.Match[str]) -> str:
            return os.environ.get(match.group(1), match.group(2) or "")

        return ENV_PATTERN.sub(replacer, data)
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    return data


def load_app_config(
    path: Path | str | None = None,
    expand_env: bool = True,
) -> AppConfig:
    """Load application configuration from YAML file.

    A missing file yields the defaults.

    Raises:
        ConfigError: If configuration is invalid
    """
    path = Path("configs/app.yaml") if path is None else Path(path)

    if not path.exists():
        return AppConfig()

    data = _load_yaml_file(path)

    if expand_env:
        data = _expand_env_vars(data)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid app configuration in {path}",
            path=path,
            details=str(e),
        ) from e


def load_source_config(
    path: Path | str,
    expand_env: bool = True,
) -> SourceConfig:
    """Load a source configuration from YAML file.

    Raises:
        ConfigError: If configuration is invalid
    """
    path = Path(path)
    data = _load_yaml_file(path)

    if expand_env:
        data = _expand_env_vars(data)

    try:
        return SourceConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid source configuration in {path}",
            path=path,
            details=str(e),
        ) from e


def load_all_source_configs(
    sources_dir: Path | str | None = None,
    expand_env: bool = True,
) -> dict[str, SourceConfig]:
    """Load every source configuration in a directory, keyed by name.

    Files whose name starts with an underscore are skipped.
    """
    sources_dir = Path("configs/sources") if sources_dir is None else Path(sources_dir)

    if not sources_dir.exists():
        return {}

    configs: dict[str, SourceConfig] = {}
    paths = sorted([*sources_dir.glob("*.yaml"), *sources_dir.glob("*.yml")])

    for path in paths:
        if path.name.startswith("_"):
            continue
        config = load_source_config(path, expand_env=expand_env)
        if config.name in configs:
            raise ConfigError(f"Duplicate source name '{config.name}'", path=path)
        configs[config.name] = config

    return configs


def find_source_config(
    name: str,
    sources_dir: Path | str | None = None,
) -> SourceConfig:
    """Load the configuration for one source by name.

    Raises:
        ConfigError: If no file defines that source
    """
    sources_dir = Path("configs/sources") if sources_dir is None else Path(sources_dir)

    for ext in (".yaml", ".yml"):
        path = sources_dir / f"{name}{ext}"
        if path.exists():
            return load_source_config(path)

    configs = load_all_source_configs(sources_dir)
    if name in configs:
        return configs[name]

    available = ", ".join(sorted(configs)) or "none"
    raise ConfigError(
        f"Source config not found: {name}",
        path=sources_dir,
        details=f"Available: {available}",
    )
