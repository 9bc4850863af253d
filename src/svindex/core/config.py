"""Configuration system for svindex using Pydantic."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SOURCE_EXTENSIONS = [".sv", ".svh", ".v", ".vh", ".svi", ".svp"]


class CacheBackend(str, Enum):
    MEMORY = "memory"
    SQLITE = "sqlite"


class IndexConfig(BaseModel):
    """Pipeline and include-resolution settings shared by every index."""

    enable_threads: bool = False
    max_workers: int = 4
    auto_rebuild: bool = True
    include_paths: list[str] = Field(default_factory=list)
    global_defines: dict[str, str] = Field(default_factory=dict)
    source_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SOURCE_EXTENSIONS)
    )
    skip_dirs: list[str] = Field(
        default_factory=lambda: [".git", ".svn", ".svindex", "__pycache__", "node_modules"]
    )
    workspace_root: str | None = None  # substituted for ${workspace_loc}


class CacheConfig(BaseModel):
    """Where and how parsed results are persisted."""

    backend: CacheBackend = CacheBackend.MEMORY
    directory: str = ".svindex"
    file_name: str = "index_cache.db"

    def db_path(self, project_dir: Path) -> Path:
        return project_dir / self.directory / self.file_name


class SvIndexConfig(BaseModel):
    """Root configuration model."""

    index: IndexConfig = Field(default_factory=IndexConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)


class EnvSettings(BaseSettings):
    """Environment variable overrides."""

    model_config = SettingsConfigDict(
        env_prefix="SVINDEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    enable_threads: bool | None = None
    max_workers: int | None = None
    log_level: str = "INFO"


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dicts, override wins on conflicts."""
    result = {**base}
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load a YAML config file, return empty dict if not found."""
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _resolve_env_vars(value: Any) -> Any:
    """Recursively replace ${ENV_VAR} references with actual env values.

    If an env var is not set, the placeholder is preserved as-is, which
    keeps ``${workspace_loc}`` intact for the path resolver.
    """
    import os
    import re

    if isinstance(value, str):
        pattern = re.compile(r"\$\{(\w+)\}")
        return pattern.sub(
            lambda m: os.environ.get(m.group(1), m.group(0)),
            value,
        )
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    return value


def load_config(project_dir: Path | None = None) -> SvIndexConfig:
    """Load configuration with layered precedence.

    Order (later overrides earlier):
    1. Built-in defaults (Pydantic defaults)
    2. ~/.svindex/config.yaml (global user config)
    3. .svindex/config.yaml (project-level config)
    4. Environment variables (SVINDEX_*)
    """
    global_config_dir = Path.home() / ".svindex"
    project_config_dir = (project_dir or Path.cwd()) / ".svindex"

    merged: dict[str, Any] = {}

    for config_path in [
        global_config_dir / "config.yaml",
        project_config_dir / "config.yaml",
    ]:
        layer = load_yaml_config(config_path)
        merged = _deep_merge(merged, layer)

    config = SvIndexConfig(**_resolve_env_vars(merged))

    env = EnvSettings()
    overrides: dict[str, Any] = {}
    if env.enable_threads is not None:
        overrides["enable_threads"] = env.enable_threads
    if env.max_workers is not None:
        overrides["max_workers"] = env.max_workers
    if overrides:
        config = config.model_copy(
            update={"index": config.index.model_copy(update=overrides)}
        )

    return config
