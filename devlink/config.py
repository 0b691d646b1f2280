"""Configuration models and loading for devlink."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

DATA_DIR_ENV = "DEVLINK_HOME"
CONFIG_FILENAME = "config.yaml"


class GithubConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    owner: str | None = None
    organization: str | None = None
    team_names: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    work_folder_path: str | None = None
    gh_bin: str = "gh"
    page_size: int = 100


class AzureDevOpsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    organization: str | None = None
    project: str | None = None
    paths: list[str] = Field(default_factory=list)
    az_bin: str = "az"
    include_latest_run: bool = True


class CacheConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    remember_empty_results: bool = True


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    backend: str = "sqlite"
    sqlite_path: str | None = None


class DevlinkConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    github: GithubConfig = Field(default_factory=GithubConfig)
    azure_devops: AzureDevOpsConfig = Field(default_factory=AzureDevOpsConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def data_dir() -> Path:
    """Folder holding the cache database and the user config."""
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".devlink"


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text())
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


def load_effective_config(
    home: str | Path | None = None,
    system_defaults: dict[str, Any] | None = None,
    runtime_override: dict[str, Any] | None = None,
    config_path: str | Path | None = None,
) -> DevlinkConfig:
    """Load config with precedence runtime > user config.yaml > system."""
    base = Path(home) if home is not None else data_dir()
    user_config = _load_yaml(Path(config_path) if config_path is not None else base / CONFIG_FILENAME)

    merged: dict[str, Any] = {}
    if system_defaults:
        merged = _deep_merge(merged, system_defaults)
    if user_config:
        merged = _deep_merge(merged, user_config)
    if runtime_override:
        merged = _deep_merge(merged, runtime_override)

    config = DevlinkConfig.model_validate(merged)
    if not config.storage.sqlite_path:
        config.storage.sqlite_path = str(base / "devlink.db")
    return config
