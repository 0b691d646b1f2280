"""Shared helpers for CLI command modules."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from devlink.cache import CacheResult, PipelineCache, PullRequestCache, RepositoryCache
from devlink.config import DevlinkConfig, load_effective_config
from devlink.connectors.base import PipelineFetcher, RepositoryFetcher
from devlink.models import OwnerScope, ProjectScope
from devlink.services.command_runtime import CommandRuntime
from devlink.storage.base import StorageBackend

logger = logging.getLogger(__name__)

__all__ = [
    "CommandRuntime",
    "add_common_config_flags",
    "add_github_rate_limit_flags",
    "add_owner_flag",
    "add_project_flags",
    "build_pipeline_cache",
    "build_pipeline_fetcher",
    "build_pull_request_cache",
    "build_repository_cache",
    "build_repository_fetcher",
    "build_storage",
    "emit",
    "load_config",
    "load_yaml_dict",
    "report_result",
    "resolve_owner_scope",
    "resolve_project_scope",
]


def load_yaml_dict(path: str | None) -> dict | None:
    if not path:
        return None
    data = yaml.safe_load(Path(path).read_text())
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError(f"YAML at {path} must decode to a mapping")
    return data


def load_config(args: argparse.Namespace) -> DevlinkConfig:
    return load_effective_config(
        home=getattr(args, "home", None),
        system_defaults=load_yaml_dict(getattr(args, "system_config", None)),
        runtime_override=load_yaml_dict(getattr(args, "runtime_override", None)),
        config_path=getattr(args, "config", None),
    )


def add_common_config_flags(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument("--home", help="Data folder (defaults to $DEVLINK_HOME or ~/.devlink)")
    cmd.add_argument("--config", help="User config YAML (defaults to <data folder>/config.yaml)")
    cmd.add_argument("--system-config", help="Optional system defaults YAML")
    cmd.add_argument("--runtime-override", help="Optional runtime override YAML")


def add_owner_flag(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument("--owner", help="GitHub owner scope (defaults to github.owner or the gh login)")


def add_project_flags(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument("--organization", help="Azure DevOps organization (defaults to azure_devops.organization)")
    cmd.add_argument("--project", help="Azure DevOps project (defaults to azure_devops.project)")


def add_github_rate_limit_flags(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument(
        "--gh-rate-limit-retries",
        type=int,
        default=2,
        help="Retries per GitHub API call when rate-limited",
    )
    cmd.add_argument(
        "--gh-secondary-backoff-seconds",
        type=float,
        default=5.0,
        help="Base backoff for secondary limits (exponential per retry)",
    )
    cmd.add_argument(
        "--gh-rate-limit-max-sleep-seconds",
        type=float,
        default=90.0,
        help="Maximum automatic sleep before surfacing a rate-limit failure",
    )


def build_storage(config: DevlinkConfig, runtime: CommandRuntime) -> StorageBackend:
    if config.storage.backend != "sqlite":
        raise ValueError(f"Unsupported storage backend: {config.storage.backend}")
    return runtime.storage_cls(config.storage.sqlite_path or "devlink.db")


def build_repository_fetcher(args: argparse.Namespace, config: DevlinkConfig, runtime: CommandRuntime) -> RepositoryFetcher:
    github = config.github
    return runtime.repository_fetcher_cls(
        github.gh_bin,
        organization=github.organization,
        team_names=github.team_names,
        topics=github.topics,
        page_size=github.page_size,
        rate_limit_retries=getattr(args, "gh_rate_limit_retries", 2),
        secondary_backoff_base_seconds=getattr(args, "gh_secondary_backoff_seconds", 5.0),
        rate_limit_max_sleep_seconds=getattr(args, "gh_rate_limit_max_sleep_seconds", 90.0),
    )


def build_pipeline_fetcher(config: DevlinkConfig, runtime: CommandRuntime) -> PipelineFetcher:
    azure = config.azure_devops
    return runtime.pipeline_fetcher_cls(
        azure.az_bin,
        paths=azure.paths,
        include_latest_run=azure.include_latest_run,
    )


def build_repository_cache(
    args: argparse.Namespace,
    config: DevlinkConfig,
    storage: StorageBackend,
    runtime: CommandRuntime,
) -> RepositoryCache:
    return RepositoryCache(
        storage,
        build_repository_fetcher(args, config, runtime),
        remember_empty_results=config.cache.remember_empty_results,
    )


def build_pull_request_cache(
    args: argparse.Namespace,
    config: DevlinkConfig,
    storage: StorageBackend,
    runtime: CommandRuntime,
) -> PullRequestCache:
    return PullRequestCache(
        storage,
        build_repository_fetcher(args, config, runtime),
        remember_empty_results=config.cache.remember_empty_results,
    )


def build_pipeline_cache(config: DevlinkConfig, storage: StorageBackend, runtime: CommandRuntime) -> PipelineCache:
    return PipelineCache(
        storage,
        build_pipeline_fetcher(config, runtime),
        remember_empty_results=config.cache.remember_empty_results,
    )


def resolve_owner_scope(args: argparse.Namespace, config: DevlinkConfig, runtime: CommandRuntime) -> OwnerScope:
    owner = getattr(args, "owner", None) or config.github.owner
    if not owner:
        fetcher = build_repository_fetcher(args, config, runtime)
        current_user = getattr(fetcher, "current_user", None)
        if current_user is None:
            raise ValueError("No GitHub owner configured; pass --owner or set github.owner")
        owner = current_user()
        logger.debug("Using gh login %s as owner scope", owner)
    return OwnerScope(owner=owner)


def resolve_project_scope(args: argparse.Namespace, config: DevlinkConfig) -> ProjectScope:
    organization = getattr(args, "organization", None) or config.azure_devops.organization
    project = getattr(args, "project", None) or config.azure_devops.project
    if not organization or not project:
        raise ValueError("Azure DevOps organization and project are required; pass --organization/--project or configure azure_devops")
    return ProjectScope(organization=organization, project=project)


def _jsonable(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


def emit(payload: Any, *, as_json: bool, lines: list[str] | None = None) -> None:
    if as_json:
        if isinstance(payload, list):
            payload = [_jsonable(item) for item in payload]
        else:
            payload = _jsonable(payload)
        print(json.dumps(payload, indent=2, sort_keys=True, default=str))
        return
    for line in lines or []:
        print(line)


def report_result(result: CacheResult, *, label: str, scope: object) -> int:
    """Log how a cache read was served and map it to an exit code."""
    if result.failed:
        for failure in result.failures:
            logger.error("%s fetch for %s: %s failed: %s", label, scope, failure.target, failure.reason)
        logger.error("Could not load %s for %s: %s", label, scope, result.error)
        return 2
    source = "cache" if result.from_cache else "remote"
    logger.info(
        "%s %s for %s from %s (fetched at %s, %s partial failures)",
        len(result.items),
        label,
        scope,
        source,
        result.fetched_at.isoformat() if result.fetched_at else "never",
        len(result.failures),
    )
    if result.empty:
        logger.info("No %s found for %s", label, scope)
    return 0
