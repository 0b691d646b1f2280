"""Factory interfaces used by command/runtime orchestration."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from devlink.connectors.base import CloneExecutor, PipelineFetcher, RepositoryFetcher
from devlink.git_probe import GitProbe
from devlink.storage.base import StorageBackend


class StorageFactory(Protocol):
    def __call__(self, db_path: str | Path) -> StorageBackend: ...


class RepositoryFetcherFactory(Protocol):
    def __call__(
        self,
        gh_bin: str = "gh",
        *,
        organization: str | None = None,
        team_names: list[str] | None = None,
        topics: list[str] | None = None,
        page_size: int = 100,
        rate_limit_retries: int = 2,
        secondary_backoff_base_seconds: float = 5.0,
        rate_limit_max_sleep_seconds: float = 90.0,
    ) -> RepositoryFetcher: ...


class PipelineFetcherFactory(Protocol):
    def __call__(
        self,
        az_bin: str = "az",
        *,
        paths: list[str] | None = None,
        include_latest_run: bool = True,
    ) -> PipelineFetcher: ...


class GitTools(GitProbe, CloneExecutor, Protocol):
    pass


class GitToolsFactory(Protocol):
    def __call__(self, git_bin: str = "git") -> GitTools: ...
