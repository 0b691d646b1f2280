"""Typed command runtime dependency container."""

from __future__ import annotations

from dataclasses import dataclass

from devlink.services.interfaces import (
    GitToolsFactory,
    PipelineFetcherFactory,
    RepositoryFetcherFactory,
    StorageFactory,
)


@dataclass(frozen=True)
class CommandRuntime:
    storage_cls: StorageFactory
    repository_fetcher_cls: RepositoryFetcherFactory
    pipeline_fetcher_cls: PipelineFetcherFactory
    git_cls: GitToolsFactory
