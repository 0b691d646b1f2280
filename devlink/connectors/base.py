"""Capability interfaces for the remote systems the cache pulls from."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from devlink.models import FetchBatch, OwnerScope, Pipeline, ProjectScope, PullRequest, RemoteRepository


class TransientRemoteFailure(RuntimeError):
    """A fetch failed as a whole (network, auth, CLI missing). The cache never retries it."""


class CloneFailed(RuntimeError):
    pass


class RepositoryFetcher(Protocol):
    def list_repositories(self, scope: OwnerScope) -> FetchBatch[RemoteRepository]: ...

    def list_pull_requests(self, scope: OwnerScope) -> FetchBatch[PullRequest]: ...


class PipelineFetcher(Protocol):
    def list_pipelines(self, scope: ProjectScope) -> FetchBatch[Pipeline]: ...


class CloneExecutor(Protocol):
    def clone(self, url: str, destination: Path) -> Path: ...
