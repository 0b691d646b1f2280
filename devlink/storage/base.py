"""Storage backend interfaces for devlink persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from devlink.models import EntityKind, OwnerScope, Pipeline, ProjectScope, PullRequest, RemoteRepository


class StorageUnavailable(RuntimeError):
    """The durable store is unreachable or corrupt. Never to be read as an empty cache."""


class StorageBackend(Protocol):
    def init_schema(self) -> None: ...

    def upsert_repositories(self, scope: OwnerScope, repositories: list[RemoteRepository]) -> int: ...

    def list_repositories(self, scope: OwnerScope) -> list[RemoteRepository]: ...

    def list_all_repositories(self) -> list[RemoteRepository]: ...

    def last_repository_fetch_time(self, scope: OwnerScope) -> datetime | None: ...

    def clear_repositories(self, scope: OwnerScope) -> int: ...

    def find_repositories_by_url(self, url: str) -> list[RemoteRepository]: ...

    def set_local_path(self, repository_id: int, local_path: str | None) -> int: ...

    def get_local_path(self, repository_id: int) -> str | None: ...

    def upsert_pull_requests(self, scope: OwnerScope, pull_requests: list[PullRequest]) -> int: ...

    def list_pull_requests(self, scope: OwnerScope) -> list[PullRequest]: ...

    def last_pull_request_fetch_time(self, scope: OwnerScope) -> datetime | None: ...

    def clear_pull_requests(self, scope: OwnerScope) -> int: ...

    def find_pull_requests_by_repository(self, full_name: str) -> list[PullRequest]: ...

    def upsert_pipelines(self, scope: ProjectScope, pipelines: list[Pipeline]) -> int: ...

    def list_pipelines(self, scope: ProjectScope) -> list[Pipeline]: ...

    def last_pipeline_fetch_time(self, scope: ProjectScope) -> datetime | None: ...

    def clear_pipelines(self, scope: ProjectScope) -> int: ...

    def find_pipelines_by_repository_url(self, url: str) -> list[Pipeline]: ...

    def mark_scope_fetched(self, kind: EntityKind, scope: OwnerScope | ProjectScope, item_count: int) -> None: ...

    def get_scope_marker(self, kind: EntityKind, scope: OwnerScope | ProjectScope) -> dict | None: ...

    def cache_summary(self) -> dict: ...
