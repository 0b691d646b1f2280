"""Fetch-or-serve-cached orchestration over the scoped entity store.

Each entity kind gets one orchestrator. A scope is *warm* when the store holds
rows for it (or, with ``remember_empty_results``, a marker recording that the
last fetch legitimately returned nothing) and *cold* otherwise. Warm scopes are
served from the store without touching the network; cold scopes are fetched,
merged into the store and stamped. ``refresh`` only clears, so the next read
pays for the fetch.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Hashable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

from devlink.connectors.base import PipelineFetcher, RepositoryFetcher, TransientRemoteFailure
from devlink.models import (
    CacheState,
    EntityKind,
    FetchBatch,
    FetchFailure,
    OwnerScope,
    Pipeline,
    PipelineView,
    ProjectScope,
    PullRequest,
    PullRequestView,
    RemoteRepository,
    RepositoryView,
)
from devlink.storage.base import StorageBackend

logger = logging.getLogger(__name__)

ScopeT = TypeVar("ScopeT", OwnerScope, ProjectScope)
EntityT = TypeVar("EntityT")
ViewT = TypeVar("ViewT")


@dataclass
class CacheResult(Generic[ViewT]):
    items: list[ViewT] = field(default_factory=list)
    from_cache: bool = False
    fetched_at: datetime | None = None
    failures: list[FetchFailure] = field(default_factory=list)
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def empty(self) -> bool:
        """Nothing to show and nothing went wrong."""
        return not self.items and not self.failed


class CacheOrchestrator(Generic[ScopeT, EntityT, ViewT]):
    kind: EntityKind

    def __init__(self, storage: StorageBackend, *, remember_empty_results: bool = True) -> None:
        self.storage = storage
        self.remember_empty_results = remember_empty_results
        self._locks: dict[Hashable, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # Per-kind hooks

    def _fetch(self, scope: ScopeT) -> FetchBatch[EntityT]:
        raise NotImplementedError

    def _upsert(self, scope: ScopeT, entities: list[EntityT]) -> int:
        raise NotImplementedError

    def _list(self, scope: ScopeT) -> list[EntityT]:
        raise NotImplementedError

    def _clear(self, scope: ScopeT) -> int:
        raise NotImplementedError

    def _last_row_fetch_time(self, scope: ScopeT) -> datetime | None:
        raise NotImplementedError

    def convert_to_view_model(self, entity: EntityT) -> ViewT:
        raise NotImplementedError

    # Public API

    def state(self, scope: ScopeT) -> CacheState:
        if self._list(scope):
            return CacheState.WARM
        if self.remember_empty_results and self.storage.get_scope_marker(self.kind, scope) is not None:
            return CacheState.WARM
        return CacheState.COLD

    def last_fetch_time(self, scope: ScopeT) -> datetime | None:
        last = self._last_row_fetch_time(scope)
        if last is not None:
            return last
        marker = self.storage.get_scope_marker(self.kind, scope)
        return marker["fetched_at"] if marker else None

    def get_or_fetch(self, scope: ScopeT) -> CacheResult[ViewT]:
        with self._lock_for(scope):
            cached = self._list(scope)
            if cached or self._remembered_empty(scope):
                logger.info("Serving %s %s rows for %s from cache", len(cached), self.kind.value, scope)
                return CacheResult(
                    items=[self.convert_to_view_model(entity) for entity in cached],
                    from_cache=True,
                    fetched_at=self.last_fetch_time(scope),
                )

            logger.info("No cached %s rows for %s; fetching", self.kind.value, scope)
            try:
                batch = self._fetch(scope)
            except TransientRemoteFailure as exc:
                logger.error("Fetching %s for %s failed: %s", self.kind.value, scope, exc)
                return CacheResult(error=str(exc))

            for failure in batch.failures:
                logger.warning("Partial %s fetch for %s: %s failed: %s", self.kind.value, scope, failure.target, failure.reason)

            if not batch.items and batch.failures:
                # Nothing came back and something broke; do not remember this as "empty".
                return CacheResult(
                    failures=list(batch.failures),
                    error=f"{len(batch.failures)} sub-fetches failed and no {self.kind.value} rows were returned",
                )

            self._upsert(scope, batch.items)
            self.storage.mark_scope_fetched(self.kind, scope, len(batch.items))
            merged = self._list(scope)
            logger.info("Cached %s %s rows for %s", len(merged), self.kind.value, scope)
            return CacheResult(
                items=[self.convert_to_view_model(entity) for entity in merged],
                from_cache=False,
                fetched_at=self.last_fetch_time(scope),
                failures=list(batch.failures),
            )

    def refresh(self, scope: ScopeT) -> int:
        with self._lock_for(scope):
            cleared = self._clear(scope)
        logger.info("Refresh requested for %s %s; cleared %s rows", self.kind.value, scope, cleared)
        return cleared

    def _remembered_empty(self, scope: ScopeT) -> bool:
        if not self.remember_empty_results:
            return False
        return self.storage.get_scope_marker(self.kind, scope) is not None

    def _lock_for(self, scope: ScopeT) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(scope, threading.Lock())


class RepositoryCache(CacheOrchestrator[OwnerScope, RemoteRepository, RepositoryView]):
    kind = EntityKind.REPOSITORY

    def __init__(self, storage: StorageBackend, fetcher: RepositoryFetcher, **kwargs: Any) -> None:
        super().__init__(storage, **kwargs)
        self.fetcher = fetcher

    def _fetch(self, scope: OwnerScope) -> FetchBatch[RemoteRepository]:
        return self.fetcher.list_repositories(scope)

    def _upsert(self, scope: OwnerScope, entities: list[RemoteRepository]) -> int:
        return self.storage.upsert_repositories(scope, entities)

    def _list(self, scope: OwnerScope) -> list[RemoteRepository]:
        return self.storage.list_repositories(scope)

    def _clear(self, scope: OwnerScope) -> int:
        return self.storage.clear_repositories(scope)

    def _last_row_fetch_time(self, scope: OwnerScope) -> datetime | None:
        return self.storage.last_repository_fetch_time(scope)

    def convert_to_view_model(self, entity: RemoteRepository) -> RepositoryView:
        parts = [entity.description or "No description"]
        if entity.language:
            parts.append(entity.language)
        parts.append(f"{entity.stargazers_count} stars")
        if entity.private:
            parts.append("private")
        if entity.local_path:
            parts.append(f"Local: {entity.local_path}")
        return RepositoryView(
            id=entity.id,
            title=entity.full_name,
            subtitle=" | ".join(parts),
            html_url=entity.html_url,
            full_name=entity.full_name,
            local_path=entity.local_path,
        )


class PullRequestCache(CacheOrchestrator[OwnerScope, PullRequest, PullRequestView]):
    kind = EntityKind.PULL_REQUEST

    def __init__(self, storage: StorageBackend, fetcher: RepositoryFetcher, **kwargs: Any) -> None:
        super().__init__(storage, **kwargs)
        self.fetcher = fetcher

    def _fetch(self, scope: OwnerScope) -> FetchBatch[PullRequest]:
        return self.fetcher.list_pull_requests(scope)

    def _upsert(self, scope: OwnerScope, entities: list[PullRequest]) -> int:
        return self.storage.upsert_pull_requests(scope, entities)

    def _list(self, scope: OwnerScope) -> list[PullRequest]:
        return self.storage.list_pull_requests(scope)

    def _clear(self, scope: OwnerScope) -> int:
        return self.storage.clear_pull_requests(scope)

    def _last_row_fetch_time(self, scope: OwnerScope) -> datetime | None:
        return self.storage.last_pull_request_fetch_time(scope)

    def convert_to_view_model(self, entity: PullRequest) -> PullRequestView:
        title = f"#{entity.number} {entity.title}"
        if entity.is_draft:
            title = f"[Draft] {title}"
        subtitle = f"{entity.repository_full_name} | by {entity.author} | updated {entity.updated_at:%Y-%m-%d}"
        return PullRequestView(
            id=entity.id,
            title=title,
            subtitle=subtitle,
            html_url=entity.html_url,
            repository_full_name=entity.repository_full_name,
            is_draft=entity.is_draft,
        )


class PipelineCache(CacheOrchestrator[ProjectScope, Pipeline, PipelineView]):
    kind = EntityKind.PIPELINE

    def __init__(self, storage: StorageBackend, fetcher: PipelineFetcher, **kwargs: Any) -> None:
        super().__init__(storage, **kwargs)
        self.fetcher = fetcher

    def _fetch(self, scope: ProjectScope) -> FetchBatch[Pipeline]:
        return self.fetcher.list_pipelines(scope)

    def _upsert(self, scope: ProjectScope, entities: list[Pipeline]) -> int:
        return self.storage.upsert_pipelines(scope, entities)

    def _list(self, scope: ProjectScope) -> list[Pipeline]:
        return self.storage.list_pipelines(scope)

    def _clear(self, scope: ProjectScope) -> int:
        return self.storage.clear_pipelines(scope)

    def _last_row_fetch_time(self, scope: ProjectScope) -> datetime | None:
        return self.storage.last_pipeline_fetch_time(scope)

    def convert_to_view_model(self, entity: Pipeline) -> PipelineView:
        return PipelineView(
            id=entity.id,
            name=entity.name,
            subtitle=pipeline_subtitle(entity),
            path=entity.path,
            repository_url=entity.repository_url,
            last_build_id=entity.last_build_id,
        )


def pipeline_subtitle(pipeline: Pipeline) -> str:
    """``<result or status> | Build #<number>`` when a run is known, ``ID: <id>`` otherwise."""
    if pipeline.last_build_number:
        status = pipeline.last_build_status or "Unknown"
        if status.lower() == "completed":
            status = pipeline.last_build_result or "N/A"
        return f"{status} | Build #{pipeline.last_build_number}"
    return f"ID: {pipeline.id}"
