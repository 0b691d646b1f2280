import threading
import time
from pathlib import Path

import pytest

from devlink.cache import PipelineCache, PullRequestCache, RepositoryCache, pipeline_subtitle
from devlink.connectors.base import TransientRemoteFailure
from devlink.models import (
    CacheState,
    FetchBatch,
    OwnerScope,
    Pipeline,
    ProjectScope,
    PullRequest,
    RemoteRepository,
)
from devlink.storage import SQLiteStorage, StorageUnavailable


class FakeRepositoryFetcher:
    def __init__(self, repositories: list[RemoteRepository] | None = None) -> None:
        self.repositories = list(repositories or [])
        self.pulls: list[PullRequest] = []
        self.failures: list[tuple[str, str]] = []
        self.calls = 0
        self.error: Exception | None = None

    def list_repositories(self, scope: OwnerScope) -> FetchBatch[RemoteRepository]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        batch = FetchBatch[RemoteRepository](items=list(self.repositories))
        for target, reason in self.failures:
            batch.add_failure(target, reason)
        return batch

    def list_pull_requests(self, scope: OwnerScope) -> FetchBatch[PullRequest]:
        self.calls += 1
        return FetchBatch[PullRequest](items=list(self.pulls))


class FakePipelineFetcher:
    def __init__(self, pipelines: list[Pipeline]) -> None:
        self.pipelines = pipelines
        self.calls = 0

    def list_pipelines(self, scope: ProjectScope) -> FetchBatch[Pipeline]:
        self.calls += 1
        return FetchBatch[Pipeline](items=list(self.pipelines))


def _repo(repo_id: int, full_name: str) -> RemoteRepository:
    return RemoteRepository(
        id=repo_id,
        name=full_name.split("/")[1],
        full_name=full_name,
        html_url=f"https://github.com/{full_name}",
        language="Python",
        stargazers_count=3,
    )


@pytest.fixture
def storage(tmp_path: Path) -> SQLiteStorage:
    return SQLiteStorage(tmp_path / "devlink.db")


def test_cold_scope_fetches_then_warm_scope_serves_cache(storage: SQLiteStorage) -> None:
    fetcher = FakeRepositoryFetcher([_repo(2, "acme/web"), _repo(1, "acme/api")])
    cache = RepositoryCache(storage, fetcher)
    scope = OwnerScope(owner="alice")

    assert cache.state(scope) is CacheState.COLD
    first = cache.get_or_fetch(scope)
    second = cache.get_or_fetch(scope)

    assert fetcher.calls == 1
    assert not first.from_cache
    assert second.from_cache
    assert [view.title for view in second.items] == ["acme/api", "acme/web"]
    assert second.fetched_at is not None
    assert cache.state(scope) is CacheState.WARM
    assert cache.last_fetch_time(scope) == second.fetched_at


def test_refresh_clears_and_next_read_refetches(storage: SQLiteStorage) -> None:
    fetcher = FakeRepositoryFetcher([_repo(1, "acme/api")])
    cache = RepositoryCache(storage, fetcher)
    scope = OwnerScope(owner="alice")

    cache.get_or_fetch(scope)
    assert cache.refresh(scope) == 1
    assert fetcher.calls == 1
    assert cache.state(scope) is CacheState.COLD

    fetcher.repositories.append(_repo(3, "acme/docs"))
    result = cache.get_or_fetch(scope)
    assert fetcher.calls == 2
    assert not result.from_cache
    assert len(result.items) == 2


def test_empty_result_is_remembered_by_default(storage: SQLiteStorage) -> None:
    fetcher = FakeRepositoryFetcher([])
    cache = RepositoryCache(storage, fetcher)
    scope = OwnerScope(owner="nobody")

    first = cache.get_or_fetch(scope)
    second = cache.get_or_fetch(scope)

    assert first.empty and second.empty
    assert second.from_cache
    assert fetcher.calls == 1
    assert cache.state(scope) is CacheState.WARM
    assert cache.last_fetch_time(scope) is not None


def test_empty_result_refetches_when_not_remembered(storage: SQLiteStorage) -> None:
    fetcher = FakeRepositoryFetcher([])
    cache = RepositoryCache(storage, fetcher, remember_empty_results=False)
    scope = OwnerScope(owner="nobody")

    cache.get_or_fetch(scope)
    cache.get_or_fetch(scope)

    assert fetcher.calls == 2
    assert cache.state(scope) is CacheState.COLD


def test_whole_fetch_failure_leaves_cache_untouched(storage: SQLiteStorage) -> None:
    fetcher = FakeRepositoryFetcher([_repo(1, "acme/api")])
    fetcher.error = TransientRemoteFailure("gh api failed: network down")
    cache = RepositoryCache(storage, fetcher)
    scope = OwnerScope(owner="alice")

    result = cache.get_or_fetch(scope)

    assert result.failed
    assert not result.empty
    assert "network down" in (result.error or "")
    assert storage.list_repositories(scope) == []
    assert storage.get_scope_marker(cache.kind, scope) is None


def test_all_sub_fetches_failing_is_not_an_empty_result(storage: SQLiteStorage) -> None:
    fetcher = FakeRepositoryFetcher([])
    fetcher.failures = [("orgs", "HTTP 502"), ("teams", "HTTP 502")]
    cache = RepositoryCache(storage, fetcher)
    scope = OwnerScope(owner="alice")

    result = cache.get_or_fetch(scope)

    assert result.failed
    assert [failure.target for failure in result.failures] == ["orgs", "teams"]
    assert cache.state(scope) is CacheState.COLD


def test_partial_failures_still_cache_successful_items(storage: SQLiteStorage) -> None:
    fetcher = FakeRepositoryFetcher([_repo(1, "acme/api")])
    fetcher.failures = [("org:other", "HTTP 404")]
    cache = RepositoryCache(storage, fetcher)
    scope = OwnerScope(owner="alice")

    result = cache.get_or_fetch(scope)

    assert not result.failed
    assert len(result.items) == 1
    assert result.failures[0].target == "org:other"
    assert cache.state(scope) is CacheState.WARM


def test_storage_failure_propagates(storage: SQLiteStorage, monkeypatch: pytest.MonkeyPatch) -> None:
    fetcher = FakeRepositoryFetcher([_repo(1, "acme/api")])
    cache = RepositoryCache(storage, fetcher)

    def _unavailable(scope: OwnerScope) -> list[RemoteRepository]:
        raise StorageUnavailable("disk gone")

    monkeypatch.setattr(storage, "list_repositories", _unavailable)
    with pytest.raises(StorageUnavailable):
        cache.get_or_fetch(OwnerScope(owner="alice"))
    assert fetcher.calls == 0


def test_concurrent_reads_of_one_scope_fetch_once(storage: SQLiteStorage) -> None:
    class SlowFetcher(FakeRepositoryFetcher):
        def list_repositories(self, scope: OwnerScope) -> FetchBatch[RemoteRepository]:
            time.sleep(0.05)
            return super().list_repositories(scope)

    fetcher = SlowFetcher([_repo(1, "acme/api")])
    cache = RepositoryCache(storage, fetcher)
    scope = OwnerScope(owner="alice")

    threads = [threading.Thread(target=cache.get_or_fetch, args=(scope,)) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert fetcher.calls == 1


def test_pull_request_view_marks_drafts(storage: SQLiteStorage) -> None:
    fetcher = FakeRepositoryFetcher()
    fetcher.pulls = [
        PullRequest(
            id=11,
            number=4,
            title="Add retries",
            html_url="https://github.com/acme/api/pull/4",
            repository_full_name="acme/api",
            author="bob",
            is_draft=True,
        )
    ]
    cache = PullRequestCache(storage, fetcher)

    result = cache.get_or_fetch(OwnerScope(owner="alice"))

    assert result.items[0].title == "[Draft] #4 Add retries"
    assert result.items[0].subtitle.startswith("acme/api | by bob")


def test_pipeline_cache_is_scoped_by_organization_and_project(storage: SQLiteStorage) -> None:
    fetcher = FakePipelineFetcher([Pipeline(id=1, name="build")])
    cache = PipelineCache(storage, fetcher)

    cache.get_or_fetch(ProjectScope(organization="acme", project="teamA"))
    cache.get_or_fetch(ProjectScope(organization="acme", project="teamB"))
    cache.get_or_fetch(ProjectScope(organization="acme", project="teamA"))

    assert fetcher.calls == 2


def test_pipeline_subtitle_uses_latest_build_or_id() -> None:
    assert pipeline_subtitle(Pipeline(id=9, name="build")) == "ID: 9"
    completed = Pipeline(
        id=9,
        name="build",
        last_build_status="completed",
        last_build_result="succeeded",
        last_build_number="20260301.4",
    )
    assert pipeline_subtitle(completed) == "succeeded | Build #20260301.4"
    running = completed.model_copy(update={"last_build_status": "inProgress", "last_build_result": None})
    assert pipeline_subtitle(running) == "inProgress | Build #20260301.4"
