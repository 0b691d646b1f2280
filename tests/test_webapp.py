from pathlib import Path

import pytest

from devlink.config import DevlinkConfig, StorageConfig
from devlink.connectors.base import TransientRemoteFailure
from devlink.models import FetchBatch, OwnerScope, Pipeline, ProjectScope, PullRequest, RemoteRepository


class FakeRepositoryFetcher:
    def __init__(self) -> None:
        self.calls = 0
        self.fail = False

    def list_repositories(self, scope: OwnerScope) -> FetchBatch[RemoteRepository]:
        self.calls += 1
        if self.fail:
            raise TransientRemoteFailure("gh api failed: offline")
        return FetchBatch[RemoteRepository](
            items=[RemoteRepository(id=1, name="repo", full_name="org/repo", html_url="https://github.com/org/repo")]
        )

    def list_pull_requests(self, scope: OwnerScope) -> FetchBatch[PullRequest]:
        return FetchBatch[PullRequest](
            items=[
                PullRequest(
                    id=5,
                    number=2,
                    title="Fix build",
                    html_url="https://github.com/org/repo/pull/2",
                    repository_full_name="org/repo",
                    author="bob",
                )
            ]
        )


class FakePipelineFetcher:
    def list_pipelines(self, scope: ProjectScope) -> FetchBatch[Pipeline]:
        return FetchBatch[Pipeline](
            items=[Pipeline(id=3, name="repo-ci", repository_url="https://api.github.com/repos/org/repo")]
        )


def _client(tmp_path: Path, repositories: FakeRepositoryFetcher):
    pytest.importorskip("fastapi")
    from fastapi.testclient import TestClient

    from devlink.webapp import create_app

    config = DevlinkConfig(storage=StorageConfig(sqlite_path=str(tmp_path / "devlink.db")))
    app = create_app(config, repository_fetcher=repositories, pipeline_fetcher=FakePipelineFetcher())
    return TestClient(app)


def test_repositories_route_serves_cache_after_first_fetch(tmp_path: Path) -> None:
    repositories = FakeRepositoryFetcher()
    client = _client(tmp_path, repositories)

    first = client.get("/api/github/alice/repositories")
    second = client.get("/api/github/alice/repositories")

    assert first.status_code == 200
    assert first.json()["from_cache"] is False
    assert second.json()["from_cache"] is True
    assert second.json()["items"][0]["full_name"] == "org/repo"
    assert repositories.calls == 1

    refreshed = client.post("/api/github/alice/refresh", params={"kind": "repositories"})
    assert refreshed.json()["cleared"] == {"repositories": 1}
    client.get("/api/github/alice/repositories")
    assert repositories.calls == 2


def test_failed_fetch_is_a_bad_gateway(tmp_path: Path) -> None:
    repositories = FakeRepositoryFetcher()
    repositories.fail = True
    client = _client(tmp_path, repositories)

    response = client.get("/api/github/alice/repositories")

    assert response.status_code == 502
    assert "offline" in response.json()["detail"]["error"]


def test_match_route_links_pipelines_and_pull_requests(tmp_path: Path) -> None:
    client = _client(tmp_path, FakeRepositoryFetcher())
    client.get("/api/github/alice/repositories")
    client.get("/api/github/alice/pull-requests")
    pipelines = client.get("/api/azure/acme/teamA/pipelines")
    assert pipelines.json()["items"][0]["subtitle"] == "ID: 3"

    match = client.get("/api/match", params={"url": "https://github.com/org/repo"})

    assert match.status_code == 200
    body = match.json()
    assert body["full_name"] == "org/repo"
    assert [p["id"] for p in body["pipelines"]] == [3]
    assert [pr["number"] for pr in body["pull_requests"]] == [2]

    status = client.get("/api/status").json()
    assert {row["scope"] for row in status["pipelines"]} == {"acme/teamA"}
