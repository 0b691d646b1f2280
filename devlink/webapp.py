"""JSON API over the entity caches."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from devlink.cache import CacheResult, PipelineCache, PullRequestCache, RepositoryCache
from devlink.config import DevlinkConfig
from devlink.connectors.azure_az import AzureAzPipelineFetcher
from devlink.connectors.base import PipelineFetcher, RepositoryFetcher
from devlink.connectors.github_gh import GithubGhRepositoryFetcher
from devlink.matching import CrossSystemMatcher
from devlink.models import OwnerScope, ProjectScope
from devlink.storage import SQLiteStorage, StorageUnavailable


def _result_payload(result: CacheResult, scope: OwnerScope | ProjectScope) -> dict[str, Any]:
    if result.failed:
        raise HTTPException(
            status_code=502,
            detail={
                "error": result.error,
                "failures": [failure.model_dump() for failure in result.failures],
            },
        )
    return {
        "scope": str(scope),
        "from_cache": result.from_cache,
        "fetched_at": result.fetched_at.isoformat() if result.fetched_at else None,
        "failures": [failure.model_dump() for failure in result.failures],
        "items": [item.model_dump(mode="json") for item in result.items],
    }


def create_app(
    config: DevlinkConfig,
    *,
    repository_fetcher: RepositoryFetcher | None = None,
    pipeline_fetcher: PipelineFetcher | None = None,
) -> FastAPI:
    app = FastAPI(title="devlink API")
    storage = SQLiteStorage(config.storage.sqlite_path or "devlink.db")
    github = config.github
    azure = config.azure_devops

    if repository_fetcher is None:
        repository_fetcher = GithubGhRepositoryFetcher(
            github.gh_bin,
            organization=github.organization,
            team_names=github.team_names,
            topics=github.topics,
            page_size=github.page_size,
        )
    if pipeline_fetcher is None:
        pipeline_fetcher = AzureAzPipelineFetcher(
            azure.az_bin,
            paths=azure.paths,
            include_latest_run=azure.include_latest_run,
        )

    remember = config.cache.remember_empty_results
    repositories = RepositoryCache(storage, repository_fetcher, remember_empty_results=remember)
    pull_requests = PullRequestCache(storage, repository_fetcher, remember_empty_results=remember)
    pipelines = PipelineCache(storage, pipeline_fetcher, remember_empty_results=remember)
    matcher = CrossSystemMatcher(storage)

    @app.exception_handler(StorageUnavailable)
    def storage_unavailable(request: Request, exc: StorageUnavailable) -> JSONResponse:
        _ = request
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.get("/api/status", response_class=JSONResponse)
    def api_status() -> dict[str, Any]:
        return storage.cache_summary()

    @app.get("/api/github/{owner}/repositories", response_class=JSONResponse)
    def api_repositories(owner: str) -> dict[str, Any]:
        scope = OwnerScope(owner=owner)
        return _result_payload(repositories.get_or_fetch(scope), scope)

    @app.get("/api/github/{owner}/pull-requests", response_class=JSONResponse)
    def api_pull_requests(owner: str, repo: str | None = None) -> dict[str, Any]:
        scope = OwnerScope(owner=owner)
        payload = _result_payload(pull_requests.get_or_fetch(scope), scope)
        if repo:
            payload["items"] = [item for item in payload["items"] if item["repository_full_name"].lower() == repo.lower()]
        return payload

    @app.post("/api/github/{owner}/refresh", response_class=JSONResponse)
    def api_refresh_github(owner: str, kind: str = Query(default="all", pattern="^(all|repositories|pull-requests)$")) -> dict[str, Any]:
        scope = OwnerScope(owner=owner)
        cleared: dict[str, int] = {}
        if kind in ("all", "repositories"):
            cleared["repositories"] = repositories.refresh(scope)
        if kind in ("all", "pull-requests"):
            cleared["pull-requests"] = pull_requests.refresh(scope)
        return {"scope": str(scope), "cleared": cleared}

    @app.get("/api/azure/{organization}/{project}/pipelines", response_class=JSONResponse)
    def api_pipelines(organization: str, project: str) -> dict[str, Any]:
        scope = ProjectScope(organization=organization, project=project)
        return _result_payload(pipelines.get_or_fetch(scope), scope)

    @app.post("/api/azure/{organization}/{project}/refresh", response_class=JSONResponse)
    def api_refresh_pipelines(organization: str, project: str) -> dict[str, Any]:
        scope = ProjectScope(organization=organization, project=project)
        return {"scope": str(scope), "cleared": {"pipelines": pipelines.refresh(scope)}}

    @app.get("/api/match", response_class=JSONResponse)
    def api_match(url: str = Query(min_length=1)) -> dict[str, Any]:
        repos = storage.find_repositories_by_url(url)
        full_name = repos[0].full_name if repos else ""
        return {
            "repository_url": url,
            "full_name": full_name or None,
            "local_path": repos[0].local_path if repos else None,
            "pipelines": [pipeline.model_dump(mode="json") for pipeline in matcher.pipelines_for_repository(url)],
            "pull_requests": [pull.model_dump(mode="json") for pull in matcher.pull_requests_for_repository(full_name)],
        }

    return app
