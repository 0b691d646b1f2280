"""Cross-system lookups between cached GitHub and Azure DevOps rows.

Only reads the store; nothing here triggers a remote fetch.
"""

from __future__ import annotations

import logging

from devlink.models import Pipeline, PullRequest, RemoteRepository
from devlink.storage.base import StorageBackend
from devlink.urls import repository_key

logger = logging.getLogger(__name__)


class CrossSystemMatcher:
    def __init__(self, storage: StorageBackend) -> None:
        self.storage = storage

    def pipelines_for_repository(self, repository_url: str) -> list[Pipeline]:
        if not repository_key(repository_url):
            return []
        pipelines = self.storage.find_pipelines_by_repository_url(repository_url)
        pipelines.sort(key=lambda p: (p.name, p.organization, p.project, p.id))
        logger.debug("Matched %s pipelines to %s", len(pipelines), repository_url)
        return pipelines

    def pull_requests_for_repository(self, full_name: str) -> list[PullRequest]:
        if not full_name:
            return []
        seen: set[int] = set()
        matched: list[PullRequest] = []
        for pull in self.storage.find_pull_requests_by_repository(full_name):
            # The same PR may be cached under several owner scopes.
            if pull.id in seen:
                continue
            seen.add(pull.id)
            matched.append(pull)
        return matched

    def repository_for_pipeline(self, pipeline: Pipeline) -> list[RemoteRepository]:
        if not pipeline.repository_url:
            return []
        by_id: dict[int, RemoteRepository] = {}
        for repo in self.storage.find_repositories_by_url(pipeline.repository_url):
            by_id.setdefault(repo.id, repo)
        return sorted(by_id.values(), key=lambda repo: repo.full_name)
