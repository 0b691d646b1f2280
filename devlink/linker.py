"""Associate cached repositories with clones in a local work folder."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from devlink.connectors.base import CloneExecutor, CloneFailed
from devlink.git_probe import GitProbe
from devlink.models import OwnerScope, RemoteRepository
from devlink.storage.base import StorageBackend
from devlink.urls import repository_key, same_repository

logger = logging.getLogger(__name__)


@dataclass
class LinkReport:
    linked: dict[int, str] = field(default_factory=dict)
    duplicates: dict[int, list[str]] = field(default_factory=dict)
    unmatched: list[str] = field(default_factory=list)
    not_git: list[str] = field(default_factory=list)


def clone_url_for(repository: RemoteRepository) -> str:
    url = repository.html_url.rstrip("/")
    return url if url.lower().endswith(".git") else f"{url}.git"


class LocalRepositoryLinker:
    def __init__(self, storage: StorageBackend, probe: GitProbe, cloner: CloneExecutor) -> None:
        self.storage = storage
        self.probe = probe
        self.cloner = cloner

    def scan_and_link(self, work_folder: str | Path, scope: OwnerScope) -> LinkReport:
        report = LinkReport()
        root = Path(work_folder).expanduser()
        if not root.is_dir():
            logger.warning("Work folder does not exist: %s", root)
            return report

        by_key: dict[str, RemoteRepository] = {}
        for repo in self.storage.list_repositories(scope):
            key = repository_key(repo.html_url)
            if key:
                by_key[key] = repo

        # Lexicographic order; when two clones match the same repository the later path wins.
        for path in sorted((child for child in root.iterdir() if child.is_dir()), key=lambda p: p.name):
            if not self.probe.is_work_tree(path):
                report.not_git.append(str(path))
                continue
            repo = by_key.get(repository_key(self.probe.remote_url(path)))
            if repo is None:
                report.unmatched.append(str(path))
                continue
            previous = report.linked.get(repo.id)
            if previous is not None:
                report.duplicates.setdefault(repo.id, []).append(previous)
                logger.warning("Multiple clones of %s found; using %s over %s", repo.full_name, path, previous)
            report.linked[repo.id] = str(path)

        for repository_id, local_path in report.linked.items():
            self.storage.set_local_path(repository_id, local_path)

        logger.info(
            "Linked %s repositories under %s for %s (%s unmatched, %s not git)",
            len(report.linked),
            root,
            scope,
            len(report.unmatched),
            len(report.not_git),
        )
        return report

    def cleanup_invalid_links(self, scope: OwnerScope) -> int:
        cleared = 0
        for repo in self.storage.list_repositories(scope):
            if not repo.local_path:
                continue
            reason = self._invalid_reason(repo)
            if reason is None:
                continue
            logger.info("Clearing link %s for %s: %s", repo.local_path, repo.full_name, reason)
            self.storage.set_local_path(repo.id, None)
            cleared += 1
        return cleared

    def clone_repository(
        self,
        clone_url: str,
        work_folder: str | Path,
        name: str,
        repository_id: int,
    ) -> Path | None:
        destination = Path(work_folder).expanduser() / name
        try:
            cloned = self.cloner.clone(clone_url, destination)
        except CloneFailed as exc:
            logger.error("Clone of %s failed: %s", clone_url, exc)
            return None
        self.storage.set_local_path(repository_id, str(cloned))
        return cloned

    def local_path_for(self, repository_id: int) -> Path | None:
        stored = self.storage.get_local_path(repository_id)
        return Path(stored) if stored else None

    def _invalid_reason(self, repo: RemoteRepository) -> str | None:
        path = Path(repo.local_path or "")
        if not path.is_dir():
            return "path no longer exists"
        if not self.probe.is_work_tree(path):
            return "not a git work tree"
        if not same_repository(self.probe.remote_url(path), repo.html_url):
            return "origin no longer matches"
        return None
