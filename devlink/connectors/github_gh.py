"""GitHub repository and pull request fetcher backed by the gh CLI."""

from __future__ import annotations

import json
import logging
import re
import subprocess
import threading
import time
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from devlink.connectors.base import RepositoryFetcher, TransientRemoteFailure
from devlink.models import FetchBatch, OwnerScope, PullRequest, RemoteRepository

_RATE_LIMIT_RE = re.compile(r"(?:api|secondary) rate limit", re.IGNORECASE)
logger = logging.getLogger(__name__)


class GithubUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    login: str


class GithubOrganization(BaseModel):
    model_config = ConfigDict(extra="ignore")

    login: str


class GithubTeam(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    slug: str
    organization: GithubOrganization


class GithubRepo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    full_name: str
    description: str | None = None
    html_url: str
    private: bool = False
    stargazers_count: int = 0
    language: str | None = None
    topics: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class GithubRepoRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    full_name: str


class GithubPullBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    repo: GithubRepoRef


class GithubPull(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    number: int
    title: str
    html_url: str
    state: str = "open"
    user: GithubUser
    draft: bool = False
    base: GithubPullBase
    created_at: datetime
    updated_at: datetime


class GithubRateLimitError(TransientRemoteFailure):
    def __init__(
        self,
        message: str,
        *,
        reset_at: datetime | None = None,
        retry_after_seconds: float | None = None,
    ) -> None:
        super().__init__(message)
        self.reset_at = reset_at
        self.retry_after_seconds = retry_after_seconds


class GithubGhClient:
    """``gh api`` wrapper that walks pages and waits out rate limits.

    A rate-limit hit pushes back every caller sharing this client, not just the
    one that saw it.
    """

    def __init__(
        self,
        gh_bin: str = "gh",
        *,
        rate_limit_retries: int = 2,
        secondary_backoff_base_seconds: float = 5.0,
        rate_limit_max_sleep_seconds: float = 90.0,
    ) -> None:
        self.gh_bin = gh_bin
        self.rate_limit_retries = max(0, rate_limit_retries)
        self.secondary_backoff_base_seconds = max(1.0, secondary_backoff_base_seconds)
        self.rate_limit_max_sleep_seconds = max(1.0, rate_limit_max_sleep_seconds)
        self._backoff_lock = threading.Lock()
        self._paused_until = 0.0

    def get_paginated(self, endpoint: str, per_page: int = 100) -> list[dict[str, Any]]:
        separator = "&" if "?" in endpoint else "?"
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            payload = self.api_json(f"{endpoint}{separator}per_page={per_page}&page={page}")
            if not isinstance(payload, list) or not payload:
                return items
            items.extend(payload)
            if len(payload) < per_page:
                return items
            page += 1

    def api_json(self, endpoint: str) -> Any:
        attempts = self.rate_limit_retries + 1
        for attempt in range(attempts):
            self._pause_if_limited()
            proc = self._gh(endpoint)
            if proc.returncode == 0:
                return _decode(proc.stdout, endpoint)

            stderr = proc.stderr.strip()
            if not _RATE_LIMIT_RE.search(stderr):
                raise TransientRemoteFailure(f"gh api {endpoint} failed: {stderr}")

            reset_at = self._rate_limit_reset_at()
            wait_seconds = self._backoff_seconds(reset_at, attempt)
            self._pause_for(wait_seconds)
            logger.warning(
                "GitHub rate limit on %s (attempt %s/%s), waiting %.1fs, reset at %s",
                endpoint,
                attempt + 1,
                attempts,
                wait_seconds,
                reset_at.isoformat() if reset_at else "unknown",
            )
            if attempt + 1 < attempts and wait_seconds <= self.rate_limit_max_sleep_seconds:
                continue
            raise GithubRateLimitError(
                f"gh api {endpoint} is rate limited: {stderr}",
                reset_at=reset_at,
                retry_after_seconds=wait_seconds,
            )
        raise TransientRemoteFailure(f"gh api {endpoint} gave up after {attempts} attempts")

    def _gh(self, endpoint: str) -> subprocess.CompletedProcess:
        cmd = [self.gh_bin, "api", endpoint.lstrip("/"), "-X", "GET", "-H", "Accept: application/vnd.github+json"]
        try:
            return subprocess.run(cmd, text=True, capture_output=True, check=False)
        except OSError as exc:
            raise TransientRemoteFailure(f"Cannot run {self.gh_bin}: {exc}") from exc

    def _pause_if_limited(self) -> None:
        while True:
            with self._backoff_lock:
                remaining = self._paused_until - time.monotonic()
            if remaining <= 0:
                return
            time.sleep(remaining)

    def _pause_for(self, wait_seconds: float) -> None:
        until = time.monotonic() + max(0.0, wait_seconds)
        with self._backoff_lock:
            self._paused_until = max(self._paused_until, until)

    def _backoff_seconds(self, reset_at: datetime | None, attempt: int) -> float:
        # Primary limits wait for the reset; secondary limits back off exponentially.
        if reset_at is not None:
            until_reset = (reset_at - datetime.now(UTC)).total_seconds()
            if until_reset > self.rate_limit_max_sleep_seconds:
                return until_reset
            return max(1.0, until_reset + 1.0)
        backoff = self.secondary_backoff_base_seconds * (2**attempt)
        return float(min(self.rate_limit_max_sleep_seconds, max(1.0, backoff)))

    def _rate_limit_reset_at(self) -> datetime | None:
        """Latest reset time among exhausted rate-limit resources, if ``gh`` can tell."""
        proc = self._gh("rate_limit")
        if proc.returncode != 0:
            return None
        try:
            data = _decode(proc.stdout, "rate_limit")
        except TransientRemoteFailure:
            return None
        resources = data.get("resources") if isinstance(data, dict) else None
        if not isinstance(resources, dict):
            return None
        exhausted = [
            resource["reset"]
            for resource in resources.values()
            if isinstance(resource, dict)
            and isinstance(resource.get("remaining"), int)
            and resource["remaining"] <= 0
            and isinstance(resource.get("reset"), int)
        ]
        if not exhausted:
            return None
        return datetime.fromtimestamp(max(exhausted), UTC)


def _decode(output: str, endpoint: str) -> Any:
    output = output.strip()
    if not output:
        return None
    try:
        return json.loads(output)
    except json.JSONDecodeError as exc:
        raise TransientRemoteFailure(f"gh api returned invalid JSON for {endpoint}") from exc


class GithubGhRepositoryFetcher(RepositoryFetcher):
    """Repositories of the user's organizations and teams, and their open pull requests.

    When the scope's owner is the ``gh`` login, the organization and team sweep
    runs. Any other owner gets that owner's own repositories instead, so rows are
    never cached under an owner they do not belong to.

    ``organization`` narrows the organization sweep to one login, ``team_names``
    narrows the team sweep, and ``topics`` keeps only repositories tagged with at
    least one of them. A failing organization, team or repository is recorded in
    the returned batch and the sweep continues.
    """

    def __init__(
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
    ) -> None:
        self.organization = organization
        self.team_names = list(team_names or [])
        self.topics = list(topics or [])
        self.page_size = page_size
        self.client = GithubGhClient(
            gh_bin=gh_bin,
            rate_limit_retries=rate_limit_retries,
            secondary_backoff_base_seconds=secondary_backoff_base_seconds,
            rate_limit_max_sleep_seconds=rate_limit_max_sleep_seconds,
        )

    def current_user(self) -> str:
        payload = self.client.api_json("user") or {}
        try:
            return GithubUser.model_validate(payload).login
        except ValidationError as exc:
            raise TransientRemoteFailure("gh api user returned no login; is gh authenticated?") from exc

    def list_repositories(self, scope: OwnerScope) -> FetchBatch[RemoteRepository]:
        batch: FetchBatch[RemoteRepository] = FetchBatch[RemoteRepository]()
        seen: dict[int, GithubRepo] = {}

        login = self.current_user()
        if scope.owner.lower() == login.lower():
            fetched = self._organization_repositories(batch) + self._team_repositories(batch)
        else:
            fetched = self._owner_repositories(scope.owner, batch)
        for repo in fetched:
            seen.setdefault(repo.id, repo)

        repos = list(seen.values())
        if self.topics:
            wanted = {topic.lower() for topic in self.topics}
            repos = [repo for repo in repos if wanted.intersection(topic.lower() for topic in repo.topics)]

        repos.sort(key=lambda repo: repo.full_name)
        batch.items = [self._normalize_repository(repo, scope) for repo in repos]
        logger.info(
            "Fetched %s repositories for %s (%s sub-fetch failures)",
            len(batch.items),
            scope,
            len(batch.failures),
        )
        return batch

    def list_pull_requests(self, scope: OwnerScope) -> FetchBatch[PullRequest]:
        repositories = self.list_repositories(scope)
        batch: FetchBatch[PullRequest] = FetchBatch[PullRequest](failures=list(repositories.failures))
        pulls: list[PullRequest] = []

        for repo in repositories.items:
            try:
                payload = self.client.get_paginated(f"repos/{repo.full_name}/pulls?state=open", per_page=self.page_size)
                pulls.extend([self._normalize_pull(GithubPull.model_validate(item), scope) for item in payload])
            except (TransientRemoteFailure, ValidationError) as exc:
                logger.warning("Failed to retrieve pull requests for repository %s: %s", repo.full_name, exc)
                batch.add_failure(f"pulls:{repo.full_name}", exc)

        pulls.sort(key=lambda pr: pr.updated_at, reverse=True)
        batch.items = pulls
        logger.info("Fetched %s open pull requests for %s", len(pulls), scope)
        return batch

    def _owner_repositories(self, owner: str, batch: FetchBatch) -> list[GithubRepo]:
        # users/{login}/repos answers for organization logins too.
        logger.info("Retrieving repositories owned by %s", owner)
        try:
            payload = self.client.get_paginated(f"users/{owner}/repos", per_page=self.page_size)
            return [GithubRepo.model_validate(item) for item in payload]
        except (TransientRemoteFailure, ValidationError) as exc:
            logger.warning("Failed to retrieve repositories owned by %s: %s", owner, exc)
            batch.add_failure(f"owner:{owner}", exc)
            return []

    def _organization_repositories(self, batch: FetchBatch) -> list[GithubRepo]:
        try:
            organizations = [GithubOrganization.model_validate(item) for item in self.client.get_paginated("user/orgs")]
        except (TransientRemoteFailure, ValidationError) as exc:
            logger.warning("Failed to list organizations for current user: %s", exc)
            batch.add_failure("orgs", exc)
            return []

        if self.organization:
            organizations = [org for org in organizations if org.login.lower() == self.organization.lower()]

        repos: list[GithubRepo] = []
        for org in organizations:
            logger.info("Retrieving repositories for organization: %s", org.login)
            try:
                payload = self.client.get_paginated(f"orgs/{org.login}/repos", per_page=self.page_size)
                repos.extend([GithubRepo.model_validate(item) for item in payload])
            except (TransientRemoteFailure, ValidationError) as exc:
                logger.warning("Failed to retrieve repositories for organization %s: %s", org.login, exc)
                batch.add_failure(f"org:{org.login}", exc)
        return repos

    def _team_repositories(self, batch: FetchBatch) -> list[GithubRepo]:
        try:
            teams = [GithubTeam.model_validate(item) for item in self.client.get_paginated("user/teams")]
        except (TransientRemoteFailure, ValidationError) as exc:
            logger.warning("Failed to list teams for current user: %s", exc)
            batch.add_failure("teams", exc)
            return []

        if self.team_names:
            wanted = {name.lower() for name in self.team_names}
            teams = [team for team in teams if team.name.lower() in wanted]

        repos: list[GithubRepo] = []
        for team in teams:
            try:
                payload = self.client.get_paginated(
                    f"orgs/{team.organization.login}/teams/{team.slug}/repos",
                    per_page=self.page_size,
                )
                repos.extend([GithubRepo.model_validate(item) for item in payload])
            except (TransientRemoteFailure, ValidationError) as exc:
                logger.warning("Failed to retrieve repositories for team %s: %s", team.name, exc)
                batch.add_failure(f"team:{team.name}", exc)
        return repos

    @staticmethod
    def _normalize_repository(repo: GithubRepo, scope: OwnerScope) -> RemoteRepository:
        return RemoteRepository(
            id=repo.id,
            name=repo.name,
            full_name=repo.full_name,
            description=repo.description,
            html_url=repo.html_url,
            private=repo.private,
            stargazers_count=repo.stargazers_count,
            language=repo.language,
            owner=scope.owner,
            created_at=repo.created_at,
            updated_at=repo.updated_at,
        )

    @staticmethod
    def _normalize_pull(pull: GithubPull, scope: OwnerScope) -> PullRequest:
        return PullRequest(
            id=pull.id,
            number=pull.number,
            title=pull.title,
            html_url=pull.html_url,
            state=pull.state,
            repository_name=pull.base.repo.name,
            repository_full_name=pull.base.repo.full_name,
            author=pull.user.login,
            is_draft=pull.draft,
            owner=scope.owner,
            created_at=pull.created_at,
            updated_at=pull.updated_at,
        )
