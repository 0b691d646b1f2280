"""Core Pydantic domain models for devlink."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field


class EntityKind(str, Enum):
    REPOSITORY = "repository"
    PULL_REQUEST = "pull_request"
    PIPELINE = "pipeline"


class CacheState(str, Enum):
    COLD = "cold"
    WARM = "warm"


class OwnerScope(BaseModel):
    """Scope for GitHub data: the user or organization the rows were fetched for."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    owner: str

    @property
    def key(self) -> str:
        return self.owner

    def __str__(self) -> str:
        return self.owner


class ProjectScope(BaseModel):
    """Scope for Azure DevOps pipelines: ids are only unique within one organization+project."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    organization: str
    project: str

    @property
    def key(self) -> str:
        return f"{self.organization}/{self.project}"

    def __str__(self) -> str:
        return self.key


class RemoteRepository(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    name: str
    full_name: str
    description: str | None = None
    html_url: str
    private: bool = False
    stargazers_count: int = 0
    language: str | None = None
    owner: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_fetched_at: datetime | None = None
    local_path: str | None = None


class PullRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    number: int
    title: str
    html_url: str
    state: str = "open"
    repository_name: str = ""
    repository_full_name: str
    author: str
    is_draft: bool = False
    owner: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_fetched_at: datetime | None = None


class Pipeline(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    name: str
    path: str | None = None
    repository_url: str | None = None
    organization: str = ""
    project: str = ""
    queue_status: str | None = None
    last_build_id: int | None = None
    last_build_status: str | None = None
    last_build_result: str | None = None
    last_build_number: str | None = None
    last_fetched_at: datetime | None = None


class RepositoryView(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    title: str
    subtitle: str
    html_url: str
    full_name: str
    local_path: str | None = None


class PullRequestView(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    title: str
    subtitle: str
    html_url: str
    repository_full_name: str
    is_draft: bool = False


class PipelineView(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int
    name: str
    subtitle: str
    path: str | None = None
    repository_url: str | None = None
    last_build_id: int | None = None


class FetchFailure(BaseModel):
    """One sub-fetch that failed while the rest of the batch succeeded."""

    model_config = ConfigDict(extra="forbid")

    target: str
    reason: str


ItemT = TypeVar("ItemT")


class FetchBatch(BaseModel, Generic[ItemT]):
    """Partial-success result of a remote fetch."""

    model_config = ConfigDict(extra="forbid")

    items: list[ItemT] = Field(default_factory=list)
    failures: list[FetchFailure] = Field(default_factory=list)

    def add_failure(self, target: str, exc: BaseException | str) -> None:
        self.failures.append(FetchFailure(target=target, reason=str(exc)))

    @property
    def partial(self) -> bool:
        return bool(self.failures)
