"""Azure DevOps pipeline fetcher backed by the az CLI (azure-devops extension)."""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from devlink.connectors.base import PipelineFetcher, TransientRemoteFailure
from devlink.models import FetchBatch, Pipeline, ProjectScope
from devlink.urls import to_web_url

logger = logging.getLogger(__name__)


class AzPipelineRef(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int
    name: str | None = None
    path: str | None = None
    queue_status: str | None = Field(default=None, alias="queueStatus")


class AzRepository(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str | None = None
    type: str | None = None


class AzPipelineDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    repository: AzRepository | None = None


class AzRun(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int
    status: str | None = None
    result: str | None = None
    build_number: str | None = Field(default=None, alias="buildNumber")


def organization_url(organization: str) -> str:
    if organization.startswith(("https://", "http://")):
        return organization.rstrip("/")
    return f"https://dev.azure.com/{organization}"


def path_matches(pipeline_path: str | None, configured_paths: list[str]) -> bool:
    """Folder filter: equal to a configured path or nested below it, case-insensitive."""
    if not configured_paths:
        return True
    candidate = (pipeline_path or "\\").replace("/", "\\").lower().rstrip("\\")
    for configured in configured_paths:
        prefix = configured.replace("/", "\\").lower().rstrip("\\")
        if not prefix or candidate == prefix or candidate.startswith(prefix + "\\"):
            return True
    return False


class AzCliClient:
    def __init__(self, az_bin: str = "az") -> None:
        self.az_bin = az_bin

    def run_json(self, args: list[str], scope: ProjectScope) -> Any:
        cmd = [
            self.az_bin,
            *args,
            "--organization",
            organization_url(scope.organization),
            "--project",
            scope.project,
            "--output",
            "json",
        ]
        try:
            proc = subprocess.run(cmd, text=True, capture_output=True, check=False)
        except OSError as exc:
            raise TransientRemoteFailure(f"Cannot run {self.az_bin}: {exc}") from exc
        if proc.returncode != 0:
            raise TransientRemoteFailure(f"az failed: {' '.join(cmd)}\n{proc.stderr.strip()}")
        output = proc.stdout.strip()
        if not output:
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError as exc:
            raise TransientRemoteFailure(f"az returned invalid JSON for {' '.join(args)}") from exc


class AzureAzPipelineFetcher(PipelineFetcher):
    def __init__(self, az_bin: str = "az", *, paths: list[str] | None = None, include_latest_run: bool = True) -> None:
        self.paths = list(paths or [])
        self.include_latest_run = include_latest_run
        self.client = AzCliClient(az_bin=az_bin)

    def list_pipelines(self, scope: ProjectScope) -> FetchBatch[Pipeline]:
        payload = self.client.run_json(["pipelines", "list"], scope) or []
        if not isinstance(payload, list):
            raise TransientRemoteFailure(f"az pipelines list returned {type(payload).__name__}, expected a list")
        refs: list[AzPipelineRef] = []
        for item in payload:
            try:
                refs.append(AzPipelineRef.model_validate(item))
            except ValidationError as exc:
                logger.warning("Skipping malformed pipeline entry in %s: %s", scope, exc)

        logger.debug("Retrieved %s pipeline definitions from %s", len(refs), scope)
        if self.paths:
            refs = [ref for ref in refs if path_matches(ref.path, self.paths)]
            logger.info("Filtered to %s pipelines matching configured paths", len(refs))

        batch: FetchBatch[Pipeline] = FetchBatch[Pipeline]()
        for ref in refs:
            batch.items.append(self._build_pipeline(ref, scope, batch))

        batch.items.sort(key=lambda pipeline: pipeline.name)
        logger.info("Fetched %s pipelines for %s (%s sub-fetch failures)", len(batch.items), scope, len(batch.failures))
        return batch

    def _build_pipeline(self, ref: AzPipelineRef, scope: ProjectScope, batch: FetchBatch) -> Pipeline:
        pipeline = Pipeline(
            id=ref.id,
            name=ref.name or "Unknown Pipeline",
            path=ref.path or "\\",
            organization=scope.organization,
            project=scope.project,
            queue_status=ref.queue_status,
        )

        try:
            definition = AzPipelineDefinition.model_validate(
                self.client.run_json(["pipelines", "show", "--id", str(ref.id)], scope) or {"id": ref.id}
            )
            if definition.repository is not None and definition.repository.url:
                pipeline.repository_url = to_web_url(definition.repository.url)
        except (TransientRemoteFailure, ValidationError) as exc:
            logger.warning("Failed to get repository info for pipeline %s: %s", ref.id, exc)
            batch.add_failure(f"pipeline:{ref.id}:definition", exc)

        if not self.include_latest_run:
            return pipeline

        try:
            runs = self.client.run_json(
                ["pipelines", "runs", "list", "--pipeline-ids", str(ref.id), "--top", "1"],
                scope,
            ) or []
            if not isinstance(runs, list):
                raise TransientRemoteFailure(f"az pipelines runs list returned {type(runs).__name__}, expected a list")
            if runs:
                latest = AzRun.model_validate(runs[0])
                pipeline.last_build_id = latest.id
                pipeline.last_build_status = latest.status
                pipeline.last_build_result = latest.result
                pipeline.last_build_number = latest.build_number
        except (TransientRemoteFailure, ValidationError) as exc:
            logger.warning("Failed to get build info for pipeline %s: %s", ref.id, exc)
            batch.add_failure(f"pipeline:{ref.id}:runs", exc)

        return pipeline
