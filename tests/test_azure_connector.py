from types import SimpleNamespace

import pytest

from devlink.connectors.azure_az import AzCliClient, AzureAzPipelineFetcher, organization_url, path_matches
from devlink.connectors.base import TransientRemoteFailure
from devlink.models import ProjectScope

SCOPE = ProjectScope(organization="acme", project="teamA")


class FakeAzClient:
    def __init__(self) -> None:
        self.failing: set[tuple[str, ...]] = set()
        self.overrides: dict[tuple[str, ...], object] = {}

    def run_json(self, args: list[str], scope: ProjectScope):
        key = tuple(args)
        if key in self.failing:
            raise TransientRemoteFailure(f"az failed: {' '.join(args)}")
        if key in self.overrides:
            return self.overrides[key]
        if key == ("pipelines", "list"):
            return [
                {"id": 3, "name": "web-ci", "path": "\\Web", "queueStatus": "enabled"},
                {"id": 1, "name": "api-ci", "path": "\\Services\\Api", "queueStatus": "enabled"},
                {"id": 2, "name": "api-release", "path": "\\services", "queueStatus": "disabled"},
            ]
        if key[:3] == ("pipelines", "show", "--id"):
            pipeline_id = int(key[3])
            urls = {
                1: "https://api.github.com/repos/acme/api",
                2: "https://api.github.com/repos/acme/api",
                3: "https://github.com/acme/web",
            }
            return {"id": pipeline_id, "repository": {"url": urls[pipeline_id], "type": "GitHub"}}
        if key[:3] == ("pipelines", "runs", "list"):
            pipeline_id = int(key[4])
            if pipeline_id == 2:
                return []
            return [{"id": 900 + pipeline_id, "status": "completed", "result": "succeeded", "buildNumber": f"2026.{pipeline_id}"}]
        raise AssertionError(f"unexpected az call {args}")


def _fetcher(**kwargs: object) -> tuple[AzureAzPipelineFetcher, FakeAzClient]:
    fetcher = AzureAzPipelineFetcher(**kwargs)
    client = FakeAzClient()
    fetcher.client = client
    return fetcher, client


def test_list_pipelines_resolves_repository_and_latest_run() -> None:
    fetcher, _ = _fetcher()

    batch = fetcher.list_pipelines(SCOPE)

    assert [p.name for p in batch.items] == ["api-ci", "api-release", "web-ci"]
    api_ci = batch.items[0]
    assert api_ci.repository_url == "https://github.com/acme/api"
    assert api_ci.last_build_id == 901
    assert api_ci.last_build_result == "succeeded"
    assert api_ci.last_build_number == "2026.1"
    assert api_ci.organization == "acme" and api_ci.project == "teamA"
    assert batch.items[1].last_build_id is None
    assert batch.items[1].queue_status == "disabled"
    assert not batch.partial


def test_path_filter_is_case_insensitive_prefix() -> None:
    fetcher, _ = _fetcher(paths=["\\Services"])

    batch = fetcher.list_pipelines(SCOPE)

    assert [p.id for p in batch.items] == [1, 2]


def test_per_pipeline_failures_keep_the_pipeline() -> None:
    fetcher, client = _fetcher()
    client.failing.add(("pipelines", "show", "--id", "3"))

    batch = fetcher.list_pipelines(SCOPE)

    web = next(p for p in batch.items if p.id == 3)
    assert web.repository_url is None
    assert web.last_build_id == 903
    assert [failure.target for failure in batch.failures] == ["pipeline:3:definition"]


def test_listing_failure_is_a_whole_fetch_failure() -> None:
    fetcher, client = _fetcher()
    client.failing.add(("pipelines", "list"))
    with pytest.raises(TransientRemoteFailure):
        fetcher.list_pipelines(SCOPE)


def test_non_list_runs_payload_is_a_per_pipeline_failure() -> None:
    fetcher, client = _fetcher()
    client.overrides[("pipelines", "runs", "list", "--pipeline-ids", "1", "--top", "1")] = {"value": [], "count": 0}

    batch = fetcher.list_pipelines(SCOPE)

    api_ci = next(p for p in batch.items if p.id == 1)
    assert api_ci.repository_url == "https://github.com/acme/api"
    assert api_ci.last_build_id is None
    assert [p.id for p in batch.items] == [1, 2, 3]
    assert [failure.target for failure in batch.failures] == ["pipeline:1:runs"]


def test_non_list_pipeline_listing_is_a_whole_fetch_failure() -> None:
    fetcher, client = _fetcher()
    client.overrides[("pipelines", "list")] = {"message": "unexpected"}
    with pytest.raises(TransientRemoteFailure):
        fetcher.list_pipelines(SCOPE)


def test_path_matches() -> None:
    assert path_matches("\\Services\\Api", ["\\services"])
    assert path_matches("\\services", ["/Services/"])
    assert not path_matches("\\ServicesLegacy", ["\\Services"])
    assert path_matches(None, [])
    assert path_matches(None, ["\\"])


def test_organization_url() -> None:
    assert organization_url("acme") == "https://dev.azure.com/acme"
    assert organization_url("https://dev.azure.com/acme/") == "https://dev.azure.com/acme"


def test_az_cli_client_builds_scoped_command(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[list[str]] = []

    def _fake_run(cmd, text=True, capture_output=True, check=False):  # noqa: ANN001,ARG001
        seen.append(cmd)
        return SimpleNamespace(returncode=0, stdout='[{"id": 1, "name": "api-ci"}]', stderr="")

    monkeypatch.setattr("subprocess.run", _fake_run)

    payload = AzCliClient().run_json(["pipelines", "list"], SCOPE)

    assert payload == [{"id": 1, "name": "api-ci"}]
    assert seen[0] == [
        "az",
        "pipelines",
        "list",
        "--organization",
        "https://dev.azure.com/acme",
        "--project",
        "teamA",
        "--output",
        "json",
    ]


def test_az_cli_client_raises_on_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fake_run(cmd, text=True, capture_output=True, check=False):  # noqa: ANN001,ARG001
        return SimpleNamespace(returncode=1, stdout="", stderr="TF400813: not authorized")

    monkeypatch.setattr("subprocess.run", _fake_run)
    with pytest.raises(TransientRemoteFailure):
        AzCliClient().run_json(["pipelines", "list"], SCOPE)
