from pathlib import Path

import pytest

from devlink.config import DevlinkConfig, data_dir, load_effective_config


def test_config_precedence(tmp_path: Path) -> None:
    (tmp_path / "config.yaml").write_text(
        """
github:
  organization: acme-user
  team_names: [platform]
azure_devops:
  organization: acme
  project: teamA
"""
    )

    system = {
        "github": {"organization": "acme-system", "page_size": 50},
        "cache": {"remember_empty_results": False},
    }
    runtime = {
        "azure_devops": {"project": "teamB"},
    }

    cfg = load_effective_config(tmp_path, system_defaults=system, runtime_override=runtime)

    assert cfg.github.organization == "acme-user"
    assert cfg.github.team_names == ["platform"]
    assert cfg.github.page_size == 50
    assert cfg.azure_devops.organization == "acme"
    assert cfg.azure_devops.project == "teamB"
    assert cfg.cache.remember_empty_results is False


def test_sqlite_path_defaults_into_data_dir(tmp_path: Path) -> None:
    cfg = load_effective_config(tmp_path)
    assert cfg.storage.sqlite_path == str(tmp_path / "devlink.db")

    explicit = load_effective_config(tmp_path, runtime_override={"storage": {"sqlite_path": "/data/cache.db"}})
    assert explicit.storage.sqlite_path == "/data/cache.db"


def test_data_dir_honors_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DEVLINK_HOME", str(tmp_path / "home"))
    assert data_dir() == tmp_path / "home"

    monkeypatch.delenv("DEVLINK_HOME")
    assert data_dir() == Path.home() / ".devlink"


def test_unknown_keys_are_rejected(tmp_path: Path) -> None:
    (tmp_path / "config.yaml").write_text("github:\n  tokn: abc\n")
    with pytest.raises(ValueError):
        load_effective_config(tmp_path)


def test_defaults() -> None:
    cfg = DevlinkConfig()
    assert cfg.cache.remember_empty_results is True
    assert cfg.azure_devops.include_latest_run is True
    assert cfg.storage.backend == "sqlite"
