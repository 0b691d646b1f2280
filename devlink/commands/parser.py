"""CLI parser construction."""

from __future__ import annotations

import argparse

from devlink.commands.common import (
    add_common_config_flags,
    add_github_rate_limit_flags,
    add_owner_flag,
    add_project_flags,
)
from devlink.commands.refresh import KINDS


def _add_output_flag(cmd: argparse.ArgumentParser) -> None:
    cmd.add_argument("--json", action="store_true", help="Print machine-readable JSON instead of text")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Cache and link GitHub repositories with Azure DevOps pipelines")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--log-file", help="Also append log records to this file")

    sub = parser.add_subparsers(dest="command", required=True)

    repos = sub.add_parser("repos", help="List GitHub repositories (served from cache when warm)")
    add_owner_flag(repos)
    add_common_config_flags(repos)
    add_github_rate_limit_flags(repos)
    _add_output_flag(repos)

    prs = sub.add_parser("prs", help="List open pull requests (served from cache when warm)")
    prs.add_argument("--repo", help="Only show pull requests of this owner/name")
    add_owner_flag(prs)
    add_common_config_flags(prs)
    add_github_rate_limit_flags(prs)
    _add_output_flag(prs)

    pipelines = sub.add_parser("pipelines", help="List Azure DevOps pipelines (served from cache when warm)")
    add_project_flags(pipelines)
    add_common_config_flags(pipelines)
    _add_output_flag(pipelines)

    refresh = sub.add_parser("refresh", help="Clear a cached scope so the next read fetches again")
    refresh.add_argument("--kind", choices=KINDS, default="all", help="Which cache to clear")
    add_owner_flag(refresh)
    add_project_flags(refresh)
    add_common_config_flags(refresh)
    add_github_rate_limit_flags(refresh)

    link = sub.add_parser("link", help="Link local clones in the work folder to cached repositories")
    link.add_argument("--work-folder", help="Folder holding clones (defaults to github.work_folder_path)")
    add_owner_flag(link)
    add_common_config_flags(link)
    add_github_rate_limit_flags(link)
    _add_output_flag(link)

    cleanup = sub.add_parser("cleanup-links", help="Clear links to clones that are gone or point elsewhere")
    add_owner_flag(cleanup)
    add_common_config_flags(cleanup)
    add_github_rate_limit_flags(cleanup)

    clone = sub.add_parser("clone", help="Clone a cached repository into the work folder and link it")
    clone.add_argument("--repo", required=True, help="Repository name or owner/name")
    clone.add_argument("--name", help="Folder name (defaults to the repository name)")
    clone.add_argument("--work-folder", help="Folder holding clones (defaults to github.work_folder_path)")
    add_owner_flag(clone)
    add_common_config_flags(clone)
    add_github_rate_limit_flags(clone)

    match = sub.add_parser("match", help="Show cached pipelines and pull requests for one repository")
    match.add_argument("--repo", help="Repository owner/name")
    match.add_argument("--url", help="Repository URL (web, API or git remote form)")
    add_common_config_flags(match)
    _add_output_flag(match)

    status = sub.add_parser("status", help="Summarize cache contents")
    add_common_config_flags(status)
    _add_output_flag(status)

    serve = sub.add_parser("serve", help="Serve the read-only JSON API")
    serve.add_argument("--host", default="127.0.0.1", help="Bind host")
    serve.add_argument("--port", type=int, default=8765, help="Bind port")
    add_common_config_flags(serve)

    return parser
