"""Show what the caches know about one repository across GitHub and Azure DevOps."""

from __future__ import annotations

import argparse
import logging

from devlink.commands.common import CommandRuntime, build_storage, emit, load_config
from devlink.matching import CrossSystemMatcher

logger = logging.getLogger(__name__)


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    config = load_config(args)
    storage = build_storage(config, runtime)
    matcher = CrossSystemMatcher(storage)

    repository_url = args.url
    full_name = args.repo
    if repository_url is None and full_name is None:
        raise ValueError("Pass --repo owner/name or --url <repository url>")

    if repository_url is None:
        cached = [repo for repo in storage.list_all_repositories() if repo.full_name.lower() == full_name.lower()]
        if not cached:
            logger.error("Repository %s is not cached; run `devlink repos` first", full_name)
            return 1
        repository_url = cached[0].html_url
    if full_name is None:
        cached = storage.find_repositories_by_url(repository_url)
        full_name = cached[0].full_name if cached else ""

    pipelines = matcher.pipelines_for_repository(repository_url)
    pulls = matcher.pull_requests_for_repository(full_name) if full_name else []

    lines = [f"{full_name or repository_url}"]
    lines.append(f"  pipelines: {len(pipelines)}")
    lines.extend(f"    {p.name} ({p.organization}/{p.project} #{p.id})" for p in pipelines)
    lines.append(f"  open pull requests: {len(pulls)}")
    lines.extend(f"    #{pr.number} {pr.title}" for pr in pulls)
    emit(
        {
            "repository_url": repository_url,
            "full_name": full_name,
            "pipelines": [p.model_dump(mode="json") for p in pipelines],
            "pull_requests": [pr.model_dump(mode="json") for pr in pulls],
        },
        as_json=args.json,
        lines=lines,
    )
    return 0
