"""Drop cached rows so the next read fetches again."""

from __future__ import annotations

import argparse
import logging

from devlink.commands.common import (
    CommandRuntime,
    build_pipeline_cache,
    build_pull_request_cache,
    build_repository_cache,
    build_storage,
    load_config,
    resolve_owner_scope,
    resolve_project_scope,
)

logger = logging.getLogger(__name__)

KINDS = ("repositories", "pull-requests", "pipelines", "all")


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    config = load_config(args)
    storage = build_storage(config, runtime)
    kinds = {"repositories", "pull-requests", "pipelines"} if args.kind == "all" else {args.kind}
    cleared: dict[str, int] = {}

    if kinds & {"repositories", "pull-requests"}:
        owner_scope = resolve_owner_scope(args, config, runtime)
        if "repositories" in kinds:
            cleared["repositories"] = build_repository_cache(args, config, storage, runtime).refresh(owner_scope)
        if "pull-requests" in kinds:
            cleared["pull-requests"] = build_pull_request_cache(args, config, storage, runtime).refresh(owner_scope)

    if "pipelines" in kinds:
        project_scope = resolve_project_scope(args, config)
        cleared["pipelines"] = build_pipeline_cache(config, storage, runtime).refresh(project_scope)

    for kind, count in sorted(cleared.items()):
        print(f"{kind}: cleared {count}")
    return 0
