"""List Azure DevOps pipelines for an organization/project scope."""

from __future__ import annotations

import argparse

from devlink.commands.common import (
    CommandRuntime,
    build_pipeline_cache,
    build_storage,
    emit,
    load_config,
    report_result,
    resolve_project_scope,
)
from devlink.models import PipelineView


def describe(view: PipelineView) -> str:
    subtitle = view.subtitle
    if view.path:
        subtitle += f" | Path: {view.path}"
    if view.repository_url:
        subtitle += f" | Repo: {view.repository_url}"
    return subtitle


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    config = load_config(args)
    storage = build_storage(config, runtime)
    scope = resolve_project_scope(args, config)
    cache = build_pipeline_cache(config, storage, runtime)

    result = cache.get_or_fetch(scope)
    exit_code = report_result(result, label="pipelines", scope=scope)
    if exit_code:
        return exit_code

    lines: list[str] = []
    for view in result.items:
        lines.append(view.name)
        lines.append(f"  {describe(view)}")
    emit(result.items, as_json=args.json, lines=lines)
    return 0
