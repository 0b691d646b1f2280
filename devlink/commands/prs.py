"""List open pull requests for an owner scope."""

from __future__ import annotations

import argparse

from devlink.commands.common import (
    CommandRuntime,
    build_pull_request_cache,
    build_storage,
    emit,
    load_config,
    report_result,
    resolve_owner_scope,
)


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    config = load_config(args)
    storage = build_storage(config, runtime)
    scope = resolve_owner_scope(args, config, runtime)
    cache = build_pull_request_cache(args, config, storage, runtime)

    result = cache.get_or_fetch(scope)
    exit_code = report_result(result, label="pull requests", scope=scope)
    if exit_code:
        return exit_code

    views = result.items
    if args.repo:
        views = [view for view in views if view.repository_full_name.lower() == args.repo.lower()]

    lines: list[str] = []
    for view in views:
        lines.append(view.title)
        lines.append(f"  {view.subtitle}")
        lines.append(f"  {view.html_url}")
    emit(views, as_json=args.json, lines=lines)
    return 0
