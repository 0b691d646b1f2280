"""List cached (or freshly fetched) GitHub repositories for an owner scope."""

from __future__ import annotations

import argparse
import logging

from devlink.commands.common import (
    CommandRuntime,
    build_repository_cache,
    build_storage,
    emit,
    load_config,
    report_result,
    resolve_owner_scope,
)

logger = logging.getLogger(__name__)


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    config = load_config(args)
    storage = build_storage(config, runtime)
    scope = resolve_owner_scope(args, config, runtime)
    cache = build_repository_cache(args, config, storage, runtime)

    result = cache.get_or_fetch(scope)
    exit_code = report_result(result, label="repositories", scope=scope)
    if exit_code:
        return exit_code

    lines: list[str] = []
    for view in result.items:
        lines.append(view.title)
        lines.append(f"  {view.subtitle}")
        lines.append(f"  {view.html_url}")
    emit(result.items, as_json=args.json, lines=lines)
    return 0
