"""Summarize cache contents and fetch markers."""

from __future__ import annotations

import argparse

from devlink.commands.common import CommandRuntime, build_storage, emit, load_config


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    config = load_config(args)
    storage = build_storage(config, runtime)
    summary = storage.cache_summary()

    lines = [f"database: {summary['db_path']}"]
    for section in ("repositories", "pull_requests", "pipelines"):
        lines.append(f"{section}:")
        for row in summary[section]:
            lines.append(f"  {row['scope']}: {row['rows']} rows, last fetched {row['last_fetched_at']}")
    lines.append("fetch markers:")
    for marker in summary["fetch_markers"]:
        lines.append(f"  {marker['kind']} {marker['scope']}: {marker['item_count']} items at {marker['fetched_at']}")
    emit(summary, as_json=args.json, lines=lines)
    return 0
