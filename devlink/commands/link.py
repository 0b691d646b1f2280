"""Scan a work folder and link local clones to cached repositories."""

from __future__ import annotations

import argparse
import logging

from devlink.commands.common import CommandRuntime, build_storage, emit, load_config, resolve_owner_scope
from devlink.linker import LocalRepositoryLinker
from devlink.storage.base import StorageBackend

logger = logging.getLogger(__name__)


def build_linker(storage: StorageBackend, runtime: CommandRuntime) -> LocalRepositoryLinker:
    git = runtime.git_cls()
    return LocalRepositoryLinker(storage, git, git)


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    config = load_config(args)
    work_folder = args.work_folder or config.github.work_folder_path
    if not work_folder:
        raise ValueError("No work folder configured; pass --work-folder or set github.work_folder_path")

    storage = build_storage(config, runtime)
    scope = resolve_owner_scope(args, config, runtime)
    report = build_linker(storage, runtime).scan_and_link(work_folder, scope)

    lines = [f"linked {repository_id}: {path}" for repository_id, path in sorted(report.linked.items())]
    for repository_id, paths in sorted(report.duplicates.items()):
        lines.append(f"ignored duplicates for {repository_id}: {', '.join(paths)}")
    lines.extend(f"unmatched: {path}" for path in report.unmatched)
    emit(
        {
            "linked": {str(key): value for key, value in report.linked.items()},
            "duplicates": {str(key): value for key, value in report.duplicates.items()},
            "unmatched": report.unmatched,
            "not_git": report.not_git,
        },
        as_json=args.json,
        lines=lines,
    )
    return 0
