"""Clone a cached repository into the work folder and link it."""

from __future__ import annotations

import argparse
import logging

from devlink.commands.common import CommandRuntime, build_storage, load_config, resolve_owner_scope
from devlink.commands.link import build_linker
from devlink.linker import clone_url_for

logger = logging.getLogger(__name__)


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    config = load_config(args)
    work_folder = args.work_folder or config.github.work_folder_path
    if not work_folder:
        raise ValueError("No work folder configured; pass --work-folder or set github.work_folder_path")

    storage = build_storage(config, runtime)
    scope = resolve_owner_scope(args, config, runtime)
    wanted = args.repo.lower()
    matches = [repo for repo in storage.list_repositories(scope) if wanted in (repo.full_name.lower(), repo.name.lower())]
    if not matches:
        logger.error("Repository %s is not cached for %s; run `devlink repos` first", args.repo, scope)
        return 1
    repo = matches[0]

    linker = build_linker(storage, runtime)
    existing = linker.local_path_for(repo.id)
    if existing is not None and existing.is_dir():
        logger.info("%s is already cloned at %s", repo.full_name, existing)
        print(existing)
        return 0

    cloned = linker.clone_repository(clone_url_for(repo), work_folder, args.name or repo.name, repo.id)
    if cloned is None:
        return 1
    print(cloned)
    return 0
