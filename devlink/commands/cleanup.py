"""Clear local links whose clone disappeared or changed origin."""

from __future__ import annotations

import argparse

from devlink.commands.common import CommandRuntime, build_storage, load_config, resolve_owner_scope
from devlink.commands.link import build_linker


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    config = load_config(args)
    storage = build_storage(config, runtime)
    scope = resolve_owner_scope(args, config, runtime)
    cleared = build_linker(storage, runtime).cleanup_invalid_links(scope)
    print(f"cleared {cleared} invalid links")
    return 0
