"""Serve the read-only JSON API."""

from __future__ import annotations

import argparse
import logging

from devlink.commands.common import CommandRuntime, load_config

logger = logging.getLogger(__name__)


def run(args: argparse.Namespace, *, runtime: CommandRuntime) -> int:
    _ = runtime
    config = load_config(args)
    if config.storage.backend != "sqlite":
        raise ValueError("serve currently requires storage.backend=sqlite")

    import uvicorn

    from devlink.webapp import create_app

    logger.info("Starting API on http://%s:%s (db=%s)", args.host, args.port, config.storage.sqlite_path)
    app = create_app(config)
    uvicorn.run(app, host=args.host, port=args.port, reload=False, log_level=args.log_level.lower())
    return 0
