"""CLI entrypoint for devlink."""

from __future__ import annotations

import logging

from devlink.commands import (
    cleanup,
    clone,
    link,
    match,
    pipelines,
    prs,
    refresh,
    repos,
    serve,
    status,
)
from devlink.commands.parser import build_parser
from devlink.config import data_dir
from devlink.connectors.azure_az import AzureAzPipelineFetcher
from devlink.connectors.base import TransientRemoteFailure
from devlink.connectors.github_gh import GithubGhRepositoryFetcher
from devlink.git_probe import GitCli
from devlink.logging_utils import configure_logging
from devlink.services.command_runtime import CommandRuntime
from devlink.storage import SQLiteStorage, StorageUnavailable

logger = logging.getLogger(__name__)

COMMANDS = {
    "repos": repos.run,
    "prs": prs.run,
    "pipelines": pipelines.run,
    "refresh": refresh.run,
    "link": link.run,
    "cleanup-links": cleanup.run,
    "clone": clone.run,
    "match": match.run,
    "status": status.run,
    "serve": serve.run,
}


def build_runtime() -> CommandRuntime:
    return CommandRuntime(
        storage_cls=SQLiteStorage,
        repository_fetcher_cls=GithubGhRepositoryFetcher,
        pipeline_fetcher_cls=AzureAzPipelineFetcher,
        git_cls=GitCli,
    )


def main(argv: list[str] | None = None, *, runtime: CommandRuntime | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args, runtime=runtime or build_runtime())
    except StorageUnavailable as exc:
        logger.error("Cache database unavailable (data folder %s): %s", getattr(args, "home", None) or data_dir(), exc)
        return 3
    except TransientRemoteFailure as exc:
        logger.error("Remote call failed: %s", exc)
        return 2
    except ValueError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
