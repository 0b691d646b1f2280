"""Filesystem and git probes for local working trees."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol

from devlink.connectors.base import CloneExecutor, CloneFailed

logger = logging.getLogger(__name__)


class GitProbe(Protocol):
    def is_work_tree(self, path: Path) -> bool: ...

    def remote_url(self, path: Path, remote: str = "origin") -> str | None: ...


class GitCli(GitProbe, CloneExecutor):
    def __init__(self, git_bin: str = "git") -> None:
        self.git_bin = git_bin

    def _run(self, args: list[str]) -> subprocess.CompletedProcess[str] | None:
        try:
            return subprocess.run([self.git_bin, *args], text=True, capture_output=True, check=False)
        except OSError as exc:
            logger.warning("Cannot run %s: %s", self.git_bin, exc)
            return None

    def is_work_tree(self, path: Path) -> bool:
        if not path.is_dir():
            return False
        proc = self._run(["-C", str(path), "rev-parse", "--is-inside-work-tree"])
        if proc is None or proc.returncode != 0 or proc.stdout.strip() != "true":
            return False
        # A folder nested inside some other clone is not a clone of its own.
        top = self._run(["-C", str(path), "rev-parse", "--show-toplevel"])
        if top is None or top.returncode != 0:
            return False
        return Path(top.stdout.strip()).resolve() == path.resolve()

    def remote_url(self, path: Path, remote: str = "origin") -> str | None:
        proc = self._run(["-C", str(path), "remote", "get-url", remote])
        if proc is None or proc.returncode != 0:
            return None
        url = proc.stdout.strip()
        return url or None

    def clone(self, url: str, destination: Path) -> Path:
        if destination.exists() and any(destination.iterdir()):
            raise CloneFailed(f"Clone destination is not empty: {destination}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Cloning %s into %s", url, destination)
        proc = self._run(["clone", url, str(destination)])
        if proc is None:
            raise CloneFailed(f"git is not available to clone {url}")
        if proc.returncode != 0:
            raise CloneFailed(f"git clone {url} failed: {proc.stderr.strip()}")
        return destination
