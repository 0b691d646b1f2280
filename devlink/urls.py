"""Repository URL normalization used for cross-system matching."""

from __future__ import annotations

import re

_GITHUB_API_RE = re.compile(r"^https?://api\.github\.com/repos/(?P<slug>.+)$", re.IGNORECASE)
_GHE_API_RE = re.compile(r"^(?P<base>https?://[^/]+)/api/v3/repos/(?P<slug>.+)$", re.IGNORECASE)
_SCP_REMOTE_RE = re.compile(r"^(?:[A-Za-z0-9_.-]+@)?(?P<host>[A-Za-z0-9_.-]+):(?!//)(?P<path>.+)$")
_SSH_REMOTE_RE = re.compile(r"^ssh://(?:[^@/]+@)?(?P<host>[^/:]+)(?::\d+)?/(?P<path>.+)$", re.IGNORECASE)


def normalize(url: str | None) -> str:
    """Canonical comparison key: drop trailing slashes and a trailing ``.git``, then lowercase.

    ``repo``, ``repo/``, ``repo.git`` and ``repo.git/`` share one key.
    ``None`` and empty input give ``""``.
    """
    if not url:
        return ""
    normalized = url.strip().rstrip("/")
    if normalized.lower().endswith(".git"):
        normalized = normalized[:-4]
    return normalized.rstrip("/").lower()


def to_web_url(url: str | None) -> str:
    """Rewrite API and git-remote forms of a repository URL to the web-facing form.

    Pipelines report their source repository as an API resource
    (``https://api.github.com/repos/org/repo``) and local clones usually carry an
    SSH remote (``git@github.com:org/repo.git``); both name the same repository
    as ``https://github.com/org/repo``.
    """
    if not url:
        return ""
    value = url.strip()

    m = _GITHUB_API_RE.match(value)
    if m:
        return f"https://github.com/{m.group('slug')}"

    m = _GHE_API_RE.match(value)
    if m:
        return f"{m.group('base')}/{m.group('slug')}"

    m = _SSH_REMOTE_RE.match(value)
    if m:
        return f"https://{m.group('host')}/{m.group('path')}"

    if "://" not in value:
        m = _SCP_REMOTE_RE.match(value)
        if m:
            return f"https://{m.group('host')}/{m.group('path')}"

    return value


def repository_key(url: str | None) -> str:
    return normalize(to_web_url(url))


def same_repository(left: str | None, right: str | None) -> bool:
    """True when both URLs name the same repository. An absent URL matches nothing."""
    left_key = repository_key(left)
    if not left_key:
        return False
    return left_key == repository_key(right)
