"""SQLite storage backend for the scoped entity cache."""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from devlink.models import EntityKind, OwnerScope, Pipeline, ProjectScope, PullRequest, RemoteRepository
from devlink.storage.base import StorageUnavailable
from devlink.urls import repository_key

logger = logging.getLogger(__name__)


def _ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _row_to_repository(row: sqlite3.Row) -> RemoteRepository:
    return RemoteRepository(
        id=row["id"],
        name=row["name"],
        full_name=row["full_name"],
        description=row["description"],
        html_url=row["html_url"],
        private=bool(row["private"]),
        stargazers_count=row["stargazers_count"],
        language=row["language"],
        owner=row["owner"],
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
        last_fetched_at=_parse_ts(row["last_fetched_at"]),
        local_path=row["local_path"],
    )


def _row_to_pull_request(row: sqlite3.Row) -> PullRequest:
    return PullRequest(
        id=row["id"],
        number=row["number"],
        title=row["title"],
        html_url=row["html_url"],
        state=row["state"],
        repository_name=row["repository_name"],
        repository_full_name=row["repository_full_name"],
        author=row["author"],
        is_draft=bool(row["is_draft"]),
        owner=row["owner"],
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
        last_fetched_at=_parse_ts(row["last_fetched_at"]),
    )


def _row_to_pipeline(row: sqlite3.Row) -> Pipeline:
    return Pipeline(
        id=row["id"],
        name=row["name"],
        path=row["path"],
        repository_url=row["repository_url"],
        organization=row["organization"],
        project=row["project"],
        queue_status=row["queue_status"],
        last_build_id=row["last_build_id"],
        last_build_status=row["last_build_status"],
        last_build_result=row["last_build_result"],
        last_build_number=row["last_build_number"],
        last_fetched_at=_parse_ts(row["last_fetched_at"]),
    )


class SQLiteStorage:
    """SQLite-backed entity cache, one file holding the three scoped entity tables.

    Every ``sqlite3`` failure is raised as :class:`StorageUnavailable`. Writes are
    serialized through a single lock; SQLite WAL mode lets reads run alongside.
    """

    def __init__(self, db_path: str | Path, *, clock: Callable[[], datetime] | None = None) -> None:
        self.db_path = Path(db_path)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._write_lock = threading.RLock()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot create storage directory for {self.db_path}: {exc}") from exc
        self.init_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Cannot open SQLite store at {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"SQLite store at {self.db_path} failed: {exc}") from exc
        finally:
            conn.close()

    def init_schema(self) -> None:
        with self._write_lock, self._connect() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS repositories (
                  owner TEXT NOT NULL,
                  id INTEGER NOT NULL,
                  name TEXT NOT NULL,
                  full_name TEXT NOT NULL,
                  description TEXT,
                  html_url TEXT NOT NULL,
                  private INTEGER NOT NULL DEFAULT 0,
                  stargazers_count INTEGER NOT NULL DEFAULT 0,
                  language TEXT,
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL,
                  last_fetched_at TEXT NOT NULL,
                  local_path TEXT,
                  PRIMARY KEY (owner, id)
                );

                CREATE TABLE IF NOT EXISTS pull_requests (
                  owner TEXT NOT NULL,
                  id INTEGER NOT NULL,
                  number INTEGER NOT NULL,
                  title TEXT NOT NULL,
                  html_url TEXT NOT NULL,
                  state TEXT NOT NULL,
                  repository_name TEXT NOT NULL,
                  repository_full_name TEXT NOT NULL,
                  author TEXT NOT NULL,
                  is_draft INTEGER NOT NULL DEFAULT 0,
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL,
                  last_fetched_at TEXT NOT NULL,
                  PRIMARY KEY (owner, id)
                );

                CREATE TABLE IF NOT EXISTS pipelines (
                  organization TEXT NOT NULL,
                  project TEXT NOT NULL,
                  id INTEGER NOT NULL,
                  name TEXT NOT NULL,
                  path TEXT,
                  repository_url TEXT,
                  queue_status TEXT,
                  last_build_id INTEGER,
                  last_build_status TEXT,
                  last_build_result TEXT,
                  last_build_number TEXT,
                  last_fetched_at TEXT NOT NULL,
                  PRIMARY KEY (organization, project, id)
                );

                CREATE TABLE IF NOT EXISTS scope_fetches (
                  kind TEXT NOT NULL,
                  scope_key TEXT NOT NULL,
                  fetched_at TEXT NOT NULL,
                  item_count INTEGER NOT NULL DEFAULT 0,
                  PRIMARY KEY (kind, scope_key)
                );

                CREATE INDEX IF NOT EXISTS idx_repositories_full_name ON repositories(full_name);
                CREATE INDEX IF NOT EXISTS idx_repositories_id ON repositories(id);
                CREATE INDEX IF NOT EXISTS idx_pull_requests_repo ON pull_requests(repository_full_name COLLATE NOCASE);
                CREATE INDEX IF NOT EXISTS idx_pull_requests_updated ON pull_requests(owner, updated_at);
                CREATE INDEX IF NOT EXISTS idx_pipelines_repository_url ON pipelines(repository_url);
                """
            )

    # Repositories

    def upsert_repositories(self, scope: OwnerScope, repositories: list[RemoteRepository]) -> int:
        if not repositories:
            return 0
        now = _ts(self._clock())
        rows = [
            (
                scope.owner,
                repo.id,
                repo.name,
                repo.full_name,
                repo.description,
                repo.html_url,
                1 if repo.private else 0,
                repo.stargazers_count,
                repo.language,
                _ts(repo.created_at),
                _ts(repo.updated_at),
                now,
            )
            for repo in repositories
        ]
        with self._write_lock, self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO repositories (
                  owner, id, name, full_name, description, html_url, private,
                  stargazers_count, language, created_at, updated_at, last_fetched_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(owner, id) DO UPDATE SET
                  name=excluded.name,
                  full_name=excluded.full_name,
                  description=excluded.description,
                  html_url=excluded.html_url,
                  private=excluded.private,
                  stargazers_count=excluded.stargazers_count,
                  language=excluded.language,
                  updated_at=excluded.updated_at,
                  last_fetched_at=MAX(repositories.last_fetched_at, excluded.last_fetched_at)
                """,
                rows,
            )
        logger.debug("Upserted %s repositories for %s", len(rows), scope)
        return len(rows)

    def list_repositories(self, scope: OwnerScope) -> list[RemoteRepository]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM repositories WHERE owner = ? ORDER BY full_name, id",
                (scope.owner,),
            ).fetchall()
        return [_row_to_repository(row) for row in rows]

    def list_all_repositories(self) -> list[RemoteRepository]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM repositories ORDER BY full_name, owner, id").fetchall()
        return [_row_to_repository(row) for row in rows]

    def last_repository_fetch_time(self, scope: OwnerScope) -> datetime | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT MAX(last_fetched_at) AS last FROM repositories WHERE owner = ?",
                (scope.owner,),
            ).fetchone()
        return _parse_ts(row["last"])

    def clear_repositories(self, scope: OwnerScope) -> int:
        return self._clear("repositories", "owner = ?", (scope.owner,), EntityKind.REPOSITORY, scope.key)

    def find_repositories_by_url(self, url: str) -> list[RemoteRepository]:
        target = repository_key(url)
        if not target:
            return []
        return [repo for repo in self.list_all_repositories() if repository_key(repo.html_url) == target]

    def set_local_path(self, repository_id: int, local_path: str | None) -> int:
        # The link belongs to the repository, so every owner scope's copy of the row follows it.
        with self._write_lock, self._connect() as conn:
            cursor = conn.execute(
                "UPDATE repositories SET local_path = ? WHERE id = ?",
                (local_path, repository_id),
            )
            return int(cursor.rowcount if cursor.rowcount is not None else 0)

    def get_local_path(self, repository_id: int) -> str | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT local_path FROM repositories WHERE id = ? AND local_path IS NOT NULL LIMIT 1",
                (repository_id,),
            ).fetchone()
        return row["local_path"] if row else None

    # Pull requests

    def upsert_pull_requests(self, scope: OwnerScope, pull_requests: list[PullRequest]) -> int:
        if not pull_requests:
            return 0
        now = _ts(self._clock())
        rows = [
            (
                scope.owner,
                pr.id,
                pr.number,
                pr.title,
                pr.html_url,
                pr.state,
                pr.repository_name,
                pr.repository_full_name,
                pr.author,
                1 if pr.is_draft else 0,
                _ts(pr.created_at),
                _ts(pr.updated_at),
                now,
            )
            for pr in pull_requests
        ]
        with self._write_lock, self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO pull_requests (
                  owner, id, number, title, html_url, state, repository_name,
                  repository_full_name, author, is_draft, created_at, updated_at, last_fetched_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(owner, id) DO UPDATE SET
                  number=excluded.number,
                  title=excluded.title,
                  html_url=excluded.html_url,
                  state=excluded.state,
                  repository_name=excluded.repository_name,
                  repository_full_name=excluded.repository_full_name,
                  author=excluded.author,
                  is_draft=excluded.is_draft,
                  updated_at=excluded.updated_at,
                  last_fetched_at=MAX(pull_requests.last_fetched_at, excluded.last_fetched_at)
                """,
                rows,
            )
        logger.debug("Upserted %s pull requests for %s", len(rows), scope)
        return len(rows)

    def list_pull_requests(self, scope: OwnerScope) -> list[PullRequest]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM pull_requests WHERE owner = ? ORDER BY updated_at DESC, id",
                (scope.owner,),
            ).fetchall()
        return [_row_to_pull_request(row) for row in rows]

    def last_pull_request_fetch_time(self, scope: OwnerScope) -> datetime | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT MAX(last_fetched_at) AS last FROM pull_requests WHERE owner = ?",
                (scope.owner,),
            ).fetchone()
        return _parse_ts(row["last"])

    def clear_pull_requests(self, scope: OwnerScope) -> int:
        return self._clear("pull_requests", "owner = ?", (scope.owner,), EntityKind.PULL_REQUEST, scope.key)

    def find_pull_requests_by_repository(self, full_name: str) -> list[PullRequest]:
        if not full_name:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM pull_requests
                WHERE repository_full_name = ? COLLATE NOCASE
                ORDER BY updated_at DESC, id
                """,
                (full_name,),
            ).fetchall()
        return [_row_to_pull_request(row) for row in rows]

    # Pipelines

    def upsert_pipelines(self, scope: ProjectScope, pipelines: list[Pipeline]) -> int:
        if not pipelines:
            return 0
        now = _ts(self._clock())
        rows = [
            (
                scope.organization,
                scope.project,
                pipeline.id,
                pipeline.name,
                pipeline.path,
                pipeline.repository_url,
                pipeline.queue_status,
                pipeline.last_build_id,
                pipeline.last_build_status,
                pipeline.last_build_result,
                pipeline.last_build_number,
                now,
            )
            for pipeline in pipelines
        ]
        with self._write_lock, self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO pipelines (
                  organization, project, id, name, path, repository_url, queue_status,
                  last_build_id, last_build_status, last_build_result, last_build_number, last_fetched_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(organization, project, id) DO UPDATE SET
                  name=excluded.name,
                  path=excluded.path,
                  repository_url=excluded.repository_url,
                  queue_status=excluded.queue_status,
                  last_build_id=excluded.last_build_id,
                  last_build_status=excluded.last_build_status,
                  last_build_result=excluded.last_build_result,
                  last_build_number=excluded.last_build_number,
                  last_fetched_at=MAX(pipelines.last_fetched_at, excluded.last_fetched_at)
                """,
                rows,
            )
        logger.debug("Upserted %s pipelines for %s", len(rows), scope)
        return len(rows)

    def list_pipelines(self, scope: ProjectScope) -> list[Pipeline]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM pipelines WHERE organization = ? AND project = ? ORDER BY name, id",
                (scope.organization, scope.project),
            ).fetchall()
        return [_row_to_pipeline(row) for row in rows]

    def last_pipeline_fetch_time(self, scope: ProjectScope) -> datetime | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT MAX(last_fetched_at) AS last FROM pipelines WHERE organization = ? AND project = ?",
                (scope.organization, scope.project),
            ).fetchone()
        return _parse_ts(row["last"])

    def clear_pipelines(self, scope: ProjectScope) -> int:
        return self._clear(
            "pipelines",
            "organization = ? AND project = ?",
            (scope.organization, scope.project),
            EntityKind.PIPELINE,
            scope.key,
        )

    def find_pipelines_by_repository_url(self, url: str) -> list[Pipeline]:
        target = repository_key(url)
        if not target:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM pipelines
                WHERE repository_url IS NOT NULL AND repository_url != ''
                ORDER BY name, organization, project, id
                """
            ).fetchall()
        return [_row_to_pipeline(row) for row in rows if repository_key(row["repository_url"]) == target]

    # Scope fetch markers

    def mark_scope_fetched(self, kind: EntityKind, scope: OwnerScope | ProjectScope, item_count: int) -> None:
        with self._write_lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO scope_fetches (kind, scope_key, fetched_at, item_count)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(kind, scope_key) DO UPDATE SET
                  fetched_at=MAX(scope_fetches.fetched_at, excluded.fetched_at),
                  item_count=excluded.item_count
                """,
                (kind.value, scope.key, _ts(self._clock()), item_count),
            )

    def get_scope_marker(self, kind: EntityKind, scope: OwnerScope | ProjectScope) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT kind, scope_key, fetched_at, item_count FROM scope_fetches WHERE kind = ? AND scope_key = ?",
                (kind.value, scope.key),
            ).fetchone()
        if row is None:
            return None
        return {
            "kind": row["kind"],
            "scope": row["scope_key"],
            "fetched_at": _parse_ts(row["fetched_at"]),
            "item_count": int(row["item_count"]),
        }

    def cache_summary(self) -> dict:
        with self._connect() as conn:
            repositories = conn.execute(
                """
                SELECT owner AS scope, COUNT(*) AS rows, MAX(last_fetched_at) AS last_fetched_at,
                       SUM(CASE WHEN local_path IS NOT NULL THEN 1 ELSE 0 END) AS linked
                FROM repositories GROUP BY owner ORDER BY owner
                """
            ).fetchall()
            pull_requests = conn.execute(
                """
                SELECT owner AS scope, COUNT(*) AS rows, MAX(last_fetched_at) AS last_fetched_at
                FROM pull_requests GROUP BY owner ORDER BY owner
                """
            ).fetchall()
            pipelines = conn.execute(
                """
                SELECT organization || '/' || project AS scope, COUNT(*) AS rows, MAX(last_fetched_at) AS last_fetched_at,
                       SUM(CASE WHEN repository_url IS NOT NULL AND repository_url != '' THEN 1 ELSE 0 END) AS with_repository
                FROM pipelines GROUP BY organization, project ORDER BY organization, project
                """
            ).fetchall()
            markers = conn.execute(
                "SELECT kind, scope_key AS scope, fetched_at, item_count FROM scope_fetches ORDER BY kind, scope_key"
            ).fetchall()
        return {
            "db_path": str(self.db_path),
            "repositories": [dict(row) for row in repositories],
            "pull_requests": [dict(row) for row in pull_requests],
            "pipelines": [dict(row) for row in pipelines],
            "fetch_markers": [dict(row) for row in markers],
        }

    def _clear(self, table: str, predicate: str, params: tuple, kind: EntityKind, scope_key: str) -> int:
        with self._write_lock, self._connect() as conn:
            cursor = conn.execute(f"DELETE FROM {table} WHERE {predicate}", params)
            conn.execute(
                "DELETE FROM scope_fetches WHERE kind = ? AND scope_key = ?",
                (kind.value, scope_key),
            )
            deleted = int(cursor.rowcount if cursor.rowcount is not None else 0)
        logger.info("Cleared %s %s rows for %s", deleted, table, scope_key)
        return deleted
