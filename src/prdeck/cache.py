"""SQLite snapshot cache for PR lists and label filters.

The cache is disposable: when the stored schema version differs from
CACHE_VERSION, the data tables are dropped and recreated empty.
"""

from __future__ import annotations

import contextlib
import sqlite3
from collections.abc import Iterator
from pathlib import Path

from prdeck.errors import CacheError
from prdeck.models import CiStatus, LabelFilter, PullRequest

CACHE_VERSION = "3"

SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_meta (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS pull_requests (
    number INTEGER NOT NULL,
    title TEXT NOT NULL,
    branch TEXT NOT NULL,
    repo_owner TEXT NOT NULL,
    repo_name TEXT NOT NULL,
    author TEXT NOT NULL,
    ci_status TEXT NOT NULL,
    filter TEXT NOT NULL,
    position INTEGER NOT NULL,
    PRIMARY KEY (number, repo_owner, repo_name, filter)
);

CREATE TABLE IF NOT EXISTS label_filters (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    label_name TEXT NOT NULL,
    repo_owner TEXT,
    repo_name TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_label_filters_unique
    ON label_filters (label_name, IFNULL(repo_owner, ''), IFNULL(repo_name, ''));
"""


class CacheStore:
    """Versioned cache file. Each operation opens its own connection."""

    def __init__(self, path: Path, version: str = CACHE_VERSION):
        self.path = path
        self.version = version
        self._init_db()

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.path, timeout=5)
        except (sqlite3.Error, OSError) as e:
            raise CacheError(f"Failed to open cache at {self.path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise CacheError(f"Cache operation failed: {e}") from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS cache_meta (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
            row = conn.execute("SELECT value FROM cache_meta WHERE key = 'version'").fetchone()
            if row is None or row["value"] != self.version:
                conn.execute("DROP TABLE IF EXISTS pull_requests")
                conn.execute("DROP TABLE IF EXISTS label_filters")
                conn.execute(
                    "INSERT INTO cache_meta (key, value) VALUES ('version', ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (self.version,),
                )
            conn.executescript(SCHEMA)

    def stored_version(self) -> str | None:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM cache_meta WHERE key = 'version'").fetchone()
        return row["value"] if row else None

    # -- pull requests --

    def load_pull_requests(self, owner: str, repo: str, filter_key: str) -> list[PullRequest]:
        """Load the last saved snapshot for (owner, repo, filter), in saved order."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT number, title, branch, repo_owner, repo_name, author, ci_status "
                "FROM pull_requests WHERE repo_owner = ? AND repo_name = ? AND filter = ? "
                "ORDER BY position",
                (owner, repo, filter_key),
            ).fetchall()
        return [
            PullRequest(
                number=row["number"],
                title=row["title"],
                branch=row["branch"],
                repo_owner=row["repo_owner"],
                repo_name=row["repo_name"],
                author=row["author"],
                ci_status=CiStatus.parse(row["ci_status"]),
            )
            for row in rows
        ]

    def save_pull_requests(
        self, owner: str, repo: str, filter_key: str, prs: list[PullRequest]
    ) -> None:
        """Replace the snapshot for (owner, repo, filter) with ``prs``."""
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM pull_requests WHERE repo_owner = ? AND repo_name = ? AND filter = ?",
                (owner, repo, filter_key),
            )
            conn.executemany(
                "INSERT OR REPLACE INTO pull_requests "
                "(number, title, branch, repo_owner, repo_name, author, ci_status, filter, position) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        pr.number,
                        pr.title,
                        pr.branch,
                        owner,
                        repo,
                        pr.author,
                        pr.ci_status.value,
                        filter_key,
                        position,
                    )
                    for position, pr in enumerate(prs)
                ],
            )

    # -- label filters --

    def load_label_filters(self, owner: str, repo: str) -> list[LabelFilter]:
        """Repo-specific labels for owner/repo plus global ones, globals last."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, label_name, repo_owner, repo_name FROM label_filters "
                "WHERE (repo_owner = ? AND repo_name = ?) "
                "OR (repo_owner IS NULL AND repo_name IS NULL) "
                "ORDER BY repo_owner IS NULL ASC, label_name ASC",
                (owner, repo),
            ).fetchall()
        return [
            LabelFilter(
                id=row["id"],
                label_name=row["label_name"],
                repo_owner=row["repo_owner"],
                repo_name=row["repo_name"],
            )
            for row in rows
        ]

    def save_label_filter(
        self, label_name: str, owner: str | None = None, repo: str | None = None
    ) -> None:
        """Add a label filter; an existing identical entry is left alone."""
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO label_filters (label_name, repo_owner, repo_name) "
                "VALUES (?, ?, ?)",
                (label_name, owner, repo),
            )

    def delete_label_filter(self, label_id: int) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM label_filters WHERE id = ?", (label_id,))

    def count_label_filters(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM label_filters").fetchone()
        return row["n"]


def clear_cache(path: Path) -> bool:
    """Delete the cache file. Returns True if a file was removed."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        raise CacheError(f"Failed to delete {path}: {e}") from e
    return True
