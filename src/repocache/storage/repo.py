from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import ValidationError

from repocache.schemas import RepoOwner, RepoRecord

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 4

_SELECT_COLUMNS = """
SELECT id, name, repo_url, owner_data, owner_login, description, language, stars, forks
FROM repositories
"""

_INSERT_OR_REPLACE = """
INSERT INTO repositories (
    id, name, repo_url, owner_data, owner_login, description, language, stars, forks
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    name=excluded.name,
    repo_url=excluded.repo_url,
    owner_data=excluded.owner_data,
    owner_login=excluded.owner_login,
    description=excluded.description,
    language=excluded.language,
    stars=excluded.stars,
    forks=excluded.forks
"""

# Version 3 stored provider field names as columns.
_MIGRATE_FROM_V3 = """
BEGIN;
CREATE TABLE repositories_new (
    id INTEGER PRIMARY KEY NOT NULL,
    name TEXT NOT NULL,
    repo_url TEXT NOT NULL,
    owner_data TEXT NOT NULL,
    owner_login TEXT NOT NULL,
    description TEXT,
    language TEXT,
    stars INTEGER NOT NULL DEFAULT 0,
    forks INTEGER NOT NULL DEFAULT 0
);
INSERT INTO repositories_new (
    id, name, repo_url, owner_data, owner_login, description, language, stars, forks
)
SELECT
    id, name, repoURL, owner,
    COALESCE(NULLIF(owner_login, ''), json_extract(owner, '$.login'), ''),
    description, language,
    COALESCE(stargazers_count, 0), COALESCE(forks_count, 0)
FROM repositories;
DROP TABLE repositories;
ALTER TABLE repositories_new RENAME TO repositories;
COMMIT;
"""


class StorageError(RuntimeError):
    """Raised when the local repository cache cannot be read or written."""


class RepoStore:
    """SQLite-backed cache of repository records keyed by provider id."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def insert_all(self, records: Iterable[RepoRecord]) -> None:
        payloads = [self._record_to_row(record) for record in records]
        if not payloads:
            return
        with self._connect() as conn:
            conn.executemany(_INSERT_OR_REPLACE, payloads)
        logger.debug("repo_store insert_all count=%d", len(payloads))

    def clear_all(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM repositories")
        logger.debug("repo_store clear_all")

    def replace_all(self, records: Iterable[RepoRecord]) -> None:
        """Swap the whole cache for ``records`` in a single transaction."""
        payloads = [self._record_to_row(record) for record in records]
        with self._connect() as conn:
            conn.execute("DELETE FROM repositories")
            if payloads:
                conn.executemany(_INSERT_OR_REPLACE, payloads)
        logger.info("repo_store replace_all count=%d", len(payloads))

    def search_by_substring(self, fragment: str) -> list[RepoRecord]:
        if not fragment:
            return self.get_all()

        needle = fragment.casefold()
        query = (
            _SELECT_COLUMNS
            + """
        WHERE instr(casefold(name), ?) > 0
           OR instr(casefold(owner_login), ?) > 0
           OR instr(casefold(description), ?) > 0
        ORDER BY rowid ASC
        """
        )
        with self._connect() as conn:
            rows = conn.execute(query, (needle, needle, needle)).fetchall()
        return [self._row_to_record(row) for row in rows]

    def get_all(self) -> list[RepoRecord]:
        with self._connect() as conn:
            rows = conn.execute(_SELECT_COLUMNS + " ORDER BY rowid ASC").fetchall()
        return [self._row_to_record(row) for row in rows]

    def count(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM repositories").fetchone()
        return int(row[0])

    def _init_schema(self) -> None:
        schema_path = Path(__file__).with_name("schema.sql")
        schema = schema_path.read_text(encoding="utf-8")
        with self._connect() as conn:
            version = conn.execute("PRAGMA user_version").fetchone()[0]
            if version > SCHEMA_VERSION:
                raise StorageError(
                    f"database schema version {version} is newer than supported "
                    f"version {SCHEMA_VERSION}: {self.db_path}"
                )

            columns = {
                row["name"] for row in conn.execute("PRAGMA table_info(repositories)")
            }
            if "repoURL" in columns:
                logger.info("repo_store migrating legacy schema path=%s", self.db_path)
                conn.executescript(_MIGRATE_FROM_V3)

            conn.executescript(schema)
            conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise StorageError(f"cannot open cache database {self.db_path}: {exc}") from exc

        conn.row_factory = sqlite3.Row
        # SQLite LIKE/lower only fold ASCII.
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StorageError(f"cache database error: {exc}") from exc
        finally:
            conn.close()

    @staticmethod
    def _record_to_row(record: RepoRecord) -> tuple[object, ...]:
        return (
            record.id,
            record.name,
            record.repo_url,
            json.dumps(record.owner.model_dump(), ensure_ascii=False),
            record.owner_login,
            record.description,
            record.language,
            record.stars,
            record.forks,
        )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> RepoRecord:
        try:
            return RepoRecord(
                id=row["id"],
                name=row["name"],
                repo_url=row["repo_url"],
                owner=RepoOwner.model_validate_json(row["owner_data"]),
                owner_login=row["owner_login"],
                description=row["description"],
                language=row["language"],
                stars=row["stars"],
                forks=row["forks"],
            )
        except ValidationError as exc:
            raise StorageError(f"corrupt cached row for repository id={row['id']}") from exc


def _casefold(value: str | None) -> str | None:
    if value is None:
        return None
    return value.casefold()
