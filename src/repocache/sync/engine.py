from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Protocol

from repocache.schemas import (
    Failed,
    FetchOutcome,
    FetchSuccess,
    Pending,
    QueryResult,
    Ready,
    RepoRecord,
    is_terminal,
)
from repocache.storage import StorageError

logger = logging.getLogger(__name__)


class RepoFetcher(Protocol):
    def fetch(self, query: str) -> FetchOutcome: ...


class RepoCache(Protocol):
    def replace_all(self, records: list[RepoRecord]) -> None: ...

    def search_by_substring(self, fragment: str) -> list[RepoRecord]: ...


class SyncEngine:
    """Fetch-or-fallback policy between the remote search API and the local cache.

    A successful fetch replaces the cache with the fetched records. A failed
    fetch falls back to cached records matching the raw query; the failure is
    only surfaced when the cache has nothing to offer.
    """

    def __init__(self, *, fetcher: RepoFetcher, store: RepoCache) -> None:
        self.fetcher = fetcher
        self.store = store

    def resolve(self, query: str) -> Iterator[QueryResult]:
        yield Pending()

        try:
            outcome = self.fetcher.fetch(query)
            if isinstance(outcome, FetchSuccess):
                result: QueryResult = self._write_through(query, list(outcome.records))
            else:
                logger.warning(
                    "remote fetch failed query=%r kind=%s reason=%s",
                    query,
                    outcome.kind,
                    outcome.reason,
                )
                result = self._fallback(query, outcome.reason)
        except Exception as exc:
            logger.exception("unexpected error while resolving query=%r", query)
            result = self._fallback(query, str(exc) or type(exc).__name__)

        yield result

    def resolve_terminal(self, query: str) -> Ready | Failed:
        terminal: Ready | Failed | None = None
        for result in self.resolve(query):
            if is_terminal(result):
                terminal = result
        if terminal is None:
            raise RuntimeError(f"resolve produced no terminal result for query={query!r}")
        return terminal

    def _write_through(self, query: str, records: list[RepoRecord]) -> Ready:
        normalized = [record.with_owner_login() for record in records]
        try:
            self.store.replace_all(normalized)
        except StorageError as exc:
            logger.exception("cache write-through failed query=%r count=%d", query, len(normalized))
            return Ready(records=tuple(normalized), source="remote", cache_error=str(exc))
        return Ready(records=tuple(normalized), source="remote")

    def _fallback(self, query: str, reason: str) -> Ready | Failed:
        try:
            cached = self.store.search_by_substring(query)
        except Exception:
            logger.exception("cache fallback read failed query=%r", query)
            cached = []

        if cached:
            logger.info("serving cached fallback query=%r count=%d", query, len(cached))
            return Ready(records=tuple(cached), source="cache")
        return Failed(reason=reason)
