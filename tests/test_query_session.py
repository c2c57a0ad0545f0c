from __future__ import annotations

import threading
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor

from repocache.schemas import (
    Failed,
    FetchFailure,
    FetchSuccess,
    Pending,
    QueryResult,
    Ready,
    RepoOwner,
    RepoRecord,
)
from repocache.storage import RepoStore
from repocache.sync import QuerySession, SyncEngine


def _record(repo_id: int, name: str) -> RepoRecord:
    return RepoRecord(
        id=repo_id,
        name=name,
        repo_url=f"https://github.com/octocat/{name}",
        owner=RepoOwner(login="octocat"),
    )


class MappingFetcher:
    def __init__(self, outcomes: dict[str, FetchSuccess | FetchFailure]) -> None:
        self.outcomes = outcomes
        self.queries: list[str] = []

    def fetch(self, query: str) -> FetchSuccess | FetchFailure:
        self.queries.append(query)
        return self.outcomes.get(query, FetchFailure(reason=f"no fixture for {query!r}"))


class GatedEngine:
    """Engine stand-in whose resolution of selected queries waits for a gate."""

    def __init__(self, gated: set[str]) -> None:
        self.gated = gated
        self.gate = threading.Event()
        self.started = threading.Event()

    def resolve(self, query: str) -> Iterator[QueryResult]:
        yield Pending()
        if query in self.gated:
            self.started.set()
            self.gate.wait(timeout=5)
        yield Ready(records=(_record(len(query), query or "default"),))


def test_session_resolves_blank_query_on_construction(tmp_path) -> None:
    fetcher = MappingFetcher({"": FetchSuccess(records=(_record(1, "Alamofire"),))})
    engine = SyncEngine(fetcher=fetcher, store=RepoStore(tmp_path / "cache.db"))
    seen: list[tuple[str, QueryResult]] = []

    session = QuerySession(engine, on_change=lambda query, result: seen.append((query, result)))

    assert fetcher.queries == [""]
    assert session.query == ""
    assert isinstance(session.result, Ready)
    assert [type(result) for _, result in seen] == [Pending, Ready]


def test_submit_updates_query_and_result(tmp_path) -> None:
    fetcher = MappingFetcher(
        {
            "": FetchSuccess(records=(_record(1, "default"),)),
            "android": FetchSuccess(records=(_record(2, "android-arch"),)),
        }
    )
    engine = SyncEngine(fetcher=fetcher, store=RepoStore(tmp_path / "cache.db"))
    session = QuerySession(engine)

    session.submit("android")

    assert session.query == "android"
    result = session.result
    assert isinstance(result, Ready)
    assert [record.name for record in result.records] == ["android-arch"]


def test_submit_surfaces_failure_when_cache_has_no_match(tmp_path) -> None:
    fetcher = MappingFetcher({"": FetchSuccess(records=(_record(1, "default"),))})
    engine = SyncEngine(fetcher=fetcher, store=RepoStore(tmp_path / "cache.db"))
    session = QuerySession(engine)

    session.submit("zzzznonexistent")

    assert session.result == Failed(reason="no fixture for 'zzzznonexistent'")


def test_subscribe_and_unsubscribe(tmp_path) -> None:
    fetcher = MappingFetcher({"": FetchSuccess(records=(_record(1, "default"),))})
    engine = SyncEngine(fetcher=fetcher, store=RepoStore(tmp_path / "cache.db"))
    session = QuerySession(engine)
    seen: list[str] = []

    unsubscribe = session.subscribe(lambda query, result: seen.append(query))
    session.submit("default")
    unsubscribe()
    session.submit("ignored")

    assert seen == ["default", "default"]


def test_pending_is_observable_before_background_resolution() -> None:
    engine = GatedEngine(gated={""})
    with ThreadPoolExecutor(max_workers=1) as executor:
        session = QuerySession(engine, executor=executor)  # type: ignore[arg-type]
        assert engine.started.wait(timeout=5)

        assert session.result == Pending()

        engine.gate.set()
        result = session.wait(timeout=5)

    assert isinstance(result, Ready)


def test_stale_result_does_not_overwrite_newer_query() -> None:
    engine = GatedEngine(gated={"slow"})
    with ThreadPoolExecutor(max_workers=2) as executor:
        session = QuerySession(engine, executor=executor)  # type: ignore[arg-type]
        session.wait(timeout=5)

        session.submit("slow")
        assert engine.started.wait(timeout=5)
        session.submit("fast")
        fast_result = session.wait(timeout=5)

        engine.gate.set()

    assert isinstance(fast_result, Ready)
    assert session.query == "fast"
    assert session.result == fast_result
    assert [record.name for record in fast_result.records] == ["fast"]
