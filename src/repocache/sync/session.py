from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future

from repocache.schemas import Pending, QueryResult

from .engine import SyncEngine

logger = logging.getLogger(__name__)

Listener = Callable[[str, QueryResult], None]


class QuerySession:
    """Holds the latest query and its result, re-resolving on every submit.

    Every submission is tagged with a monotonic token; emissions from an older
    submission are dropped once a newer one has been issued, so a slow
    response can never overwrite the result of a later query.
    """

    def __init__(
        self,
        engine: SyncEngine,
        *,
        executor: Executor | None = None,
        on_change: Listener | None = None,
    ) -> None:
        self.engine = engine
        self.executor = executor
        self._lock = threading.Lock()
        self._query = ""
        self._result: QueryResult = Pending()
        self._token = 0
        self._inflight: Future[None] | None = None
        self._listeners: list[Listener] = []
        if on_change is not None:
            self._listeners.append(on_change)

        self.submit("")

    @property
    def query(self) -> str:
        with self._lock:
            return self._query

    @property
    def result(self) -> QueryResult:
        with self._lock:
            return self._result

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def submit(self, query: str) -> None:
        with self._lock:
            self._token += 1
            token = self._token
            self._query = query

        self._publish(token, query, Pending())
        if self.executor is None:
            self._run(token, query)
            return

        future = self.executor.submit(self._run, token, query)
        with self._lock:
            if token == self._token:
                self._inflight = future

    def wait(self, timeout: float | None = None) -> QueryResult:
        """Block until the latest submission has resolved and return its result."""
        with self._lock:
            future = self._inflight
        if future is not None:
            future.result(timeout=timeout)
        return self.result

    def _run(self, token: int, query: str) -> None:
        for result in self.engine.resolve(query):
            # submit() already published Pending for this token.
            if isinstance(result, Pending):
                continue
            self._publish(token, query, result)

    def _publish(self, token: int, query: str, result: QueryResult) -> None:
        with self._lock:
            if token != self._token:
                logger.debug(
                    "dropping stale result query=%r token=%d latest=%d",
                    query,
                    token,
                    self._token,
                )
                return
            self._result = result
            listeners = list(self._listeners)

        for listener in listeners:
            listener(query, result)
