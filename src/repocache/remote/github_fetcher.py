from __future__ import annotations

import logging
import os

import requests
from pydantic import ValidationError

from repocache.schemas import (
    FailureKind,
    FetchFailure,
    FetchOutcome,
    FetchSuccess,
    SearchResponse,
)

GITHUB_API_BASE = "https://api.github.com"
DEFAULT_QUERY = "language:swift"
MAX_PER_PAGE = 100

logger = logging.getLogger(__name__)


class GitHubSearchFetcher:
    """Single-request client for the GitHub repository search endpoint."""

    def __init__(
        self,
        *,
        base_url: str = GITHUB_API_BASE,
        default_query: str = DEFAULT_QUERY,
        per_page: int = MAX_PER_PAGE,
        timeout_seconds: float = 10.0,
        token: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        if not default_query.strip():
            raise ValueError("default_query must not be empty.")
        if not 1 <= per_page <= MAX_PER_PAGE:
            raise ValueError(f"per_page must be between 1 and {MAX_PER_PAGE}.")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0.")

        self.base_url = base_url.rstrip("/")
        self.default_query = default_query.strip()
        self.per_page = per_page
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

        self.session.headers.update(
            {"Accept": "application/vnd.github+json", "User-Agent": "repocache/0.1.0"}
        )
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_env(
        cls,
        *,
        env_var: str = "GITHUB_TOKEN",
        base_url: str = GITHUB_API_BASE,
        default_query: str = DEFAULT_QUERY,
        per_page: int = MAX_PER_PAGE,
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
    ) -> GitHubSearchFetcher:
        token = os.getenv(env_var, "").strip() or None
        return cls(
            base_url=base_url,
            default_query=default_query,
            per_page=per_page,
            timeout_seconds=timeout_seconds,
            token=token,
            session=session,
        )

    def resolve_query(self, query: str) -> str:
        return query.strip() or self.default_query

    def fetch(self, query: str) -> FetchOutcome:
        search_term = self.resolve_query(query)
        try:
            response = self.session.get(
                f"{self.base_url}/search/repositories",
                params={
                    "q": search_term,
                    "sort": "stars",
                    "order": "desc",
                    "per_page": self.per_page,
                },
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            logger.warning("github search transport error q=%s error=%s", search_term, exc)
            return FetchFailure(reason=f"Network error: {exc}")

        if not 200 <= response.status_code < 300:
            reason = self._describe_http_error(response)
            logger.warning(
                "github search failed q=%s status=%s", search_term, response.status_code
            )
            return FetchFailure(reason=reason)

        try:
            payload = SearchResponse.model_validate_json(response.text)
        except ValidationError as exc:
            logger.warning("github search malformed payload q=%s", search_term)
            return FetchFailure(
                reason=f"Malformed response from GitHub: {exc.error_count()} validation error(s)"
            )

        if not payload.items:
            logger.info("github search empty q=%s", search_term)
            return FetchFailure(
                reason=f"No repositories found for query '{search_term}'",
                kind=FailureKind.EMPTY,
            )

        logger.info(
            "github search ok q=%s items=%d total=%d incomplete=%s",
            search_term,
            len(payload.items),
            payload.total_count,
            payload.incomplete_results,
        )
        return FetchSuccess(records=tuple(payload.items))

    @staticmethod
    def _describe_http_error(response: requests.Response) -> str:
        message = ""
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            message = str(payload.get("message", "")).strip()

        reason = f"GitHub API error {response.status_code}"
        if message:
            reason += f": {message}"
        elif response.reason:
            reason += f": {response.reason}"
        return reason
