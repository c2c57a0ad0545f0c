"""Remote repository search clients."""

from .github_fetcher import DEFAULT_QUERY, GitHubSearchFetcher

__all__ = ["DEFAULT_QUERY", "GitHubSearchFetcher"]
