"""Repository search with a local SQLite fallback cache."""

from .config import AppConfig, load_config
from .schemas import Failed, Pending, QueryResult, Ready, RepoOwner, RepoRecord

__all__ = [
    "AppConfig",
    "Failed",
    "Pending",
    "QueryResult",
    "Ready",
    "RepoOwner",
    "RepoRecord",
    "load_config",
]
