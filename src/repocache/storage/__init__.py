"""SQLite storage for cached repository search results."""

from .repo import SCHEMA_VERSION, RepoStore, StorageError

__all__ = ["SCHEMA_VERSION", "RepoStore", "StorageError"]
