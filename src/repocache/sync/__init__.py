"""Fetch-or-fallback synchronization between the search API and the cache."""

from .engine import SyncEngine
from .session import QuerySession

__all__ = ["QuerySession", "SyncEngine"]
