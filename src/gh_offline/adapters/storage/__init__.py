"""Storage adapters."""

from gh_offline.adapters.storage.sqlite_store import SQLiteStore

__all__ = ["SQLiteStore"]
