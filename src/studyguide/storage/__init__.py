"""Key-value object storage used for checkpoints and rendered guides."""

from .repository import ObjectStore, SQLiteObjectStore

__all__ = ["ObjectStore", "SQLiteObjectStore"]
