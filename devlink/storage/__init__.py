"""Persistence backends."""

from .base import StorageBackend, StorageUnavailable
from .sqlite import SQLiteStorage

__all__ = ["SQLiteStorage", "StorageBackend", "StorageUnavailable"]
