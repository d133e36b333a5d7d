"""Storage package providing persistence utilities for scan cycles and trades."""

from .sqlite_repository import SQLiteRepository

__all__ = ["SQLiteRepository"]
