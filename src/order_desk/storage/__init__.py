"""Persistence adapters."""

from .sqlite import SqliteRepository

__all__ = ["SqliteRepository"]
