"""
Storage module for TableDB.

This module provides the storage execution client: it runs parameterized
statements against SQLite, inside caller-supplied transactions when given.

Invariants:
    - One physical table per user-defined table
    - Writers serialize on BEGIN IMMEDIATE
    - Driver failures surface as StorageExecutionError
"""

from .sqlite_store import SqliteStore

__all__ = ["SqliteStore"]
