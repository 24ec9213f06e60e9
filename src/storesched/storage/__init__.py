# src/storesched/storage/__init__.py
"""
Storage layer for storesched (SQLite).

- db: connection factory + pragmas + transaction helpers
- migrations: lightweight SQL migrations runner
- repo: the record store adapter (atomic filtered find/update/insert/delete)
"""

from .db import SQLiteDB
from .migrations import DEFAULT_MIGRATIONS_DIR, apply_migrations
from .repo import TaskFilter, TaskRepo

__all__ = ["SQLiteDB", "DEFAULT_MIGRATIONS_DIR", "apply_migrations", "TaskFilter", "TaskRepo"]
