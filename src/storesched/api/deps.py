# src/storesched/api/deps.py
from __future__ import annotations

from fastapi import Request

from storesched.config import Settings
from storesched.engine import Scheduler
from storesched.storage import SQLiteDB


def get_settings(request: Request) -> Settings:
    """
    Per-request access to settings stored on app.state during startup.
    """
    return request.app.state.settings  # type: ignore[attr-defined]


def get_db(request: Request) -> SQLiteDB:
    """
    Per-request access to SQLiteDB stored on app.state during startup.

    Routes open their connection inside the handler: sqlite3 connections are
    bound to the thread that created them.
    """
    return request.app.state.db  # type: ignore[attr-defined]


def get_scheduler(request: Request) -> Scheduler:
    return request.app.state.scheduler  # type: ignore[attr-defined]
