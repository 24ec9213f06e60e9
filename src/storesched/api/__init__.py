# src/storesched/api/__init__.py
"""
API layer for storesched (FastAPI).

- app: FastAPI instance + lifecycle hooks (bootstrap, timers, release)
- routes: REST endpoints
- deps: dependency injection helpers
"""

from .app import app, create_app

__all__ = ["app", "create_app"]
