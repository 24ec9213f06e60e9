# src/storesched/engine/__init__.py
"""
Execution engine for storesched.

- scheduler: claim timer, sweep timer, dispatch, public schedule API
- worker: runs a handler and finalizes the record (delete / retry / repeat)
- recovery: bootstrap expiry purge + stale recapture, shutdown release
- registry: per-scheduler handler mapping
- builtin: handlers every node registers
"""

from .registry import HandlerRegistry, load_handler_modules
from .scheduler import Scheduler, SchedulerConfig

__all__ = ["HandlerRegistry", "load_handler_modules", "Scheduler", "SchedulerConfig"]
