# src/storesched/engine/builtin.py
from __future__ import annotations

import time
from typing import Any

from storesched.logging import get_logger

from .registry import HandlerRegistry

_LOG = get_logger(__name__)


def noop(params: Any) -> None:
    return None


def sleep(params: Any) -> None:
    """Simulated work: sleeps params["duration_ms"] milliseconds."""
    duration_ms = int((params or {}).get("duration_ms", 0))
    if duration_ms < 0:
        raise ValueError("duration_ms must be >= 0")
    time.sleep(duration_ms / 1000.0)


def log(params: Any) -> None:
    _LOG.info("log task: %r", params)


def fail(params: Any) -> None:
    raise RuntimeError((params or {}).get("message", "task failed on purpose"))


def register_handlers(registry: HandlerRegistry) -> None:
    registry.register("noop", noop)
    registry.register("sleep", sleep)
    registry.register("log", log)
    registry.register("fail", fail)
