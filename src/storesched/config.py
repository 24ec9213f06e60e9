from __future__ import annotations

import os
import socket
import uuid
from dataclasses import dataclass
from pathlib import Path


def _get_env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"Environment variable {name} must be an int, got: {raw!r}") from e
    return value


def _get_env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw


def _get_env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Environment variable {name} must be a boolean, got: {raw!r}")


def _get_env_list(name: str) -> tuple[str, ...]:
    raw = os.getenv(name) or ""
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def default_node_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class Settings:
    # Database
    db_path: Path

    # Node identity
    node_id: str

    # Scheduler timers / thresholds
    check_interval_ms: int
    claim_interval_ms: int
    recapture_delay_ms: int
    expiry_delay_ms: int
    verbose: bool

    # Dotted module paths exposing register_handlers(registry)
    handler_modules: tuple[str, ...]

    # Server (used by storesched.main when starting uvicorn programmatically)
    host: str
    port: int
    log_level: str


def load_settings() -> Settings:
    """
    Loads settings from env vars with sane defaults.

    Env vars:
      - STORESCHED_DB_PATH (default: ./var/tasks.db)
      - STORESCHED_NODE_ID (default: <hostname>-<pid>-<random>)
      - STORESCHED_CHECK_INTERVAL_MS (default: 10000)
      - STORESCHED_CLAIM_INTERVAL_MS (default: 60000)
      - STORESCHED_RECAPTURE_DELAY_MS (default: 120000)
      - STORESCHED_EXPIRY_DELAY_MS (default: 86400000)
      - STORESCHED_VERBOSE (default: false)
      - STORESCHED_HANDLER_MODULES (default: empty, comma separated)
      - STORESCHED_HOST (default: 127.0.0.1)
      - STORESCHED_PORT (default: 8000)
      - STORESCHED_LOG_LEVEL (default: info)
    """
    db_path = Path(_get_env_str("STORESCHED_DB_PATH", "./var/tasks.db")).expanduser()

    node_id = _get_env_str("STORESCHED_NODE_ID", "") or default_node_id()

    check_interval_ms = _get_env_int("STORESCHED_CHECK_INTERVAL_MS", 10_000)
    if check_interval_ms <= 0:
        raise ValueError("STORESCHED_CHECK_INTERVAL_MS must be > 0")

    claim_interval_ms = _get_env_int("STORESCHED_CLAIM_INTERVAL_MS", 60_000)
    if claim_interval_ms <= 0:
        raise ValueError("STORESCHED_CLAIM_INTERVAL_MS must be > 0")

    recapture_delay_ms = _get_env_int("STORESCHED_RECAPTURE_DELAY_MS", 120_000)
    if recapture_delay_ms <= 0:
        raise ValueError("STORESCHED_RECAPTURE_DELAY_MS must be > 0")

    expiry_delay_ms = _get_env_int("STORESCHED_EXPIRY_DELAY_MS", 86_400_000)
    if expiry_delay_ms <= 0:
        raise ValueError("STORESCHED_EXPIRY_DELAY_MS must be > 0")

    verbose = _get_env_bool("STORESCHED_VERBOSE", False)
    handler_modules = _get_env_list("STORESCHED_HANDLER_MODULES")

    host = _get_env_str("STORESCHED_HOST", "127.0.0.1")
    port = _get_env_int("STORESCHED_PORT", 8000)
    if not (1 <= port <= 65535):
        raise ValueError("STORESCHED_PORT must be between 1 and 65535")

    log_level = _get_env_str("STORESCHED_LOG_LEVEL", "info").lower()

    return Settings(
        db_path=db_path,
        node_id=node_id,
        check_interval_ms=check_interval_ms,
        claim_interval_ms=claim_interval_ms,
        recapture_delay_ms=recapture_delay_ms,
        expiry_delay_ms=expiry_delay_ms,
        verbose=verbose,
        handler_modules=handler_modules,
        host=host,
        port=port,
        log_level=log_level,
    )
