from __future__ import annotations

from pathlib import Path

from storesched.config import load_settings
from storesched.logging import configure_logging, get_logger


def _ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def main() -> int:
    """
    Programmatic entrypoint for one scheduler node.

    Recommended dev command:
      uvicorn storesched.api.app:app --reload

    Start more nodes against the same STORESCHED_DB_PATH (on other ports)
    to share the schedule:
      STORESCHED_PORT=8001 storesched
    """
    settings = load_settings()
    configure_logging(settings.log_level, node_id=settings.node_id)
    log = get_logger(__name__)

    _ensure_parent_dir(settings.db_path)
    log.info("Starting node %s with DB path: %s", settings.node_id, settings.db_path)

    # Import here so config/logging are set before app import side-effects.
    try:
        from storesched.api.app import app  # noqa: F401
    except Exception:
        log.exception("Failed to import FastAPI app (storesched.api.app:app).")
        return 1

    import uvicorn

    uvicorn.run(
        "storesched.api.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        reload=False,  # prefer `uvicorn ... --reload` in dev
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
