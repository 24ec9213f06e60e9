#!/usr/bin/env python3
from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from storesched.config import load_settings
from storesched.logging import configure_logging, get_logger
from storesched.storage import SQLiteDB, apply_migrations


def main() -> int:
    settings = load_settings()
    configure_logging(settings.log_level, node_id=settings.node_id)
    log = get_logger(__name__)

    db = SQLiteDB(settings.db_path)
    with db.session() as conn:
        apply_migrations(conn)

    log.info("Record store initialized at %s", settings.db_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
