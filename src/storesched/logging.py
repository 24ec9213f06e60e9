from __future__ import annotations

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(node_id)s %(threadName)s] %(name)s - %(message)s"


class NodeContextFilter(logging.Filter):
    """
    Stamps every record with the scheduler node id.

    Several nodes usually share one store and often one log sink, and a node
    runs its claim timer, sweep timer and handlers on separate threads, so
    both the node id and the thread name go into each line.
    """

    def __init__(self, node_id: Optional[str]) -> None:
        super().__init__()
        self.node_id = node_id or "-"

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "node_id"):
            record.node_id = self.node_id
        return True


def configure_logging(log_level: str = "info", node_id: Optional[str] = None) -> None:
    """
    Configures root logging for a scheduler node.

    - logs to stdout
    - node id and thread name on every line
    - replaces a previous configure_logging handler (app reloads)
    """
    level = _parse_level(log_level)

    root = logging.getLogger()
    root.setLevel(level)

    for h in list(root.handlers):
        if getattr(h, "_storesched", False):
            root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(NodeContextFilter(node_id))
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
    handler._storesched = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(max(level, logging.INFO))
    logging.getLogger("uvicorn.error").setLevel(level)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name if name else "storesched")


def _parse_level(log_level: str) -> int:
    mapping = {
        "critical": logging.CRITICAL,
        "error": logging.ERROR,
        "warning": logging.WARNING,
        "warn": logging.WARNING,
        "info": logging.INFO,
        "debug": logging.DEBUG,
    }
    return mapping.get(log_level.lower().strip(), logging.INFO)
