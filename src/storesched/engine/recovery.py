# src/storesched/engine/recovery.py
from __future__ import annotations

from dataclasses import dataclass

from storesched.logging import get_logger
from storesched.storage import TaskFilter, TaskRepo

_LOG = get_logger(__name__)


@dataclass(frozen=True)
class BootstrapReport:
    purged: int
    recaptured: int


def purge_expired(repo: TaskRepo, *, now: int, expiry_delay_ms: int) -> int:
    """
    Deletes every record due more than expiry_delay_ms ago, whatever its
    owner, running flag or recurrence.
    """
    purged = repo.delete_many(TaskFilter(scheduled_before=now - expiry_delay_ms))
    if purged:
        _LOG.info("Purged %d expired task(s).", purged)
    return purged


def recapture_stale(repo: TaskRepo, node_id: str, *, now: int, recapture_delay_ms: int) -> int:
    """
    Takes over every record never captured, or captured more than
    recapture_delay_ms ago, whoever owns it (this node included).

    The previous owner is presumed dead, so a leftover running flag is cleared
    and the record becomes eligible for this node's sweep.
    """
    recaptured = repo.update_many(
        TaskFilter(captured_missing_or_before=now - recapture_delay_ms),
        {"owner": node_id, "captured_at": now, "running": False},
    )
    if recaptured:
        _LOG.info("Recaptured %d stale task(s) for node %s.", recaptured, node_id)
    return recaptured


def run_bootstrap(
    repo: TaskRepo,
    node_id: str,
    *,
    now: int,
    recapture_delay_ms: int,
    expiry_delay_ms: int,
) -> BootstrapReport:
    """
    Startup cleanup, run once per node start before the periodic timers:
    - expiry purge
    - stale-ownership recapture

    Recapture is not repeated afterwards: a record whose owner dies without
    releasing stays with that owner until some node restarts.
    """
    purged = purge_expired(repo, now=now, expiry_delay_ms=expiry_delay_ms)
    recaptured = recapture_stale(repo, node_id, now=now, recapture_delay_ms=recapture_delay_ms)
    return BootstrapReport(purged=purged, recaptured=recaptured)


def release_owned(repo: TaskRepo, node_id: str) -> int:
    """
    Graceful shutdown: hands every record owned by node_id back to the pool
    so the claim cycle of any live node picks it up without waiting for
    recapture.
    """
    released = repo.update_many(TaskFilter(owner=node_id), {"owner": None, "running": False})
    if released:
        _LOG.info("Released %d task(s) owned by node %s.", released, node_id)
    return released
