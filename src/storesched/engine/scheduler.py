# src/storesched/engine/scheduler.py
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from storesched.domain.errors import ValidationError
from storesched.domain.models import TaskRecord
from storesched.logging import get_logger
from storesched.storage import SQLiteDB, TaskFilter, TaskRepo
from storesched.timeutil import DurationLike, TimeLike, now_ms, to_duration_ms, to_epoch_ms

from .recovery import BootstrapReport, release_owned, run_bootstrap
from .registry import Handler, HandlerRegistry
from .worker import Worker

_LOG = get_logger(__name__)


@dataclass(frozen=True)
class SchedulerConfig:
    """
    Runtime config for one scheduler node. All values are milliseconds.
    """
    # Sweep cadence; also how far ahead a sweep looks for due tasks
    check_interval_ms: int = 10_000
    # Cadence of the claim cycle for unowned tasks
    claim_interval_ms: int = 60_000
    # Age of captured_at after which bootstrap takes a task over
    recapture_delay_ms: int = 120_000
    # Age of scheduled_time after which bootstrap deletes a task
    expiry_delay_ms: int = 86_400_000
    verbose: bool = False

    @property
    def check_interval_s(self) -> float:
        return self.check_interval_ms / 1000.0

    @property
    def claim_interval_s(self) -> float:
        return self.claim_interval_ms / 1000.0


class Scheduler:
    """
    One node of the store-coordinated scheduler.

    Lifecycle:
    - start(): bootstrap once (expiry purge + stale recapture), then run the
      claim timer and the sweep timer on their own threads
    - stop(): stop timers, let in-flight handlers finish (bounded wait),
      release every task this node owns

    Coordination semantics:
    - The shared store is the only coordination medium; ownership moves
      through atomic filtered updates only.
    - Handlers run fire-and-forget on one thread per dispatch, uncapped.
    - Execution is at-least-once.
    """

    def __init__(
        self,
        db: SQLiteDB,
        node_id: str,
        cfg: SchedulerConfig = SchedulerConfig(),
        *,
        registry: Optional[HandlerRegistry] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if not node_id:
            raise ValueError("node_id must not be empty")
        for field_name in ("check_interval_ms", "claim_interval_ms", "recapture_delay_ms", "expiry_delay_ms"):
            if getattr(cfg, field_name) <= 0:
                raise ValueError(f"{field_name} must be > 0")

        self._db = db
        self._node_id = node_id
        self._cfg = cfg
        self._clock = clock
        self.registry = registry if registry is not None else HandlerRegistry()

        self._stop = threading.Event()
        self._timers: list[threading.Thread] = []

        self._inflight: set[threading.Thread] = set()
        self._inflight_lock = threading.Lock()

        self._worker = Worker(db, self.registry, node_id, clock=clock, verbose=cfg.verbose)

    @property
    def node_id(self) -> str:
        return self._node_id

    @property
    def config(self) -> SchedulerConfig:
        return self._cfg

    # -------------------------
    # Public operations
    # -------------------------

    def register_handler(self, name: str, fn: Handler) -> None:
        self.registry.register(name, fn)

    def schedule_task(
        self,
        name: str,
        params: Any,
        scheduled_time: TimeLike,
        repeat_interval: Optional[DurationLike] = None,
        unique_key: Optional[str] = None,
    ) -> int:
        """
        Inserts a task owned by this node and returns its id.

        With a unique_key, every existing task sharing the key is deleted
        first (replace semantics). The delete and the insert are separate
        store operations.
        """
        if not name:
            raise ValidationError("task name must not be empty")
        try:
            due = to_epoch_ms(scheduled_time)
            interval = to_duration_ms(repeat_interval)
        except TypeError as e:
            raise ValidationError(str(e)) from e
        if interval is not None and interval <= 0:
            raise ValidationError(
                "repeat_interval must be > 0",
                details={"repeat_interval": interval},
            )

        now = self._clock()
        with self._db.session() as conn:
            repo = TaskRepo(conn)
            if unique_key is not None:
                replaced = repo.delete_many(TaskFilter(unique_key=unique_key))
                if replaced:
                    _LOG.debug("Replaced %d task(s) with unique key %r", replaced, unique_key)
            task_id = repo.insert_one(
                TaskRecord(
                    name=name,
                    params=params,
                    scheduled_time=due,
                    owner=self._node_id,
                    running=False,
                    repeat_interval=interval,
                    unique_key=unique_key,
                    captured_at=now,
                )
            )

        self._log_verbose("Scheduled task %s (%s) at %d", task_id, name, due)
        return task_id

    def cancel_task(self, task_id: int) -> bool:
        """
        Deletes a task record. A handler already running for it is not
        interrupted; its finalization then finds nothing to delete.
        """
        with self._db.session() as conn:
            return TaskRepo(conn).delete_one(task_id)

    # -------------------------
    # Lifecycle
    # -------------------------

    def start(self) -> None:
        """
        Bootstraps this node and starts the claim and sweep timers.
        Safe to call once.
        """
        if any(t.is_alive() for t in self._timers):
            return

        _LOG.info(
            "Starting scheduler node %s: check_ms=%d claim_ms=%d recapture_ms=%d expiry_ms=%d",
            self._node_id,
            self._cfg.check_interval_ms,
            self._cfg.claim_interval_ms,
            self._cfg.recapture_delay_ms,
            self._cfg.expiry_delay_ms,
        )
        self._stop.clear()

        self.bootstrap()

        self._timers = [
            threading.Thread(
                target=self._run_periodic,
                args=("claim", self._cfg.claim_interval_s, self.run_claim_cycle),
                name="storesched-claim",
                daemon=True,
            ),
            threading.Thread(
                target=self._run_periodic,
                args=("sweep", self._cfg.check_interval_s, self.run_sweep),
                name="storesched-sweep",
                daemon=True,
            ),
        ]
        for t in self._timers:
            t.start()

    def stop(self, *, timeout_s: float = 5.0) -> None:
        """
        Stops both timers, waits up to timeout_s for in-flight handlers,
        then releases every task owned by this node.

        A handler still running when the wait runs out keeps running, but its
        task is released with the rest: owner cleared, running reset. When that
        handler finally returns, its finalization no longer owns the record and
        writes nothing (no retry reset, no successor for a repeating task). The
        released record is claimed by a live node and runs again there, so the
        occurrence may execute twice. A one-shot task whose handler succeeds
        late is still deleted.
        """
        _LOG.info("Stopping scheduler node %s...", self._node_id)
        self._stop.set()

        deadline = time.monotonic() + timeout_s
        for t in self._timers:
            t.join(timeout=max(0.0, deadline - time.monotonic()))
        self._timers = []

        if not self.wait_for_dispatches(timeout_s=max(0.0, deadline - time.monotonic())):
            _LOG.warning("Stopping with handler(s) still running; their tasks are released anyway.")

        self.release()
        _LOG.info("Scheduler node %s stopped.", self._node_id)

    def bootstrap(self) -> BootstrapReport:
        with self._db.session() as conn:
            report = run_bootstrap(
                TaskRepo(conn),
                self._node_id,
                now=self._clock(),
                recapture_delay_ms=self._cfg.recapture_delay_ms,
                expiry_delay_ms=self._cfg.expiry_delay_ms,
            )
        self._log_verbose("Bootstrap: purged=%d recaptured=%d", report.purged, report.recaptured)
        return report

    def release(self) -> int:
        with self._db.session() as conn:
            return release_owned(TaskRepo(conn), self._node_id)

    # -------------------------
    # Periodic work
    # -------------------------

    def run_claim_cycle(self) -> int:
        """
        Claims every unowned task for this node in one filtered update.
        """
        with self._db.session() as conn:
            claimed = TaskRepo(conn).update_many(
                TaskFilter(unowned=True),
                {"owner": self._node_id, "captured_at": self._clock()},
            )
        if claimed:
            self._log_verbose("Claimed %d unowned task(s)", claimed)
        return claimed

    def run_sweep(self) -> list[TaskRecord]:
        """
        Selects tasks owned by this node, due within the next check interval
        and not running; marks them running in one batched update, then
        dispatches each to its handler without waiting for it.

        Returns the dispatched records.
        """
        now = self._clock()
        with self._db.session() as conn:
            repo = TaskRepo(conn)
            due = repo.find_matching(
                TaskFilter(
                    owner=self._node_id,
                    due_at_or_before=now + self._cfg.check_interval_ms,
                    running=False,
                )
            )
            if not due:
                return []

            # Mark before dispatch so the next tick cannot select them again.
            selected_ids = [r.id for r in due]
            marked = repo.update_many(
                TaskFilter(ids=selected_ids, owner=self._node_id, running=False),
                {"running": True},
            )
            if marked < len(due):
                # Some records were deleted, replaced or taken over in between;
                # only the ones this update marked are ours to run.
                _LOG.debug("Marked %d of %d selected task(s) running", marked, len(due))
                due = []
                if marked:
                    due = repo.find_matching(
                        TaskFilter(ids=selected_ids, owner=self._node_id, running=True)
                    )

        for record in due:
            self._log_verbose("Running task %s (%s)", record.id, record.name)
            self._dispatch(record)
        return due

    def wait_for_dispatches(self, timeout_s: Optional[float] = None) -> bool:
        """
        Joins in-flight dispatch threads. Returns False if some are still
        running when timeout_s elapses.
        """
        deadline = None if timeout_s is None else time.monotonic() + timeout_s
        while True:
            with self._inflight_lock:
                pending = list(self._inflight)
            if not pending:
                return True
            for t in pending:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                t.join(timeout=remaining)
            if deadline is not None and time.monotonic() >= deadline:
                with self._inflight_lock:
                    return not self._inflight

    def _dispatch(self, record: TaskRecord) -> None:
        t = threading.Thread(
            target=self._run_dispatch,
            args=(record,),
            name=f"storesched-dispatch-{record.id}",
            daemon=True,
        )
        with self._inflight_lock:
            self._inflight.add(t)
        t.start()

    def _run_dispatch(self, record: TaskRecord) -> None:
        try:
            self._worker.run(record)
        except Exception:
            # Handler failures are absorbed by the worker; this is a store error while finalizing.
            _LOG.exception("Finalizing task %s (%s) failed", record.id, record.name)
        finally:
            with self._inflight_lock:
                self._inflight.discard(threading.current_thread())

    def _run_periodic(self, name: str, interval_s: float, tick: Callable[[], Any]) -> None:
        while not self._stop.wait(timeout=interval_s):
            try:
                tick()
            except Exception:
                _LOG.exception("Scheduler %s tick failed (retrying next tick).", name)

    def _log_verbose(self, msg: str, *args: Any) -> None:
        if self._cfg.verbose:
            _LOG.info(msg, *args)
        else:
            _LOG.debug(msg, *args)
