# src/storesched/engine/worker.py
from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable

from storesched.domain.errors import HandlerNotRegisteredError
from storesched.domain.models import TaskRecord
from storesched.domain.states import CompletionOutcome
from storesched.logging import get_logger
from storesched.storage import SQLiteDB, TaskFilter, TaskRepo
from storesched.timeutil import now_ms

from .registry import HandlerRegistry

_LOG = get_logger(__name__)


class Worker:
    """
    Runs the handler for one dispatched record and finalizes the record.

    Finalization happens exactly once per dispatch, whatever the handler did:
    - one-shot success: record deleted
    - one-shot failure: running reset, record stays due and owned (retried)
    - repeating, any outcome: record replaced by its next occurrence
    - record gone or no longer owned by this node: nothing written

    Each run uses its own SQLite connection (runs happen on dispatch threads).
    """

    def __init__(
        self,
        db: SQLiteDB,
        registry: HandlerRegistry,
        node_id: str,
        *,
        clock: Callable[[], int] = now_ms,
        verbose: bool = False,
    ) -> None:
        self._db = db
        self._registry = registry
        self._node_id = node_id
        self._clock = clock
        self._verbose = verbose

    def run(self, record: TaskRecord) -> CompletionOutcome:
        start = time.monotonic()
        succeeded = self._invoke(record)
        outcome = self._finalize(record, succeeded)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if self._verbose:
            _LOG.info("Task %s (%s) finalized as %s in %dms", record.id, record.name, outcome, elapsed_ms)
        else:
            _LOG.debug("Task %s (%s) finalized as %s in %dms", record.id, record.name, outcome, elapsed_ms)
        return outcome

    def _invoke(self, record: TaskRecord) -> bool:
        handler = self._registry.get(record.name)
        try:
            if handler is None:
                raise HandlerNotRegisteredError(
                    f'Handler "{record.name}" was never registered',
                    details={"id": record.id, "name": record.name},
                )
            result = handler(record.params)
            if inspect.isawaitable(result):
                asyncio.run(_await(result))
        except Exception:
            _LOG.exception("Failed to run task %s (%s)", record.id, record.name)
            return False
        return True

    def _finalize(self, record: TaskRecord, succeeded: bool) -> CompletionOutcome:
        if record.id is None:
            raise ValueError(f"cannot finalize unsaved task {record.name!r}")

        with self._db.session() as conn:
            repo = TaskRepo(conn)

            if record.repeats:
                # Only the current owner may advance a recurrence. A record that
                # was cancelled, replaced by its unique key, released or taken
                # over while the handler ran must not come back as a successor.
                removed = repo.delete_many(TaskFilter(ids=[record.id], owner=self._node_id))
                if not removed:
                    return self._superseded(record)
                successor = record.next_occurrence(self._node_id, captured_at=self._clock())
                new_id = repo.insert_one(successor)
                _LOG.debug(
                    "Task %s (%s) rescheduled as %s at %d",
                    record.id, record.name, new_id, successor.scheduled_time,
                )
                return CompletionOutcome.RESCHEDULED

            if succeeded:
                # The work is done whoever owns the record now.
                if not repo.delete_one(record.id):
                    return self._superseded(record)
                return CompletionOutcome.COMPLETED

            reset = repo.update_many(
                TaskFilter(ids=[record.id], owner=self._node_id),
                {"running": False},
            )
            if not reset:
                return self._superseded(record)
            return CompletionOutcome.RETRY

    def _superseded(self, record: TaskRecord) -> CompletionOutcome:
        _LOG.info(
            "Task %s (%s) was deleted or changed owner while running; leaving it as is",
            record.id, record.name,
        )
        return CompletionOutcome.SUPERSEDED


async def _await(awaitable: Awaitable[Any]) -> Any:
    return await awaitable
