# src/storesched/storage/repo.py
from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from storesched.domain.errors import NotFoundError, ValidationError
from storesched.domain.models import TaskRecord

from .db import immediate_transaction


_COLUMNS = (
    "id, name, params, scheduled_time, owner, running, "
    "repeat_interval, unique_key, captured_at"
)

# Fields a filtered update may set.
_PATCHABLE = frozenset({"owner", "running", "captured_at", "scheduled_time"})


@dataclass(frozen=True)
class TaskFilter:
    """
    Conjunction of criteria over scheduled task records.

    Unset criteria are ignored; an empty filter matches every record.
    An empty `ids` sequence matches nothing.
    """
    ids: Optional[Sequence[int]] = None
    owner: Optional[str] = None
    unowned: bool = False
    running: Optional[bool] = None
    unique_key: Optional[str] = None
    due_at_or_before: Optional[int] = None
    scheduled_before: Optional[int] = None
    captured_missing_or_before: Optional[int] = None

    def __post_init__(self) -> None:
        if self.unowned and self.owner is not None:
            raise ValidationError("filter cannot require both an owner and no owner")

    def to_sql(self) -> tuple[str, tuple[Any, ...]]:
        clauses: list[str] = []
        params: list[Any] = []

        if self.ids is not None:
            ids = list(self.ids)
            if not ids:
                return "0", ()
            clauses.append(f"id IN ({','.join('?' for _ in ids)})")
            params.extend(ids)
        if self.owner is not None:
            clauses.append("owner = ?")
            params.append(self.owner)
        if self.unowned:
            clauses.append("owner IS NULL")
        if self.running is not None:
            clauses.append("running = ?")
            params.append(1 if self.running else 0)
        if self.unique_key is not None:
            clauses.append("unique_key = ?")
            params.append(self.unique_key)
        if self.due_at_or_before is not None:
            clauses.append("scheduled_time <= ?")
            params.append(self.due_at_or_before)
        if self.scheduled_before is not None:
            clauses.append("scheduled_time < ?")
            params.append(self.scheduled_before)
        if self.captured_missing_or_before is not None:
            clauses.append("(captured_at IS NULL OR captured_at < ?)")
            params.append(self.captured_missing_or_before)

        if not clauses:
            return "1", ()
        return " AND ".join(clauses), tuple(params)


@dataclass
class TaskRepo:
    """
    Record store adapter over the shared SQLite database.

    Important invariants:
    - Every write runs in its own BEGIN IMMEDIATE transaction, so each
      operation is atomic with respect to other node processes.
    - Filtered updates apply to all records matching at the moment the write
      lock is held ("update all matching now"); claim and recapture rely on it.
    - No operation spans more than one call: callers that chain operations
      (unique-key replace, repeat reinsert) accept the window in between.
    """
    conn: sqlite3.Connection

    # -------------------------
    # Read operations
    # -------------------------

    def find_matching(self, flt: TaskFilter) -> list[TaskRecord]:
        where, params = flt.to_sql()
        rows = self.conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM scheduled_tasks
            WHERE {where}
            ORDER BY scheduled_time ASC, id ASC;
            """,
            params,
        ).fetchall()
        return [_row_to_record(r) for r in rows]

    def get(self, task_id: int) -> TaskRecord:
        row = self.conn.execute(
            f"SELECT {_COLUMNS} FROM scheduled_tasks WHERE id = ?;",
            (task_id,),
        ).fetchone()
        if not row:
            raise NotFoundError(f"Task not found: {task_id}", details={"id": task_id})
        return _row_to_record(row)

    def list_tasks(self, limit: int = 200, offset: int = 0) -> tuple[list[TaskRecord], int]:
        total = self.conn.execute("SELECT COUNT(*) AS c FROM scheduled_tasks;").fetchone()["c"]

        rows = self.conn.execute(
            f"""
            SELECT {_COLUMNS}
            FROM scheduled_tasks
            ORDER BY scheduled_time ASC, id ASC
            LIMIT ? OFFSET ?;
            """,
            (limit, offset),
        ).fetchall()
        return [_row_to_record(r) for r in rows], int(total)

    def count(self, flt: Optional[TaskFilter] = None) -> int:
        where, params = (flt or TaskFilter()).to_sql()
        row = self.conn.execute(
            f"SELECT COUNT(*) AS c FROM scheduled_tasks WHERE {where};",
            params,
        ).fetchone()
        return int(row["c"])

    # -------------------------
    # Write operations
    # -------------------------

    def insert_one(self, record: TaskRecord) -> int:
        """
        Inserts a record and returns its store-assigned id.
        Any id already present on `record` is ignored.
        """
        with immediate_transaction(self.conn):
            cur = self.conn.execute(
                """
                INSERT INTO scheduled_tasks(
                  name, params, scheduled_time,
                  owner, running,
                  repeat_interval, unique_key, captured_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    record.name,
                    _dump_params(record.params),
                    record.scheduled_time,
                    record.owner,
                    1 if record.running else 0,
                    record.repeat_interval,
                    record.unique_key,
                    record.captured_at,
                ),
            )
            new_id = int(cur.lastrowid)
        return new_id

    def update_many(self, flt: TaskFilter, patch: Mapping[str, Any]) -> int:
        """
        Sets `patch` on every record matching `flt`.
        Returns the number of records updated; zero matches is not an error.
        """
        assignments, values = _patch_to_sql(patch)
        where, params = flt.to_sql()
        with immediate_transaction(self.conn):
            updated = self.conn.execute(
                f"UPDATE scheduled_tasks SET {assignments} WHERE {where};",
                (*values, *params),
            ).rowcount
        return int(updated)

    def update_one(self, task_id: int, patch: Mapping[str, Any]) -> bool:
        return self.update_many(TaskFilter(ids=[task_id]), patch) == 1

    def delete_many(self, flt: TaskFilter) -> int:
        where, params = flt.to_sql()
        with immediate_transaction(self.conn):
            deleted = self.conn.execute(
                f"DELETE FROM scheduled_tasks WHERE {where};",
                params,
            ).rowcount
        return int(deleted)

    def delete_one(self, task_id: int) -> bool:
        return self.delete_many(TaskFilter(ids=[task_id])) == 1


# -------------------------
# Helpers
# -------------------------

def _patch_to_sql(patch: Mapping[str, Any]) -> tuple[str, tuple[Any, ...]]:
    if not patch:
        raise ValidationError("update patch must not be empty")
    unknown = set(patch) - _PATCHABLE
    if unknown:
        raise ValidationError(
            "update patch contains fields that cannot be updated",
            details={"fields": sorted(unknown)},
        )

    keys = sorted(patch)
    values: list[Any] = []
    for key in keys:
        value = patch[key]
        if key == "running":
            value = 1 if value else 0
        values.append(value)
    return ", ".join(f"{k} = ?" for k in keys), tuple(values)


def _dump_params(params: Any) -> str:
    try:
        return json.dumps(params)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"task params must be JSON serializable: {e}") from e


def _row_to_record(row: sqlite3.Row) -> TaskRecord:
    return TaskRecord(
        id=int(row["id"]),
        name=row["name"],
        params=json.loads(row["params"]),
        scheduled_time=int(row["scheduled_time"]),
        owner=row["owner"],
        running=bool(row["running"]),
        repeat_interval=row["repeat_interval"],
        unique_key=row["unique_key"],
        captured_at=row["captured_at"],
    )
