# src/storesched/api/routes.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse

from storesched.domain.errors import NotFoundError, SchedulerError, ValidationError
from storesched.domain.models import (
    ErrorResponse,
    NodeView,
    TaskCreate,
    TaskCreateResponse,
    TaskListResponse,
    TaskView,
)
from storesched.engine import Scheduler
from storesched.logging import get_logger
from storesched.storage import SQLiteDB, TaskRepo

from .deps import get_db, get_scheduler

_LOG = get_logger(__name__)
router = APIRouter()


def _error_response(err: SchedulerError, http_status: int) -> JSONResponse:
    payload = ErrorResponse(
        error=err.message,
        code=err.code,
        details=err.details or {},
    ).model_dump()
    return JSONResponse(status_code=http_status, content=payload)


@router.get("/healthz")
def healthz() -> dict:
    return {"ok": True}


@router.get("/node", response_model=NodeView)
def node_info(scheduler: Scheduler = Depends(get_scheduler)):
    cfg = scheduler.config
    return NodeView(
        node_id=scheduler.node_id,
        handlers=scheduler.registry.names(),
        check_interval_ms=cfg.check_interval_ms,
        claim_interval_ms=cfg.claim_interval_ms,
        recapture_delay_ms=cfg.recapture_delay_ms,
        expiry_delay_ms=cfg.expiry_delay_ms,
    )


@router.post("/tasks", response_model=TaskCreateResponse, status_code=201)
def schedule_task(
    task: TaskCreate,
    scheduler: Scheduler = Depends(get_scheduler),
):
    """
    Schedule a task owned by this node.

    Notes:
    - With unique_key, existing tasks sharing the key are replaced.
    - The handler does not have to be registered on this node yet; an
      unknown name fails at dispatch and is retried.
    """
    try:
        task_id = scheduler.schedule_task(
            task.name,
            task.params,
            task.scheduled_time,
            repeat_interval=task.repeat_interval,
            unique_key=task.unique_key,
        )
        return TaskCreateResponse(id=task_id)
    except ValidationError as e:
        return _error_response(e, 400)
    except SchedulerError as e:
        return _error_response(e, 400)


@router.get("/tasks/{task_id}", response_model=TaskView)
def get_task(
    task_id: int,
    db: SQLiteDB = Depends(get_db),
):
    try:
        with db.session() as conn:
            return TaskRepo(conn).get(task_id).to_view()
    except NotFoundError as e:
        return _error_response(e, 404)


@router.get("/tasks", response_model=TaskListResponse)
def list_tasks(
    limit: int = Query(default=200, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: SQLiteDB = Depends(get_db),
):
    with db.session() as conn:
        records, total = TaskRepo(conn).list_tasks(limit=limit, offset=offset)
    return TaskListResponse(tasks=[r.to_view() for r in records], total=total)


@router.delete("/tasks/{task_id}", status_code=204)
def cancel_task(
    task_id: int,
    scheduler: Scheduler = Depends(get_scheduler),
):
    if not scheduler.cancel_task(task_id):
        return _error_response(NotFoundError(f"Task not found: {task_id}", details={"id": task_id}), 404)
    _LOG.info("Cancelled task %s", task_id)
    return Response(status_code=204)
