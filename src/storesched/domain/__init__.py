"""
Domain layer for storesched.

- states: derived TaskState and CompletionOutcome enums
- models: TaskRecord plus Pydantic models for API input/output
- errors: domain-level exceptions
"""

from .states import CompletionOutcome, TaskState, derive_state
from .models import (
    ErrorResponse,
    NodeView,
    TaskCreate,
    TaskCreateResponse,
    TaskListResponse,
    TaskRecord,
    TaskView,
)
from .errors import (
    SchedulerError,
    ValidationError,
    NotFoundError,
    HandlerNotRegisteredError,
)

__all__ = [
    "TaskState",
    "CompletionOutcome",
    "derive_state",
    "TaskRecord",
    "TaskCreate",
    "TaskCreateResponse",
    "TaskView",
    "TaskListResponse",
    "NodeView",
    "ErrorResponse",
    "SchedulerError",
    "ValidationError",
    "NotFoundError",
    "HandlerNotRegisteredError",
]
