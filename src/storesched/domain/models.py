from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .states import TaskState, derive_state


TaskName = Annotated[str, Field(min_length=1, max_length=256)]
UniqueKey = Annotated[str, Field(min_length=1, max_length=256)]


@dataclass(frozen=True)
class TaskRecord:
    """
    A scheduled task as persisted in the shared store.

    Times are epoch milliseconds; repeat_interval is a duration in milliseconds.
    `id` is assigned by the store on insert and is None for a record that has
    not been inserted yet. A repeat cycle always produces a new id.
    """
    name: str
    params: Any
    scheduled_time: int
    owner: Optional[str] = None
    running: bool = False
    repeat_interval: Optional[int] = None
    unique_key: Optional[str] = None
    captured_at: Optional[int] = None
    id: Optional[int] = None

    @property
    def repeats(self) -> bool:
        return self.repeat_interval is not None

    @property
    def state(self) -> TaskState:
        return derive_state(self.owner, self.running)

    def next_occurrence(self, owner: str, captured_at: int) -> "TaskRecord":
        """
        Copy of this record for its next occurrence.

        The due time advances from this occurrence's own due time, not from
        the completion time, so the cadence does not drift with handler latency.
        """
        if self.repeat_interval is None:
            raise ValueError(f"task {self.id} does not repeat")
        return replace(
            self,
            id=None,
            owner=owner,
            running=False,
            captured_at=captured_at,
            scheduled_time=self.scheduled_time + self.repeat_interval,
        )

    def to_view(self) -> "TaskView":
        if self.id is None:
            raise ValueError("task record has not been stored yet")
        return TaskView(
            id=self.id,
            name=self.name,
            params=self.params,
            scheduled_time=self.scheduled_time,
            owner=self.owner,
            running=self.running,
            repeat_interval=self.repeat_interval,
            unique_key=self.unique_key,
            captured_at=self.captured_at,
            state=self.state,
        )


class TaskCreate(BaseModel):
    """
    API input model for scheduling a task.
    """
    model_config = ConfigDict(extra="forbid")

    name: TaskName
    params: Any = None
    scheduled_time: Annotated[int, Field(ge=0)]
    repeat_interval: Optional[Annotated[int, Field(gt=0)]] = None
    unique_key: Optional[UniqueKey] = None


class TaskCreateResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")
    id: int


class TaskView(BaseModel):
    """
    API output model for a single task record.
    """
    model_config = ConfigDict(extra="forbid")

    id: int
    name: str
    params: Any = None
    scheduled_time: int

    owner: Optional[str] = None
    running: bool
    state: TaskState

    repeat_interval: Optional[int] = None
    unique_key: Optional[str] = None
    captured_at: Optional[int] = None


class TaskListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tasks: list[TaskView]
    total: int


class NodeView(BaseModel):
    model_config = ConfigDict(extra="forbid")

    node_id: str
    handlers: list[str]
    check_interval_ms: int
    claim_interval_ms: int
    recapture_delay_ms: int
    expiry_delay_ms: int


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    error: str
    code: str
    details: dict = Field(default_factory=dict)
