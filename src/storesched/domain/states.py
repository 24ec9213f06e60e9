# src/storesched/domain/states.py
from __future__ import annotations

from enum import StrEnum
from typing import Optional


class TaskState(StrEnum):
    """
    States derived from a stored record's owner/running columns.

    Note:
      - Nothing but owner and running is stored; the state is computed.
      - "completed" and "rescheduled" are transitions that delete the record
        (and reinsert a successor), see CompletionOutcome.
    """

    UNCLAIMED = "UNCLAIMED"
    OWNED = "OWNED"
    RUNNING = "RUNNING"


class CompletionOutcome(StrEnum):
    """
    How a dispatched record was finalized.

      - COMPLETED: one-shot task succeeded and was deleted
      - RETRY: one-shot task failed; left owned and due with running=False
      - RESCHEDULED: repeating task replaced by its next occurrence
      - SUPERSEDED: the record was deleted, replaced or handed to another
        owner while its handler ran; nothing was written
    """

    COMPLETED = "COMPLETED"
    RETRY = "RETRY"
    RESCHEDULED = "RESCHEDULED"
    SUPERSEDED = "SUPERSEDED"


def derive_state(owner: Optional[str], running: bool) -> TaskState:
    if running:
        return TaskState.RUNNING
    if owner is None:
        return TaskState.UNCLAIMED
    return TaskState.OWNED
