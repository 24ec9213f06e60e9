# src/storesched/domain/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class SchedulerError(Exception):
    """
    Base domain error.

    The API layer maps these to HTTP responses consistently.
    """
    message: str
    code: str = "SCHEDULER_ERROR"
    details: Optional[dict[str, Any]] = None

    def __str__(self) -> str:
        return self.message


@dataclass
class ValidationError(SchedulerError):
    code: str = "VALIDATION_ERROR"


@dataclass
class NotFoundError(SchedulerError):
    code: str = "NOT_FOUND"


@dataclass
class HandlerNotRegisteredError(SchedulerError):
    code: str = "HANDLER_NOT_REGISTERED"
