from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

TimeLike = Union[int, datetime]
DurationLike = Union[int, timedelta]


def now_ms() -> int:
    return int(time.time() * 1000)


def to_epoch_ms(value: TimeLike) -> int:
    """
    Converts a timestamp to epoch milliseconds.

    Naive datetimes are interpreted as UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected epoch ms int or datetime, got {type(value).__name__}")
    return value


def to_duration_ms(value: Optional[DurationLike]) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, timedelta):
        return int(value.total_seconds() * 1000)
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected duration ms int or timedelta, got {type(value).__name__}")
    return value
