"""Dispatcher models for hookdispatch.

- DispatcherState: the sole persisted aggregate per webhook identity
- Attempt: one recorded delivery try
- DispatcherStatus: PENDING, SUCCEEDED or FAILED
"""

from .dispatcher import (
    STATE_KEY,
    TERMINAL_STATUSES,
    Attempt,
    DispatcherState,
    DispatcherStatus,
    utc_now,
)

__all__ = [
    "STATE_KEY",
    "TERMINAL_STATUSES",
    "Attempt",
    "DispatcherState",
    "DispatcherStatus",
    "utc_now",
]
