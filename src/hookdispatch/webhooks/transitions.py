"""Pure state transitions for the dispatcher.

Everything here is I/O free: given the previous state, the outcome of one
attempt and the current time, compute the next state and when the
identity's alarm should fire next.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from hookdispatch.config import DispatcherConfig
from hookdispatch.exceptions import InvalidTransitionError
from hookdispatch.models import Attempt, DispatcherState, DispatcherStatus


@dataclass(frozen=True)
class Transition:
    """Result of applying an attempt to a pending dispatcher.

    Attributes:
        state: The next state (a new object; the input is not modified).
        alarm_at: When the next alarm fires. For PENDING this is the next
            attempt; for terminal states it is the cleanup deadline.
    """

    state: DispatcherState
    alarm_at: datetime


def backoff_delay(attempt_count: int, config: DispatcherConfig) -> timedelta:
    """Delay before the next attempt once ``attempt_count`` attempts exist.

    >>> backoff_delay(3, DispatcherConfig())
    datetime.timedelta(seconds=1)
    """
    return timedelta(milliseconds=config.initial_backoff**attempt_count)


def next_transition(
    state: DispatcherState,
    attempt: Attempt,
    now: datetime,
    config: DispatcherConfig,
) -> Transition:
    """Append ``attempt`` to ``state`` and decide the next status and alarm.

    - success: SUCCEEDED, alarm at now + retention (cleanup)
    - failure with ``max_attempts`` reached: FAILED, alarm at now + retention
    - other failure: PENDING, alarm at now + backoff for the new attempt count

    Raises:
        InvalidTransitionError: If ``state`` is already terminal.
    """
    if state.is_terminal:
        raise InvalidTransitionError(
            f"webhook {state.id} is {state.status.value}; no further attempts allowed"
        )

    attempts = [*state.attempts, attempt]

    if attempt.succeeded:
        status = DispatcherStatus.SUCCEEDED
        alarm_at = now + config.retention
    elif len(attempts) >= config.max_attempts:
        status = DispatcherStatus.FAILED
        alarm_at = now + config.retention
    else:
        status = DispatcherStatus.PENDING
        alarm_at = now + backoff_delay(len(attempts), config)

    return Transition(
        state=state.model_copy(update={"attempts": attempts, "status": status}),
        alarm_at=alarm_at,
    )


def cleanup_deadline(state: DispatcherState, config: DispatcherConfig) -> datetime:
    """When a terminal state becomes eligible for deletion."""
    last = state.last_attempt
    finished_at = last.timestamp if last else state.provisioned_at
    return finished_at + config.retention


def recovery_deadline(state: DispatcherState, now: datetime, config: DispatcherConfig) -> datetime:
    """Alarm time that resumes ``state`` after its alarm was lost.

    Derived from the persisted attempts alone. Deadlines already in the past
    collapse to ``now``.
    """
    if state.is_terminal:
        deadline = cleanup_deadline(state, config)
    elif state.last_attempt is None:
        deadline = now
    else:
        deadline = state.last_attempt.timestamp + backoff_delay(len(state.attempts), config)
    return max(deadline, now)
