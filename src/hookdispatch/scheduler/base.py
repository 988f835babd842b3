"""Alarm scheduler interface.

An alarm is a single-shot "invoke the handler for this identity no earlier
than T". Each identity has at most one pending alarm; setting a new one
replaces it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime

AlarmHandler = Callable[[str], Awaitable[None]]


class AlarmScheduler(ABC):
    """Schedules per-identity wake-ups for the dispatcher."""

    @abstractmethod
    async def start(self, handler: AlarmHandler) -> None:
        """Begin firing alarms into ``handler``."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop firing alarms. Pending alarms are kept."""
        ...

    @abstractmethod
    async def set_alarm(self, identity: str, when: datetime) -> None:
        """Arm (or re-arm) the identity's alarm at ``when``."""
        ...

    @abstractmethod
    async def get_alarm(self, identity: str) -> datetime | None:
        """The identity's pending fire time, if any."""
        ...

    @abstractmethod
    async def delete_alarm(self, identity: str) -> None:
        """Cancel the identity's pending alarm, if any."""
        ...
