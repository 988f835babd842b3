"""In-process alarm scheduler.

Alarms live in a min-heap of ``(fire_at, seq, identity)`` entries. Replacing
or deleting an alarm does not touch the heap; stale entries are skipped when
popped because their sequence number no longer matches the identity's
current alarm. A timer task moves due alarms onto a queue consumed by a
fixed pool of worker tasks.

Alarms are not persisted. After a restart, ``Dispatcher.recover()``
re-derives every pending alarm from the durable store.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from datetime import datetime, timedelta

from hookdispatch.exceptions import SchedulerError
from hookdispatch.logging import get_logger
from hookdispatch.models import utc_now

from .base import AlarmHandler, AlarmScheduler

logger = get_logger(__name__)


class InProcessAlarmScheduler(AlarmScheduler):
    """Timer-heap scheduler running alarm handlers on asyncio worker tasks.

    A handler that raises is treated like a failed alarm delivery: the alarm
    is re-armed after ``retry_delay`` unless the handler already armed a new
    one, so every firing is delivered at least once.

    Example:
        ```python
        scheduler = InProcessAlarmScheduler(workers=4)
        await scheduler.start(dispatcher.run_alarm)
        await scheduler.set_alarm(webhook_id, utc_now())
        ...
        await scheduler.stop()
        ```
    """

    def __init__(self, workers: int = 4, retry_delay: timedelta = timedelta(seconds=1)) -> None:
        """Initialize the scheduler.

        Args:
            workers: Number of alarms that may be handled concurrently.
            retry_delay: Delay before re-firing an alarm whose handler raised.
        """
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._workers = workers
        self._retry_delay = retry_delay
        self._heap: list[tuple[datetime, int, str]] = []
        self._alarms: dict[str, tuple[datetime, int]] = {}
        self._seq = itertools.count()
        self._wakeup = asyncio.Event()
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._handler: AlarmHandler | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def pending(self) -> int:
        """Number of identities with an armed alarm."""
        return len(self._alarms)

    async def start(self, handler: AlarmHandler) -> None:
        if self.running:
            raise SchedulerError("Scheduler already started")
        self._handler = handler
        self._tasks = [asyncio.create_task(self._timer(), name="alarm-timer")]
        self._tasks.extend(
            asyncio.create_task(self._worker(), name=f"alarm-worker-{i}")
            for i in range(self._workers)
        )
        logger.info("Alarm scheduler started", workers=self._workers, pending=self.pending)

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Alarm scheduler stopped", pending=self.pending)

    async def set_alarm(self, identity: str, when: datetime) -> None:
        seq = next(self._seq)
        self._alarms[identity] = (when, seq)
        heapq.heappush(self._heap, (when, seq, identity))
        self._wakeup.set()

    async def get_alarm(self, identity: str) -> datetime | None:
        alarm = self._alarms.get(identity)
        return alarm[0] if alarm else None

    async def delete_alarm(self, identity: str) -> None:
        self._alarms.pop(identity, None)

    def _pop_due(self, now: datetime) -> list[str]:
        due: list[str] = []
        while self._heap and self._heap[0][0] <= now:
            when, seq, identity = heapq.heappop(self._heap)
            if self._alarms.get(identity) != (when, seq):
                continue  # replaced or deleted
            del self._alarms[identity]
            due.append(identity)
        return due

    async def _timer(self) -> None:
        while True:
            self._wakeup.clear()
            for identity in self._pop_due(utc_now()):
                self._queue.put_nowait(identity)

            timeout = None
            if self._heap:
                timeout = max((self._heap[0][0] - utc_now()).total_seconds(), 0.0)
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)
            except TimeoutError:
                pass

    async def _worker(self) -> None:
        assert self._handler is not None
        while True:
            identity = await self._queue.get()
            try:
                await self._handler(identity)
            except Exception:
                logger.exception("Alarm handler failed", webhook_id=identity)
                if identity not in self._alarms:
                    await self.set_alarm(identity, utc_now() + self._retry_delay)
            finally:
                self._queue.task_done()
