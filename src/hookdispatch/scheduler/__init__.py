"""Alarm scheduling for hookdispatch."""

from .base import AlarmHandler, AlarmScheduler
from .inprocess import InProcessAlarmScheduler

__all__ = [
    "AlarmHandler",
    "AlarmScheduler",
    "InProcessAlarmScheduler",
]
