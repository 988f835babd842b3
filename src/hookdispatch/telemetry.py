"""Request and alarm telemetry.

One record is emitted per inbound request and per alarm cycle. Emission is
fire-and-forget: a failing sink is logged and otherwise ignored.

The field order of a record is part of its contract with downstream
consumers. Only append new fields at the end.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from hookdispatch.logging import get_logger

logger = get_logger(__name__)


@dataclass
class TelemetryRecord:
    """Outcome of one request or alarm cycle.

    Attributes:
        webhook_id: Identity the cycle acted on, empty when unknown.
        method: HTTP method, or empty for alarms.
        event: "fetch" for requests, "alarm" for alarm cycles.
        path: Request path, or empty for alarms.
        status: HTTP status returned, or the attempt status for alarms.
    """

    webhook_id: str = ""
    method: str = ""
    event: str = ""
    path: str = ""
    status: int = 0

    def as_fields(self) -> dict[str, object]:
        return {
            "webhook_id": self.webhook_id,
            "method": self.method,
            "event": self.event,
            "path": self.path,
            "status": self.status,
        }


class TelemetrySink(ABC):
    """Destination for telemetry records."""

    @abstractmethod
    def write(self, record: TelemetryRecord) -> None: ...

    def send(self, record: TelemetryRecord) -> None:
        """Write ``record``, never raising."""
        try:
            self.write(record)
        except Exception:
            logger.exception("Telemetry sink failed", **record.as_fields())


class LoggingTelemetrySink(TelemetrySink):
    """Writes records as structured log events on the telemetry logger."""

    def __init__(self, logger_name: str = "hookdispatch.telemetry") -> None:
        self._logger = get_logger(logger_name)

    def write(self, record: TelemetryRecord) -> None:
        self._logger.info("telemetry", **record.as_fields())


class NullTelemetrySink(TelemetrySink):
    """Discards every record."""

    def write(self, record: TelemetryRecord) -> None:
        return None
