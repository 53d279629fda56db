"""
Sentinel Event Records

Value objects passed between the monitor, the responder and the event publisher.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class DetectionEvent:
    """A pid seen in a unit's live set for the first time."""

    unit_id: str
    pid: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "pid": self.pid,
            "timestamp": self.timestamp.isoformat(),
        }


class RemediationStatus(str, Enum):
    RESTARTED = "restarted"
    STOP_FAILED = "stop_failed"
    START_FAILED = "start_failed"


@dataclass(frozen=True)
class RemediationOutcome:
    """
    Result of one stop-then-start cycle against a container.

    ``duration`` is only set when both steps succeeded.
    """

    unit_id: str
    status: RemediationStatus
    started_at: datetime
    finished_at: datetime | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is RemediationStatus.RESTARTED

    @property
    def duration(self) -> timedelta | None:
        if not self.succeeded or self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    @property
    def duration_ms(self) -> int | None:
        duration = self.duration
        if duration is None:
            return None
        return duration // timedelta(milliseconds=1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }
