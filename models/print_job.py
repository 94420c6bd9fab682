"""
Print job data models.

A PrintJob is one request to print one uploaded file on one device.
Records are frozen: the job store hands out snapshots and replaces the
stored record on every accepted transition, so no caller can change a
job behind the store's back.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from core.exceptions import InvalidStatusError


class JobStatus(Enum):
    """
    Status of a print job.

    Lifecycle:
        PENDING -> PRINTING -> (SUCCESS | FAILED)
        PENDING -> (SUCCESS | FAILED)

    SUCCESS and FAILED are terminal.
    """

    PENDING = "pending"
    """Job created, command published (or about to be)."""

    PRINTING = "printing"
    """Printer reported that it started the job."""

    SUCCESS = "success"
    """Printer reported the job finished."""

    FAILED = "failed"
    """Printer reported an error, or the command never reached the bus."""

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCESS, JobStatus.FAILED)

    @property
    def rank(self) -> int:
        """Position on the way to a terminal state."""
        return _RANKS[self]

    @classmethod
    def parse(cls, value: Any) -> "JobStatus":
        """
        Convert a wire value to a JobStatus.

        Raises:
            InvalidStatusError: If value is not one of the four statuses
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidStatusError(value)


_RANKS = {
    JobStatus.PENDING: 0,
    JobStatus.PRINTING: 1,
    JobStatus.SUCCESS: 2,
    JobStatus.FAILED: 2,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PrintJob:
    """Immutable snapshot of a print job."""

    job_id: str
    """Unique job identifier (UUID4)."""

    account_key: str
    """Owning account."""

    device_id: str
    """Target printer."""

    file_ref: str
    """Reference into the upload store (the store owns the bytes)."""

    status: JobStatus
    """Current status."""

    created_at: datetime
    """When the job was created."""

    updated_at: datetime
    """When the job last changed status."""

    error: Optional[str] = None
    """Last error reported for the job, if any."""

    def with_status(self, status: JobStatus, error: Optional[str] = None) -> "PrintJob":
        """Return a copy moved to ``status`` with a fresh updated_at."""
        return replace(
            self,
            status=status,
            updated_at=utc_now(),
            error=error if error is not None else self.error,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Caller-facing representation."""
        data = {
            "jobId": self.job_id,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "deviceId": self.device_id,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class StatusChange:
    """
    Outcome of a status update.

    ``changed`` is False for idempotent repeats, so side effects tied to a
    transition (file release) run only once per job.
    """

    job: PrintJob
    previous: JobStatus
    changed: bool

    @property
    def entered_terminal(self) -> bool:
        return self.changed and self.job.status.is_terminal
