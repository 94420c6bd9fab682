"""
In-memory job store.

Maps job identifiers to PrintJob snapshots for the lifetime of the process.
Records are never deleted. Status updates follow the job state machine:

    pending ──> printing ──> success | failed
       └────────────────────> success | failed

    - Repeating the current status is an idempotent no-op (at-least-once
      delivery from the message bus)
    - Moving backwards or out of a terminal state raises
      InvalidTransitionError and leaves the record untouched

Thread Safety:
    - Updates to the SAME job are serialized with a KeyedLock
    - Updates to DIFFERENT jobs run independently
    - The insertion-order index has its own short-lived lock
    - Callers only ever see frozen PrintJob snapshots
"""

from __future__ import annotations

import threading
import uuid
from typing import Dict, List, Optional, Union

from core.exceptions import InvalidTransitionError, JobNotFoundError
from core.keyed_lock import KeyedLock
from models.print_job import JobStatus, PrintJob, StatusChange, utc_now
from logging_config import get_job_logger, get_logger


# Module logger
logger = get_logger(__name__)


class JobStore:
    """Thread-safe store of print jobs."""

    def __init__(self):
        self._jobs: Dict[str, PrintJob] = {}
        self._by_account: Dict[str, List[str]] = {}
        self._index_lock = threading.Lock()
        self._locks = KeyedLock()

    def create(self, account_key: str, device_id: str, file_ref: str) -> PrintJob:
        """Insert a new job in status pending under a fresh UUID."""
        now = utc_now()
        job = PrintJob(
            job_id=str(uuid.uuid4()),
            account_key=account_key,
            device_id=device_id,
            file_ref=file_ref,
            status=JobStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

        with self._index_lock:
            self._jobs[job.job_id] = job
            self._by_account.setdefault(account_key, []).append(job.job_id)

        get_job_logger(job.job_id).info(
            f"Job created for {account_key} on {device_id} (file {file_ref})"
        )
        return job

    def get(self, job_id: str) -> PrintJob:
        """
        Raises:
            JobNotFoundError: Unknown job id
        """
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_by_account(self, account_key: str) -> List[PrintJob]:
        """Jobs of one account in insertion order."""
        with self._index_lock:
            job_ids = list(self._by_account.get(account_key, []))
        return [self._jobs[job_id] for job_id in job_ids]

    def list_all(self) -> List[PrintJob]:
        """All jobs in insertion order."""
        with self._index_lock:
            return list(self._jobs.values())

    def update_status(
        self,
        job_id: str,
        new_status: Union[JobStatus, str],
        error_detail: Optional[str] = None
    ) -> PrintJob:
        """
        Apply a status update and return the resulting record.

        Raises:
            JobNotFoundError: Unknown job id
            InvalidStatusError: new_status is not a known status
            InvalidTransitionError: Backwards or out-of-terminal move
        """
        return self.transition(job_id, new_status, error_detail).job

    def transition(
        self,
        job_id: str,
        new_status: Union[JobStatus, str],
        error_detail: Optional[str] = None
    ) -> StatusChange:
        """
        Same as update_status(), also reporting whether this call moved the job.

        Returns:
            StatusChange; changed is False for an idempotent repeat
        """
        status = JobStatus.parse(new_status)

        with self._locks.hold(job_id):
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)

            if current.status == status:
                change = StatusChange(job=current, previous=current.status, changed=False)
            elif current.status.is_terminal or status.rank < current.status.rank:
                raise InvalidTransitionError(job_id, current.status.value, status.value)
            else:
                updated = current.with_status(status, error_detail)
                self._jobs[job_id] = updated
                change = StatusChange(job=updated, previous=current.status, changed=True)

        job_logger = get_job_logger(job_id)
        if change.changed:
            job_logger.info(f"Status {change.previous.value} -> {status.value}")
        else:
            job_logger.debug(f"Status {status.value} repeated, no change")
        return change

    def __len__(self) -> int:
        return len(self._jobs)
