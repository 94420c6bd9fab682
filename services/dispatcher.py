"""
Print job dispatcher.

Ties the job store, the message bus gateway and the upload store together
into the job state machine.

CREATE FLOW (request thread):
    1. Validate device id, account key and file reference
    2. Check the upload exists (read-only)
    3. Create the job record (pending)
    4. Publish a DeviceCommand to printer/{device_id}/commands
    5. Transport down -> mark the job failed and report failed right away

    Validation happens before any mutation: a rejected request leaves no
    job record and publishes nothing.

STATUS FLOW (message bus listener thread or HTTP callback):
    1. Unknown job -> logged, ignored
    2. Unknown status -> InvalidStatusError
    3. Apply through the job store's transition rules
    4. On entering success/failed -> release the uploaded file
       (best effort, never fails the update)

    Duplicate terminal reports do not transition, so the release runs
    once per job.

Usage:
    dispatcher = PrintJobDispatcher(job_store, gateway, upload_store)
    dispatcher.start()   # subscribe to status topics

    job_id, status = dispatcher.create_job("acct1", "dev-1", "f1.pdf", "http://host")
"""

from __future__ import annotations

import html
import re
from typing import Any, List, Optional, Tuple

import bleach

from core.exceptions import (
    InvalidRequestError,
    InvalidStatusError,
    InvalidTransitionError,
    JobNotFoundError,
    MessageBusError,
    TransportUnavailableError,
    UploadNotFoundError,
)
from core.message_bus import MessageBusGateway
from models.messages import DeviceCommand, StatusEvent
from models.print_job import JobStatus, PrintJob, utc_now
from services.job_store import JobStore
from services.upload_store import UploadStore
from logging_config import get_job_logger, get_logger


# Module logger
logger = get_logger(__name__)

DEFAULT_COMMAND_TOPIC = "printer/{device_id}/commands"
DEFAULT_STATUS_PATTERN = "printer/*/status"

MIN_DEVICE_ID_LENGTH = 3
MAX_DEVICE_ID_LENGTH = 128
MAX_ERROR_DETAIL_LENGTH = 500

# Device ids become topic segments; keep wildcards and separators out
_DEVICE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")


def _sanitize_detail(text: Any) -> Optional[str]:
    """Strip markup from device-reported error text and bound its length."""
    if text is None:
        return None
    text = str(text).strip()
    # Stored as plain text ("<", not "&lt;"); repeat so encoded tags cannot survive
    for _ in range(3):
        cleaned = html.unescape(bleach.clean(text, tags=[], strip=True))
        if cleaned == text:
            break
        text = cleaned
    return text[:MAX_ERROR_DETAIL_LENGTH] or None


class PrintJobDispatcher:
    """
    Orchestrates print jobs.

    Attributes:
        command_topic: Topic template for device commands
        status_pattern: Topic pattern subscribed for status events
    """

    def __init__(
        self,
        job_store: JobStore,
        gateway: MessageBusGateway,
        upload_store: UploadStore,
        command_topic: str = DEFAULT_COMMAND_TOPIC,
        status_pattern: str = DEFAULT_STATUS_PATTERN,
    ):
        self._job_store = job_store
        self._gateway = gateway
        self._upload_store = upload_store
        self.command_topic = command_topic
        self.status_pattern = status_pattern
        self._started = False

    def start(self) -> None:
        """Subscribe to status events. Safe to call multiple times."""
        if self._started:
            return
        self._gateway.subscribe(self.status_pattern, self.handle_status_event)
        self._started = True
        logger.info(f"Dispatcher listening for status on '{self.status_pattern}'")

    # =========================================================================
    # JOB CREATION
    # =========================================================================

    def create_job(
        self,
        account_key: str,
        device_id: str,
        file_ref: str,
        command_origin: str
    ) -> Tuple[str, JobStatus]:
        """
        Create a job and send its command to the printer.

        Args:
            account_key: Verified account key of the caller
            device_id: Target printer
            file_ref: Reference of a previously uploaded file
            command_origin: Externally visible base URL used to build the
                file URL printers download from

        Returns:
            (job_id, status) - status is PENDING, or FAILED when the
            transport was unavailable

        Raises:
            InvalidRequestError: Malformed input (nothing created)
            UploadNotFoundError: File does not exist (nothing created)
        """
        self._validate_request(account_key, device_id, file_ref, command_origin)

        if not self._upload_store.exists(file_ref):
            logger.info(f"Rejected job for {account_key}: upload {file_ref} not found")
            raise UploadNotFoundError(file_ref)

        job = self._job_store.create(account_key, device_id, file_ref)
        job_logger = get_job_logger(job.job_id)

        command = DeviceCommand(
            job_id=job.job_id,
            file_url=self._upload_store.url_for(file_ref, command_origin),
            user_id=account_key,
            timestamp=utc_now(),
        )
        topic = self.command_topic.format(device_id=device_id)

        try:
            self._gateway.publish(topic, command)
        except TransportUnavailableError as e:
            job_logger.error(f"Transport unavailable, failing job: {e.message}")
            failed = self._job_store.update_status(job.job_id, JobStatus.FAILED, e.message)
            return failed.job_id, failed.status
        except MessageBusError as e:
            # Left pending: the printer may still have received it
            job_logger.error(f"Publish to '{topic}' reported an error: {e}")
            return job.job_id, job.status

        job_logger.info(f"Command published on '{topic}'")
        return job.job_id, job.status

    def _validate_request(
        self,
        account_key: str,
        device_id: str,
        file_ref: str,
        command_origin: str
    ) -> None:
        if not isinstance(account_key, str) or not account_key.strip():
            raise InvalidRequestError("Account key is required", field="account_key")

        if not isinstance(device_id, str) or not device_id:
            raise InvalidRequestError("Printer id is required", field="device_id")
        if not MIN_DEVICE_ID_LENGTH <= len(device_id) <= MAX_DEVICE_ID_LENGTH:
            raise InvalidRequestError(
                f"Printer id must be {MIN_DEVICE_ID_LENGTH}-{MAX_DEVICE_ID_LENGTH} characters",
                field="device_id"
            )
        if not _DEVICE_ID_PATTERN.match(device_id):
            raise InvalidRequestError(
                "Printer id may only contain letters, digits, '.', '_' and '-'",
                field="device_id"
            )

        if not isinstance(file_ref, str) or not file_ref:
            raise InvalidRequestError("File id is required", field="file_ref")

        if not isinstance(command_origin, str) or not command_origin:
            raise InvalidRequestError("Command origin is required", field="command_origin")

    # =========================================================================
    # STATUS INGESTION
    # =========================================================================

    def apply_status(
        self,
        job_id: str,
        reported_status: str,
        error_detail: Optional[str] = None
    ) -> Optional[PrintJob]:
        """
        Apply a printer status report.

        Returns:
            Resulting job record, or None if the job is unknown

        Raises:
            InvalidStatusError: reported_status is not a known status
            InvalidTransitionError: Backwards or out-of-terminal move
                (stored job unchanged)
        """
        try:
            self._job_store.get(job_id)
        except JobNotFoundError:
            logger.warning(f"Status {reported_status!r} for unknown job {job_id}, ignoring")
            return None

        status = JobStatus.parse(reported_status)
        change = self._job_store.transition(job_id, status, _sanitize_detail(error_detail))

        if change.entered_terminal:
            self._release_file(change.job)
        elif not change.changed:
            get_job_logger(job_id).info(f"Duplicate '{status.value}' report ignored")

        return change.job

    def handle_status_event(self, event: StatusEvent) -> None:
        """
        Gateway callback for inbound status events.

        Runs on the listener thread, which has no caller to report to, so
        rejected events are logged instead of raised.
        """
        try:
            self.apply_status(event.job_id, event.status, event.error)
        except InvalidStatusError as e:
            logger.warning(f"Dropped status event for job {event.job_id}: {e.message}")
        except InvalidTransitionError as e:
            logger.warning(f"Dropped out-of-order status event: {e.message}")

    def _release_file(self, job: PrintJob) -> None:
        job_logger = get_job_logger(job.job_id)
        try:
            released = self._upload_store.delete(job.file_ref)
        except Exception as e:
            job_logger.error(f"Releasing {job.file_ref} failed, continuing: {e}")
            return

        if released:
            job_logger.info(f"Released {job.file_ref} after '{job.status.value}'")
        else:
            job_logger.info(f"Nothing to release for {job.file_ref}")

    # =========================================================================
    # READS
    # =========================================================================

    def get_job(self, job_id: str) -> PrintJob:
        """
        Raises:
            JobNotFoundError: Unknown job id
        """
        return self._job_store.get(job_id)

    def list_jobs(self, account_key: str) -> List[PrintJob]:
        return self._job_store.list_by_account(account_key)

    def list_all_jobs(self) -> List[PrintJob]:
        return self._job_store.list_all()

    @property
    def transport_connected(self) -> bool:
        return self._gateway.is_connected
