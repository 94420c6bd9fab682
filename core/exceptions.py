"""
Custom exceptions for PrintDispatch.

Exception Hierarchy:
    PrintDispatchError (base)
    ├── InvalidRequestError         - Malformed input, no side effects
    │   ├── InvalidAmountError      - Ledger amount out of range
    │   └── InvalidStatusError      - Unknown job status value
    ├── NotFoundError               - Unknown job or upload (benign)
    │   ├── JobNotFoundError
    │   └── UploadNotFoundError     - Referenced upload does not exist
    ├── InvalidTransitionError      - Job state-machine violation
    └── MessageBusError             - Transport failure
        └── TransportUnavailableError - Transport not connected

Usage:
    Every error is scoped to a single job or account. None of them is
    fatal to the process. The HTTP layer maps each branch to a status code.

    Insufficient funds is NOT an exception: a debit that cannot be covered
    returns an unsuccessful LedgerResult.
"""

from typing import Optional, Dict, Any


class PrintDispatchError(Exception):
    """
    Base exception for all PrintDispatch errors.

    Callers can catch every application-specific error with a single
    except clause.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# REQUEST ERRORS - caller-fixable, raised before any mutation
# =============================================================================

class InvalidRequestError(PrintDispatchError):
    """
    The request is malformed.

    Raised before any state is touched, so a rejected request leaves
    no job record behind and publishes nothing.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, details)
        self.field = field


class InvalidAmountError(InvalidRequestError):
    """Ledger amount is not a positive integer within the configured ceiling."""

    def __init__(self, amount: Any, limit: int):
        message = f"Amount must be a positive integer not exceeding {limit}, got {amount!r}"
        super().__init__(message, field="amount")
        self.details["limit"] = limit
        self.amount = amount
        self.limit = limit


class InvalidStatusError(InvalidRequestError):
    """Reported job status is not one of the known values."""

    def __init__(self, status: Any):
        super().__init__(f"Unknown job status: {status!r}", field="status")
        self.status = status


# =============================================================================
# LOOKUP ERRORS
# =============================================================================

class NotFoundError(PrintDispatchError):
    """A referenced entity does not exist."""


class JobNotFoundError(NotFoundError):
    """No job with the given identifier."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}", {"job_id": job_id})
        self.job_id = job_id


class UploadNotFoundError(NotFoundError):
    """
    The referenced upload does not exist in the upload store.

    Typical causes:
    - File reference mistyped by the client
    - File already released after a previous job finished
    """

    def __init__(self, file_ref: str):
        super().__init__(f"Uploaded file not found: {file_ref}", {"file_ref": file_ref})
        self.file_ref = file_ref


# =============================================================================
# STATE MACHINE ERRORS
# =============================================================================

class InvalidTransitionError(PrintDispatchError):
    """
    A status update would move a job backwards or out of a terminal state.

    Usually a duplicate or out-of-order status event. The stored job
    is left untouched.
    """

    def __init__(self, job_id: str, current: str, requested: str):
        message = f"Job {job_id} cannot move from '{current}' to '{requested}'"
        details = {"job_id": job_id, "current": current, "requested": requested}
        super().__init__(message, details)
        self.job_id = job_id
        self.current = current
        self.requested = requested


# =============================================================================
# TRANSPORT ERRORS
# =============================================================================

class MessageBusError(PrintDispatchError):
    """Publishing to or reading from the message bus failed."""


class TransportUnavailableError(MessageBusError):
    """
    The message bus transport is not currently connected.

    Publish fails fast instead of queueing. The dispatcher marks the
    affected job failed right away so it does not sit in pending forever.
    """

    def __init__(self, message: str = "Message bus transport is not connected"):
        super().__init__(message, {"resolution": "Check broker connectivity"})
