"""
Data models for PrintDispatch.

This module contains immutable dataclasses for:
- PrintJob: snapshot of a print job record
- StatusChange: outcome of a job status update
- DeviceCommand / StatusEvent: message bus wire entities
- LedgerResult: outcome of a debit or credit
- Printer: entry of the configured printer registry

All dataclasses are frozen so they can be handed between request threads
and the message bus listener thread without copying.
"""

from .print_job import PrintJob, JobStatus, StatusChange
from .messages import DeviceCommand, StatusEvent
from .ledger import LedgerResult, INSUFFICIENT_FUNDS
from .printer import Printer, parse_printers

__all__ = [
    # Job models
    "PrintJob",
    "JobStatus",
    "StatusChange",
    # Wire models
    "DeviceCommand",
    "StatusEvent",
    # Ledger models
    "LedgerResult",
    "INSUFFICIENT_FUNDS",
    # Printer registry
    "Printer",
    "parse_printers",
]
