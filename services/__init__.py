"""
Services layer for PrintDispatch.

This module contains the business logic services:
- AccountLedger: balances with serialized per-account debit/credit
- JobStore: print job records with the status state machine
- UploadStore: uploaded PDFs on disk
- PrintJobDispatcher: job creation, command publishing, status ingestion

Thread Model:
    Request Threads (Flask)
    ├── AccountLedger.debit / credit   (per-account lock)
    └── PrintJobDispatcher.create_job  (publish via gateway)

    MessageBus Thread (background)
    └── PrintJobDispatcher.handle_status_event (per-job lock)

The ledger and the job store are the only shared mutable state; every
mutation goes through their own operations.
"""

from .ledger_service import AccountLedger
from .job_store import JobStore
from .upload_store import UploadStore
from .dispatcher import PrintJobDispatcher

__all__ = [
    "AccountLedger",
    "JobStore",
    "UploadStore",
    "PrintJobDispatcher",
]
