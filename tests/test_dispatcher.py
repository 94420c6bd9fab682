"""
Unit tests for the print job dispatcher.

Uses the in-process LocalMessageBus and a real UploadStore on a temporary
folder, so publishing, status ingestion and file release run end to end
without a broker.
"""

from unittest.mock import patch

import pytest

from core.exceptions import (
    InvalidRequestError,
    InvalidStatusError,
    InvalidTransitionError,
    MessageBusError,
    UploadNotFoundError,
)
from core.message_bus import LocalMessageBus
from models.print_job import JobStatus
from services.dispatcher import PrintJobDispatcher
from services.job_store import JobStore
from services.ledger_service import AccountLedger
from services.upload_store import UploadStore


ORIGIN = "http://printhost:3001/"


# Fixtures

@pytest.fixture
def gateway():
    return LocalMessageBus()


@pytest.fixture
def job_store():
    return JobStore()


@pytest.fixture
def upload_store(tmp_path):
    return UploadStore(tmp_path / "uploads")


@pytest.fixture
def dispatcher(job_store, gateway, upload_store):
    dispatcher = PrintJobDispatcher(job_store, gateway, upload_store)
    dispatcher.start()
    return dispatcher


@pytest.fixture
def stored_file(upload_store):
    """Place a file directly in the upload folder and return its reference."""
    (upload_store.upload_folder / "f1.pdf").write_bytes(b"%PDF-1.4 test")
    return "f1.pdf"


class TestCreateJob:
    """Test job creation and command publishing."""

    def test_publishes_command(self, dispatcher, gateway, job_store, stored_file):
        job_id, status = dispatcher.create_job("acct1", "dev-1", stored_file, ORIGIN)

        assert status == JobStatus.PENDING
        assert job_store.get(job_id).status == JobStatus.PENDING

        assert len(gateway.published) == 1
        topic, command = gateway.published[0]
        assert topic == "printer/dev-1/commands"
        assert command.job_id == job_id
        assert command.user_id == "acct1"
        assert command.file_url == "http://printhost:3001/uploads/f1.pdf"

    def test_custom_command_topic(self, job_store, gateway, upload_store, stored_file):
        dispatcher = PrintJobDispatcher(
            job_store, gateway, upload_store, command_topic="devices/{device_id}/in"
        )
        dispatcher.create_job("acct1", "dev-1", stored_file, ORIGIN)
        assert gateway.published[0][0] == "devices/dev-1/in"

    def test_missing_upload_creates_nothing(self, dispatcher, gateway, job_store):
        with pytest.raises(UploadNotFoundError):
            dispatcher.create_job("acct1", "dev-1", "nope.pdf", ORIGIN)

        assert len(job_store) == 0
        assert gateway.published == []

    @pytest.mark.parametrize("device_id", [
        "",
        None,
        "ab",
        "x" * 129,
        "printer/1",
        "printer+",
        "dev #1",
    ])
    def test_invalid_device_id(self, dispatcher, gateway, job_store, stored_file, device_id):
        with pytest.raises(InvalidRequestError) as exc_info:
            dispatcher.create_job("acct1", device_id, stored_file, ORIGIN)

        assert exc_info.value.field == "device_id"
        assert len(job_store) == 0
        assert gateway.published == []

    def test_device_id_length_bounds(self, dispatcher, stored_file):
        dispatcher.create_job("acct1", "abc", stored_file, ORIGIN)
        dispatcher.create_job("acct1", "x" * 128, stored_file, ORIGIN)

    @pytest.mark.parametrize("account_key", ["", "   ", None])
    def test_missing_account_key(self, dispatcher, job_store, stored_file, account_key):
        with pytest.raises(InvalidRequestError):
            dispatcher.create_job(account_key, "dev-1", stored_file, ORIGIN)
        assert len(job_store) == 0

    def test_missing_file_ref(self, dispatcher, job_store):
        with pytest.raises(InvalidRequestError):
            dispatcher.create_job("acct1", "dev-1", "", ORIGIN)
        assert len(job_store) == 0

    def test_transport_down_fails_job(self, dispatcher, gateway, job_store, upload_store, stored_file):
        gateway.set_connected(False)

        job_id, status = dispatcher.create_job("acct1", "dev-1", stored_file, ORIGIN)

        assert status == JobStatus.FAILED
        job = job_store.get(job_id)
        assert job.status == JobStatus.FAILED
        assert job.error
        # The upload stays so the caller can retry
        assert upload_store.exists(stored_file)

    def test_other_publish_error_leaves_job_pending(self, dispatcher, gateway, job_store, stored_file):
        with patch.object(gateway, "publish", side_effect=MessageBusError("broker said no")):
            job_id, status = dispatcher.create_job("acct1", "dev-1", stored_file, ORIGIN)

        assert status == JobStatus.PENDING
        assert job_store.get(job_id).status == JobStatus.PENDING


class TestApplyStatus:
    """Test status ingestion."""

    @pytest.fixture
    def job_id(self, dispatcher, stored_file):
        job_id, _ = dispatcher.create_job("acct1", "dev-1", stored_file, ORIGIN)
        return job_id

    def test_printing_then_success_releases_file(self, dispatcher, upload_store, stored_file, job_id):
        assert dispatcher.apply_status(job_id, "printing").status == JobStatus.PRINTING
        assert upload_store.exists(stored_file)

        assert dispatcher.apply_status(job_id, "success").status == JobStatus.SUCCESS
        assert not upload_store.exists(stored_file)

    def test_failure_releases_file_and_keeps_detail(self, dispatcher, upload_store, stored_file, job_id):
        job = dispatcher.apply_status(job_id, "failed", "Paper jam")

        assert job.status == JobStatus.FAILED
        assert job.error == "Paper jam"
        assert not upload_store.exists(stored_file)

    def test_error_detail_is_sanitized(self, dispatcher, job_id):
        job = dispatcher.apply_status(job_id, "failed", "<script>x</script>Tray <b>2</b> empty")
        assert "<" not in job.error
        assert "Tray 2 empty" in job.error

    def test_error_detail_is_plain_text(self, dispatcher, job_id):
        job = dispatcher.apply_status(job_id, "failed", "tray < 5 & low")
        assert job.error == "tray < 5 & low"

    def test_encoded_markup_is_stripped(self, dispatcher, job_id):
        job = dispatcher.apply_status(job_id, "failed", "&lt;b&gt;jam&lt;/b&gt;")
        assert job.error == "jam"

    def test_non_string_error_detail(self, dispatcher, job_id):
        job = dispatcher.apply_status(job_id, "failed", {"code": 3})
        assert job.status == JobStatus.FAILED
        assert job.error == "{'code': 3}"

    def test_error_detail_is_truncated(self, dispatcher, job_id):
        job = dispatcher.apply_status(job_id, "failed", "e" * 2000)
        assert len(job.error) == 500

    def test_unknown_job_is_ignored(self, dispatcher, job_store):
        assert dispatcher.apply_status("missing", "success") is None
        assert len(job_store) == 0

    def test_unknown_status(self, dispatcher, job_store, job_id):
        with pytest.raises(InvalidStatusError):
            dispatcher.apply_status(job_id, "exploded")
        assert job_store.get(job_id).status == JobStatus.PENDING

    def test_success_then_failed_is_rejected(self, dispatcher, job_store, job_id):
        dispatcher.apply_status(job_id, "success")

        with pytest.raises(InvalidTransitionError):
            dispatcher.apply_status(job_id, "failed")

        assert job_store.get(job_id).status == JobStatus.SUCCESS

    def test_duplicate_terminal_releases_once(self, dispatcher, upload_store, job_id):
        with patch.object(upload_store, "delete", wraps=upload_store.delete) as delete_spy:
            dispatcher.apply_status(job_id, "success")
            job = dispatcher.apply_status(job_id, "success")

        assert job.status == JobStatus.SUCCESS
        delete_spy.assert_called_once()

    def test_release_failure_does_not_fail_update(self, dispatcher, upload_store, job_store, job_id):
        with patch.object(upload_store, "delete", side_effect=RuntimeError("disk gone")):
            job = dispatcher.apply_status(job_id, "success")

        assert job.status == JobStatus.SUCCESS
        assert job_store.get(job_id).status == JobStatus.SUCCESS

    def test_release_of_already_missing_file(self, dispatcher, upload_store, stored_file, job_id):
        upload_store.delete(stored_file)
        assert dispatcher.apply_status(job_id, "success").status == JobStatus.SUCCESS


class TestStatusEvents:
    """Test status events arriving through the gateway."""

    @pytest.fixture
    def job_id(self, dispatcher, stored_file):
        job_id, _ = dispatcher.create_job("acct1", "dev-1", stored_file, ORIGIN)
        return job_id

    def test_event_updates_job(self, gateway, job_store, job_id):
        gateway.inject_status("printer/dev-1/status", {"job_id": job_id, "status": "printing"})
        assert job_store.get(job_id).status == JobStatus.PRINTING

    def test_status_is_matched_by_job_id_only(self, gateway, job_store, job_id):
        """A report on another device's topic still applies to the job."""
        gateway.inject_status("printer/other-device/status", {"job_id": job_id, "status": "success"})
        assert job_store.get(job_id).status == JobStatus.SUCCESS

    def test_invalid_events_are_dropped(self, gateway, job_store, job_id):
        gateway.inject_status("printer/dev-1/status", {"job_id": job_id, "status": "exploded"})
        gateway.inject_status("printer/dev-1/status", {"job_id": "missing", "status": "success"})
        gateway.inject_status("printer/dev-1/status", {"job_id": job_id, "status": "success"})
        gateway.inject_status("printer/dev-1/status", {"job_id": job_id, "status": "printing"})

        assert job_store.get(job_id).status == JobStatus.SUCCESS

    def test_start_is_idempotent(self, dispatcher, gateway):
        dispatcher.start()
        assert len(gateway._subscriptions) == 1
        assert gateway.topic_patterns == ["printer/*/status"]


def test_print_flow_end_to_end(tmp_path):
    """
    Wallet deduction, upload, job, printer reports and file release for one
    account, the way a user session runs through the system.
    """
    ledger = AccountLedger()
    ledger.seed({"acct1": 100})
    gateway = LocalMessageBus()
    job_store = JobStore()
    upload_store = UploadStore(tmp_path)
    dispatcher = PrintJobDispatcher(job_store, gateway, upload_store)
    dispatcher.start()

    (tmp_path / "f1.pdf").write_bytes(b"%PDF-1.4 test")

    result = ledger.debit("acct1", 30)
    assert result.success is True
    assert result.balance == 70

    job_id, status = dispatcher.create_job("acct1", "dev-1", "f1.pdf", "http://host")
    assert status == JobStatus.PENDING

    gateway.inject_status("printer/dev-1/status", {"job_id": job_id, "status": "printing"})
    gateway.inject_status("printer/dev-1/status", {"job_id": job_id, "status": "success"})

    assert not (tmp_path / "f1.pdf").exists()
    jobs = dispatcher.list_jobs("acct1")
    assert [(j.job_id, j.status) for j in jobs] == [(job_id, JobStatus.SUCCESS)]
    assert ledger.get_balance("acct1") == 70
