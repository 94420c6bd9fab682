"""
HTTP tests for the route blueprints.

Each test builds a fresh app with TestingConfig (in-process message bus,
no opening balances, admin key "admin") and a temporary upload folder.
"""

import io
from unittest.mock import patch

import pytest
from pypdf import PdfWriter

from app import create_app
from models.print_job import JobStatus


USER = {"X-Account-Key": "acct1"}
OTHER = {"X-Account-Key": "acct2"}
ADMIN = {"X-Account-Key": "admin"}


# Fixtures

@pytest.fixture
def app(tmp_path):
    app = create_app("config.TestingConfig", {"UPLOAD_FOLDER": str(tmp_path)})
    yield app
    app.config["MESSAGE_BUS"].stop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def pdf_bytes():
    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture
def file_id(client, pdf_bytes):
    response = client.post(
        "/api/upload",
        data={"file": (io.BytesIO(pdf_bytes), "doc.pdf", "application/pdf")},
        content_type="multipart/form-data",
        headers=USER,
    )
    assert response.status_code == 201
    return response.get_json()["fileId"]


@pytest.fixture
def job_id(client, file_id):
    response = client.post(
        "/api/print/job", json={"printerId": "dev-1", "fileId": file_id}, headers=USER
    )
    assert response.status_code == 201
    return response.get_json()["jobId"]


class TestAppFactory:
    """Test application construction."""

    def test_testing_app_skips_exit_cleanup(self, tmp_path):
        with patch("app.atexit.register") as register:
            app = create_app("config.TestingConfig", {"UPLOAD_FOLDER": str(tmp_path)})
        app.config["MESSAGE_BUS"].stop()

        register.assert_not_called()

    def test_non_testing_app_registers_exit_cleanup(self, tmp_path):
        overrides = {"UPLOAD_FOLDER": str(tmp_path), "TESTING": False}
        with patch("app.atexit.register") as register:
            app = create_app("config.TestingConfig", overrides)
        app.config["MESSAGE_BUS"].stop()

        register.assert_called_once()


class TestMainRoutes:
    """Test liveness and health."""

    def test_index(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.get_data(as_text=True) == "Smart Printer Backend Running"

    def test_health_ok(self, client):
        response = client.get("/health")
        data = response.get_json()

        assert response.status_code == 200
        assert data["status"] == "ok"
        assert data["checks"]["message_bus"] == "connected"

    def test_health_degraded_when_bus_down(self, app, client):
        app.config["MESSAGE_BUS"].set_connected(False)

        response = client.get("/health")

        assert response.status_code == 503
        assert response.get_json()["checks"]["message_bus"] == "disconnected"


class TestIdentity:
    """Test caller identity handling."""

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/wallet/balance"),
        ("post", "/api/wallet/deduct"),
        ("post", "/api/upload"),
        ("post", "/api/print/job"),
        ("get", "/api/print/jobs"),
        ("get", "/api/admin/jobs"),
    ])
    def test_missing_account_key(self, client, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401
        assert response.get_json()["error"] == "Account key required"

    def test_admin_routes_reject_users(self, client):
        for path in ("/api/admin/printers", "/api/admin/jobs", "/api/admin/wallets"):
            assert client.get(path, headers=USER).status_code == 403
        response = client.post(
            "/api/admin/wallet/adjust", json={"accountKey": "acct1", "amount": 5}, headers=USER
        )
        assert response.status_code == 403


class TestWalletRoutes:
    """Test balance and deduction."""

    def test_balance_of_new_account(self, client):
        response = client.get("/api/wallet/balance", headers=USER)
        assert response.get_json() == {"balance": 0}

    def test_deduct(self, app, client):
        app.config["LEDGER"].credit("acct1", 100)

        response = client.post("/api/wallet/deduct", json={"amount": 30}, headers=USER)

        assert response.status_code == 200
        assert response.get_json() == {"success": True, "balance": 70}
        assert client.get("/api/wallet/balance", headers=USER).get_json() == {"balance": 70}

    def test_insufficient_funds(self, app, client):
        app.config["LEDGER"].credit("acct1", 50)

        response = client.post("/api/wallet/deduct", json={"amount": 75}, headers=USER)

        assert response.status_code == 200
        assert response.get_json() == {"success": False, "balance": 50, "error": "InsufficientFunds"}

    @pytest.mark.parametrize("body", [{}, {"amount": 0}, {"amount": -5}, {"amount": "10"}, {"amount": 1001}])
    def test_invalid_amount(self, app, client, body):
        app.config["LEDGER"].credit("acct1", 20)

        response = client.post("/api/wallet/deduct", json=body, headers=USER)

        assert response.status_code == 400
        data = response.get_json()
        assert data["success"] is False
        assert data["balance"] == 20
        assert "Amount must be a positive integer" in data["error"]
        assert set(data) == {"success", "balance", "error"}


class TestUploadRoutes:
    """Test upload and file serving."""

    def test_upload_and_download(self, client, file_id, pdf_bytes):
        assert file_id.endswith("-doc.pdf")

        response = client.get(f"/uploads/{file_id}")

        assert response.status_code == 200
        assert response.mimetype == "application/pdf"
        assert response.data == pdf_bytes
        response.close()

    def test_upload_without_file(self, client):
        response = client.post(
            "/api/upload", data={}, content_type="multipart/form-data", headers=USER
        )
        assert response.status_code == 400

    def test_upload_rejects_non_pdf(self, client):
        response = client.post(
            "/api/upload",
            data={"file": (io.BytesIO(b"hello"), "notes.txt", "text/plain")},
            content_type="multipart/form-data",
            headers=USER,
        )
        assert response.status_code == 400
        assert response.get_json()["error"] == "Only PDFs allowed"

    @pytest.mark.parametrize("path", ["/uploads/missing.pdf", "/uploads/../config.py"])
    def test_missing_or_unsafe_download(self, client, path):
        assert client.get(path).status_code == 404


class TestPrintRoutes:
    """Test job creation, reads and the status callback."""

    def test_create_job(self, app, client, job_id):
        job = app.config["JOB_STORE"].get(job_id)
        assert job.account_key == "acct1"
        assert job.status == JobStatus.PENDING

        topic, command = app.config["MESSAGE_BUS"].published[0]
        assert topic == "printer/dev-1/commands"
        assert command.file_url == f"http://localhost/uploads/{job.file_ref}"

    def test_create_job_unknown_file(self, client):
        response = client.post(
            "/api/print/job", json={"printerId": "dev-1", "fileId": "nope.pdf"}, headers=USER
        )
        assert response.status_code == 404

    def test_create_job_invalid_printer(self, client, file_id):
        response = client.post(
            "/api/print/job", json={"printerId": "a/b", "fileId": file_id}, headers=USER
        )
        assert response.status_code == 400
        assert response.get_json()["details"]["field"] == "device_id"

    def test_create_job_while_bus_down(self, app, client, file_id):
        app.config["MESSAGE_BUS"].set_connected(False)

        response = client.post(
            "/api/print/job", json={"printerId": "dev-1", "fileId": file_id}, headers=USER
        )

        assert response.status_code == 503
        assert response.get_json()["status"] == "failed"

    def test_get_job(self, client, job_id):
        response = client.get(f"/api/print/job/{job_id}", headers=USER)

        assert response.status_code == 200
        data = response.get_json()
        assert data["jobId"] == job_id
        assert data["status"] == "pending"
        assert data["deviceId"] == "dev-1"

    def test_get_job_of_other_account(self, client, job_id):
        assert client.get(f"/api/print/job/{job_id}", headers=OTHER).status_code == 404
        assert client.get(f"/api/print/job/{job_id}", headers=ADMIN).status_code == 200

    def test_get_unknown_job(self, client):
        assert client.get("/api/print/job/missing", headers=USER).status_code == 404

    def test_list_jobs(self, client, job_id):
        response = client.get("/api/print/jobs", headers=USER)
        assert [job["jobId"] for job in response.get_json()["jobs"]] == [job_id]

        response = client.get("/api/print/jobs", headers=OTHER)
        assert response.get_json() == {"jobs": []}

    def test_status_callback_lifecycle(self, app, client, job_id):
        job = app.config["JOB_STORE"].get(job_id)
        upload_store = app.config["UPLOAD_STORE"]
        assert upload_store.exists(job.file_ref)

        response = client.post("/api/print/status", json={"job_id": job_id, "status": "printing"})
        assert response.get_json() == {"success": True, "status": "printing"}

        response = client.post("/api/print/status", json={"job_id": job_id, "status": "success"})
        assert response.get_json() == {"success": True, "status": "success"}
        assert not upload_store.exists(job.file_ref)

        # Duplicate terminal report is accepted without change
        response = client.post("/api/print/status", json={"job_id": job_id, "status": "success"})
        assert response.status_code == 200

    def test_status_callback_rejects_backwards_move(self, client, job_id):
        client.post("/api/print/status", json={"job_id": job_id, "status": "success"})

        response = client.post("/api/print/status", json={"job_id": job_id, "status": "failed"})

        assert response.status_code == 409
        assert client.get(f"/api/print/job/{job_id}", headers=USER).get_json()["status"] == "success"

    def test_status_callback_errors(self, client, job_id):
        response = client.post("/api/print/status", json={"job_id": "missing", "status": "success"})
        assert response.status_code == 404
        assert response.get_json() == {"error": "Job not found"}

        response = client.post("/api/print/status", json={"job_id": job_id, "status": "exploded"})
        assert response.status_code == 400

        response = client.post("/api/print/status", json={"status": "success"})
        assert response.status_code == 400

    def test_status_from_message_bus(self, app, client, job_id):
        app.config["MESSAGE_BUS"].inject_status(
            "printer/dev-1/status", {"job_id": job_id, "status": "failed", "error": "Out of paper"}
        )

        data = client.get(f"/api/print/job/{job_id}", headers=USER).get_json()
        assert data["status"] == "failed"
        assert data["error"] == "Out of paper"


class TestAdminRoutes:
    """Test admin views and wallet adjustment."""

    def test_printers(self, client):
        response = client.get("/api/admin/printers", headers=ADMIN)
        assert response.get_json() == {
            "printers": [
                {"id": "printer3", "status": "online"},
                {"id": "printer4", "status": "offline"},
            ]
        }

    def test_all_jobs(self, client, job_id):
        jobs = client.get("/api/admin/jobs", headers=ADMIN).get_json()["jobs"]
        assert [(job["jobId"], job["accountKey"]) for job in jobs] == [(job_id, "acct1")]

    def test_adjust_wallet(self, client):
        response = client.post(
            "/api/admin/wallet/adjust", json={"accountKey": "acct1", "amount": 250}, headers=ADMIN
        )
        assert response.get_json() == {"success": True, "balance": 250}

        wallets = client.get("/api/admin/wallets", headers=ADMIN).get_json()["wallets"]
        assert wallets == {"acct1": 250}

    def test_adjust_wallet_validation(self, client):
        response = client.post("/api/admin/wallet/adjust", json={"amount": 5}, headers=ADMIN)
        assert response.status_code == 400

        response = client.post(
            "/api/admin/wallet/adjust", json={"accountKey": "acct1", "amount": 10001}, headers=ADMIN
        )
        assert response.status_code == 400
        assert response.get_json() == {
            "success": False,
            "balance": 0,
            "error": "Amount must be a positive integer not exceeding 10000, got 10001",
        }
