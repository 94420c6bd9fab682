"""
Print job routes.

Handles:
- POST /api/print/job        - create a job and command the printer
- GET  /api/print/job/<id>   - job status (owner or admin)
- GET  /api/print/jobs       - caller's jobs, insertion order
- POST /api/print/status     - HTTP status callback for printers that
                               cannot use the message bus
"""

from flask import Blueprint, abort, current_app, request

from models.messages import StatusEvent
from models.print_job import JobStatus
from routes.identity import current_account_key, is_admin
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

print_bp = Blueprint("print_jobs", __name__, url_prefix="/api/print")


@print_bp.route("/job", methods=["POST"])
def create_job():
    """
    Create a print job.

    Body: {"printerId": str, "fileId": str}
    Returns {"jobId", "status"}: 201 when the command went out, 503 when
    the message bus was down and the job was failed immediately.
    """
    account_key = current_account_key()
    body = request.get_json(silent=True) or {}

    dispatcher = current_app.config["DISPATCHER"]
    job_id, status = dispatcher.create_job(
        account_key,
        body.get("printerId"),
        body.get("fileId"),
        request.host_url,
    )

    status_code = 503 if status == JobStatus.FAILED else 201
    return {"jobId": job_id, "status": status.value}, status_code


@print_bp.route("/job/<job_id>", methods=["GET"])
def get_job(job_id: str):
    account_key = current_account_key()
    dispatcher = current_app.config["DISPATCHER"]

    job = dispatcher.get_job(job_id)
    if job.account_key != account_key and not is_admin(account_key):
        # Same answer as a missing job; ids of other accounts are not confirmed
        abort(404, description="Not found")

    return job.to_dict()


@print_bp.route("/jobs", methods=["GET"])
def list_jobs():
    dispatcher = current_app.config["DISPATCHER"]
    jobs = dispatcher.list_jobs(current_account_key())
    return {"jobs": [job.to_dict() for job in jobs]}


@print_bp.route("/status", methods=["POST"])
def report_status():
    """
    Status callback.

    Body: {"job_id": str, "status": str, "error"?: str}
    Duplicate terminal reports succeed without changing anything.
    """
    try:
        event = StatusEvent.from_payload(request.get_json(silent=True))
    except ValueError as e:
        return {"error": str(e)}, 400

    dispatcher = current_app.config["DISPATCHER"]
    job = dispatcher.apply_status(event.job_id, event.status, event.error)
    if job is None:
        return {"error": "Job not found"}, 404

    return {"success": True, "status": job.status.value}
