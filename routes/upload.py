"""
Upload routes.

POST /api/upload stores a PDF and returns its file id; GET /uploads/<id>
serves it back so printers can download the file named in a command.
"""

from flask import Blueprint, abort, current_app, request, send_from_directory

from routes.identity import current_account_key
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

upload_bp = Blueprint("upload", __name__)


@upload_bp.route("/api/upload", methods=["POST"])
def upload():
    """Store an uploaded PDF (multipart field "file")."""
    account_key = current_account_key()
    upload_store = current_app.config["UPLOAD_STORE"]

    file_ref = upload_store.save(request.files.get("file"))
    logger.info(f"{account_key} uploaded {file_ref}")

    return {"fileId": file_ref}, 201


@upload_bp.route("/uploads/<path:file_ref>", methods=["GET"])
def serve_upload(file_ref: str):
    """Serve a stored file; no identity needed (printers fetch these)."""
    upload_store = current_app.config["UPLOAD_STORE"]

    if not upload_store.exists(file_ref):
        logger.warning(f"Requested missing or unsafe upload: {file_ref!r}")
        abort(404, description="File not found")

    return send_from_directory(
        upload_store.upload_folder.resolve(),
        file_ref,
        mimetype="application/pdf"
    )
