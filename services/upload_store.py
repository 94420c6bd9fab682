"""
Filesystem-backed upload store.

Holds the PDF files users upload before printing. The dispatcher only
keeps a file reference (the stored file name); the store owns the bytes
and their lifecycle:

    save()    - validate and store an uploaded PDF, return its reference
    exists()  - read-only existence check used before creating a job
    url_for() - absolute URL a printer can fetch the file from
    delete()  - best-effort release once a job reaches a terminal state

File references are plain file names inside the upload folder. Anything
that is not already a safe file name (path separators, "..", empty) is
treated as missing rather than resolved.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from pypdf import PdfReader
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from core.exceptions import InvalidRequestError
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

ALLOWED_EXTENSIONS = {"pdf"}
ALLOWED_MIMETYPES = {"application/pdf"}
MAX_FILENAME_LENGTH = 255


def _allowed_file(filename: str) -> bool:
    """Check if file extension is allowed."""
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


class UploadStore:
    """
    Upload folder on local disk.

    Attributes:
        upload_folder: Directory holding the stored files
        url_prefix: Path under which the HTTP layer serves the folder
    """

    def __init__(self, upload_folder: str | Path, url_prefix: str = "/uploads"):
        self.upload_folder = Path(upload_folder)
        self.url_prefix = "/" + url_prefix.strip("/")
        self.upload_folder.mkdir(parents=True, exist_ok=True)
        logger.info(f"Upload folder: {self.upload_folder.resolve()}")

    def save(self, file: FileStorage) -> str:
        """
        Validate and store an uploaded PDF.

        Args:
            file: Uploaded file from the request

        Returns:
            File reference ("<utc timestamp>-<secure name>")

        Raises:
            InvalidRequestError: Missing file, wrong type, or unreadable PDF
        """
        if file is None or not file.filename:
            raise InvalidRequestError("No file uploaded", field="file")

        if len(file.filename) > MAX_FILENAME_LENGTH:
            raise InvalidRequestError(
                f"Filename too long. Maximum {MAX_FILENAME_LENGTH} characters.", field="file"
            )

        if not _allowed_file(file.filename):
            raise InvalidRequestError("Only PDFs allowed", field="file")

        if file.mimetype and file.mimetype not in ALLOWED_MIMETYPES:
            raise InvalidRequestError("Only PDFs allowed", field="file")

        safe_name = secure_filename(file.filename) or "document.pdf"
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
        file_ref = f"{timestamp}-{safe_name}"
        stored_path = self.upload_folder / file_ref

        logger.info(f"Saving uploaded file: {file_ref}")
        file.save(stored_path)

        try:
            pages = len(PdfReader(str(stored_path)).pages)
        except Exception as e:
            stored_path.unlink(missing_ok=True)
            logger.warning(f"Rejected upload {file_ref}: not a readable PDF ({e})")
            raise InvalidRequestError("Uploaded file is not a readable PDF", field="file")

        logger.info(f"Stored {file_ref} ({pages} page(s))")
        return file_ref

    def path_for(self, file_ref: str) -> Optional[Path]:
        """Path of a stored file, or None if the reference is unsafe."""
        if not file_ref or secure_filename(file_ref) != file_ref:
            return None
        return self.upload_folder / file_ref

    def exists(self, file_ref: str) -> bool:
        path = self.path_for(file_ref)
        return path is not None and path.is_file()

    def url_for(self, file_ref: str, origin: str) -> str:
        """
        Absolute URL for a stored file.

        Args:
            file_ref: Stored file reference
            origin: Externally visible base address, e.g. "http://host:3001"
        """
        return f"{origin.rstrip('/')}{self.url_prefix}/{quote(file_ref)}"

    def delete(self, file_ref: str) -> bool:
        """
        Remove a stored file.

        Never raises: a miss or an I/O error is logged and reported as False.

        Returns:
            True if a file was removed
        """
        path = self.path_for(file_ref)
        if path is None:
            logger.warning(f"Refusing to delete unsafe file reference: {file_ref!r}")
            return False

        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug(f"File already released: {file_ref}")
            return False
        except OSError as e:
            logger.error(f"Failed to delete {file_ref}: {e}")
            return False

        logger.info(f"Released uploaded file: {file_ref}")
        return True
