# test_requests/reports.py
"""
Report file store on Django's default storage.

Handles are storage names. Uploads are validated here, before any workflow
work happens, and removed again by the caller if the transition fails.
"""
from __future__ import annotations

import logging
import os
import posixpath
import uuid

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage

from .workflows.exceptions import TransitionValidationError

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"
REPORT_DIR = "test_reports"


class ReportNotFound(Exception):
    pass


def max_upload_bytes() -> int:
    return int(getattr(settings, "REPORT_MAX_UPLOAD_BYTES", 10 * 1024 * 1024))


def allowed_content_types():
    return tuple(getattr(settings, "REPORT_ALLOWED_CONTENT_TYPES", ("application/pdf",)))


def validate_upload(uploaded) -> None:
    """
    PDF only, bounded size.
    """
    errors = {}

    name = getattr(uploaded, "name", "") or ""
    size = getattr(uploaded, "size", None) or 0
    content_type = (getattr(uploaded, "content_type", "") or "").split(";")[0].strip().lower()

    if size <= 0:
        errors["file"] = "The uploaded file is empty."
    elif size > max_upload_bytes():
        errors["file"] = f"File too large; the limit is {max_upload_bytes() // (1024 * 1024)} MB."
    elif not name.lower().endswith(".pdf"):
        errors["file"] = "Only PDF reports are accepted."
    elif content_type and content_type not in allowed_content_types():
        errors["file"] = f"Unsupported content type '{content_type}'."
    else:
        head = uploaded.read(len(PDF_MAGIC))
        uploaded.seek(0)
        if head != PDF_MAGIC:
            errors["file"] = "The uploaded file is not a PDF document."

    if errors:
        raise TransitionValidationError(field_errors=errors)


def put(request_id, data: bytes, filename: str) -> str:
    base = os.path.basename(filename or "report.pdf") or "report.pdf"
    name = f"{REPORT_DIR}/{request_id}/{uuid.uuid4().hex}_{base}"
    handle = default_storage.save(name, ContentFile(data))
    logger.info("Stored report for test request %s as %s", request_id, handle)
    return handle


def get(handle: str) -> bytes:
    if not handle or not default_storage.exists(handle):
        raise ReportNotFound(handle)
    with default_storage.open(handle, "rb") as fh:
        return fh.read()


def delete(handle: str) -> None:
    if handle and default_storage.exists(handle):
        default_storage.delete(handle)
        logger.info("Removed report file %s", handle)


def belongs_to(request_id, handle: str) -> bool:
    """
    Only handles this store issued for `request_id` are served.
    """
    if not handle or "\\" in handle:
        return False
    normalized = posixpath.normpath(handle)
    return normalized == handle and normalized.startswith(f"{REPORT_DIR}/{request_id}/")


def filename_for(handle: str) -> str:
    base = os.path.basename(handle or "")
    # strip the uniqueness prefix
    _, sep, rest = base.partition("_")
    return rest if sep and rest else base or "report.pdf"
