"""
Attachment upload validation.

Checks, in order:
  1. maximum file size
  2. extension whitelist
  3. MIME type whitelist
  4. magic bytes against the declared type
"""

import logging
import mimetypes
import os

from django.conf import settings
from django.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".txt",
    ".jpg", ".jpeg", ".png", ".gif", ".svg",
}

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/svg+xml",
}

# Magic bytes -> expected MIME prefix
_MAGIC_BYTES = {
    b"\x89PNG": "image/png",
    b"\xff\xd8\xff": "image/jpeg",
    b"GIF8": "image/gif",
    b"%PDF": "application/pdf",
    b"PK": "application/",  # docx, xlsx
    b"\xd0\xcf\x11": "application/",  # legacy doc, xls
}


def max_upload_size_bytes():
    return getattr(settings, "MAX_UPLOAD_SIZE_MB", 10) * 1024 * 1024


def content_type_of(file_obj):
    content_type = getattr(file_obj, "content_type", None)
    if not content_type:
        content_type, _ = mimetypes.guess_type(getattr(file_obj, "name", "") or "")
    return content_type or ""


def _check_magic_bytes(file_obj, content_type):
    """
    True when the header is consistent with ``content_type``. Text formats
    (txt, svg) carry no signature and pass.
    """
    file_obj.seek(0)
    header = file_obj.read(8)
    file_obj.seek(0)

    if not header:
        return False

    for magic, expected_prefix in _MAGIC_BYTES.items():
        if header.startswith(magic):
            return content_type.startswith(expected_prefix)
    return True


def validate_upload(file_obj):
    """Raise ``ValidationError`` for an oversized, disallowed or disguised file."""
    size = getattr(file_obj, "size", None)
    if size is not None and size > max_upload_size_bytes():
        raise ValidationError(
            f"File too large. Maximum allowed size is {getattr(settings, 'MAX_UPLOAD_SIZE_MB', 10)} MB."
        )

    name = getattr(file_obj, "name", "") or ""
    ext = os.path.splitext(name)[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            f"File extension '{ext or name}' is not allowed. "
            f"Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )

    content_type = content_type_of(file_obj)
    if content_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(f"File type '{content_type}' is not allowed.")

    if hasattr(file_obj, "read") and not _check_magic_bytes(file_obj, content_type):
        logger.warning(
            "upload_magic_byte_mismatch file=%s content_type=%s", name, content_type,
        )
        raise ValidationError("File content does not match its declared type.")

    return file_obj
