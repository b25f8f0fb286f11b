"""
Ovenly Backend: Multipart Upload Handler
===========================================

What:  Route handler that parses multipart/form-data, validates every file
       part and hands them to the upload store.
Why:   Nothing touches the disk until the whole request has passed
       validation; a rejected request leaves no temporary files behind.
How:   upload_any(config) returns a handler for router.route(...).post(...):

    request.form()                      (python-multipart, spooled in memory)
        │
        ├── no file parts              → 400 "No files uploaded"
        ├── more than max_files        → 400 "Too many files"
        ├── per part:
        │     field name != "uploads"  → 400
        │     MIME not allowed         → 400
        │     extension ≠ MIME         → 400
        │     size > max_file_size     → 413
        ▼
    upload_store.receive() → upload_store.deduplicate() → http.uploads

Text fields sent alongside the files are merged into the request body.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from starlette.datastructures import UploadFile

from ovenly.config import settings
from ovenly.core.http import HttpContext, RouteHandler
from ovenly.exceptions import PayloadTooLargeError, ValidationError
from ovenly.services.upload_store import upload_store
from ovenly.shared.paths import validate_fieldname

logger = logging.getLogger(__name__)

MULTIPART_CONTENT_TYPE = "multipart/form-data"

# Accepted MIME types and the file extensions each one may carry
MIME_EXTENSIONS: Dict[str, Tuple[str, ...]] = {
    "image/jpeg": ("jpg", "jpeg"),
    "image/jpg": ("jpg", "jpeg"),
    "image/png": ("png",),
    "image/gif": ("gif",),
    "image/webp": ("webp",),
    "image/svg+xml": ("svg",),
    "application/pdf": ("pdf",),
    "application/msword": ("doc",),
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ("docx",),
    "application/vnd.ms-excel": ("xls",),
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ("xlsx",),
}


@dataclass(frozen=True)
class FileValidationOptions:
    allowed_mime_types: Tuple[str, ...] = tuple(MIME_EXTENSIONS)
    max_file_size: int = 10 * 1024 * 1024
    max_files: int = 10

    @classmethod
    def from_settings(cls, allowed_mime_types: Optional[Sequence[str]] = None) -> "FileValidationOptions":
        return cls(
            allowed_mime_types=tuple(allowed_mime_types or MIME_EXTENSIONS),
            max_file_size=settings.max_file_size,
            max_files=settings.max_files,
        )


def validate_file_extension(filename: str, mime_type: str) -> bool:
    """True if the filename's extension is one the MIME type may carry."""
    extension = Path(filename).suffix.lstrip(".").lower()
    return bool(extension) and extension in MIME_EXTENSIONS.get(mime_type, ())


def validate_part(field_name: str, part: UploadFile, config: FileValidationOptions) -> None:
    validate_fieldname(field_name)

    filename = part.filename or ""
    mime_type = part.content_type or ""
    if mime_type not in config.allowed_mime_types:
        raise ValidationError(
            message=f"Invalid file type. Allowed types: {', '.join(config.allowed_mime_types)}",
            field=field_name,
            context={"filename": filename, "mime_type": mime_type},
        )

    if not validate_file_extension(filename, mime_type):
        raise ValidationError(
            message=f"File extension does not match MIME type: {mime_type}",
            field=field_name,
            context={"filename": filename, "mime_type": mime_type},
        )

    if part.size is not None and part.size > config.max_file_size:
        raise PayloadTooLargeError(
            max_size=config.max_file_size,
            context={"filename": filename, "size": part.size},
        )


def upload_any(config: Optional[FileValidationOptions] = None) -> RouteHandler:
    """
    Build the multipart handler for one route.

    Args:
        config: Limits and allow-list; defaults to FileValidationOptions.from_settings()
    """
    options = config or FileValidationOptions.from_settings()

    async def handle_upload(http: HttpContext) -> None:
        content_type = http.request.headers.get("content-type", "")
        if not content_type.startswith(MULTIPART_CONTENT_TYPE):
            raise ValidationError(message="Expected multipart/form-data request")

        form = await http.request.form(max_files=options.max_files + 1)
        parts: List[Tuple[str, UploadFile]] = []
        fields = {}
        for name, value in form.multi_items():
            if isinstance(value, UploadFile):
                parts.append((name, value))
            else:
                fields[name] = value

        if not parts:
            raise ValidationError(message="No files uploaded")
        if len(parts) > options.max_files:
            raise ValidationError(
                message=f"Too many files. Maximum: {options.max_files} files",
                context={"received": len(parts)},
            )

        for name, part in parts:
            validate_part(name, part, options)

        received = await upload_store.receive(parts)
        http.uploads = await upload_store.deduplicate(received)
        http.merge_body(fields)
        logger.info("Accepted %d uploaded file(s)", len(http.uploads))

    return handle_upload
