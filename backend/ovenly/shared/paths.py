"""
Ovenly Backend: Path Resolution & Traversal Protection
=========================================================

What:  Computes the writable base directory and validates upload paths.
Why:   Serverless platforms (Vercel, AWS Lambda) mount the code read-only;
       only the temp directory is writable there.
How:   Every path the upload store touches is resolved and checked against
       the uploads root before any filesystem mutation.

Directory Structure:
    <base>/
    └── uploads/
        ├── temp-1700000000000-123456789.png   (in-flight, renamed shortly)
        └── 3q2-7wAb...Xk.png                   (content-addressed)
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from ovenly.config import settings
from ovenly.exceptions import SecurityError, ValidationError

logger = logging.getLogger(__name__)

# Reserved multipart field name; also the directory and URL segment for uploads
UPLOADS_FIELDNAME = "uploads"

PathLike = Union[str, Path]


def is_serverless() -> bool:
    """Detects a serverless runtime from settings or well-known env vars."""
    if settings.serverless:
        return True
    if os.environ.get("VERCEL") or os.environ.get("VERCEL_ENV"):
        return True
    if os.environ.get("AWS_LAMBDA_FUNCTION_NAME"):
        return True
    return os.getcwd().startswith("/var/task")


def get_base_directory() -> Path:
    """
    Base directory for file operations.

    Resolution order:
        1. settings.storage_root (explicit override)
        2. Temp directory on serverless platforms
        3. Current working directory
    """
    if settings.storage_root:
        return Path(settings.storage_root)
    if is_serverless():
        return Path(tempfile.gettempdir())
    return Path.cwd()


def get_allowed_uploads_path() -> Path:
    """The root every stored upload must live under."""
    return (get_base_directory() / UPLOADS_FIELDNAME).resolve()


def is_path_within_uploads(file_path: PathLike) -> bool:
    """
    True if the resolved path is the uploads root or inside it.

    Resolving first collapses "../" segments and symlinks, so
    "uploads/../../etc/passwd" is compared as "/etc/passwd". A path that
    cannot be resolved at all (e.g. an embedded NUL byte) is outside.
    """
    allowed = get_allowed_uploads_path()
    try:
        resolved = Path(file_path).resolve()
    except (ValueError, OSError):
        return False
    return resolved == allowed or allowed in resolved.parents


def validate_file_path(file_path: PathLike) -> Path:
    """Returns the resolved path, or raises SecurityError if it escapes uploads."""
    if not is_path_within_uploads(file_path):
        logger.warning("Rejected path outside uploads directory: %s", file_path)
        raise SecurityError(context={"path": str(file_path)})
    return Path(file_path).resolve()


def ensure_directory(directory: PathLike) -> Path:
    """
    Create the directory (and parents) if missing.

    Relative paths are anchored at the base directory.
    """
    path = Path(directory)
    if not path.is_absolute():
        path = get_base_directory() / path
    path.mkdir(parents=True, exist_ok=True)
    return path


def validate_fieldname(field_name: str) -> None:
    if field_name != UPLOADS_FIELDNAME:
        raise ValidationError(
            message=(
                f'Invalid fieldname: "{field_name}". '
                f'Fieldname must be "{UPLOADS_FIELDNAME}"'
            ),
            field=field_name,
        )


def get_upload_path(field_name: str) -> Path:
    """
    Directory for files uploaded under `field_name`.

    Only the reserved "uploads" field is accepted, and files land directly
    in <base>/uploads (not <base>/uploads/uploads).
    """
    validate_fieldname(field_name)
    return get_base_directory() / UPLOADS_FIELDNAME
