"""
Uploaded file record.

Created by the form-data middleware when a multipart part is written to its
temporary path; repointed by the upload store once the content hash is known.
"""

import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from starlette.requests import Request

from ovenly.shared.paths import UPLOADS_FIELDNAME


@dataclass
class UploadedFile:
    temporary_path: Path
    field_name: str
    original_name: str
    mime_type: str
    size: int
    # Current location; equals temporary_path until deduplication succeeds
    path: Path = field(init=False)
    content_hash: Optional[str] = None

    def __post_init__(self) -> None:
        self.temporary_path = Path(self.temporary_path)
        self.path = self.temporary_path

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def extension(self) -> str:
        """Original extension without the dot ("png")."""
        return Path(self.original_name).suffix.lstrip(".")

    @property
    def is_deduplicated(self) -> bool:
        return self.content_hash is not None and self.path != self.temporary_path

    def move_to(self, destination: Path, content_hash: str) -> None:
        self.path = destination
        self.content_hash = content_hash

    def url(self, request: Request) -> str:
        """
        Public URL of the stored file.

        Built from the request's scheme and Host header so non-default ports
        and proxies that preserve Host resolve correctly.
        """
        resource = posixpath.join(f"/{UPLOADS_FIELDNAME}", self.filename)
        host = request.headers.get("host") or request.url.netloc
        return f"{request.url.scheme}://{host}{resource}"

    def to_dict(self, request: Request) -> Dict[str, Any]:
        return {
            "field_name": self.field_name,
            "original_name": self.original_name,
            "filename": self.filename,
            "mime_type": self.mime_type,
            "size": self.size,
            "content_hash": self.content_hash,
            "url": self.url(request),
        }
