"""
Ovenly Backend: Content-Addressed Upload Store
=================================================

What:  Persists uploaded files under <base>/uploads, named by content hash.
Why:   Identical uploads share one file on disk; the stored name is derived
       from the bytes, so a client can never choose where a file lands.
How:   Two stages per request:
       1. receive()      → stream each multipart part to a unique temp file
       2. deduplicate()  → hash, then atomically claim <hash><ext>

Claim Step (per file, concurrent across files):
    temp-1700000000000-4821.png
        │  sha256 → urlsafe base64 (no padding)
        ▼
    uploads/3q2-7wAb...Xk.png
        ├── link(temp, dest) succeeds      → first copy, temp removed
        └── FileExistsError                → duplicate, temp removed
    Either way the record now points at the destination.

Hard links make the claim atomic: two concurrent uploads of the same bytes
cannot both observe "absent" and overwrite each other. Filesystems without
hard links fall back to exists() + replace().

Deletion only ever targets direct children of the uploads root, and the
root itself is removed once the last file is gone.
"""

import asyncio
import errno
import logging
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import aiofiles
import aiofiles.os
from starlette.datastructures import UploadFile

from ovenly.core.uploaded_file import UploadedFile
from ovenly.exceptions import FileStorageError, OvenlyError, SecurityError
from ovenly.shared.hashing import hash_file
from ovenly.shared.paths import (
    ensure_directory,
    get_allowed_uploads_path,
    get_upload_path,
    validate_file_path,
)

logger = logging.getLogger(__name__)

# 1MB chunks when streaming a part to disk
WRITE_CHUNK_SIZE = 1024 * 1024

# errno values meaning "this filesystem cannot hard-link"
_NO_LINK_ERRNOS = {errno.EPERM, errno.EXDEV, errno.EOPNOTSUPP, errno.ENOTSUP, errno.EMLINK}

FormPart = Tuple[str, UploadFile]


@dataclass
class DeleteResult:
    filename: str
    success: bool
    error: Optional[str] = None


def temporary_name(original_name: str) -> str:
    millis = int(time.time() * 1000)
    suffix = random.randint(0, 1_000_000_000)
    return f"temp-{millis}-{suffix}{Path(original_name).suffix}"


class UploadStore:
    """Writes, deduplicates and deletes stored uploads."""

    # ── Receive ───────────────────────────────────────────────────────────

    async def receive(self, parts: Sequence[FormPart]) -> List[UploadedFile]:
        """
        Stream already-validated parts to temporary files.

        Args:
            parts: (field_name, UploadFile) pairs from the multipart form

        Raises:
            FileStorageError: Directory not writable, disk full, ...
        """
        received = []
        for field_name, part in parts:
            directory = ensure_directory(get_upload_path(field_name))
            original_name = part.filename or ""
            temp_path = directory / temporary_name(original_name)

            size = 0
            try:
                async with aiofiles.open(temp_path, "wb") as out:
                    while True:
                        chunk = await part.read(WRITE_CHUNK_SIZE)
                        if not chunk:
                            break
                        size += len(chunk)
                        await out.write(chunk)
            except OSError as e:
                logger.error("Failed to write upload to %s: %s", temp_path, e)
                raise FileStorageError(
                    message="Failed to save uploaded file. Please try again.",
                    context={"path": str(temp_path), "os_error": str(e)},
                ) from e
            finally:
                await part.close()

            received.append(
                UploadedFile(
                    temporary_path=temp_path,
                    field_name=field_name,
                    original_name=original_name,
                    mime_type=part.content_type or "application/octet-stream",
                    size=size,
                )
            )
            logger.debug("Received %s (%d bytes) as %s", original_name, size, temp_path.name)
        return received

    # ── Deduplicate ───────────────────────────────────────────────────────

    async def deduplicate(self, files: Sequence[UploadedFile]) -> List[UploadedFile]:
        """
        Claim a content-addressed name for every file, concurrently.

        A failure for one file is logged and leaves that record at its
        temporary path; the others are unaffected.
        """
        await asyncio.gather(*(self._deduplicate_one(f) for f in files))
        return list(files)

    async def _deduplicate_one(self, file: UploadedFile) -> None:
        try:
            await self._claim(file)
        except (OvenlyError, OSError) as e:
            logger.error(
                "Deduplication failed for %s, keeping %s: %s",
                file.original_name,
                file.temporary_path.name,
                e,
            )

    async def _claim(self, file: UploadedFile) -> None:
        content_hash = await hash_file(file.temporary_path)
        directory = get_upload_path(file.field_name)
        destination = validate_file_path(directory / f"{content_hash}{Path(file.original_name).suffix}")

        try:
            await aiofiles.os.link(file.temporary_path, destination)
            logger.info("Stored %s as %s", file.original_name, destination.name)
        except FileExistsError:
            logger.info("Duplicate upload %s, reusing %s", file.original_name, destination.name)
        except OSError as e:
            if e.errno not in _NO_LINK_ERRNOS:
                raise
            await self._claim_without_link(file, destination)
            file.move_to(destination, content_hash)
            return

        await aiofiles.os.remove(file.temporary_path)
        file.move_to(destination, content_hash)

    @staticmethod
    async def _claim_without_link(file: UploadedFile, destination: Path) -> None:
        if await aiofiles.os.path.exists(destination):
            logger.info("Duplicate upload %s, reusing %s", file.original_name, destination.name)
            await aiofiles.os.remove(file.temporary_path)
        else:
            await aiofiles.os.replace(file.temporary_path, destination)
            logger.info("Stored %s as %s", file.original_name, destination.name)

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete(self, filename: str) -> None:
        """
        Delete one stored file by name.

        A file that is already gone counts as deleted. Raises SecurityError
        for anything that is not a direct child of the uploads root.
        """
        uploads_root = get_allowed_uploads_path()
        target = validate_file_path(uploads_root / filename)
        if target.parent != uploads_root:
            raise SecurityError(context={"filename": filename})

        try:
            await aiofiles.os.remove(target)
            logger.info("Deleted upload %s", target.name)
        except FileNotFoundError:
            logger.debug("Upload %s already absent", target.name)
        except OSError as e:
            raise FileStorageError(
                message="Failed to delete file",
                context={"filename": filename, "os_error": str(e)},
            ) from e

        await self._remove_if_empty(uploads_root)

    async def delete_many(self, filenames: Sequence[str]) -> List[DeleteResult]:
        return list(await asyncio.gather(*(self._delete_one(name) for name in filenames)))

    async def _delete_one(self, filename: str) -> DeleteResult:
        try:
            await self.delete(filename)
        except OvenlyError as e:
            logger.warning("Could not delete %s: %s", filename, e.message)
            return DeleteResult(filename=filename, success=False, error=e.message)
        return DeleteResult(filename=filename, success=True)

    @staticmethod
    async def _remove_if_empty(directory: Path) -> None:
        try:
            if await aiofiles.os.listdir(directory):
                return
            await aiofiles.os.rmdir(directory)
            logger.info("Removed empty uploads directory %s", directory)
        except FileNotFoundError:
            return
        except OSError as e:
            # Another request wrote into it between listdir and rmdir
            logger.debug("Uploads directory not removed: %s", e)


# Singleton instance, used by the form-data middleware and upload controllers
upload_store = UploadStore()
