"""
Content hashing helpers.

SHA-256 digests encoded as URL-safe base64 without padding: stable across
processes and safe to use directly as filenames and URL segments.
"""

import base64
import hashlib
import hmac
from pathlib import Path
from typing import Union

import aiofiles

# 64KB reads keep memory flat for large uploads
HASH_CHUNK_SIZE = 64 * 1024


def _encode(digest: bytes) -> str:
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def hash_bytes(data: bytes) -> str:
    return _encode(hashlib.sha256(data).digest())


def hash_string(value: str) -> str:
    """One-way hash of a string (used for stored passwords)."""
    return hash_bytes(value.encode("utf-8"))


def verify_hashed_string(value: str, hashed: str) -> bool:
    return hmac.compare_digest(hash_string(value), hashed)


async def hash_file(path: Union[str, Path]) -> str:
    """Hash a file on disk without loading it into memory at once."""
    digest = hashlib.sha256()
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(HASH_CHUNK_SIZE)
            if not chunk:
                break
            digest.update(chunk)
    return _encode(digest.digest())
