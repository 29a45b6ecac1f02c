"""SHA-256 content addressing for page bodies and attachments."""

from __future__ import annotations

import hashlib
from pathlib import Path

_CHUNK_SIZE = 64 * 1024


def content_hash(content: bytes | str) -> str:
    """Return the SHA-256 hex digest of *content*.

    Text is UTF-8 encoded first, so ``content_hash("x")`` equals
    ``content_hash(b"x")``.  No normalisation is applied.

    Raises:
        TypeError: If *content* is neither ``bytes`` nor ``str``.
    """
    if isinstance(content, str):
        data = content.encode("utf-8")
    elif isinstance(content, (bytes, bytearray, memoryview)):
        data = bytes(content)
    else:
        raise TypeError(
            f"content_hash() expects bytes or str, got {type(content).__name__}"
        )
    return hashlib.sha256(data).hexdigest()


def file_hash(path: Path | str) -> str:
    """Return the SHA-256 hex digest of the bytes stored at *path*."""
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()
