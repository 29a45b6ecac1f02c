"""File handler module: cache file read/write, deletion, content types.

Provides the file I/O used by the sync manager.  All sync functions are
plain blocking helpers; async wrappers run them via run_sync() so the
event loop is never blocked on disk access.
"""

import logging
import mimetypes
from pathlib import Path

from .core.async_utils import run_sync

logger = logging.getLogger(__name__)

# =============================================================================
# File Read/Write
# =============================================================================


def read_text(path: Path) -> str:
    """Read a UTF-8 text file without newline translation."""
    return path.read_bytes().decode("utf-8")


def write_text(path: Path, content: str) -> int:
    """Write UTF-8 text, creating parent directories as needed.

    Newlines are written as-is so the bytes on disk match *content*.

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode("utf-8")
    path.write_bytes(encoded)
    return len(encoded)


def read_bytes(path: Path) -> bytes:
    return path.read_bytes()


def write_bytes(path: Path, data: bytes) -> int:
    """Write raw bytes, creating parent directories as needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return len(data)


def safe_unlink(path: Path) -> bool:
    """Delete *path* if it exists.

    Returns:
        True if a file was removed, False if it was already absent.
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    logger.debug("Removed %s", path)
    return True


# =============================================================================
# Content Types
# =============================================================================


_EXTENSION_CONTENT_TYPES: dict[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".html": "application/xhtml+xml",
    ".xhtml": "application/xhtml+xml",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def guess_content_type(filename: str) -> str:
    """Guess the MIME type of *filename* for attachment uploads.

    Checks the known extension table first, then ``mimetypes``, and falls
    back to ``application/octet-stream``.
    """
    suffix = Path(filename).suffix.lower()
    if suffix in _EXTENSION_CONTENT_TYPES:
        return _EXTENSION_CONTENT_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or DEFAULT_CONTENT_TYPE


# =============================================================================
# Async Wrappers
# =============================================================================


async def read_text_async(path: Path) -> str:
    return await run_sync(read_text, path)


async def write_text_async(path: Path, content: str) -> int:
    return await run_sync(write_text, path, content)


async def read_bytes_async(path: Path) -> bytes:
    return await run_sync(read_bytes, path)


async def write_bytes_async(path: Path, data: bytes) -> int:
    return await run_sync(write_bytes, path, data)


async def safe_unlink_async(path: Path) -> bool:
    return await run_sync(safe_unlink, path)
