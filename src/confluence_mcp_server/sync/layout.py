"""On-disk layout of the local page cache.

::

    <root>/<page-id>/page-body.xhtml
    <root>/<page-id>/meta.json
    <root>/<page-id>/attachments/<title>
    <root>/log/<operation>-<timestamp>.log
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from ..config import DEFAULT_DATA_DIR

PAGE_BODY_FILENAME = "page-body.xhtml"
META_FILENAME = "meta.json"
ATTACHMENTS_DIRNAME = "attachments"
LOG_DIRNAME = "log"

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*]')


def sanitize_path_segment(segment: str) -> str:
    """Replace characters that are unsafe in file names with ``-``.

    Empty and dot-only segments (``""``, ``.``, ``..``) would name a
    directory, so every character of them is replaced as well.
    """
    if not segment.strip("."):
        return "-" * max(len(segment), 1)
    return _UNSAFE_CHARS.sub("-", segment)


@dataclass(frozen=True)
class CacheLayout:
    """Resolved paths for one page in the cache."""

    root: Path
    page_id: str

    @classmethod
    def resolve(
        cls, page_id: str, root: Path | str | None = None
    ) -> CacheLayout:
        """Build the layout for *page_id* under *root* (default ``confluence-data``)."""
        base = Path(root) if root else Path(DEFAULT_DATA_DIR)
        return cls(root=base.resolve(), page_id=page_id)

    @property
    def page_dir(self) -> Path:
        return self.root / sanitize_path_segment(self.page_id)

    @property
    def page_file(self) -> Path:
        return self.page_dir / PAGE_BODY_FILENAME

    @property
    def meta_file(self) -> Path:
        return self.page_dir / META_FILENAME

    @property
    def attachments_dir(self) -> Path:
        return self.page_dir / ATTACHMENTS_DIRNAME

    @property
    def log_dir(self) -> Path:
        return self.root / LOG_DIRNAME

    def attachment_path(self, title: str) -> Path:
        return self.attachments_dir / sanitize_path_segment(title)

    def prepare(self) -> CacheLayout:
        """Create every directory of the layout. Returns ``self``."""
        for directory in (self.page_dir, self.attachments_dir, self.log_dir):
            directory.mkdir(parents=True, exist_ok=True)
        return self
