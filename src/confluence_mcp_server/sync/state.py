"""Persistence of ``meta.json``.

Key design choices:

* **Atomic writes** -- ``save()`` writes to a temp file in the same
  directory then calls ``os.replace()``, so readers never see a partial
  record and the file is always replaced wholesale.
* **Stable format** -- two-space indentation, camelCase keys, trailing
  newline, attachments as a list.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from .models import DocumentMeta


class MetaStore:
    """Load and save the ``DocumentMeta`` record at *path*."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> DocumentMeta | None:
        """Return the stored record, or ``None`` if the file does not exist."""
        if not self.exists():
            return None
        with open(self.path, encoding="utf-8") as fh:
            return DocumentMeta.model_validate(json.load(fh))

    def save(self, meta: DocumentMeta) -> None:
        """Persist *meta* atomically, creating the parent directory if needed."""
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=str(directory), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(
                    meta.model_dump(by_alias=True),
                    fh,
                    indent=2,
                    ensure_ascii=False,
                )
                fh.write("\n")
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
