"""Page and attachment sync between Confluence and a local cache.

Public API for keeping a Confluence page (storage-format body plus binary
attachments) in step with a directory on disk.

Architecture
------------
Change detection combines two signals recorded in ``meta.json``: the
remote **version number** decides conflicts, and a **SHA-256 content
hash** decides whether anything needs to be transferred at all.  The body
is stored pretty-printed by a reversible formatter, so it can be edited by
hand and uploaded byte-for-byte as the server would have produced it.

Modules:

- ``manager``   -- ``SyncManager``: the four sync operations.
- ``formatter`` -- ``expand`` / ``collapse``: reversible pretty-printing.
- ``hashing``   -- ``content_hash`` / ``file_hash``.
- ``layout``    -- ``CacheLayout``: paths of the cache directory.
- ``state``     -- ``MetaStore``: atomic load/save of ``meta.json``.
- ``models``    -- ``DocumentMeta``, ``AttachmentMeta`` and result models.
- ``oplog``     -- ``SyncContext`` and per-operation JSON-lines logs.
- ``reporter``  -- Human-readable and JSON result formatting.

Usage example
-------------
::

    from confluence_mcp_server.core.async_utils import IOOptions
    from confluence_mcp_server.sync import SyncContext, SyncManager

    manager = SyncManager(client, data_dir="confluence-data")
    ctx = SyncContext(options=IOOptions(timeout=30))

    result = await manager.download_body(
        "https://example.atlassian.net/wiki/spaces/DOC/pages/12345", ctx=ctx
    )
    # ... edit result.page_file ...
    await manager.upload_body("12345", ctx=ctx)
"""

from .formatter import collapse, expand
from .hashing import content_hash, file_hash
from .layout import CacheLayout, sanitize_path_segment
from .manager import SyncManager
from .models import (
    AttachmentMeta,
    AttachmentsDownloadResult,
    AttachmentsUploadResult,
    BodyDownloadResult,
    BodyUploadResult,
    DocumentMeta,
)
from .oplog import OperationLog, SyncContext, mask_sensitive
from .reporter import result_to_json
from .state import MetaStore

__all__ = [
    "AttachmentMeta",
    "AttachmentsDownloadResult",
    "AttachmentsUploadResult",
    "BodyDownloadResult",
    "BodyUploadResult",
    "CacheLayout",
    "DocumentMeta",
    "MetaStore",
    "OperationLog",
    "SyncContext",
    "SyncManager",
    "collapse",
    "content_hash",
    "expand",
    "file_hash",
    "mask_sensitive",
    "result_to_json",
    "sanitize_path_segment",
]
