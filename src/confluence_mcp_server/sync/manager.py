"""Sync manager: moves page bodies and attachments between Confluence and
the local cache.

Four operations are provided:

- ``download_body``: fetch the page, pretty-print it with ``expand()`` and
  write ``page-body.xhtml``.  Unchanged content is not rewritten.
- ``upload_body``: refuse on version drift, otherwise update the page if
  the local body's hash changed.  The body is collapsed first unless
  ``expand()`` left it untouched at download time.
- ``download_attachments``: fetch new or changed attachments; an unfiltered
  run also removes local copies of attachments deleted remotely.
- ``upload_attachments``: upload tracked attachments whose bytes changed.

Every operation writes ``started`` and a final ``completed`` / ``skipped`` /
``failed`` event to its operation log.  ``meta.json`` is written only after
all other work of the operation succeeded.  Errors are re-raised unchanged,
with the operation log paths attached to ``DomainError.log_files``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..core.async_utils import run_io, run_sync
from ..core.client import ConfluenceClient
from ..errors import (
    DomainError,
    LocalAttachmentMissingError,
    LocalBodyFileMissingError,
    LocalMetadataMissingError,
    OperationAbortedError,
    VersionConflictError,
)
from ..file_handler import (
    guess_content_type,
    read_bytes_async,
    read_text_async,
    safe_unlink_async,
    write_bytes_async,
    write_text_async,
)
from .formatter import collapse, expand
from .hashing import content_hash, file_hash
from .layout import CacheLayout
from .models import (
    AttachmentMeta,
    AttachmentsDownloadResult,
    AttachmentsUploadResult,
    BodyDownloadResult,
    BodyUploadResult,
    DocumentMeta,
)
from .oplog import OperationLog, SyncContext
from .state import MetaStore

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _normalize_filter(include_titles: Iterable[str] | None) -> set[str] | None:
    """Strip titles; only ``None`` or an empty list means "no filter".

    Blank titles stay in the set, so a filter of blanks matches nothing
    and still counts as a filtered run.
    """
    if include_titles is None:
        return None
    titles = {title.strip() for title in include_titles}
    return titles or None


def _error_fields(error: BaseException) -> dict[str, Any]:
    if isinstance(error, DomainError):
        return error.to_dict()
    return {"name": type(error).__name__, "message": str(error)}


class SyncManager:
    """Synchronize one page at a time with its local cache directory.

    Args:
        client: Blocking Confluence client; every call runs via ``run_io``.
        data_dir: Default cache root when an operation gets no ``root``.
    """

    def __init__(
        self, client: ConfluenceClient, data_dir: Path | str | None = None
    ) -> None:
        self.client = client
        self.data_dir = data_dir

    # ------------------------------------------------------------------
    # Shared plumbing
    # ------------------------------------------------------------------

    def _layout(self, page_ref: str, root: Path | str | None) -> CacheLayout:
        page_id = ConfluenceClient.extract_page_id(page_ref)
        return CacheLayout.resolve(page_id, root or self.data_dir).prepare()

    async def _record_failure(
        self,
        oplog: OperationLog,
        error: BaseException,
        log_files: list[str],
        **fields: Any,
    ) -> None:
        """Log *error* as a ``failed`` (or ``cancelled``) event."""
        if isinstance(error, asyncio.CancelledError):
            status, reason = "cancelled", "cancelled"
        elif isinstance(error, OperationAbortedError):
            status, reason = "failed", error.reason
        else:
            status, reason = "failed", "error"

        try:
            path = await oplog.write(
                status, reason=reason, error=_error_fields(error), **fields
            )
        except OSError:
            # The caller re-raises *error*, not this
            logger.exception(
                "[%s] could not write %s event to %s",
                oplog.correlation_id,
                status,
                oplog.path,
            )
        else:
            if path not in log_files:
                log_files.append(path)
        if isinstance(error, DomainError):
            error.log_files = list(log_files)

        logger.error(
            "[%s] %s %s (%s): %s",
            oplog.correlation_id,
            oplog.operation,
            status,
            reason,
            error,
        )

    # ------------------------------------------------------------------
    # Body
    # ------------------------------------------------------------------

    async def download_body(
        self,
        page_ref: str,
        root: Path | str | None = None,
        ctx: SyncContext | None = None,
    ) -> BodyDownloadResult:
        """Download the page body into ``page-body.xhtml``.

        The write is skipped when the remote version and the hash of the
        expanded body both match ``meta.json`` and the body file exists.

        Raises:
            DomainError: Any remote or local failure, re-raised unchanged.
        """
        ctx = ctx or SyncContext()
        layout = self._layout(page_ref, root)
        page_id = layout.page_id
        store = MetaStore(layout.meta_file)
        oplog = ctx.open_log(layout.log_dir, "download-body")
        log_files = [
            await oplog.write(
                "started", pageId=page_id, targetFile=str(layout.page_file)
            )
        ]

        try:
            existing = store.load()
            page = await run_io(
                self.client.get_page,
                page_id,
                target=f"page/{page_id}",
                options=ctx.options,
            )
            formatted = expand(page.body)
            body_hash = content_hash(formatted)

            skipped = (
                existing is not None
                and existing.version == page.version
                and existing.body_content_hash == body_hash
                and layout.page_file.is_file()
            )
            if not skipped:
                await write_text_async(layout.page_file, formatted)

            base = existing or DocumentMeta(document_id=page_id)
            store.save(
                base.model_copy(
                    update={
                        "document_id": page_id,
                        "title": page.title,
                        "version": page.version,
                        "downloaded_at": _now(),
                        "body_content_hash": body_hash,
                        "body_expanded": formatted != page.body,
                        "storage_path": str(layout.page_file),
                    }
                )
            )
        except BaseException as exc:
            await self._record_failure(oplog, exc, log_files, pageId=page_id)
            raise

        status = "skipped" if skipped else "completed"
        await oplog.write(
            status,
            pageId=page_id,
            version=page.version,
            reason="no_changes" if skipped else None,
        )
        logger.info(
            "[%s] download-body page/%s %s (version %d)",
            ctx.correlation_id,
            page_id,
            status,
            page.version,
        )
        return BodyDownloadResult(
            skipped=skipped,
            version=page.version,
            page_file=str(layout.page_file),
            meta_file=str(layout.meta_file),
            log_files=log_files,
        )

    async def upload_body(
        self,
        page_ref: str,
        root: Path | str | None = None,
        ctx: SyncContext | None = None,
        message: str | None = None,
    ) -> BodyUploadResult:
        """Upload ``page-body.xhtml`` if it changed since the last sync.

        Raises:
            LocalMetadataMissingError: ``meta.json`` does not exist.
            LocalBodyFileMissingError: The body file does not exist.
            VersionConflictError: The page changed remotely since the last
                sync; nothing was written anywhere.
        """
        ctx = ctx or SyncContext()
        layout = self._layout(page_ref, root)
        page_id = layout.page_id
        store = MetaStore(layout.meta_file)
        oplog = ctx.open_log(layout.log_dir, "upload-body")
        log_files = [
            await oplog.write(
                "started", pageId=page_id, sourceFile=str(layout.page_file)
            )
        ]

        try:
            meta = store.load()
            if meta is None:
                raise LocalMetadataMissingError(str(layout.meta_file))
            if not layout.page_file.is_file():
                raise LocalBodyFileMissingError(str(layout.page_file))

            remote = await run_io(
                self.client.get_page,
                page_id,
                target=f"page/{page_id}",
                options=ctx.options,
            )
            if remote.version != meta.version:
                raise VersionConflictError(
                    f"Remote page/{page_id} is at version {remote.version}, "
                    f"local copy is based on version {meta.version}. "
                    "Download the body again before uploading.",
                    remote_version=remote.version,
                    local_version=meta.version,
                )

            formatted = await read_text_async(layout.page_file)
            body_hash = content_hash(formatted)
            page_updated = body_hash != meta.body_content_hash

            if page_updated:
                # A body that expand() declined is the server's own markup
                body = collapse(formatted) if meta.body_expanded else formatted
                updated = await run_io(
                    self.client.update_page,
                    page_id,
                    remote.title,
                    body,
                    remote.version,
                    target=f"page/{page_id}",
                    options=ctx.options,
                    message=message,
                )
                now = _now()
                meta = meta.model_copy(
                    update={
                        "title": updated.title or remote.title,
                        "version": updated.version,
                        "body_content_hash": body_hash,
                        "storage_path": str(layout.page_file),
                        "downloaded_at": now,
                        "last_uploaded_at": now,
                    }
                )
            store.save(meta)
        except BaseException as exc:
            await self._record_failure(oplog, exc, log_files, pageId=page_id)
            raise

        status = "completed" if page_updated else "skipped"
        await oplog.write(
            status,
            pageId=page_id,
            version=meta.version,
            reason=None if page_updated else "no_changes",
        )
        logger.info(
            "[%s] upload-body page/%s %s (version %d)",
            ctx.correlation_id,
            page_id,
            status,
            meta.version,
        )
        return BodyUploadResult(
            page_updated=page_updated,
            version=meta.version,
            page_file=str(layout.page_file),
            meta_file=str(layout.meta_file),
            log_files=log_files,
        )

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    async def download_attachments(
        self,
        page_ref: str,
        root: Path | str | None = None,
        include_titles: Iterable[str] | None = None,
        ctx: SyncContext | None = None,
    ) -> AttachmentsDownloadResult:
        """Download new or changed attachments in listing order.

        Without a filter, attachments tracked locally but gone remotely are
        deleted from disk and from ``meta.json``.  A filtered run never
        removes anything.
        """
        ctx = ctx or SyncContext()
        layout = self._layout(page_ref, root)
        page_id = layout.page_id
        store = MetaStore(layout.meta_file)
        title_filter = _normalize_filter(include_titles)
        oplog = ctx.open_log(layout.log_dir, "download-attachments")
        log_files = [
            await oplog.write(
                "started",
                pageId=page_id,
                filter=sorted(title_filter or []),
            )
        ]

        downloaded: list[str] = []
        skipped: list[str] = []
        removed: list[str] = []
        current: str | None = None
        try:
            infos = await run_io(
                self.client.list_attachments,
                page_id,
                target=f"page/{page_id}/attachments",
                options=ctx.options,
            )

            meta = store.load()
            if meta is None:
                page = await run_io(
                    self.client.get_page,
                    page_id,
                    target=f"page/{page_id}",
                    options=ctx.options,
                )
                meta = DocumentMeta(
                    document_id=page_id,
                    title=page.title,
                    version=page.version,
                    storage_path=str(layout.page_file),
                )

            candidates = [
                info
                for info in infos
                if title_filter is None or info.title in title_filter
            ]
            for info in candidates:
                current = info.title
                path = layout.attachment_path(info.title)
                tracked = meta.attachments.get(info.title)
                if (
                    tracked is not None
                    and tracked.version == (info.version or tracked.version)
                    and path.is_file()
                ):
                    skipped.append(info.title)
                    continue

                data = await run_io(
                    self.client.download_attachment,
                    page_id,
                    info.id,
                    target=f"page/{page_id}/attachment/{info.title}",
                    options=ctx.options,
                )
                await write_bytes_async(path, data)
                meta = meta.with_attachment(
                    AttachmentMeta(
                        id=info.id,
                        title=info.title,
                        version=info.version
                        if info.version is not None
                        else (tracked.version if tracked else 1),
                        content_hash=content_hash(data),
                        media_type=info.media_type or None,
                        file_size=info.file_size or len(data),
                        storage_path=str(path),
                        downloaded_at=_now(),
                        last_uploaded_at=tracked.last_uploaded_at
                        if tracked
                        else None,
                    )
                )
                downloaded.append(info.title)
            current = None

            if title_filter is None:
                remote_titles = {info.title for info in infos}
                for title in list(meta.attachments):
                    if title not in remote_titles:
                        await safe_unlink_async(layout.attachment_path(title))
                        removed.append(title)
                meta = meta.without_attachments(set(removed))

            store.save(
                meta.model_copy(update={"last_attachment_scan_at": _now()})
            )
        except BaseException as exc:
            await self._record_failure(
                oplog,
                exc,
                log_files,
                pageId=page_id,
                attachmentTitle=current,
                downloaded=downloaded,
            )
            raise

        await oplog.write(
            "completed",
            pageId=page_id,
            downloaded=downloaded,
            skipped=skipped,
            removed=removed,
        )
        logger.info(
            "[%s] download-attachments page/%s: %d downloaded, %d skipped, %d removed",
            ctx.correlation_id,
            page_id,
            len(downloaded),
            len(skipped),
            len(removed),
        )
        return AttachmentsDownloadResult(
            downloaded=downloaded,
            skipped=skipped,
            removed=removed,
            attachments_dir=str(layout.attachments_dir),
            meta_file=str(layout.meta_file),
            log_files=log_files,
        )

    async def upload_attachments(
        self,
        page_ref: str,
        root: Path | str | None = None,
        include_titles: Iterable[str] | None = None,
        ctx: SyncContext | None = None,
    ) -> AttachmentsUploadResult:
        """Upload tracked attachments whose local bytes changed.

        Only attachments already present in ``meta.json`` are considered.

        Raises:
            LocalMetadataMissingError: ``meta.json`` does not exist.
            LocalAttachmentMissingError: A tracked attachment file is gone.
        """
        ctx = ctx or SyncContext()
        layout = self._layout(page_ref, root)
        page_id = layout.page_id
        store = MetaStore(layout.meta_file)
        title_filter = _normalize_filter(include_titles)
        oplog = ctx.open_log(layout.log_dir, "upload-attachments")
        log_files = [
            await oplog.write(
                "started",
                pageId=page_id,
                filter=sorted(title_filter or []),
            )
        ]

        uploaded: list[str] = []
        skipped: list[str] = []
        current: str | None = None
        try:
            meta = store.load()
            if meta is None:
                raise LocalMetadataMissingError(str(layout.meta_file))

            candidates = [
                tracked
                for title, tracked in meta.attachments.items()
                if title_filter is None or title in title_filter
            ]
            for tracked in candidates:
                current = tracked.title
                path = layout.attachment_path(tracked.title)
                if not path.is_file():
                    raise LocalAttachmentMissingError(tracked.title, str(path))

                local_hash = await run_sync(file_hash, path)
                if local_hash == tracked.content_hash:
                    skipped.append(tracked.title)
                    continue

                data = await read_bytes_async(path)
                info = await run_io(
                    self.client.upload_attachment,
                    page_id,
                    tracked.title,
                    data,
                    guess_content_type(tracked.title),
                    target=f"page/{page_id}/attachment/{tracked.title}",
                    options=ctx.options,
                )
                meta = meta.with_attachment(
                    tracked.model_copy(
                        update={
                            "id": info.id or tracked.id,
                            "version": info.version
                            if info.version is not None
                            else (tracked.version or 0) + 1,
                            "content_hash": local_hash,
                            "media_type": info.media_type
                            or tracked.media_type,
                            "file_size": info.file_size or len(data),
                            "storage_path": str(path),
                            "last_uploaded_at": _now(),
                        }
                    )
                )
                uploaded.append(tracked.title)
            current = None

            store.save(meta)
        except BaseException as exc:
            await self._record_failure(
                oplog,
                exc,
                log_files,
                pageId=page_id,
                attachmentTitle=current,
                uploaded=uploaded,
            )
            raise

        await oplog.write(
            "completed", pageId=page_id, uploaded=uploaded, skipped=skipped
        )
        logger.info(
            "[%s] upload-attachments page/%s: %d uploaded, %d skipped",
            ctx.correlation_id,
            page_id,
            len(uploaded),
            len(skipped),
        )
        return AttachmentsUploadResult(
            uploaded=uploaded,
            skipped=skipped,
            meta_file=str(layout.meta_file),
            log_files=log_files,
        )
