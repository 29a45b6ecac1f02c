"""Pydantic models for the local page cache.

Defines the data contracts of the sync manager:

- ``AttachmentMeta``: Tracked state of one attachment.
- ``DocumentMeta``: Contents of ``meta.json`` for one page.
- ``BodyDownloadResult`` / ``BodyUploadResult``: Outcome of a body sync.
- ``AttachmentsDownloadResult`` / ``AttachmentsUploadResult``: Outcome of
  an attachment sync.

``meta.json`` uses camelCase keys.  In memory, attachments are keyed by
title; on disk they are written as a list in insertion order.

All models are frozen (immutable) for safety; use ``model_copy(update=...)``
to derive an updated record.
"""

from __future__ import annotations

from typing import Any

from pydantic import (
    BaseModel,
    FieldSerializationInfo,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel

_META_CONFIG = {
    "frozen": True,
    "populate_by_name": True,
    "alias_generator": to_camel,
}


class AttachmentMeta(BaseModel):
    """Tracked state of one attachment.

    Attributes:
        id: Remote attachment identifier.
        title: File name; the natural key within a page.
        version: Remote attachment version at the last sync.
        content_hash: SHA-256 of the raw bytes.
        media_type: MIME type.
        file_size: Size in bytes.
        storage_path: Local file path.
        downloaded_at: ISO 8601 timestamp of the last download.
        last_uploaded_at: ISO 8601 timestamp of the last upload.
    """

    id: str
    title: str
    version: int | None = None
    content_hash: str | None = None
    media_type: str | None = None
    file_size: int | None = None
    storage_path: str | None = None
    downloaded_at: str | None = None
    last_uploaded_at: str | None = None

    model_config = _META_CONFIG


class DocumentMeta(BaseModel):
    """Contents of ``meta.json``.

    Attributes:
        document_id: Page identifier.
        title: Page title at the last sync.
        version: Remote page version at the last successful read or write.
        downloaded_at: ISO 8601 timestamp of the last body download.
        last_uploaded_at: ISO 8601 timestamp of the last body upload.
        last_attachment_scan_at: ISO 8601 timestamp of the last attachment
            listing.
        body_content_hash: SHA-256 of the formatted body on disk.
        body_expanded: Whether the body file holds ``expand()`` output that
            must be collapsed before upload.  False when ``expand()`` left
            the server body unchanged.
        storage_path: Path of the local body file.
        attachments: Tracked attachments keyed by title.
    """

    document_id: str
    title: str = ""
    version: int = 0
    downloaded_at: str | None = None
    last_uploaded_at: str | None = None
    last_attachment_scan_at: str | None = None
    body_content_hash: str | None = None
    body_expanded: bool = True
    storage_path: str | None = None
    attachments: dict[str, AttachmentMeta] = {}

    model_config = _META_CONFIG

    @field_validator("attachments", mode="before")
    @classmethod
    def _attachments_by_title(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, list):
            keyed: dict[str, Any] = {}
            for item in value:
                title = (
                    item.get("title")
                    if isinstance(item, dict)
                    else getattr(item, "title", None)
                )
                keyed[title] = item
            return keyed
        return value

    @field_serializer("attachments")
    def _attachments_as_list(
        self, value: dict[str, AttachmentMeta], info: FieldSerializationInfo
    ) -> list[dict]:
        return [
            item.model_dump(
                by_alias=info.by_alias, exclude_none=info.exclude_none
            )
            for item in value.values()
        ]

    def with_attachment(self, attachment: AttachmentMeta) -> DocumentMeta:
        """Return a copy with *attachment* upserted by title."""
        attachments = dict(self.attachments)
        attachments[attachment.title] = attachment
        return self.model_copy(update={"attachments": attachments})

    def without_attachments(self, titles: set[str]) -> DocumentMeta:
        """Return a copy with the given titles dropped."""
        attachments = {
            title: item
            for title, item in self.attachments.items()
            if title not in titles
        }
        return self.model_copy(update={"attachments": attachments})


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


class BodyDownloadResult(BaseModel):
    success: bool = True
    skipped: bool = False
    version: int
    page_file: str
    meta_file: str
    log_files: list[str] = []

    model_config = {"frozen": True}


class BodyUploadResult(BaseModel):
    success: bool = True
    page_updated: bool = False
    version: int
    page_file: str
    meta_file: str
    log_files: list[str] = []

    model_config = {"frozen": True}


class AttachmentsDownloadResult(BaseModel):
    """Titles downloaded, skipped (unchanged) and removed (gone remotely)."""

    success: bool = True
    downloaded: list[str] = []
    skipped: list[str] = []
    removed: list[str] = []
    attachments_dir: str
    meta_file: str
    log_files: list[str] = []

    model_config = {"frozen": True}


class AttachmentsUploadResult(BaseModel):
    success: bool = True
    uploaded: list[str] = []
    skipped: list[str] = []
    meta_file: str
    log_files: list[str] = []

    model_config = {"frozen": True}
