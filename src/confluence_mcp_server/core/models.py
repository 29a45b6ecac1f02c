"""Pydantic models for data returned by the Confluence REST API."""

from __future__ import annotations

from pydantic import BaseModel


class ConfluencePage(BaseModel):
    """A page as returned by ``GET /content/{id}?expand=body.storage,version``.

    Attributes:
        id: Page identifier.
        title: Page title.
        version: Current version number.
        body: Storage-format XHTML body (empty when not expanded).
    """

    id: str
    title: str
    version: int
    body: str = ""

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, data: dict) -> ConfluencePage:
        """Build from a raw REST payload."""
        body = (
            (data.get("body") or {}).get("storage") or {}
        ).get("value", "")
        return cls(
            id=str(data.get("id", "")),
            title=data.get("title", ""),
            version=int((data.get("version") or {}).get("number", 0)),
            body=body or "",
        )


class AttachmentInfo(BaseModel):
    """An attachment listing entry.

    Attributes:
        id: Remote attachment identifier.
        title: File name (unique within a page).
        version: Attachment version number, ``None`` when not reported.
        download_url: Relative download link.
        file_size: Size in bytes.
        media_type: MIME type reported by Confluence.
    """

    id: str
    title: str
    version: int | None = None
    download_url: str = ""
    file_size: int = 0
    media_type: str = ""

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, data: dict) -> AttachmentInfo:
        """Build from a raw REST payload."""
        extensions = data.get("extensions") or {}
        version = (data.get("version") or {}).get("number")
        return cls(
            id=str(data.get("id", "")),
            title=data.get("title", ""),
            version=int(version) if version is not None else None,
            download_url=(data.get("_links") or {}).get("download", ""),
            file_size=int(extensions.get("fileSize") or 0),
            media_type=extensions.get("mediaType") or "",
        )
