"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_body_download`` / ``format_body_upload`` -- body sync summaries.
- ``format_attachments_download`` / ``format_attachments_upload`` --
  attachment sync summaries.
- ``format_sync_status`` -- summary of a local cache entry.
- ``result_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from .layout import CacheLayout
    from .models import (
        AttachmentsDownloadResult,
        AttachmentsUploadResult,
        BodyDownloadResult,
        BodyUploadResult,
        DocumentMeta,
    )


def _log_lines(log_files: list[str]) -> list[str]:
    if not log_files:
        return []
    return ["", "Operation log:", *(f"  {path}" for path in log_files)]


def _title_section(label: str, titles: list[str]) -> list[str]:
    if not titles:
        return []
    return [f"{label}:", *(f"  {title}" for title in titles)]


# ------------------------------------------------------------------
# Body
# ------------------------------------------------------------------


def format_body_download(result: BodyDownloadResult) -> str:
    if result.skipped:
        head = f"Page body unchanged (version {result.version}), nothing written."
    else:
        head = f"Downloaded page body (version {result.version})."
    lines = [
        head,
        f"Body file: {result.page_file}",
        f"Metadata: {result.meta_file}",
        *_log_lines(result.log_files),
    ]
    return "\n".join(lines)


def format_body_upload(result: BodyUploadResult) -> str:
    if result.page_updated:
        head = f"Uploaded page body, page is now at version {result.version}."
    else:
        head = (
            f"Local body unchanged since version {result.version}, "
            "no update sent."
        )
    lines = [
        head,
        f"Body file: {result.page_file}",
        f"Metadata: {result.meta_file}",
        *_log_lines(result.log_files),
    ]
    return "\n".join(lines)


# ------------------------------------------------------------------
# Attachments
# ------------------------------------------------------------------


def format_attachments_download(result: AttachmentsDownloadResult) -> str:
    """Format an attachment download summary.

    Sections are only included when they contain at least one title.
    """
    lines = [
        f"Attachments: {len(result.downloaded)} downloaded, "
        f"{len(result.skipped)} unchanged, {len(result.removed)} removed",
        f"Directory: {result.attachments_dir}",
        "",
    ]
    lines += _title_section("Downloaded", result.downloaded)
    lines += _title_section("Removed (deleted remotely)", result.removed)
    lines += _log_lines(result.log_files)
    return "\n".join(lines).rstrip()


def format_attachments_upload(result: AttachmentsUploadResult) -> str:
    lines = [
        f"Attachments: {len(result.uploaded)} uploaded, "
        f"{len(result.skipped)} unchanged",
        "",
    ]
    lines += _title_section("Uploaded", result.uploaded)
    lines += _log_lines(result.log_files)
    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Local status
# ------------------------------------------------------------------


def format_sync_status(meta: DocumentMeta | None, layout: CacheLayout) -> str:
    """Describe what the cache holds for one page, without network access."""
    if meta is None:
        return (
            f"No local copy of page {layout.page_id} under {layout.root}.\n"
            "Run page_body_download or page_attachments_download first."
        )

    body_state = "present" if layout.page_file.is_file() else "missing"
    lines = [
        f"Page {meta.document_id}: {meta.title}",
        f"Version: {meta.version}",
        f"Body file: {layout.page_file} ({body_state})",
        f"Downloaded: {meta.downloaded_at or '-'}",
        f"Last uploaded: {meta.last_uploaded_at or '-'}",
        f"Last attachment scan: {meta.last_attachment_scan_at or '-'}",
    ]
    if meta.attachments:
        lines.append("")
        lines.append(f"Attachments ({len(meta.attachments)}):")
        for title, item in meta.attachments.items():
            flag = "" if layout.attachment_path(title).is_file() else " [missing]"
            lines.append(f"  {title} (version {item.version}){flag}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def result_to_json(result: BaseModel) -> dict:
    """Convert an operation result to a camelCase dict.

    Suitable for MCP ``structuredContent`` output.
    """
    return {
        to_camel(key): value for key, value in result.model_dump().items()
    }
