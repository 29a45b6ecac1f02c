"""Tests for sync reporter formatting functions.

Covers:
- body download/upload summaries, including the unchanged cases
- attachment summaries only list non-empty sections
- status output for present, missing and partially missing cache entries
- result_to_json structure
"""

from __future__ import annotations

from confluence_mcp_server.sync.layout import CacheLayout
from confluence_mcp_server.sync.models import (
    AttachmentMeta,
    AttachmentsDownloadResult,
    AttachmentsUploadResult,
    BodyDownloadResult,
    BodyUploadResult,
    DocumentMeta,
)
from confluence_mcp_server.sync.reporter import (
    format_attachments_download,
    format_attachments_upload,
    format_body_download,
    format_body_upload,
    format_sync_status,
    result_to_json,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _download(skipped: bool = False, log_files=None) -> BodyDownloadResult:
    return BodyDownloadResult(
        skipped=skipped,
        version=3,
        page_file="/cache/12345/page-body.xhtml",
        meta_file="/cache/12345/meta.json",
        log_files=log_files or [],
    )


# ---------------------------------------------------------------------------
# Body
# ---------------------------------------------------------------------------


class TestFormatBody:
    def test_download(self):
        text = format_body_download(_download())
        assert text.startswith("Downloaded page body (version 3).")
        assert "Body file: /cache/12345/page-body.xhtml" in text
        assert "Operation log" not in text

    def test_download_skipped(self):
        text = format_body_download(_download(skipped=True))
        assert "unchanged (version 3), nothing written" in text

    def test_log_files_listed(self):
        text = format_body_download(
            _download(log_files=["/cache/log/download-body-1.log"])
        )
        assert text.endswith(
            "Operation log:\n  /cache/log/download-body-1.log"
        )

    def test_upload(self):
        result = BodyUploadResult(
            page_updated=True,
            version=4,
            page_file="p",
            meta_file="m",
        )
        assert "now at version 4" in format_body_upload(result)

    def test_upload_unchanged(self):
        result = BodyUploadResult(version=3, page_file="p", meta_file="m")
        assert "no update sent" in format_body_upload(result)


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------


class TestFormatAttachments:
    def test_download_sections(self):
        result = AttachmentsDownloadResult(
            downloaded=["a.png"],
            skipped=["b.txt", "c.txt"],
            removed=["old.pdf"],
            attachments_dir="/cache/1/attachments",
            meta_file="m",
        )
        text = format_attachments_download(result)
        assert text.splitlines()[0] == (
            "Attachments: 1 downloaded, 2 unchanged, 1 removed"
        )
        assert "Downloaded:\n  a.png" in text
        assert "Removed (deleted remotely):\n  old.pdf" in text
        assert "b.txt" not in text

    def test_download_nothing_to_do(self):
        result = AttachmentsDownloadResult(
            skipped=["b.txt"], attachments_dir="/d", meta_file="m"
        )
        text = format_attachments_download(result)
        assert text == (
            "Attachments: 0 downloaded, 1 unchanged, 0 removed\nDirectory: /d"
        )

    def test_upload(self):
        result = AttachmentsUploadResult(
            uploaded=["a.png"],
            meta_file="m",
            log_files=["/l.log"],
        )
        text = format_attachments_upload(result)
        assert text.startswith("Attachments: 1 uploaded, 0 unchanged")
        assert "Uploaded:\n  a.png" in text
        assert text.endswith("  /l.log")


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


class TestFormatSyncStatus:
    def test_no_local_copy(self, tmp_path):
        layout = CacheLayout.resolve("12345", tmp_path)
        text = format_sync_status(None, layout)
        assert "No local copy of page 12345" in text
        assert "page_body_download" in text

    def test_present_and_missing_files(self, tmp_path):
        layout = CacheLayout.resolve("12345", tmp_path).prepare()
        layout.attachment_path("a.png").write_bytes(b"x")
        meta = (
            DocumentMeta(document_id="12345", title="Design", version=3)
            .with_attachment(AttachmentMeta(id="1", title="a.png", version=2))
            .with_attachment(AttachmentMeta(id="2", title="b.txt", version=1))
        )

        text = format_sync_status(meta, layout)

        assert text.splitlines()[0] == "Page 12345: Design"
        assert f"Body file: {layout.page_file} (missing)" in text
        assert "Last uploaded: -" in text
        assert "Attachments (2):" in text
        assert "  a.png (version 2)\n" in text
        assert "  b.txt (version 1) [missing]" in text


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


class TestResultToJson:
    def test_camel_case_keys(self):
        data = result_to_json(_download(log_files=["x.log"]))
        assert data == {
            "success": True,
            "skipped": False,
            "version": 3,
            "pageFile": "/cache/12345/page-body.xhtml",
            "metaFile": "/cache/12345/meta.json",
            "logFiles": ["x.log"],
        }

    def test_attachment_lists(self):
        result = AttachmentsUploadResult(
            uploaded=["a"], skipped=["b"], meta_file="m"
        )
        data = result_to_json(result)
        assert data["uploaded"] == ["a"]
        assert data["skipped"] == ["b"]
        assert data["metaFile"] == "m"
