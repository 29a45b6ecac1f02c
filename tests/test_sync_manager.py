"""Scenario tests for SyncManager against an in-memory Confluence.

Covers:
- Body download writes the expanded body, skips when nothing changed
- Body upload sends the collapsed body only when the file changed
- Version drift is reported before anything is written
- Attachment download dedup, filtering and removal of deleted attachments
- Attachment upload of changed files only
- Timeouts and cancellation are logged and carry the log file paths
"""

from __future__ import annotations

import asyncio
import json
import threading
from pathlib import Path

import pytest

from confluence_mcp_server.core.async_utils import IOOptions
from confluence_mcp_server.errors import (
    InvalidUrlError,
    LocalAttachmentMissingError,
    LocalBodyFileMissingError,
    LocalMetadataMissingError,
    OperationCancelledError,
    OperationTimedOutError,
    PageNotFoundError,
    VersionConflictError,
)
from confluence_mcp_server.sync.formatter import collapse, expand
from confluence_mcp_server.sync.hashing import content_hash
from confluence_mcp_server.sync.layout import CacheLayout
from confluence_mcp_server.sync.manager import SyncManager
from confluence_mcp_server.sync.oplog import OperationLog, SyncContext
from confluence_mcp_server.sync.state import MetaStore

PAGE_URL = "https://example.atlassian.net/wiki/spaces/DOC/pages/12345/Design"


@pytest.fixture
def root(tmp_path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def manager(fake_client, root) -> SyncManager:
    return SyncManager(fake_client, data_dir=root)


@pytest.fixture
def layout(root) -> CacheLayout:
    return CacheLayout.resolve("12345", root)


def _events(log_file: str) -> list[dict]:
    return [
        json.loads(line)
        for line in Path(log_file).read_text(encoding="utf-8").splitlines()
    ]


def _statuses(log_file: str) -> list[str]:
    return [event["status"] for event in _events(log_file)]


# ---------------------------------------------------------------------------
# Body download
# ---------------------------------------------------------------------------


class TestDownloadBody:
    async def test_writes_expanded_body_and_meta(
        self, manager, fake_client, layout
    ):
        result = await manager.download_body(PAGE_URL)

        body = fake_client.pages["12345"].body
        assert result.success
        assert not result.skipped
        assert result.version == 3
        assert Path(result.page_file) == layout.page_file
        assert layout.page_file.read_text(encoding="utf-8") == expand(body)

        meta = MetaStore(layout.meta_file).load()
        assert meta.document_id == "12345"
        assert meta.title == "Design"
        assert meta.version == 3
        assert meta.body_content_hash == content_hash(expand(body))
        assert meta.downloaded_at is not None

        assert len(result.log_files) == 1
        assert _statuses(result.log_files[0]) == ["started", "completed"]

    async def test_hello_page(self, manager, fake_client, layout):
        fake_client.add_page("777", title="Hello", body="<p>Hello</p>", version=3)

        result = await manager.download_body("777")

        assert result.version == 3
        page_file = CacheLayout.resolve("777", layout.root).page_file
        assert page_file.read_text(encoding="utf-8") == "<p>Hello</p>"

    async def test_second_download_is_skipped(self, manager, layout):
        await manager.download_body(PAGE_URL)
        first_meta = MetaStore(layout.meta_file).load()

        result = await manager.download_body(PAGE_URL)

        assert result.skipped
        events = _events(result.log_files[0])
        assert events[-1]["status"] == "skipped"
        assert events[-1]["reason"] == "no_changes"
        meta = MetaStore(layout.meta_file).load()
        assert meta.body_content_hash == first_meta.body_content_hash
        assert meta.version == first_meta.version

    async def test_missing_body_file_is_rewritten(self, manager, layout):
        await manager.download_body(PAGE_URL)
        layout.page_file.unlink()

        result = await manager.download_body(PAGE_URL)

        assert not result.skipped
        assert layout.page_file.is_file()

    async def test_remote_change_is_downloaded(
        self, manager, fake_client, layout
    ):
        await manager.download_body(PAGE_URL)
        fake_client.add_page("12345", title="Design", body="<p>v4</p>", version=4)

        result = await manager.download_body(PAGE_URL)

        assert not result.skipped
        assert result.version == 4
        assert layout.page_file.read_text(encoding="utf-8") == "<p>v4</p>"
        assert MetaStore(layout.meta_file).load().version == 4

    async def test_keeps_tracked_attachments(self, manager, fake_client, layout):
        fake_client.add_attachment("12345", "a.png", b"PNG")
        await manager.download_attachments(PAGE_URL)

        await manager.download_body(PAGE_URL)

        assert "a.png" in MetaStore(layout.meta_file).load().attachments

    async def test_explicit_root_overrides_data_dir(
        self, manager, tmp_path
    ):
        other = tmp_path / "other"
        result = await manager.download_body("12345", root=other)
        assert Path(result.page_file).is_relative_to(other.resolve())

    async def test_page_not_found(self, manager, layout):
        with pytest.raises(PageNotFoundError) as exc_info:
            await manager.download_body("999")

        log_file = exc_info.value.log_files[0]
        events = _events(log_file)
        assert [e["status"] for e in events] == ["started", "failed"]
        assert events[-1]["reason"] == "error"
        assert events[-1]["error"]["code"] == "PAGE_NOT_FOUND"
        assert not CacheLayout.resolve("999", layout.root).meta_file.exists()

    async def test_invalid_url(self, manager):
        with pytest.raises(InvalidUrlError):
            await manager.download_body("https://example.com/nothing")


# ---------------------------------------------------------------------------
# Body upload
# ---------------------------------------------------------------------------


class TestUploadBody:
    async def test_unchanged_body_is_not_uploaded(
        self, manager, fake_client
    ):
        await manager.download_body(PAGE_URL)

        result = await manager.upload_body(PAGE_URL)

        assert result.success
        assert not result.page_updated
        assert result.version == 3
        assert fake_client.calls_to("update_page") == []
        assert _events(result.log_files[0])[-1]["reason"] == "no_changes"

    async def test_edited_body_is_collapsed_and_uploaded(
        self, manager, fake_client, layout
    ):
        await manager.download_body(PAGE_URL)
        edited = layout.page_file.read_text(encoding="utf-8").replace(
            "<p>one</p>", "<p>one, edited</p>"
        )
        layout.page_file.write_bytes(edited.encode("utf-8"))

        result = await manager.upload_body(PAGE_URL, message="tweak")

        assert result.page_updated
        assert result.version == 4
        ((_, page_id, content, version),) = fake_client.calls_to("update_page")
        assert page_id == "12345"
        assert version == 3
        assert content == collapse(edited)
        assert "\n" not in content

        meta = MetaStore(layout.meta_file).load()
        assert meta.body_expanded
        assert meta.version == 4
        assert meta.body_content_hash == content_hash(edited)
        assert meta.last_uploaded_at is not None

        # Nothing left to upload afterwards
        again = await manager.upload_body(PAGE_URL)
        assert not again.page_updated

    async def test_body_left_unexpanded_is_uploaded_verbatim(
        self, manager, fake_client, layout
    ):
        body = "<ul>\n  <li>a</li></ul><p>x</p><p>y</p>"
        fake_client.add_page("12345", title="Design", body=body, version=3)
        await manager.download_body(PAGE_URL)
        assert layout.page_file.read_text(encoding="utf-8") == body
        assert not MetaStore(layout.meta_file).load().body_expanded

        edited = body.replace("<p>y</p>", "<p>z</p>")
        layout.page_file.write_bytes(edited.encode("utf-8"))
        await manager.upload_body(PAGE_URL)

        ((_, _, content, _),) = fake_client.calls_to("update_page")
        assert content == edited

    async def test_version_conflict_changes_nothing(
        self, manager, fake_client, layout
    ):
        await manager.download_body(PAGE_URL)
        meta_before = layout.meta_file.read_bytes()
        edited = layout.page_file.read_text(encoding="utf-8") + "<p>x</p>"
        layout.page_file.write_bytes(edited.encode("utf-8"))
        fake_client.add_page("12345", title="Design", body="<p>other</p>", version=4)

        with pytest.raises(VersionConflictError) as exc_info:
            await manager.upload_body(PAGE_URL)

        error = exc_info.value
        assert error.code == "VERSION_CONFLICT"
        assert error.remote_version == 4
        assert error.local_version == 3
        assert fake_client.calls_to("update_page") == []
        assert fake_client.pages["12345"].body == "<p>other</p>"
        assert layout.meta_file.read_bytes() == meta_before
        assert layout.page_file.read_text(encoding="utf-8") == edited
        assert _statuses(error.log_files[0]) == ["started", "failed"]

    async def test_missing_meta(self, manager, fake_client):
        with pytest.raises(LocalMetadataMissingError) as exc_info:
            await manager.upload_body(PAGE_URL)
        assert exc_info.value.code == "META_NOT_FOUND"
        assert exc_info.value.log_files
        assert fake_client.calls == []

    async def test_missing_body_file(self, manager, fake_client, layout):
        await manager.download_body(PAGE_URL)
        layout.page_file.unlink()
        fake_client.calls.clear()

        with pytest.raises(LocalBodyFileMissingError) as exc_info:
            await manager.upload_body(PAGE_URL)
        assert exc_info.value.code == "PAGE_FILE_NOT_FOUND"
        assert fake_client.calls == []


# ---------------------------------------------------------------------------
# Attachment download
# ---------------------------------------------------------------------------


class TestDownloadAttachments:
    @pytest.fixture(autouse=True)
    def _attachments(self, fake_client):
        fake_client.add_attachment("12345", "diagram.png", b"PNG1", version=1)
        fake_client.add_attachment("12345", "notes.txt", b"notes", version=2)

    async def test_downloads_all(self, manager, layout):
        result = await manager.download_attachments(PAGE_URL)

        assert result.downloaded == ["diagram.png", "notes.txt"]
        assert result.skipped == []
        assert layout.attachment_path("diagram.png").read_bytes() == b"PNG1"
        meta = MetaStore(layout.meta_file).load()
        assert list(meta.attachments) == ["diagram.png", "notes.txt"]
        assert meta.attachments["notes.txt"].version == 2
        assert meta.attachments["notes.txt"].content_hash == content_hash(b"notes")
        assert meta.last_attachment_scan_at is not None

    async def test_creates_meta_from_page(self, manager, fake_client, layout):
        await manager.download_attachments(PAGE_URL)
        meta = MetaStore(layout.meta_file).load()
        assert meta.title == "Design"
        assert meta.version == 3
        assert fake_client.calls_to("get_page")

    async def test_unchanged_attachments_are_skipped(
        self, manager, fake_client
    ):
        await manager.download_attachments(PAGE_URL)
        fake_client.calls.clear()

        result = await manager.download_attachments(PAGE_URL)

        assert result.downloaded == []
        assert result.skipped == ["diagram.png", "notes.txt"]
        assert fake_client.calls_to("download_attachment") == []

    async def test_only_changed_attachment_is_downloaded(
        self, manager, fake_client, layout
    ):
        await manager.download_attachments(PAGE_URL)
        fake_client.add_attachment(
            "12345", "diagram.png", b"PNG2", version=2, att_id="att-d"
        )

        result = await manager.download_attachments(PAGE_URL)

        assert result.downloaded == ["diagram.png"]
        assert result.skipped == ["notes.txt"]
        assert layout.attachment_path("diagram.png").read_bytes() == b"PNG2"
        assert MetaStore(layout.meta_file).load().attachments["diagram.png"].id == "att-d"

    async def test_missing_local_file_is_downloaded_again(
        self, manager, layout
    ):
        await manager.download_attachments(PAGE_URL)
        layout.attachment_path("notes.txt").unlink()

        result = await manager.download_attachments(PAGE_URL)

        assert result.downloaded == ["notes.txt"]

    async def test_unfiltered_run_removes_deleted_attachments(
        self, manager, fake_client, layout
    ):
        await manager.download_attachments(PAGE_URL)
        fake_client.remove_attachment("12345", "notes.txt")

        result = await manager.download_attachments(PAGE_URL)

        assert result.removed == ["notes.txt"]
        assert not layout.attachment_path("notes.txt").exists()
        assert list(MetaStore(layout.meta_file).load().attachments) == [
            "diagram.png"
        ]

    async def test_filtered_run_never_removes(
        self, manager, fake_client, layout
    ):
        await manager.download_attachments(PAGE_URL)
        fake_client.remove_attachment("12345", "notes.txt")

        result = await manager.download_attachments(
            PAGE_URL, include_titles=["diagram.png"]
        )

        assert result.removed == []
        assert layout.attachment_path("notes.txt").exists()
        assert "notes.txt" in MetaStore(layout.meta_file).load().attachments

    async def test_filter_limits_downloads(self, manager, layout):
        result = await manager.download_attachments(
            PAGE_URL, include_titles=[" notes.txt "]
        )

        assert result.downloaded == ["notes.txt"]
        assert not layout.attachment_path("diagram.png").exists()

    async def test_empty_filter_means_all(self, manager):
        result = await manager.download_attachments(PAGE_URL, include_titles=[])
        assert result.downloaded == ["diagram.png", "notes.txt"]

    async def test_blank_filter_is_still_a_filter(
        self, manager, fake_client, layout
    ):
        await manager.download_attachments(PAGE_URL)
        fake_client.remove_attachment("12345", "notes.txt")
        fake_client.calls.clear()

        result = await manager.download_attachments(
            PAGE_URL, include_titles=["", "  "]
        )

        assert result.downloaded == []
        assert result.removed == []
        assert fake_client.calls_to("download_attachment") == []
        assert layout.attachment_path("notes.txt").read_bytes() == b"notes"
        assert "notes.txt" in MetaStore(layout.meta_file).load().attachments

    async def test_failure_keeps_written_files_and_skips_meta(
        self, manager, fake_client, layout
    ):
        broken_id = fake_client.attachments["12345"]["notes.txt"][0].id
        original = fake_client.download_attachment

        def _download(page_id, attachment_id, timeout=10.0):
            if attachment_id == broken_id:
                raise PageNotFoundError(f"page/{page_id}/attachment/{attachment_id}")
            return original(page_id, attachment_id, timeout=timeout)

        fake_client.download_attachment = _download

        with pytest.raises(PageNotFoundError) as exc_info:
            await manager.download_attachments(PAGE_URL)

        assert layout.attachment_path("diagram.png").read_bytes() == b"PNG1"
        assert not layout.meta_file.exists()
        failed = _events(exc_info.value.log_files[0])[-1]
        assert failed["status"] == "failed"
        assert failed["attachmentTitle"] == "notes.txt"
        assert failed["downloaded"] == ["diagram.png"]


# ---------------------------------------------------------------------------
# Attachment upload
# ---------------------------------------------------------------------------


class TestUploadAttachments:
    @pytest.fixture(autouse=True)
    async def _downloaded(self, manager, fake_client):
        fake_client.add_attachment("12345", "diagram.png", b"PNG1", version=1)
        fake_client.add_attachment("12345", "notes.txt", b"notes", version=2)
        await manager.download_attachments(PAGE_URL)
        fake_client.calls.clear()

    async def test_nothing_changed(self, manager, fake_client, monkeypatch):
        async def _unexpected_read(path):
            raise AssertionError(f"unchanged file was read: {path}")

        monkeypatch.setattr(
            "confluence_mcp_server.sync.manager.read_bytes_async",
            _unexpected_read,
        )
        result = await manager.upload_attachments(PAGE_URL)

        assert result.uploaded == []
        assert result.skipped == ["diagram.png", "notes.txt"]
        assert fake_client.calls_to("upload_attachment") == []

    async def test_changed_file_is_uploaded(
        self, manager, fake_client, layout
    ):
        layout.attachment_path("diagram.png").write_bytes(b"PNG-edited")

        result = await manager.upload_attachments(PAGE_URL)

        assert result.uploaded == ["diagram.png"]
        assert result.skipped == ["notes.txt"]
        ((_, page_id, filename, content_type),) = fake_client.calls_to(
            "upload_attachment"
        )
        assert (page_id, filename, content_type) == (
            "12345",
            "diagram.png",
            "image/png",
        )
        tracked = MetaStore(layout.meta_file).load().attachments["diagram.png"]
        assert tracked.version == 2
        assert tracked.content_hash == content_hash(b"PNG-edited")
        assert tracked.file_size == len(b"PNG-edited")
        assert tracked.last_uploaded_at is not None

    async def test_untracked_files_are_ignored(
        self, manager, fake_client, layout
    ):
        layout.attachment_path("new.pdf").write_bytes(b"%PDF")

        result = await manager.upload_attachments(PAGE_URL)

        assert "new.pdf" not in result.uploaded + result.skipped
        assert fake_client.calls_to("upload_attachment") == []

    async def test_filter(self, manager, fake_client, layout):
        layout.attachment_path("diagram.png").write_bytes(b"x")
        layout.attachment_path("notes.txt").write_bytes(b"y")

        result = await manager.upload_attachments(
            PAGE_URL, include_titles=["notes.txt"]
        )

        assert result.uploaded == ["notes.txt"]
        assert result.skipped == []

    async def test_missing_tracked_file(self, manager, fake_client, layout):
        layout.attachment_path("notes.txt").unlink()

        with pytest.raises(LocalAttachmentMissingError) as exc_info:
            await manager.upload_attachments(PAGE_URL)

        assert exc_info.value.code == "ATTACHMENT_FILE_NOT_FOUND"
        assert exc_info.value.title == "notes.txt"
        assert exc_info.value.log_files

    async def test_missing_meta(self, manager, layout):
        layout.meta_file.unlink()
        with pytest.raises(LocalMetadataMissingError):
            await manager.upload_attachments(PAGE_URL)


# ---------------------------------------------------------------------------
# Timeouts and cancellation
# ---------------------------------------------------------------------------


class TestAbortedOperations:
    async def test_timeout_is_logged_without_meta(
        self, manager, fake_client, layout
    ):
        fake_client.block = threading.Event()
        ctx = SyncContext(options=IOOptions(timeout=0.05))
        try:
            with pytest.raises(OperationTimedOutError) as exc_info:
                await manager.download_body(PAGE_URL, ctx=ctx)
        finally:
            fake_client.block.set()

        assert not layout.meta_file.exists()
        failed = _events(exc_info.value.log_files[0])[-1]
        assert failed["status"] == "failed"
        assert failed["reason"] == "timeout"
        assert failed["correlationId"] == ctx.correlation_id

    async def test_cancel_event(self, manager, fake_client, layout):
        event = asyncio.Event()
        event.set()
        ctx = SyncContext(options=IOOptions(cancel_event=event))

        with pytest.raises(OperationCancelledError) as exc_info:
            await manager.download_attachments(PAGE_URL, ctx=ctx)

        assert fake_client.calls == []
        failed = _events(exc_info.value.log_files[0])[-1]
        assert failed["reason"] == "cancelled"
        assert not layout.meta_file.exists()

    async def test_task_cancellation_is_logged(
        self, manager, fake_client, layout
    ):
        fake_client.block = threading.Event()
        task = asyncio.create_task(manager.download_body(PAGE_URL))
        try:
            for _ in range(100):
                if fake_client.calls:
                    break
                await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        finally:
            fake_client.block.set()

        logs = list(layout.log_dir.glob("download-body-*.log"))
        assert len(logs) == 1
        failed = _events(str(logs[0]))[-1]
        assert failed["status"] == "cancelled"
        assert failed["reason"] == "cancelled"
        assert not layout.meta_file.exists()

    async def test_log_write_failure_keeps_original_error(
        self, manager, monkeypatch
    ):
        original = OperationLog._append

        def _append(self, line):
            if '"status": "failed"' in line:
                raise OSError("disk full")
            original(self, line)

        monkeypatch.setattr(OperationLog, "_append", _append)

        with pytest.raises(PageNotFoundError) as exc_info:
            await manager.download_body("999")

        log_files = exc_info.value.log_files
        assert len(log_files) == 1
        assert _statuses(log_files[0]) == ["started"]
