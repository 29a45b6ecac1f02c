"""Tests for file_handler module: cache file read/write, deletion, content types."""

import pytest

from confluence_mcp_server.file_handler import (
    DEFAULT_CONTENT_TYPE,
    guess_content_type,
    read_bytes_async,
    read_text,
    read_text_async,
    safe_unlink,
    safe_unlink_async,
    write_bytes,
    write_bytes_async,
    write_text,
    write_text_async,
)

# =============================================================================
# Text
# =============================================================================


class TestTextFiles:
    def test_roundtrip_utf8(self, tmp_path):
        f = tmp_path / "page-body.xhtml"
        written = write_text(f, "<p>Grüße</p>")
        assert written == len("<p>Grüße</p>".encode("utf-8"))
        assert read_text(f) == "<p>Grüße</p>"

    def test_creates_parent_directories(self, tmp_path):
        f = tmp_path / "a" / "b" / "page.xhtml"
        write_text(f, "x")
        assert f.read_bytes() == b"x"

    def test_newlines_are_not_translated(self, tmp_path):
        f = tmp_path / "crlf.xhtml"
        write_text(f, "<p>a</p>\r\n<p>b</p>\n")
        assert f.read_bytes() == b"<p>a</p>\r\n<p>b</p>\n"
        assert read_text(f) == "<p>a</p>\r\n<p>b</p>\n"

    def test_read_missing_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_text(tmp_path / "missing.xhtml")


# =============================================================================
# Bytes and deletion
# =============================================================================


class TestBinaryFiles:
    def test_write_bytes_creates_parents(self, tmp_path):
        f = tmp_path / "attachments" / "a.png"
        assert write_bytes(f, b"\x89PNG\x00") == 5
        assert f.read_bytes() == b"\x89PNG\x00"

    def test_safe_unlink_existing(self, tmp_path):
        f = tmp_path / "a.bin"
        f.write_bytes(b"x")
        assert safe_unlink(f) is True
        assert not f.exists()

    def test_safe_unlink_missing(self, tmp_path):
        assert safe_unlink(tmp_path / "missing.bin") is False


# =============================================================================
# Content types
# =============================================================================


class TestGuessContentType:
    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("diagram.png", "image/png"),
            ("photo.JPG", "image/jpeg"),
            ("photo.jpeg", "image/jpeg"),
            ("anim.gif", "image/gif"),
            ("pic.webp", "image/webp"),
            ("logo.svg", "image/svg+xml"),
            ("spec.pdf", "application/pdf"),
            ("notes.txt", "text/plain"),
            ("README.md", "text/markdown"),
            ("page.html", "application/xhtml+xml"),
            ("page.xhtml", "application/xhtml+xml"),
        ],
    )
    def test_known_extensions(self, filename, expected):
        assert guess_content_type(filename) == expected

    def test_falls_back_to_mimetypes(self):
        assert guess_content_type("data.json") == "application/json"

    def test_unknown_extension(self):
        assert guess_content_type("blob.zzzunknown") == DEFAULT_CONTENT_TYPE

    def test_no_extension(self):
        assert guess_content_type("Makefile") == DEFAULT_CONTENT_TYPE


# =============================================================================
# Async wrappers
# =============================================================================


class TestAsyncWrappers:
    async def test_text_roundtrip(self, tmp_path):
        f = tmp_path / "p.xhtml"
        await write_text_async(f, "<p>x</p>")
        assert await read_text_async(f) == "<p>x</p>"

    async def test_bytes_roundtrip(self, tmp_path):
        f = tmp_path / "a.bin"
        await write_bytes_async(f, b"\x00\x01")
        assert await read_bytes_async(f) == b"\x00\x01"

    async def test_unlink(self, tmp_path):
        f = tmp_path / "a.bin"
        f.write_bytes(b"x")
        assert await safe_unlink_async(f) is True
        assert await safe_unlink_async(f) is False
